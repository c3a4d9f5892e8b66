from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AuditLogResponse(BaseModel):
    id: int
    actor_id: str
    action: str
    entity_type: str
    entity_id: str
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias="details")
    created_at: datetime

    class Config:
        from_attributes = True


class AuditLogListResponse(BaseModel):
    audit_logs: List[AuditLogResponse]
