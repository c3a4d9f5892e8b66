"""
Audit trail for privileged actions.

Every privileged mutation goes through ``AuditLogger.perform``: the mutation
and its audit row share one transaction, so an entry exists exactly when the
change it documents was committed.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import transaction
from shared.errors import ValidationError

from .models import AuditAction, AuditEntityType, AuditLog
from .repository import AuditRepository
from .schemas import AuditLogListResponse, AuditLogResponse

logger = structlog.get_logger(__name__)


@dataclass
class Audited:
    """What a privileged mutation hands back to ``perform``."""

    result: Any
    entity_id: Union[int, str]
    metadata: Dict[str, Any] = field(default_factory=dict)


class AuditLogger:

    async def log_action(
        self,
        db: AsyncSession,
        actor_id: str,
        action: Union[AuditAction, str],
        entity_type: Union[AuditEntityType, str],
        entity_id: Union[int, str],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        """Append one entry. The caller owns the transaction."""
        action = action.value if isinstance(action, AuditAction) else action
        entity_type = entity_type.value if isinstance(entity_type, AuditEntityType) else entity_type
        missing = [
            name for name, value in (
                ("actor_id", actor_id),
                ("action", action),
                ("entity_type", entity_type),
                ("entity_id", entity_id),
            )
            if value is None or value == ""
        ]
        if missing:
            raise ValidationError("Audit entry is missing required fields", details=missing)

        entry = await AuditRepository.create(db, AuditLog(
            actor_id=str(actor_id),
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id),
            details=metadata,
        ))
        logger.info(
            "audit_logged",
            actor_id=entry.actor_id,
            action=entry.action,
            entity_type=entry.entity_type,
            entity_id=entry.entity_id,
        )
        return entry

    async def perform(
        self,
        db: AsyncSession,
        actor_id: str,
        action: AuditAction,
        entity_type: AuditEntityType,
        mutation: Callable[[], Awaitable[Audited]],
    ) -> Any:
        """Run ``mutation`` and log it, committing both or neither."""
        async with transaction(db):
            outcome = await mutation()
            await self.log_action(db, actor_id, action, entity_type, outcome.entity_id, outcome.metadata)
        return outcome.result

    async def get_audit_logs(
        self,
        db: AsyncSession,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 100,
    ) -> AuditLogListResponse:
        logs = await AuditRepository.find_all(
            db,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
        )
        return AuditLogListResponse(audit_logs=[AuditLogResponse.model_validate(log) for log in logs])

    async def get_entity_history(self, db: AsyncSession, entity_type: str, entity_id: str) -> AuditLogListResponse:
        logs = await AuditRepository.find_by_entity(db, entity_type, entity_id)
        return AuditLogListResponse(audit_logs=[AuditLogResponse.model_validate(log) for log in logs])
