"""
Fire-and-forget notification side channel.

Delivery is somebody else's job (email/SMS workers behind NOTIFICATION_URL).
From here a notification is one attempt: failures are logged and counted,
never raised and never retried, so a paid order is never reported as failed
because an email could not be queued.
"""
from enum import Enum
from typing import Any, Dict, Optional

import httpx
import structlog

from shared.observability import mkt_notification_failures_total

logger = structlog.get_logger(__name__)


class NotificationKind(str, Enum):
    ORDER_PLACED = "ORDER_PLACED"
    SELLER_NEW_ORDER = "SELLER_NEW_ORDER"
    ORDER_CONFIRMED = "ORDER_CONFIRMED"
    SELLER_ORDER_PAID = "SELLER_ORDER_PAID"
    ORDER_SHIPPED = "ORDER_SHIPPED"
    ORDER_DELIVERED = "ORDER_DELIVERED"


class NotificationSink:
    async def send(self, kind: NotificationKind, user_id: str, context: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class LogNotificationSink(NotificationSink):
    async def send(self, kind, user_id, context):
        logger.info("notification", kind=kind.value, user_id=user_id, context=context)


class HttpNotificationSink(NotificationSink):
    def __init__(self, url: str, client: httpx.AsyncClient, timeout: float = 5.0):
        self.url = url
        self.client = client
        self.timeout = timeout

    async def send(self, kind, user_id, context):
        resp = await self.client.post(
            self.url,
            json={"kind": kind.value, "userId": user_id, "context": context},
            timeout=self.timeout,
        )
        resp.raise_for_status()


class Notifier:
    def __init__(self, sink: NotificationSink):
        self.sink = sink

    async def notify(self, kind: NotificationKind, user_id: str, context: Optional[Dict[str, Any]] = None) -> bool:
        """Returns False when the sink failed; the failure is already logged."""
        try:
            await self.sink.send(kind, user_id, context or {})
            return True
        except Exception as exc:
            logger.warning(
                "notification_failed",
                kind=kind.value,
                user_id=user_id,
                error=str(exc),
            )
            mkt_notification_failures_total.labels(kind=kind.value).inc()
            return False
