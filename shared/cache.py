"""
Read-through cache used by the order, tracking and admin list views.

Cached values are JSON documents. A cache outage only costs latency: every
error is logged and the caller falls back to the database. No state
transition ever reads from here.
"""
import json
import time
from typing import Any, Dict, Optional, Tuple

import redis.asyncio as aioredis
import structlog

from shared.observability import mkt_cache_errors_total

logger = structlog.get_logger(__name__)

DEFAULT_TTL = 300


class CacheKeys:
    PRODUCTS_LIST = "products:list"
    ADMIN_ORDERS = "admin:orders:list"
    ADMIN_PAYMENTS = "admin:payments:list"

    @staticmethod
    def product_detail(product_id: int) -> str:
        return f"products:detail:{product_id}"

    @staticmethod
    def cart(buyer_id: str) -> str:
        return f"cart:{buyer_id}"

    @staticmethod
    def buyer_orders(buyer_id: str) -> str:
        return f"orders:buyer:{buyer_id}"

    @staticmethod
    def order_detail(order_id: int) -> str:
        return f"orders:detail:{order_id}"

    @staticmethod
    def tracking(order_id: int) -> str:
        return f"tracking:{order_id}"


class CacheStore:
    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def set(self, key: str, value: Any, ttl: int = DEFAULT_TTL) -> None:
        raise NotImplementedError

    async def invalidate(self, *keys: str) -> None:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class RedisCache(CacheStore):
    def __init__(self, client: aioredis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        return cls(aioredis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.client.get(key)
        except aioredis.RedisError as exc:
            logger.warning("cache_get_failed", key=key, error=str(exc))
            mkt_cache_errors_total.labels(operation="get").inc()
            return None
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any, ttl: int = DEFAULT_TTL) -> None:
        try:
            await self.client.set(key, json.dumps(value, default=str), ex=ttl)
        except aioredis.RedisError as exc:
            logger.warning("cache_set_failed", key=key, error=str(exc))
            mkt_cache_errors_total.labels(operation="set").inc()

    async def invalidate(self, *keys: str) -> None:
        if not keys:
            return
        try:
            await self.client.delete(*keys)
        except aioredis.RedisError as exc:
            logger.warning("cache_invalidate_failed", keys=list(keys), error=str(exc))
            mkt_cache_errors_total.labels(operation="invalidate").inc()

    async def close(self) -> None:
        await self.client.aclose()


class InMemoryCache(CacheStore):
    """Process-local cache for development and tests."""

    def __init__(self):
        self._entries: Dict[str, Tuple[float, str]] = {}

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, raw = entry
        if expires_at <= time.monotonic():
            self._entries.pop(key, None)
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: int = DEFAULT_TTL) -> None:
        self._entries[key] = (time.monotonic() + ttl, json.dumps(value, default=str))

    async def invalidate(self, *keys: str) -> None:
        for key in keys:
            self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
