import json

import httpx
import redis.asyncio as aioredis

from shared.cache import InMemoryCache, RedisCache
from shared.notifications import HttpNotificationSink, NotificationKind, Notifier


class BrokenRedis:
    async def get(self, key):
        raise aioredis.ConnectionError("redis down")

    async def set(self, key, value, ex=None):
        raise aioredis.ConnectionError("redis down")

    async def delete(self, *keys):
        raise aioredis.ConnectionError("redis down")


class DictRedis:
    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value

    async def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)


async def test_in_memory_cache_round_trip_and_invalidate():
    cache = InMemoryCache()
    await cache.set("a", {"x": 1})
    await cache.set("b", [1, 2])

    assert await cache.get("a") == {"x": 1}

    await cache.invalidate("a", "missing")
    assert await cache.get("a") is None
    assert await cache.get("b") == [1, 2]


async def test_in_memory_cache_expires_entries():
    cache = InMemoryCache()
    await cache.set("a", {"x": 1}, ttl=0)

    assert await cache.get("a") is None


async def test_redis_cache_stores_json_with_ttl():
    client = DictRedis()
    cache = RedisCache(client)

    await cache.set("orders:buyer:b1", {"orders": []}, ttl=30)

    assert json.loads(client.store["orders:buyer:b1"]) == {"orders": []}
    assert await cache.get("orders:buyer:b1") == {"orders": []}
    await cache.invalidate("orders:buyer:b1")
    assert await cache.get("orders:buyer:b1") is None


async def test_redis_outage_degrades_to_cache_miss():
    cache = RedisCache(BrokenRedis())

    assert await cache.get("anything") is None
    await cache.set("anything", {"x": 1})
    await cache.invalidate("anything")


async def test_http_sink_posts_notification():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(202)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        notifier = Notifier(HttpNotificationSink("http://notify.local/send", client))
        delivered = await notifier.notify(NotificationKind.ORDER_SHIPPED, "buyer-1", {"orderId": 5})

    assert delivered is True
    assert seen == [{"kind": "ORDER_SHIPPED", "userId": "buyer-1", "context": {"orderId": 5}}]


async def test_notifier_swallows_sink_failures():
    async with httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503))) as client:
        notifier = Notifier(HttpNotificationSink("http://notify.local/send", client))
        delivered = await notifier.notify(NotificationKind.ORDER_PLACED, "buyer-1")

    assert delivered is False
