from __future__ import annotations

from pydantic import ValidationError as SchemaError
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from agrifeed.errors import PersistenceError
from agrifeed.schemas.feed import FeedId, Snapshot

KEY_PREFIX = "agrifeed:snapshot"


def snapshot_key(feed_id: FeedId) -> str:
    return f"{KEY_PREFIX}:{feed_id.value}"


class RedisPersistenceGateway:
    def __init__(self, redis_url: str, ttl_seconds: int | None = None, client=None) -> None:
        self._redis_url = redis_url
        self._ttl_seconds = ttl_seconds
        self._client = client

    def _get_client(self) -> aioredis.Redis:
        if self._client is None:
            self._client = aioredis.Redis.from_url(self._redis_url)
        return self._client

    async def put(self, feed_id: FeedId, snapshot: Snapshot) -> None:
        body = snapshot.model_dump_json()
        try:
            client = self._get_client()
            if self._ttl_seconds:
                await client.setex(snapshot_key(feed_id), self._ttl_seconds, body)
            else:
                await client.set(snapshot_key(feed_id), body)
        except (RedisError, OSError) as exc:
            raise PersistenceError(f"Redis write failed: {exc}", feed_id=feed_id.value) from exc

    async def get(self, feed_id: FeedId) -> Snapshot | None:
        try:
            client = self._get_client()
            raw = await client.get(snapshot_key(feed_id))
        except (RedisError, OSError) as exc:
            raise PersistenceError(f"Redis read failed: {exc}", feed_id=feed_id.value) from exc

        if not raw:
            return None

        try:
            snapshot = Snapshot.model_validate_json(raw)
        except SchemaError:
            return None
        if snapshot.feed_id != feed_id:
            return None
        return snapshot

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
