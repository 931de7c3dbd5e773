from __future__ import annotations

import asyncio
import datetime
from typing import Callable, Mapping

import structlog

from agrifeed.cache import FeedStore
from agrifeed.errors import PersistenceError
from agrifeed.jobs.refresh import utcnow
from agrifeed.persistence.base import PersistenceGateway
from agrifeed.schemas.feed import FeedId, Snapshot, SnapshotStatus, SnapshotView

logger = structlog.get_logger()


class QueryService:
    """Read-only access to the cached snapshots.

    Serves whatever was last published. Only when a feed has never been
    published in this process does it read the persistence gateway once,
    so a freshly started process can answer before its first refresh.
    """

    def __init__(
        self,
        store: FeedStore,
        gateway: PersistenceGateway,
        *,
        freshness_seconds: Mapping[FeedId, float] | None = None,
        read_timeout_seconds: float = 2.0,
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.freshness_seconds = dict(freshness_seconds or {})
        self.read_timeout_seconds = read_timeout_seconds
        self.clock = clock

    async def get_snapshot(self, feed_id: FeedId) -> SnapshotView:
        snapshot = self.store.get(feed_id)
        if snapshot is None:
            snapshot = await self._load_persisted(feed_id)
        if snapshot is None:
            return SnapshotView(feed_id=feed_id, status=SnapshotStatus.UNAVAILABLE)
        return self._view(snapshot)

    async def get_all(self) -> dict[FeedId, SnapshotView]:
        views = await asyncio.gather(*(self.get_snapshot(feed_id) for feed_id in self.store.feed_ids))
        return {view.feed_id: view for view in views}

    async def _load_persisted(self, feed_id: FeedId) -> Snapshot | None:
        try:
            snapshot = await asyncio.wait_for(self.gateway.get(feed_id), self.read_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("persisted_read_timeout", feed_id=feed_id.value)
            return None
        except PersistenceError as exc:
            logger.warning("persisted_read_failed", feed_id=feed_id.value, error=str(exc))
            return None
        except Exception:
            logger.exception("persisted_read_failed", feed_id=feed_id.value)
            return None

        if snapshot is None:
            return None
        self.store.publish(feed_id, snapshot)
        # Another publish may have landed while we were reading.
        current = self.store.get(feed_id)
        return current if current is not None else snapshot

    def _view(self, snapshot: Snapshot) -> SnapshotView:
        age = max((self.clock() - snapshot.fetched_at).total_seconds(), 0.0)
        threshold = self.freshness_seconds.get(snapshot.feed_id)
        status = SnapshotStatus.FRESH
        if threshold is not None and age > threshold:
            status = SnapshotStatus.STALE
        return SnapshotView(
            feed_id=snapshot.feed_id,
            status=status,
            fetched_at=snapshot.fetched_at,
            age_seconds=round(age, 1),
            payload=snapshot.payload,
        )
