from __future__ import annotations

from typing import Protocol

from agrifeed.schemas.feed import FeedId, Snapshot


class PersistenceGateway(Protocol):
    """Durable backing store for the last snapshot of each feed.

    Implementations raise ``PersistenceError`` when the store cannot be
    written or read.
    """

    async def put(self, feed_id: FeedId, snapshot: Snapshot) -> None: ...

    async def get(self, feed_id: FeedId) -> Snapshot | None: ...


class InMemoryPersistenceGateway:
    def __init__(self) -> None:
        self.snapshots: dict[FeedId, Snapshot] = {}

    async def put(self, feed_id: FeedId, snapshot: Snapshot) -> None:
        current = self.snapshots.get(feed_id)
        if current is not None and snapshot.fetched_at < current.fetched_at:
            return
        self.snapshots[feed_id] = snapshot

    async def get(self, feed_id: FeedId) -> Snapshot | None:
        return self.snapshots.get(feed_id)
