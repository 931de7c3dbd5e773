"""In-memory last-known-good snapshot per feed.

Only refresh jobs (and the cold-start seed in the query service) publish.
Once published, a Snapshot belongs to the store: ``get`` and ``state``
hand readers a deep copy, so nothing a reader does to a payload reaches
the stored value. Each feed has its own lock for the compare-and-swap in
``publish``. Reads never take a lock: replacing ``FeedState.snapshot`` is
a single reference assignment, so a reader sees either the old or the new
Snapshot in full.
"""

from __future__ import annotations

import datetime
import threading

import structlog

from agrifeed.errors import FeedError
from agrifeed.schemas.feed import FeedErrorRecord, FeedId, FeedStateView, Snapshot

logger = structlog.get_logger()


def _detached(snapshot: Snapshot | None) -> Snapshot | None:
    return snapshot.model_copy(deep=True) if snapshot is not None else None


class FeedState:
    __slots__ = (
        "feed_id",
        "snapshot",
        "last_error",
        "publish_count",
        "suppressed_count",
        "failure_count",
        "consecutive_failures",
        "lock",
    )

    def __init__(self, feed_id: FeedId) -> None:
        self.feed_id = feed_id
        self.snapshot: Snapshot | None = None
        self.last_error: FeedErrorRecord | None = None
        self.publish_count = 0
        self.suppressed_count = 0
        self.failure_count = 0
        self.consecutive_failures = 0
        self.lock = threading.Lock()


class FeedStore:
    def __init__(self, feed_ids=None) -> None:
        ids = list(feed_ids) if feed_ids is not None else list(FeedId)
        self._states: dict[FeedId, FeedState] = {feed_id: FeedState(feed_id) for feed_id in ids}

    @property
    def feed_ids(self) -> list[FeedId]:
        return list(self._states)

    def _state(self, feed_id: FeedId) -> FeedState:
        try:
            return self._states[feed_id]
        except KeyError:
            raise KeyError(f"Unknown feed: {feed_id!r}") from None

    def get(self, feed_id: FeedId) -> Snapshot | None:
        return _detached(self._state(feed_id).snapshot)

    def publish(self, feed_id: FeedId, snapshot: Snapshot) -> bool:
        """Replace the current snapshot unless it is newer than ``snapshot``.

        Returns True when the snapshot was published, False when it was
        discarded as out of order.
        """
        if snapshot.feed_id != feed_id:
            raise ValueError(
                f"Snapshot for {snapshot.feed_id.value} cannot be published to {feed_id.value}."
            )
        state = self._state(feed_id)
        owned = snapshot.model_copy(deep=True)
        with state.lock:
            current = state.snapshot
            if current is not None and snapshot.fetched_at < current.fetched_at:
                state.suppressed_count += 1
                logger.warning(
                    "snapshot_overwrite_suppressed",
                    feed_id=feed_id.value,
                    current_fetched_at=current.fetched_at.isoformat(),
                    rejected_fetched_at=snapshot.fetched_at.isoformat(),
                )
                return False
            state.snapshot = owned
            state.publish_count += 1
        return True

    def record_error(self, feed_id: FeedId, error: FeedError, occurred_at: datetime.datetime) -> None:
        state = self._state(feed_id)
        record = FeedErrorRecord(kind=error.kind, message=str(error), occurred_at=occurred_at)
        with state.lock:
            state.last_error = record
            state.failure_count += 1
            state.consecutive_failures += 1

    def clear_error(self, feed_id: FeedId) -> None:
        state = self._state(feed_id)
        with state.lock:
            state.last_error = None
            state.consecutive_failures = 0

    def state(self, feed_id: FeedId) -> FeedStateView:
        state = self._state(feed_id)
        with state.lock:
            return FeedStateView(
                feed_id=feed_id,
                snapshot=_detached(state.snapshot),
                last_error=state.last_error,
                publish_count=state.publish_count,
                suppressed_count=state.suppressed_count,
                failure_count=state.failure_count,
                consecutive_failures=state.consecutive_failures,
            )
