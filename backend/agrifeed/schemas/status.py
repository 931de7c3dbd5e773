from __future__ import annotations

import datetime

from pydantic import BaseModel, Field

from agrifeed.schemas.feed import FeedErrorRecord, FeedId, SnapshotStatus


class FeedStatusEntry(BaseModel):
    feed_id: FeedId
    status: SnapshotStatus
    fetched_at: datetime.datetime | None = None
    age_seconds: float | None = None
    last_error: FeedErrorRecord | None = None
    consecutive_failures: int = 0
    suppressed_count: int = 0
    trigger_state: str | None = None
    next_fire_time: datetime.datetime | None = None
    skip_count: int = 0
    last_outcome: str | None = None


class StatusResponse(BaseModel):
    scheduler_running: bool
    feeds: list[FeedStatusEntry] = Field(default_factory=list)
