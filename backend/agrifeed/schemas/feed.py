from __future__ import annotations

import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class FeedId(str, Enum):
    WEATHER = "weather"
    MARKET = "market"
    NEWS = "news"
    ALERTS = "alerts"
    CROP_PLAN = "cropPlan"

    @property
    def settings_key(self) -> str:
        return "crop_plan" if self is FeedId.CROP_PLAN else self.value


# Route names served by the original dashboard that differ from the feed id.
FEED_ROUTE_ALIASES: dict[str, FeedId] = {"crops": FeedId.CROP_PLAN}


def resolve_feed_name(name: str) -> FeedId | None:
    """Match a route or settings name to a feed.

    Case and underscores are ignored, so ``cropPlan``, ``crop_plan`` and
    the lowercased ``cropplan`` that environment variables produce all
    resolve to the same feed.
    """
    cleaned = name.strip().replace("_", "").casefold()
    if cleaned in FEED_ROUTE_ALIASES:
        return FEED_ROUTE_ALIASES[cleaned]
    for feed_id in FeedId:
        if feed_id.value.casefold() == cleaned:
            return feed_id
    return None


class SnapshotStatus(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    UNAVAILABLE = "unavailable"


class Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    feed_id: FeedId
    payload: Any
    fetched_at: datetime.datetime
    status: SnapshotStatus = SnapshotStatus.FRESH


class SnapshotView(BaseModel):
    feed_id: FeedId
    status: SnapshotStatus
    fetched_at: datetime.datetime | None = None
    age_seconds: float | None = None
    payload: Any = None


class ScheduleSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    feed_id: FeedId
    interval_seconds: float | None = None
    cron: str | None = None
    jitter_seconds: int | None = None


class FeedErrorRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str
    message: str
    occurred_at: datetime.datetime


class FeedStateView(BaseModel):
    feed_id: FeedId
    snapshot: Snapshot | None = None
    last_error: FeedErrorRecord | None = None
    publish_count: int = 0
    suppressed_count: int = 0
    failure_count: int = 0
    consecutive_failures: int = 0


RefreshOutcome = Literal["ok", "failed", "skipped", "cancelled"]


class RefreshResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    feed_id: FeedId
    outcome: RefreshOutcome
    started_at: datetime.datetime | None = None
    finished_at: datetime.datetime | None = None
    snapshot: Snapshot | None = None
    error: Exception | None = Field(default=None, exclude=True)
    persisted: bool = False
    published: bool = False

    @property
    def error_kind(self) -> str | None:
        return getattr(self.error, "kind", None) if self.error else None
