"""Shared fakes for agrifeed tests."""

import asyncio
import datetime

import pytest

from agrifeed.cache import FeedStore
from agrifeed.errors import PersistenceError
from agrifeed.persistence.base import InMemoryPersistenceGateway
from agrifeed.schemas.feed import FeedId, Snapshot

BASE_TIME = datetime.datetime(2026, 3, 1, 9, 0, tzinfo=datetime.timezone.utc)


class FakeFetchClient:
    def __init__(self, payload=None, error: Exception | None = None, gate: asyncio.Event | None = None) -> None:
        self.payload = payload
        self.error = error
        self.gate = gate
        self.calls = 0

    async def fetch(self):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.payload


class RecordingGateway(InMemoryPersistenceGateway):
    def __init__(self, fail_put: bool = False, fail_get: bool = False) -> None:
        super().__init__()
        self.fail_put = fail_put
        self.fail_get = fail_get
        self.puts: list[tuple[FeedId, Snapshot]] = []
        self.gets: list[FeedId] = []

    async def put(self, feed_id: FeedId, snapshot: Snapshot) -> None:
        self.puts.append((feed_id, snapshot))
        if self.fail_put:
            raise PersistenceError("disk full", feed_id=feed_id.value)
        await super().put(feed_id, snapshot)

    async def get(self, feed_id: FeedId):
        self.gets.append(feed_id)
        if self.fail_get:
            raise PersistenceError("connection refused", feed_id=feed_id.value)
        return await super().get(feed_id)


def make_snapshot(feed_id: FeedId = FeedId.MARKET, payload=None, seconds: float = 0) -> Snapshot:
    return Snapshot(
        feed_id=feed_id,
        payload=payload if payload is not None else {"rice": 32.5},
        fetched_at=BASE_TIME + datetime.timedelta(seconds=seconds),
    )


class FixedClock:
    def __init__(self, now: datetime.datetime = BASE_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + datetime.timedelta(seconds=seconds)


@pytest.fixture
def store() -> FeedStore:
    return FeedStore()


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()
