from __future__ import annotations

import datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from agrifeed.db.models import Base, FeedSnapshotRecord
from agrifeed.errors import PersistenceError
from agrifeed.schemas.feed import FeedId, Snapshot


def build_upsert(feed_id: FeedId, snapshot: Snapshot):
    now = datetime.datetime.now(datetime.timezone.utc)
    stmt = insert(FeedSnapshotRecord).values(
        feed_id=feed_id.value,
        payload=snapshot.payload,
        fetched_at=snapshot.fetched_at,
        updated_at=now,
    )
    # Older results never replace a newer durable row.
    return stmt.on_conflict_do_update(
        index_elements=[FeedSnapshotRecord.feed_id],
        set_={
            FeedSnapshotRecord.payload: stmt.excluded.payload_json,
            FeedSnapshotRecord.fetched_at: stmt.excluded.fetched_at,
            FeedSnapshotRecord.updated_at: now,
        },
        where=FeedSnapshotRecord.fetched_at <= stmt.excluded.fetched_at,
    )


class DatabasePersistenceGateway:
    def __init__(self, session_factory: async_sessionmaker, engine: AsyncEngine | None = None) -> None:
        self._session_factory = session_factory
        self._engine = engine

    async def create_schema(self) -> None:
        if self._engine is None:
            return
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Schema setup failed: {exc}") from exc

    async def put(self, feed_id: FeedId, snapshot: Snapshot) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(build_upsert(feed_id, snapshot))
                await session.commit()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Database write failed: {exc}", feed_id=feed_id.value) from exc

    async def get(self, feed_id: FeedId) -> Snapshot | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(FeedSnapshotRecord).where(FeedSnapshotRecord.feed_id == feed_id.value)
                )
                record = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Database read failed: {exc}", feed_id=feed_id.value) from exc

        if record is None:
            return None
        return Snapshot(feed_id=feed_id, payload=record.payload, fetched_at=record.fetched_at)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
