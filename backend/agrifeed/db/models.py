# backend/agrifeed/db/models.py

import datetime

from sqlalchemy import Column, DateTime, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class FeedSnapshotRecord(Base):
    __tablename__ = "feed_snapshots"

    feed_id = Column(String, primary_key=True)
    payload = Column("payload_json", JSONB)
    fetched_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.datetime.now(datetime.timezone.utc),
        onupdate=lambda: datetime.datetime.now(datetime.timezone.utc),
    )

    def __repr__(self):
        return f"<FeedSnapshotRecord(feed_id='{self.feed_id}', fetched_at='{self.fetched_at}')>"
