from __future__ import annotations

import asyncio
import copy
import datetime
from typing import Callable

import structlog

from agrifeed.cache import FeedStore
from agrifeed.errors import ConcurrencyError, FeedError, FetchError, PersistenceError, ValidationError
from agrifeed.persistence.base import PersistenceGateway
from agrifeed.providers.base import FetchClient
from agrifeed.schemas.feed import FeedId, RefreshResult, Snapshot, SnapshotStatus
from agrifeed.validation.validator import validate_payload

logger = structlog.get_logger()


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class RefreshJob:
    """One fetch, validate, persist, publish cycle for a single feed.

    Failures are returned as ``RefreshResult`` values; the previous snapshot
    stays in the store. Only ``asyncio.CancelledError`` leaves ``run``.
    """

    def __init__(
        self,
        feed_id: FeedId,
        fetch_client: FetchClient,
        store: FeedStore,
        gateway: PersistenceGateway,
        *,
        fetch_timeout_seconds: float | None = None,
        clock: Callable[[], datetime.datetime] = utcnow,
    ) -> None:
        self.feed_id = feed_id
        self.fetch_client = fetch_client
        self.store = store
        self.gateway = gateway
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self.clock = clock
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def run(self) -> RefreshResult:
        # No await between the check and the set: at most one run per job.
        if self._in_flight:
            logger.info("refresh_skipped", feed_id=self.feed_id.value, reason="in_flight")
            return RefreshResult(
                feed_id=self.feed_id,
                outcome="skipped",
                error=ConcurrencyError("Previous refresh still in flight.", feed_id=self.feed_id.value),
            )

        self._in_flight = True
        try:
            return await self._run_cycle()
        except asyncio.CancelledError:
            logger.warning("refresh_cancelled", feed_id=self.feed_id.value)
            raise
        finally:
            self._in_flight = False

    async def _run_cycle(self) -> RefreshResult:
        started_at = self.clock()
        log = logger.bind(feed_id=self.feed_id.value)

        try:
            payload = await self._fetch()
            self._validate(payload)
        except FeedError as exc:
            return self._fail(started_at, exc)

        snapshot = Snapshot(
            feed_id=self.feed_id,
            payload=copy.deepcopy(payload),
            fetched_at=started_at,
            status=SnapshotStatus.FRESH,
        )

        persisted = True
        try:
            await self.gateway.put(self.feed_id, snapshot)
        except PersistenceError as exc:
            persisted = False
            self.store.record_error(self.feed_id, exc, self.clock())
            log.warning("snapshot_persist_failed", error=str(exc))
        except Exception as exc:
            persisted = False
            wrapped = PersistenceError(f"Unexpected persistence failure: {exc}", feed_id=self.feed_id.value)
            self.store.record_error(self.feed_id, wrapped, self.clock())
            log.exception("snapshot_persist_failed")

        published = self.store.publish(self.feed_id, snapshot)
        if persisted:
            self.store.clear_error(self.feed_id)

        log.info(
            "refresh_succeeded",
            fetched_at=started_at.isoformat(),
            persisted=persisted,
            published=published,
        )
        return RefreshResult(
            feed_id=self.feed_id,
            outcome="ok",
            started_at=started_at,
            finished_at=self.clock(),
            snapshot=snapshot,
            persisted=persisted,
            published=published,
        )

    async def _fetch(self):
        try:
            if self.fetch_timeout_seconds is None:
                return await self.fetch_client.fetch()
            return await asyncio.wait_for(self.fetch_client.fetch(), self.fetch_timeout_seconds)
        except FeedError:
            raise
        except asyncio.TimeoutError as exc:
            raise FetchError(
                f"Fetch exceeded {self.fetch_timeout_seconds}s.",
                feed_id=self.feed_id.value,
                status="timeout",
            ) from exc
        except Exception as exc:
            raise FetchError(f"Unexpected fetch failure: {exc}", feed_id=self.feed_id.value) from exc

    def _validate(self, payload) -> None:
        result = validate_payload(self.feed_id, payload)
        for issue in result.issues:
            if issue.level == "warn":
                logger.info(
                    "payload_validation_warning",
                    feed_id=self.feed_id.value,
                    field=issue.field,
                    message=issue.message,
                )
        if result.status == "fail":
            messages = "; ".join(issue.message for issue in result.issues if issue.level == "fail")
            raise ValidationError(
                f"Invalid {self.feed_id.value} payload: {messages}",
                feed_id=self.feed_id.value,
                issues=result.issues,
            )

    def _fail(self, started_at: datetime.datetime, error: FeedError) -> RefreshResult:
        self.store.record_error(self.feed_id, error, self.clock())
        logger.warning(
            "refresh_failed",
            feed_id=self.feed_id.value,
            error_kind=error.kind,
            error=str(error),
        )
        return RefreshResult(
            feed_id=self.feed_id,
            outcome="failed",
            started_at=started_at,
            finished_at=self.clock(),
            error=error,
        )
