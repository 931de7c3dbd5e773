from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from agrifeed.cache import FeedStore
from agrifeed.jobs.scheduler import Scheduler
from agrifeed.schemas.feed import FeedId, SnapshotStatus, resolve_feed_name
from agrifeed.schemas.status import FeedStatusEntry, StatusResponse
from agrifeed.services.query import QueryService

router = APIRouter()


def get_query_service(request: Request) -> QueryService:
    return request.app.state.query_service


def get_store(request: Request) -> FeedStore:
    return request.app.state.feed_store


def get_scheduler(request: Request) -> Scheduler:
    return request.app.state.scheduler


def _resolve_feed(feed_name: str) -> FeedId:
    feed_id = resolve_feed_name(feed_name)
    if feed_id is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"message": f"Unknown feed '{feed_name}'."},
        )
    return feed_id


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.get("/api/status", response_model=StatusResponse)
async def feed_status(
    query: QueryService = Depends(get_query_service),
    store: FeedStore = Depends(get_store),
    scheduler: Scheduler = Depends(get_scheduler),
) -> StatusResponse:
    views = await query.get_all()
    triggers = scheduler.status()
    entries: list[FeedStatusEntry] = []
    for feed_id, view in views.items():
        state = store.state(feed_id)
        trigger = triggers.get(feed_id)
        entries.append(
            FeedStatusEntry(
                feed_id=feed_id,
                status=view.status,
                fetched_at=view.fetched_at,
                age_seconds=view.age_seconds,
                last_error=state.last_error,
                consecutive_failures=state.consecutive_failures,
                suppressed_count=state.suppressed_count,
                trigger_state=trigger.state.value if trigger else None,
                next_fire_time=trigger.next_fire_time if trigger else None,
                skip_count=trigger.skip_count if trigger else 0,
                last_outcome=trigger.last_outcome if trigger else None,
            )
        )
    return StatusResponse(scheduler_running=scheduler.running, feeds=entries)


@router.get("/api/{feed_name}")
async def get_feed(
    feed_name: str, query: QueryService = Depends(get_query_service)
) -> JSONResponse:
    feed_id = _resolve_feed(feed_name)
    view = await query.get_snapshot(feed_id)
    if view.status == SnapshotStatus.UNAVAILABLE:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unavailable"},
            headers={"X-Snapshot-Status": view.status.value},
        )
    return JSONResponse(
        content=view.payload,
        headers={
            "X-Snapshot-Status": view.status.value,
            "X-Fetched-At": view.fetched_at.isoformat(),
        },
    )
