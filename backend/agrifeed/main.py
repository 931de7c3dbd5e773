from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from agrifeed.api.routes import router
from agrifeed.cache import FeedStore
from agrifeed.config.settings import Settings, settings as default_settings
from agrifeed.errors import PersistenceError
from agrifeed.jobs.refresh import RefreshJob
from agrifeed.jobs.scheduler import Scheduler
from agrifeed.logging import configure_logging
from agrifeed.persistence.base import PersistenceGateway
from agrifeed.persistence.selector import build_persistence_gateway
from agrifeed.providers.base import FetchClient
from agrifeed.providers.selector import build_fetch_clients
from agrifeed.schemas.feed import FeedId
from agrifeed.services.query import QueryService

logger = structlog.get_logger()


def create_app(
    settings: Settings | None = None,
    *,
    fetch_clients: dict[FeedId, FetchClient] | None = None,
    gateway: PersistenceGateway | None = None,
) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.log_level, settings.log_json)

    store = FeedStore()
    gateway = gateway or build_persistence_gateway(settings)
    clients = fetch_clients or build_fetch_clients(settings)
    jobs = {
        feed_id: RefreshJob(
            feed_id,
            clients[feed_id],
            store,
            gateway,
            fetch_timeout_seconds=settings.fetch_timeout_seconds,
        )
        for feed_id in FeedId
    }
    scheduler = Scheduler(
        jobs,
        settings.schedule_specs(),
        timezone=settings.timezone,
        refresh_on_startup=settings.refresh_on_startup,
    )
    query_service = QueryService(
        store,
        gateway,
        freshness_seconds=settings.freshness_seconds,
        read_timeout_seconds=settings.persistence_read_timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        create_schema = getattr(gateway, "create_schema", None)
        if create_schema is not None:
            try:
                await create_schema()
            except PersistenceError as exc:
                logger.warning("persistence_setup_failed", error=str(exc))
        scheduler.start()
        try:
            yield
        finally:
            await scheduler.stop(settings.shutdown_grace_seconds)
            close = getattr(gateway, "close", None)
            if close is not None:
                await close()

    app = FastAPI(title="agrifeed", lifespan=lifespan)
    app.state.settings = settings
    app.state.feed_store = store
    app.state.gateway = gateway
    app.state.refresh_jobs = jobs
    app.state.scheduler = scheduler
    app.state.query_service = query_service
    app.include_router(router)
    return app


app = create_app()
