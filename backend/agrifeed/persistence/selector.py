from __future__ import annotations

from agrifeed.config.settings import Settings
from agrifeed.db.session import create_engine, create_session_factory
from agrifeed.persistence.base import InMemoryPersistenceGateway, PersistenceGateway
from agrifeed.persistence.database import DatabasePersistenceGateway
from agrifeed.persistence.redis import RedisPersistenceGateway


def build_persistence_gateway(settings: Settings) -> PersistenceGateway:
    if settings.persistence_backend == "redis":
        return RedisPersistenceGateway(settings.redis_url, ttl_seconds=settings.persistence_ttl_seconds)
    if settings.persistence_backend == "database":
        engine = create_engine(settings.database_url)
        return DatabasePersistenceGateway(create_session_factory(engine), engine=engine)
    return InMemoryPersistenceGateway()
