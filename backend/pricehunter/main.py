"""PriceHunter service wiring.

Builds the shared components once (engine, HTTP transport, adapter
registry, exchange-rate cache, keyed locks) and hands out a
ProductFetchService bound to them.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from pricehunter.config import Settings, settings as default_settings
from pricehunter.core.locks import KeyedLock
from pricehunter.core.logging import configure_logging
from pricehunter.db.session import create_engine, create_session_factory
from pricehunter.models.base import Base
from pricehunter.scrapers.fetch_service import ProductFetchService
from pricehunter.scrapers.registry import AdapterRegistry
from pricehunter.scrapers.transport import FetchTransport
from pricehunter.scrapers.utils.rate_limiter import DomainRateLimiter
from pricehunter.services.currency import ExchangeRateProvider

logger = structlog.get_logger(__name__)


@dataclass
class ServiceContainer:
    engine: AsyncEngine
    registry: AdapterRegistry
    fetch_service: ProductFetchService

    async def aclose(self) -> None:
        await self.registry.aclose()
        await self.engine.dispose()


def build_container(config: Optional[Settings] = None) -> ServiceContainer:
    """Construct every long-lived component from settings."""
    config = config or default_settings
    configure_logging(config.LOG_LEVEL, json_output=not config.is_development)

    engine = create_engine(config.DATABASE_URL, echo=config.DEBUG)
    session_factory = create_session_factory(engine)

    transport = FetchTransport(
        timeout_seconds=config.HTTP_TIMEOUT_SECONDS,
        max_attempts=config.HTTP_MAX_ATTEMPTS,
        backoff_min=config.HTTP_BACKOFF_MIN,
        backoff_max=config.HTTP_BACKOFF_MAX,
        rate_limiter=DomainRateLimiter() if config.RATE_LIMIT_ENABLED else None,
    )
    registry = AdapterRegistry(
        transport,
        search_limit=config.SEARCH_RESULT_LIMIT,
        item_delay_ms=config.SEARCH_ITEM_DELAY_MS,
    )
    rates = ExchangeRateProvider(session_factory, ttl_seconds=config.EXCHANGE_RATE_TTL_SECONDS)

    fetch_service = ProductFetchService(session_factory, registry, rates, KeyedLock())
    logger.info(
        "services_initialized",
        environment=config.ENVIRONMENT,
        retailers=registry.supported_slugs(),
    )
    return ServiceContainer(engine=engine, registry=registry, fetch_service=fetch_service)


async def create_tables(engine: AsyncEngine) -> None:
    """Create any missing tables (safe on an existing schema)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_tables_verified")


@asynccontextmanager
async def lifespan(config: Optional[Settings] = None) -> AsyncIterator[ServiceContainer]:
    """Startup and shutdown around the service container."""
    container = build_container(config)
    await create_tables(container.engine)
    try:
        yield container
    finally:
        await container.aclose()
        logger.info("services_shutdown")
