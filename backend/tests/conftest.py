"""Pytest configuration and shared fixtures."""

from decimal import Decimal
from typing import Callable, Dict, Optional

import httpx
import pytest
import pytest_asyncio

import pricehunter.models  # noqa: F401  (registers every table on Base.metadata)
from pricehunter.db.session import Base, create_engine, create_session_factory
from pricehunter.models.retailer import Retailer
from pricehunter.scrapers.base import ExtractedRecord
from pricehunter.scrapers.registry import AdapterRegistry
from pricehunter.scrapers.transport import FetchTransport
from pricehunter.services.currency import ExchangeRateProvider


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"


# ============================================================================
# DATABASE
# ============================================================================

@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite database so separate sessions see each other's commits."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'pricehunter.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


RETAILER_SEED = [
    {"name": "Amazon SA", "slug": "amazon-sa", "domain": "amazon.sa", "country": "SA", "currency": "SAR"},
    {"name": "eXtra", "slug": "extra", "domain": "extra.com", "country": "SA", "currency": "SAR"},
    {"name": "Noon EG", "slug": "noon-eg", "domain": "noon.com", "country": "EG", "currency": "EGP"},
    {"name": "Jumia Egypt", "slug": "jumia-eg", "domain": "jumia.com.eg", "country": "EG", "currency": "EGP"},
    {"name": "Amazon AE", "slug": "amazon-ae", "domain": "amazon.ae", "country": "AE", "currency": "AED"},
    {"name": "2B", "slug": "2b", "domain": "2b.com.sa", "country": "SA", "currency": "SAR", "is_active": False},
]


@pytest_asyncio.fixture
async def retailers(session_factory) -> Dict[str, Retailer]:
    """Seed a handful of retailers and return them keyed by slug."""
    async with session_factory() as session:
        rows = [Retailer(**{"is_active": True, "scrape_config": {}, **data}) for data in RETAILER_SEED]
        session.add_all(rows)
        await session.commit()
    return {r.slug: r for r in rows}


@pytest.fixture
def rates() -> ExchangeRateProvider:
    """Provider with no database behind it, so only fallback rates apply."""
    return ExchangeRateProvider(session_factory=None, ttl_seconds=3600)


# ============================================================================
# HTTP
# ============================================================================

@pytest.fixture
def make_transport() -> Callable[..., FetchTransport]:
    """Build a FetchTransport over httpx.MockTransport with instant retries."""

    def _make(handler, max_attempts: int = 3) -> FetchTransport:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=False)
        return FetchTransport(
            client=client,
            timeout_seconds=5.0,
            max_attempts=max_attempts,
            backoff_min=0,
            backoff_max=0,
        )

    return _make


@pytest.fixture
def make_registry(make_transport) -> Callable[..., AdapterRegistry]:
    def _make(handler, search_limit: int = 20, item_delay_ms: int = 0) -> AdapterRegistry:
        return AdapterRegistry(make_transport(handler), search_limit=search_limit, item_delay_ms=item_delay_ms)

    return _make


def html_router(pages: Dict[str, str]):
    """MockTransport handler serving HTML by URL path; unknown paths are 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        body: Optional[str] = pages.get(request.url.path)
        if body is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, text=body, headers={"content-type": "text/html; charset=utf-8"})

    return handler


def make_record(**overrides) -> ExtractedRecord:
    """ExtractedRecord with sensible defaults for persistence tests."""
    fields = {
        "name": "Apple iPhone 15 Pro 256GB",
        "price": Decimal("4599.00"),
        "currency": "SAR",
        "url": "https://www.amazon.sa/dp/B0CHX1W1XY",
        "barcode": "B0CHX1W1XY",
        "brand": "Apple",
    }
    fields.update(overrides)
    return ExtractedRecord(**fields)
