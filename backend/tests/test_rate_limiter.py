"""Tests for per-storefront request pacing."""

from types import SimpleNamespace

import httpx
import pytest

from pricehunter.core.locks import KeyedLock
from pricehunter.models.retailer import Retailer
from pricehunter.scrapers.fetch_service import ProductFetchService
from pricehunter.scrapers.registry import AdapterRegistry
from pricehunter.scrapers.transport import FetchTransport
from pricehunter.scrapers.utils import rate_limiter
from pricehunter.scrapers.utils.rate_limiter import DomainRateLimiter, HostBudget


class TestHostBudget:
    async def test_burst_within_allowance_does_not_wait(self, monkeypatch):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        monkeypatch.setattr("pricehunter.scrapers.utils.rate_limiter.asyncio.sleep", fake_sleep)
        limiter = DomainRateLimiter()
        limiter.set_custom_limit("www.amazon.sa", 20)

        for _ in range(2):
            await limiter.acquire("www.amazon.sa")

        assert sleeps == []

    async def test_empty_budget_waits_for_refill(self, monkeypatch):
        clock = {"now": 1000.0}
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)
            clock["now"] += seconds

        monkeypatch.setattr(rate_limiter, "time", SimpleNamespace(monotonic=lambda: clock["now"]))
        monkeypatch.setattr("pricehunter.scrapers.utils.rate_limiter.asyncio.sleep", fake_sleep)
        limiter = DomainRateLimiter()
        # One request per 10 seconds, burst of 2
        limiter.set_custom_limit("www.jarir.com", 6)

        for _ in range(3):
            await limiter.acquire("www.jarir.com")

        assert sleeps == [pytest.approx(10.0)]

    def test_burst_allowance(self):
        assert HostBudget.for_rpm(30).burst == 3.0
        assert HostBudget.for_rpm(6).burst == 2.0


class TestDomainRateLimiter:
    """Tests for limit lookup, overrides and per-host budgets."""

    def test_known_and_default_limits(self):
        limiter = DomainRateLimiter()

        assert limiter.get_current_rate("www.amazon.sa") == pytest.approx(30.0)
        assert limiter.get_current_rate("unknown.example") == pytest.approx(DomainRateLimiter.DEFAULT_RPM)

    def test_custom_limit_replaces_default(self):
        limiter = DomainRateLimiter()

        limiter.set_custom_limit("www.jarir.com", 6)

        assert limiter.get_current_rate("www.jarir.com") == pytest.approx(6.0)

    async def test_same_limit_keeps_spent_budget(self):
        limiter = DomainRateLimiter()
        limiter.set_custom_limit("www.extra.com", 20)
        await limiter.acquire("www.extra.com")
        spent = limiter._budget("www.extra.com")

        limiter.set_custom_limit("www.extra.com", 20)

        assert limiter._budget("www.extra.com") is spent

    async def test_hosts_have_separate_budgets(self):
        limiter = DomainRateLimiter()

        await limiter.acquire("www.amazon.sa")
        await limiter.acquire("www.noon.com")

        assert limiter._budget("www.amazon.sa") is not limiter._budget("www.noon.com")

    async def test_transport_acquires_per_request_host(self):
        acquired = []

        class RecordingLimiter(DomainRateLimiter):
            async def acquire(self, host, tokens=1.0):
                acquired.append(host)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html></html>")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = FetchTransport(client=client, backoff_min=0, backoff_max=0, rate_limiter=RecordingLimiter())
        try:
            await transport.get_text("https://www.amazon.sa/dp/B0CHX1W1XY", retailer="amazon-sa")
        finally:
            await client.aclose()

        assert acquired == ["www.amazon.sa"]


class TestScrapeConfigOverride:
    """Tests for per-retailer limits taken from Retailer.scrape_config."""

    def _registry(self) -> AdapterRegistry:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        transport = FetchTransport(client=client, rate_limiter=DomainRateLimiter())
        return AdapterRegistry(transport, item_delay_ms=0)

    def test_requests_per_minute_applied_to_storefront_host(self):
        registry = self._registry()

        registry.apply_scrape_config("jarir", {"requests_per_minute": 5})

        assert registry.transport.rate_limiter.get_current_rate("www.jarir.com") == pytest.approx(5.0)

    def test_missing_override_keeps_default(self):
        registry = self._registry()

        registry.apply_scrape_config("jarir", {})
        registry.apply_scrape_config("unknown-shop", {"requests_per_minute": 5})

        assert registry.transport.rate_limiter.get_current_rate("www.jarir.com") == pytest.approx(20.0)

    async def test_fetch_service_applies_loaded_retailer_config(self, session_factory, retailers, rates):
        async with session_factory() as session:
            row = await session.get(Retailer, retailers["extra"].id)
            row.scrape_config = {"requests_per_minute": 4}
            await session.commit()
        registry = self._registry()
        service = ProductFetchService(session_factory, registry, rates, KeyedLock())

        await service._load_retailers(["extra"])

        assert registry.transport.rate_limiter.get_current_rate("www.extra.com") == pytest.approx(4.0)
