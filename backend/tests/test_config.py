"""Tests for settings, logging setup, session factories and error types."""

import structlog

from pricehunter.config import Settings
from pricehunter.core.exceptions import DisallowedUrlError, PriceHunterException, TransportFailure
from pricehunter.core.logging import configure_logging
from pricehunter.db import session as session_module
from pricehunter.db.session import create_engine, create_session_factory
from pricehunter.scrapers.fetch_service import DISALLOWED_URL_ERROR


class TestSettings:
    def test_postgres_url_gets_async_driver(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgres://user:pw@db:5432/prices")
        assert Settings().DATABASE_URL == "postgresql+asyncpg://user:pw@db:5432/prices"

        monkeypatch.setenv("DATABASE_URL", "postgresql://user:pw@db:5432/prices")
        assert Settings().DATABASE_URL == "postgresql+asyncpg://user:pw@db:5432/prices"

    def test_sqlite_url_untouched(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///./local.db")
        assert Settings().DATABASE_URL == "sqlite+aiosqlite:///./local.db"

    def test_overrides_from_environment(self, monkeypatch):
        monkeypatch.setenv("FETCH_TIMEOUT_MS", "5000")
        monkeypatch.setenv("RATE_LIMIT_ENABLED", "false")
        monkeypatch.setenv("ENVIRONMENT", "production")

        config = Settings()

        assert config.FETCH_TIMEOUT_MS == 5000
        assert config.RATE_LIMIT_ENABLED is False
        assert config.is_development is False


class TestLogging:
    def test_configure_logging_json(self, capsys):
        configure_logging("INFO", json_output=True)
        try:
            log = structlog.get_logger("pricehunter.test")
            log.debug("hidden_event")
            log.info("fetch_started", retailer="amazon-sa")

            out = capsys.readouterr().out
            assert "hidden_event" not in out
            assert '"event": "fetch_started"' in out
            assert '"retailer": "amazon-sa"' in out
        finally:
            structlog.reset_defaults()


class TestSessionFactory:
    """Tests for per-engine session factories."""

    async def test_factories_are_bound_to_their_own_engine(self, engine, tmp_path):
        other = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'other.db'}")
        try:
            first = create_session_factory(engine)
            second = create_session_factory(other)

            async with first() as session:
                assert session.bind is engine
            async with second() as session:
                assert session.bind is other
            assert first.kw["expire_on_commit"] is False
        finally:
            await other.dispose()

    def test_no_module_level_factory(self):
        assert session_module.__all__ == ["Base", "create_engine", "create_session_factory"]


class TestErrorTypes:
    """Tests for the exception hierarchy raised across the pipeline."""

    def test_hierarchy_holds_only_raised_types(self):
        found, pending = set(), [PriceHunterException]
        while pending:
            for sub in pending.pop().__subclasses__():
                found.add(sub.__name__)
                pending.append(sub)

        assert found == {"ScraperError", "TransportFailure", "DisallowedUrlError", "ReconciliationConflict"}

    def test_messages(self):
        failure = TransportFailure("amazon-sa", "https://www.amazon.sa/dp/X", "HTTP 503", status_code=503)

        assert failure.message == "Scraper error for amazon-sa: HTTP 503"
        assert failure.status_code == 503
        assert DisallowedUrlError("http://169.254.169.254/").message == DISALLOWED_URL_ERROR
