"""Fetch orchestration service.

Connects the adapter layer with the reconciliation and ledger services:
query -> per-retailer extraction (concurrent, under one deadline) ->
reconcile -> ledger write, with a FetchJob recording each run.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pricehunter.config import settings
from pricehunter.core.exceptions import PriceHunterException
from pricehunter.core.locks import KeyedLock
from pricehunter.models.base import utcnow
from pricehunter.models.fetch_job import FetchJob, JobStatus, JobType
from pricehunter.models.retailer import Retailer
from pricehunter.schemas.fetch import FetchResult, RetailerResult, UrlFetchResult
from pricehunter.scrapers.base import BaseAdapter, ExtractedRecord
from pricehunter.scrapers.registry import AdapterRegistry
from pricehunter.scrapers.utils.security import is_allowed_scrape_domain, sanitize_url
from pricehunter.services.currency import ExchangeRateProvider
from pricehunter.services.ledger import PriceLedgerWriter
from pricehunter.services.reconciler import ProductReconciler

logger = structlog.get_logger(__name__)

NO_ADAPTER_ERROR = "No scraper available"
TIMEOUT_ERROR = "Timeout"
NO_ITEMS_ERROR = "No products scraped from any store"
DISALLOWED_URL_ERROR = "URL domain not allowed for scraping"
UNSUPPORTED_URL_ERROR = "Unsupported retailer"
NOT_FOUND_ERROR = "Could not scrape product from URL"
SAVE_FAILED_ERROR = "Failed to save product"


@dataclass
class SaveOutcome:
    product_id: UUID
    is_new: bool


def _discard_abandoned(task: "asyncio.Task") -> None:
    """Retrieve a straggler's outcome so it never surfaces as an unhandled error."""
    if not task.cancelled():
        task.exception()


class ProductFetchService:
    """Entry point for fetching retailer prices into the catalog.

    Each call keeps its own counters and FetchJob, so concurrent calls for
    different queries do not interfere. Records are saved one at a time,
    each in its own transaction; a failing record is logged and skipped.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: AdapterRegistry,
        rates: ExchangeRateProvider,
        locks: Optional[KeyedLock] = None,
    ):
        """Initialize the fetch service.

        Args:
            session_factory: Factory for short per-record and per-job sessions
            registry: Adapter registry built at startup
            rates: Shared exchange-rate provider
            locks: Keyed locks serialising writes for the same product keys
        """
        self.session_factory = session_factory
        self.registry = registry
        self.rates = rates
        self.locks = locks or KeyedLock()
        self.logger = logger.bind(service="fetch")

    # ------------------------------------------------------------------
    # Query fan-out
    # ------------------------------------------------------------------

    async def fetch_and_save(
        self,
        query: str,
        country: Optional[str] = None,
        retailers: Optional[Sequence[str]] = None,
        timeout_ms: Optional[int] = None,
    ) -> FetchResult:
        """Search every target retailer concurrently and save the results.

        Target scope is the explicit ``retailers`` list when given, else all
        active retailers in ``country``, else all active retailers.

        Args:
            query: Free-text product search
            country: Country code (SA, EG, AE, KW)
            retailers: Explicit retailer slugs
            timeout_ms: Deadline for each retailer's extraction

        Returns:
            FetchResult with totals and the per-retailer outcome map

        Raises:
            Exception: Any unexpected error, re-raised once the job is FAILED
        """
        started = time.monotonic()
        timeout_ms = timeout_ms or settings.FETCH_TIMEOUT_MS
        result = FetchResult(query=query)
        log = self.logger.bind(query=query)

        job_id = await self._create_job(
            JobType.FULL_SCRAPE,
            scope={"query": query, "country": country, "retailers": list(retailers or [])},
        )
        result.job_id = job_id

        try:
            await self._run_fetch(query, country, retailers, timeout_ms, job_id, result)
        except Exception as e:
            error = str(e) or type(e).__name__
            log.error("fetch_failed", error=error, error_type=type(e).__name__, exc_info=True)
            await self._finish_job(job_id, JobStatus.FAILED, result.total_scraped, error=error)
            raise

        result.duration_ms = int((time.monotonic() - started) * 1000)
        log.info(
            "fetch_complete",
            total_scraped=result.total_scraped,
            new_products=result.new_products,
            updated_products=result.updated_products,
            failed_retailers=result.failed_retailers,
            duration_ms=result.duration_ms,
        )
        return result

    async def _run_fetch(
        self,
        query: str,
        country: Optional[str],
        retailers: Optional[Sequence[str]],
        timeout_ms: int,
        job_id: UUID,
        result: FetchResult,
    ) -> None:
        """Extract, save and close the job, filling ``result`` in place."""
        log = self.logger.bind(query=query)
        targets = await self._target_slugs(country, retailers)
        log.info("fetch_started", retailers=targets, timeout_ms=timeout_ms)
        await self._mark_running(job_id)

        retailer_rows = await self._load_retailers(targets)
        adapters: Dict[str, BaseAdapter] = {}
        for slug in targets:
            adapter = self.registry.get(slug)
            if adapter is None:
                result.retailer_results[slug] = RetailerResult(success=False, error=NO_ADAPTER_ERROR)
            elif slug not in retailer_rows:
                result.retailer_results[slug] = RetailerResult(success=False, error=f"Retailer not found: {slug}")
            else:
                adapters[slug] = adapter

        extracted = await self._extract_all(query, adapters, timeout_ms / 1000, result)

        for slug, records in extracted.items():
            retailer = retailer_rows[slug]
            saved = new = 0
            for record in records:
                outcome = await self._save_record(record, retailer)
                if outcome is None:
                    continue
                saved += 1
                new += int(outcome.is_new)

            result.retailer_results[slug] = RetailerResult(success=True, count=saved)
            result.total_scraped += saved
            result.new_products += new
            result.updated_products += saved - new

        if result.total_scraped > 0:
            await self._finish_job(job_id, JobStatus.COMPLETED, result.total_scraped)
        else:
            await self._finish_job(job_id, JobStatus.FAILED, 0, error=NO_ITEMS_ERROR)

    async def _extract_all(
        self,
        query: str,
        adapters: Dict[str, BaseAdapter],
        timeout_seconds: float,
        result: FetchResult,
    ) -> Dict[str, List[ExtractedRecord]]:
        """Run every adapter's search concurrently under one deadline.

        A branch still running at the deadline contributes nothing and is
        abandoned: cancellation is requested but never awaited, so the
        run does not wait for in-flight I/O that ignores cancellation.
        """
        if not adapters:
            return {}

        tasks = {
            asyncio.create_task(adapter.extract_many(query), name=f"extract:{slug}"): slug
            for slug, adapter in adapters.items()
        }
        done, pending = await asyncio.wait(tasks.keys(), timeout=timeout_seconds)

        for task in pending:
            slug = tasks[task]
            task.cancel()
            task.add_done_callback(_discard_abandoned)
            result.retailer_results[slug] = RetailerResult(success=False, error=TIMEOUT_ERROR)
            self.logger.warning("retailer_timeout", retailer=slug, timeout_seconds=timeout_seconds)

        extracted: Dict[str, List[ExtractedRecord]] = {}
        for task in done:
            slug = tasks[task]
            exc = task.exception()
            if exc is not None:
                result.retailer_results[slug] = RetailerResult(success=False, error=str(exc) or type(exc).__name__)
                self.logger.warning(
                    "retailer_extract_failed",
                    retailer=slug,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                continue
            extracted[slug] = task.result()
            self.logger.info("retailer_extracted", retailer=slug, count=len(extracted[slug]))
        return extracted

    # ------------------------------------------------------------------
    # Single URL
    # ------------------------------------------------------------------

    async def fetch_one_from_url(self, url: str, timeout_ms: Optional[int] = None) -> UrlFetchResult:
        """Extract and save one product page.

        The URL is validated against the retailer allow-list before any
        network call; unknown domains fail without touching the network.

        Returns:
            UrlFetchResult with the product id and whether it was created,
            or an error message
        """
        safe_url = sanitize_url(url)
        if safe_url is None or not is_allowed_scrape_domain(safe_url):
            self.logger.warning("url_rejected", url=url)
            return UrlFetchResult(error=DISALLOWED_URL_ERROR)

        slug = self.registry.resolve_url(safe_url)
        adapter = self.registry.get(slug) if slug else None
        if adapter is None:
            return UrlFetchResult(error=UNSUPPORTED_URL_ERROR)

        retailer = (await self._load_retailers([slug])).get(slug)
        if retailer is None:
            return UrlFetchResult(error=f"Retailer not found: {slug}")

        job_id = await self._create_job(JobType.PRODUCT_UPDATE, scope={"url": safe_url}, retailer_id=retailer.id)
        await self._mark_running(job_id)
        log = self.logger.bind(retailer=slug, url=safe_url)

        timeout_seconds = (timeout_ms or settings.FETCH_TIMEOUT_MS) / 1000
        try:
            record = await asyncio.wait_for(adapter.extract_one(safe_url), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            log.warning("url_fetch_timeout", timeout_seconds=timeout_seconds)
            await self._finish_job(job_id, JobStatus.FAILED, 0, error=TIMEOUT_ERROR)
            return UrlFetchResult(error=TIMEOUT_ERROR)
        except PriceHunterException as e:
            log.warning("url_fetch_failed", error=e.message)
            await self._finish_job(job_id, JobStatus.FAILED, 0, error=e.message)
            return UrlFetchResult(error=e.message)
        except Exception as e:
            error = str(e) or type(e).__name__
            log.error("url_fetch_failed", error=error, error_type=type(e).__name__, exc_info=True)
            await self._finish_job(job_id, JobStatus.FAILED, 0, error=error)
            return UrlFetchResult(error=error)

        if record is None:
            await self._finish_job(job_id, JobStatus.FAILED, 0, error=NOT_FOUND_ERROR)
            return UrlFetchResult(error=NOT_FOUND_ERROR)

        outcome = await self._save_record(record, retailer)
        if outcome is None:
            await self._finish_job(job_id, JobStatus.FAILED, 0, error=SAVE_FAILED_ERROR)
            return UrlFetchResult(error=SAVE_FAILED_ERROR)

        await self._finish_job(job_id, JobStatus.COMPLETED, 1)
        log.info("url_fetch_complete", product_id=str(outcome.product_id), is_new=outcome.is_new)
        return UrlFetchResult(product_id=outcome.product_id, is_new=outcome.is_new)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _save_record(self, record: ExtractedRecord, retailer: Retailer) -> Optional[SaveOutcome]:
        """Reconcile and write one record in its own transaction.

        A unique-constraint collision (a concurrent writer got there first)
        is retried once from scratch; the retry then finds the winner's row.

        Returns:
            SaveOutcome, or None when the record could not be saved
        """
        keys = ProductReconciler.lock_keys(record)
        for attempt in (1, 2):
            try:
                async with self.locks.hold(keys):
                    async with self.session_factory() as db:
                        product, is_new = await ProductReconciler(db).resolve(record)
                        await PriceLedgerWriter(db, self.rates).record(product, retailer, record)
                        await db.commit()
                        return SaveOutcome(product_id=product.id, is_new=is_new)
            except IntegrityError as e:
                if attempt == 1:
                    self.logger.info("record_save_conflict_retry", retailer=retailer.slug, error=str(e.orig))
                    continue
                self.logger.error(
                    "record_save_failed",
                    retailer=retailer.slug,
                    url=record.url,
                    error=str(e),
                    exc_info=True,
                )
            except Exception as e:
                self.logger.error(
                    "record_save_failed",
                    retailer=retailer.slug,
                    url=record.url,
                    error=str(e),
                    exc_info=True,
                )
                return None
        return None

    async def get_active_retailers(self, country: Optional[str] = None) -> List[str]:
        """Slugs of active retailers, optionally limited to one country."""
        stmt = select(Retailer.slug).where(Retailer.is_active.is_(True))
        if country:
            stmt = stmt.where(Retailer.country == country.upper())
        async with self.session_factory() as db:
            result = await db.execute(stmt.order_by(Retailer.slug))
            return list(result.scalars().all())

    async def _target_slugs(self, country: Optional[str], retailers: Optional[Sequence[str]]) -> List[str]:
        if retailers:
            return list(dict.fromkeys(retailers))
        return await self.get_active_retailers(country)

    async def _load_retailers(self, slugs: Sequence[str]) -> Dict[str, Retailer]:
        if not slugs:
            return {}
        async with self.session_factory() as db:
            result = await db.execute(select(Retailer).where(Retailer.slug.in_(list(slugs))))
            rows = {r.slug: r for r in result.scalars().all()}
        for slug, retailer in rows.items():
            self.registry.apply_scrape_config(slug, retailer.scrape_config)
        return rows

    async def _create_job(
        self,
        job_type: JobType,
        scope: dict,
        retailer_id: Optional[UUID] = None,
    ) -> UUID:
        async with self.session_factory() as db:
            job = FetchJob(
                job_type=job_type.value,
                status=JobStatus.PENDING.value,
                scope=scope,
                retailer_id=retailer_id,
            )
            db.add(job)
            await db.commit()
            return job.id

    async def _mark_running(self, job_id: UUID) -> None:
        async with self.session_factory() as db:
            job = await db.get(FetchJob, job_id)
            job.status = JobStatus.RUNNING.value
            job.started_at = utcnow()
            await db.commit()

    async def _finish_job(
        self,
        job_id: UUID,
        status: JobStatus,
        items_processed: int,
        error: Optional[str] = None,
    ) -> None:
        async with self.session_factory() as db:
            job = await db.get(FetchJob, job_id)
            job.status = status.value
            job.items_processed = items_processed
            job.error = error
            job.completed_at = utcnow()
            await db.commit()
