"""Adapter registry: retailer slug -> lazily built, memoized adapter.

Built once at process start and handed to the orchestrator. Adapters are
constructed on first use and the same instance is returned afterwards, so
they share the transport's client and the rate limiter state.
"""

from typing import Dict, List, Mapping, Optional
from urllib.parse import urlparse

import structlog

from pricehunter.config import settings
from pricehunter.scrapers.base import BaseAdapter, RetailerProfile
from pricehunter.scrapers.profiles import (
    NOON_DEFAULT_SLUG,
    NOON_LOCALE_SLUGS,
    RETAILER_PROFILES,
    UNSUPPORTED_RETAILERS,
)
from pricehunter.scrapers.transport import FetchTransport
from pricehunter.scrapers.utils.security import host_matches


logger = structlog.get_logger(__name__)


class AdapterRegistry:
    """Memoized adapter lookup.

    ``get`` returns None for unknown or not-yet-supported retailers instead
    of raising; the orchestrator reports that as a soft per-retailer failure.
    Lazy construction is safe without locks under a single event loop.
    """

    def __init__(
        self,
        transport: FetchTransport,
        profiles: Optional[Mapping[str, RetailerProfile]] = None,
        search_limit: Optional[int] = None,
        item_delay_ms: Optional[int] = None,
    ):
        self.transport = transport
        self.profiles: Mapping[str, RetailerProfile] = profiles if profiles is not None else RETAILER_PROFILES
        self.search_limit = search_limit if search_limit is not None else settings.SEARCH_RESULT_LIMIT
        self.item_delay_ms = item_delay_ms if item_delay_ms is not None else settings.SEARCH_ITEM_DELAY_MS
        self._instances: Dict[str, BaseAdapter] = {}

    def get(self, slug: str) -> Optional[BaseAdapter]:
        """Return the adapter for a retailer slug, building it on first use.

        Args:
            slug: Retailer slug (e.g., "amazon-sa")

        Returns:
            Adapter instance, or None when the retailer is unsupported
        """
        adapter = self._instances.get(slug)
        if adapter is not None:
            return adapter

        profile = self.profiles.get(slug)
        if profile is None:
            logger.info("adapter_unsupported", retailer=slug)
            return None

        adapter = profile.adapter_class(
            profile,
            self.transport,
            search_limit=self.search_limit,
            item_delay_ms=self.item_delay_ms,
        )
        self._instances[slug] = adapter
        logger.debug("adapter_created", retailer=slug, adapter=type(adapter).__name__)
        return adapter

    def apply_scrape_config(self, slug: str, scrape_config: Optional[Mapping]) -> None:
        """Apply a retailer's ``requests_per_minute`` override to the transport's limiter."""
        rpm = (scrape_config or {}).get("requests_per_minute")
        profile = self.profiles.get(slug)
        limiter = getattr(self.transport, "rate_limiter", None)
        if not rpm or profile is None or limiter is None:
            return
        host = urlparse(profile.base_url).hostname or profile.domain
        limiter.set_custom_limit(host, int(rpm))

    def is_supported(self, slug: str) -> bool:
        return slug in self.profiles

    def supported_slugs(self) -> List[str]:
        return sorted(self.profiles)

    def resolve_url(self, url: str) -> Optional[str]:
        """Map a product URL to the retailer slug that owns it.

        Noon serves all countries from one host, so its storefront is
        chosen from the locale in the path (Saudi by default). Known
        retailers without an adapter still resolve to their slug; ``get``
        then reports them unsupported.

        Returns:
            Retailer slug, or None when no known retailer owns the host
        """
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
        if not host:
            return None

        if host_matches(host, "noon.com"):
            path = parsed.path.lower()
            for markers, slug in NOON_LOCALE_SLUGS:
                if any(marker in path for marker in markers):
                    return slug
            return NOON_DEFAULT_SLUG

        for profile in self.profiles.values():
            if host_matches(host, profile.domain):
                return profile.slug

        for domain, slug in UNSUPPORTED_RETAILERS.items():
            if host_matches(host, domain):
                return slug
        return None

    async def aclose(self) -> None:
        await self.transport.aclose()
