"""HTTP transport shared by all retailer adapters.

One httpx.AsyncClient per process, a fresh user agent on every request,
tenacity-driven retries for transient failures and allow-list checks on
the initial URL and on every redirect hop.
"""

from typing import Optional
from urllib.parse import urljoin, urlparse

import httpx
import structlog

from pricehunter.config import settings
from pricehunter.core.exceptions import DisallowedUrlError, TransportFailure
from pricehunter.scrapers.utils.rate_limiter import DomainRateLimiter
from pricehunter.scrapers.utils.retry import http_retrying
from pricehunter.scrapers.utils.security import is_allowed_scrape_domain
from pricehunter.scrapers.utils.user_agents import build_browser_headers


logger = structlog.get_logger(__name__)

MAX_REDIRECTS = 5


class FetchTransport:
    """Fetches retailer pages as text.

    Retry classification: timeouts, connection errors and 5xx responses
    are retried up to ``max_attempts`` with exponential backoff; 4xx
    responses fail immediately. Either way the caller only ever sees
    TransportFailure (or DisallowedUrlError before any request is made).
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: Optional[float] = None,
        max_attempts: Optional[int] = None,
        backoff_min: Optional[float] = None,
        backoff_max: Optional[float] = None,
        rate_limiter: Optional[DomainRateLimiter] = None,
    ):
        """Initialize the transport.

        Args:
            client: Pre-built client (tests pass one backed by
                httpx.MockTransport). Redirects are followed manually, so
                the client should not follow them itself.
            timeout_seconds: Per-request timeout
            max_attempts: Total attempts per request, first one included
            backoff_min: Minimum backoff between attempts in seconds
            backoff_max: Maximum backoff between attempts in seconds
            rate_limiter: Optional per-domain token buckets
        """
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.HTTP_TIMEOUT_SECONDS
        )
        self.max_attempts = max_attempts if max_attempts is not None else settings.HTTP_MAX_ATTEMPTS
        self.backoff_min = backoff_min if backoff_min is not None else settings.HTTP_BACKOFF_MIN
        self.backoff_max = backoff_max if backoff_max is not None else settings.HTTP_BACKOFF_MAX
        self.rate_limiter = rate_limiter

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=self.timeout_seconds,
            follow_redirects=False,
        )

    async def get_text(self, url: str, retailer: str = "unknown", language: str = "en") -> str:
        """GET a page and return its decoded body.

        Args:
            url: Absolute http(s) URL on an allow-listed retailer domain
            retailer: Retailer slug for logs and error attribution
            language: Storefront language for Accept-Language

        Returns:
            Response body text

        Raises:
            DisallowedUrlError: If the URL (or a redirect target) is not allow-listed
            TransportFailure: On a 4xx, or a transient failure that outlived its retries
        """
        if not is_allowed_scrape_domain(url):
            raise DisallowedUrlError(url)

        log = logger.bind(retailer=retailer, url=url)
        try:
            async for attempt in http_retrying(self.max_attempts, self.backoff_min, self.backoff_max):
                with attempt:
                    response = await self._get_following_redirects(url, language)
                    response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            log.warning("fetch_http_error", status_code=status)
            raise TransportFailure(retailer, url, f"HTTP {status}", status_code=status) from e
        except httpx.HTTPError as e:
            log.warning("fetch_network_error", error=str(e), error_type=type(e).__name__)
            raise TransportFailure(retailer, url, f"{type(e).__name__}: {e}") from e

        log.debug("fetch_ok", status_code=response.status_code, bytes=len(response.content))
        return response.text

    async def _get_following_redirects(self, url: str, language: str) -> httpx.Response:
        current = url
        for _ in range(MAX_REDIRECTS + 1):
            if self.rate_limiter is not None:
                await self.rate_limiter.acquire(urlparse(current).hostname or "")

            response = await self._client.get(
                current,
                headers=build_browser_headers(language),
                timeout=self.timeout_seconds,
            )
            if not response.is_redirect:
                return response

            location = response.headers.get("location", "")
            current = urljoin(current, location)
            if not is_allowed_scrape_domain(current):
                raise DisallowedUrlError(current)

        raise httpx.TooManyRedirects(f"Exceeded {MAX_REDIRECTS} redirects", request=response.request)

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()
