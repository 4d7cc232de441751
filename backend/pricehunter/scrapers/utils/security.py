"""Outbound URL validation: only allow-listed retailer hosts are ever fetched."""

from typing import Optional
from urllib.parse import urlparse

# Retailer domains the pipeline may contact. A host matches when it equals
# one of these or is a subdomain of one.
ALLOWED_SCRAPE_DOMAINS = (
    "amazon.sa",
    "amazon.eg",
    "amazon.ae",
    "amazon.com",
    "noon.com",
    "jarir.com",
    "extra.com",
    "jumia.com.eg",
    "jumia.com",
    "btech.com",
    "sharafdg.com",
    "carrefour.com",
    "carrefouruae.com",
    "lulu.com",
    "luluhypermarket.com",
    "xcite.com",
    "2b.com.sa",
)

ALLOWED_SCHEMES = ("http", "https")


def sanitize_url(url: Optional[str]) -> Optional[str]:
    """Return the stripped URL if it is an absolute http(s) URL with a host, else None."""
    if not url:
        return None
    url = url.strip()
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if parsed.scheme.lower() not in ALLOWED_SCHEMES or not parsed.hostname:
        return None
    return url


def host_matches(host: str, domain: str) -> bool:
    host = host.lower().rstrip(".")
    return host == domain or host.endswith("." + domain)


def is_allowed_scrape_domain(url: Optional[str]) -> bool:
    """Check a URL against the scrape allow-list.

    Args:
        url: Candidate URL from a caller or an extracted link

    Returns:
        True only for http(s) URLs whose host is an allow-listed retailer
        domain or one of its subdomains
    """
    safe = sanitize_url(url)
    if safe is None:
        return False
    host = urlparse(safe).hostname or ""
    return any(host_matches(host, domain) for domain in ALLOWED_SCRAPE_DOMAINS)
