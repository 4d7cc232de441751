"""Scraper utilities for retries, rate limiting, URL safety and text normalization."""

from .normalizer import (
    CategoryClassifier,
    clean_text,
    normalize_url,
    parse_price,
    parse_rating,
    parse_review_count,
    slugify,
)
from .rate_limiter import DomainRateLimiter, HostBudget
from .retry import http_retrying, is_retryable
from .security import ALLOWED_SCRAPE_DOMAINS, is_allowed_scrape_domain, sanitize_url
from .user_agents import USER_AGENTS, build_browser_headers, get_random_user_agent


__all__ = [
    # Normalization
    "CategoryClassifier",
    "clean_text",
    "normalize_url",
    "parse_price",
    "parse_rating",
    "parse_review_count",
    "slugify",
    # Rate limiting
    "DomainRateLimiter",
    "HostBudget",
    # Retry
    "http_retrying",
    "is_retryable",
    # URL safety
    "ALLOWED_SCRAPE_DOMAINS",
    "is_allowed_scrape_domain",
    "sanitize_url",
    # User agents
    "USER_AGENTS",
    "build_browser_headers",
    "get_random_user_agent",
]
