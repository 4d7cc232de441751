"""Text normalization helpers for prices, ratings, slugs and categories."""

import re
from decimal import Decimal, InvalidOperation
from typing import Optional
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse


# Arabic-Indic and Eastern Arabic-Indic digits, plus Arabic separators
_DIGIT_TRANSLATION = str.maketrans(
    "٠١٢٣٤٥٦٧٨٩۰۱۲۳۴۵۶۷۸۹٫٬",
    "01234567890123456789.,",
)

_PRICE_JUNK = re.compile(r"[^0-9.,]")
_FIRST_DECIMAL = re.compile(r"\d+(?:\.\d+)?")
_FIRST_INTEGER = re.compile(r"\d+")
_SLUG_JUNK = re.compile(r"[^a-z0-9]+")

MAX_RATING = Decimal("5")
MAX_SLUG_BASE_LENGTH = 80


def _ascii_digits(text: str) -> str:
    return text.translate(_DIGIT_TRANSLATION)


def parse_price(raw: Optional[str]) -> Decimal:
    """Parse a price string into a non-negative Decimal.

    Everything except digits, ``.`` and ``,`` is stripped and ``,`` is
    treated as a thousands separator:

    - "1,234.56 SAR" -> 1234.56
    - "﷼1234" -> 1234
    - "EGP 12,999" -> 12999

    Args:
        raw: Price text as found in the page

    Returns:
        Parsed price, or Decimal("0") when nothing parseable remains.
        Callers treat 0 as "no valid price".
    """
    if not raw:
        return Decimal("0")

    cleaned = _PRICE_JUNK.sub("", _ascii_digits(raw)).replace(",", "")
    # Dots left over from abbreviations such as "ر.س"
    cleaned = cleaned.strip(".")
    if not cleaned:
        return Decimal("0")

    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return Decimal("0")

    if not value.is_finite() or value < 0:
        return Decimal("0")
    return value


def parse_rating(raw: Optional[str]) -> Optional[Decimal]:
    """Extract the first decimal in the text, clamped to [0, 5].

    "4.5 out of 5 stars" -> 4.5; no number -> None.
    """
    if not raw:
        return None
    match = _FIRST_DECIMAL.search(_ascii_digits(raw))
    if not match:
        return None
    value = Decimal(match.group(0))
    return max(Decimal("0"), min(MAX_RATING, value))


def parse_review_count(raw: Optional[str]) -> Optional[int]:
    """Extract a review count such as "(1,234 ratings)" -> 1234."""
    if not raw:
        return None
    match = _FIRST_INTEGER.search(_ascii_digits(raw).replace(",", ""))
    if not match:
        return None
    return int(match.group(0))


def clean_text(raw: Optional[str]) -> Optional[str]:
    """Collapse whitespace; empty strings become None."""
    if raw is None:
        return None
    text = " ".join(raw.split())
    return text or None


def slugify(text: str) -> str:
    """Lowercase ASCII slug; text with no ASCII letters or digits becomes "product"."""
    slug = _SLUG_JUNK.sub("-", (text or "").lower()).strip("-")
    slug = slug[:MAX_SLUG_BASE_LENGTH].rstrip("-")
    return slug or "product"


# Keyword-based category hints, English and Arabic
CATEGORY_KEYWORDS = {
    "mobiles": ["iphone", "galaxy s", "galaxy a", "smartphone", "mobile phone", "جوال", "هاتف"],
    "laptops": ["laptop", "macbook", "notebook", "لابتوب", "حاسوب محمول"],
    "tablets": ["ipad", "tablet", "galaxy tab", "تابلت"],
    "audio": ["airpods", "headphone", "earbuds", "speaker", "soundbar", "سماعة"],
    "tv": [" tv", "television", "oled", "qled", "تلفزيون", "شاشة"],
    "gaming": ["playstation", "ps5", "xbox", "nintendo", "بلايستيشن"],
    "appliances": ["refrigerator", "washing machine", "air conditioner", "vacuum", "air fryer", "ثلاجة", "غسالة", "مكيف"],
    "wearables": ["smartwatch", "apple watch", "galaxy watch", "ساعة ذكية"],
}


class CategoryClassifier:
    """Keyword classifier used to fill a category when the page offers none."""

    @staticmethod
    def classify(title: Optional[str]) -> Optional[str]:
        """Return the category slug with the most keyword hits, or None."""
        if not title:
            return None

        title_lower = f" {title.lower()}"
        scores = {}
        for cat_slug, keywords in CATEGORY_KEYWORDS.items():
            score = sum(1 for kw in keywords if kw in title_lower)
            if score > 0:
                scores[cat_slug] = score

        if scores:
            return max(scores, key=scores.get)
        return None


TRACKING_PARAMS = frozenset([
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_content",
    "utm_term",
    "ref",
    "ref_",
    "fbclid",
    "gclid",
])


def normalize_url(url: str) -> str:
    """Drop tracking query parameters and the fragment from a product URL."""
    if not url:
        return url

    parsed = urlparse(url)
    query_params = parse_qs(parsed.query)
    filtered_params = {k: v for k, v in query_params.items() if k not in TRACKING_PARAMS}
    new_query = urlencode(filtered_params, doseq=True)

    return urlunparse((parsed.scheme, parsed.netloc, parsed.path, parsed.params, new_query, ""))
