"""Base retailer adapter interface and the data-driven selector adapter.

Every retailer is described by a RetailerProfile (where it lives, what it
sells in) holding a SelectorRules table (how to read its pages). The
generic SelectorAdapter turns a page into an ExtractedRecord from those
rules alone; retailers whose markup needs real control flow subclass it
and override a single hook.
"""

import asyncio
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple, Type
from urllib.parse import quote_plus, urljoin

import structlog
from bs4 import BeautifulSoup, Tag

from pricehunter.core.exceptions import TransportFailure
from pricehunter.scrapers.utils.normalizer import (
    CategoryClassifier,
    clean_text,
    normalize_url,
    parse_price,
    parse_rating,
    parse_review_count,
)

if TYPE_CHECKING:
    from pricehunter.scrapers.transport import FetchTransport


logger = structlog.get_logger(__name__)

MAX_DESCRIPTION_LENGTH = 500

# Phrases that mark a product as unavailable in stock text
OUT_OF_STOCK_KEYWORDS = (
    "out of stock",
    "unavailable",
    "sold out",
    "غير متوفر",
    "نفذ",
)

_STYLE_WIDTH = re.compile(r"width:\s*(\d+(?:\.\d+)?)%")

# Stock detection modes for SelectorRules.stock_mode
STOCK_KEYWORDS = "keywords"  # out-of-stock keywords in the stock text
STOCK_PRESENT = "present"  # in stock iff the stock element exists
STOCK_TEXT_PRESENT = "text_present"  # in stock iff stock text is non-empty and not out-of-stock
STOCK_OOS_MARKER = "oos_marker"  # out of stock iff the marker element has text

# Rating sources for SelectorRules.rating_source
RATING_TEXT = "text"
RATING_TITLE = "title"
RATING_STYLE_WIDTH = "style_width"


@dataclass
class ExtractedRecord:
    """Normalized adapter output for one product offer. Never persisted."""

    name: str
    price: Decimal
    currency: str
    url: str
    name_ar: Optional[str] = None
    original_price: Optional[Decimal] = None
    image_url: Optional[str] = None
    in_stock: bool = True
    rating: Optional[Decimal] = None
    review_count: Optional[int] = None
    barcode: Optional[str] = None
    brand: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None

    def __post_init__(self):
        """Validate data after initialization."""
        if not self.name or not self.name.strip():
            raise ValueError("name is required")
        if self.price is None or self.price <= 0:
            raise ValueError("price must be a positive Decimal")
        if not self.url:
            raise ValueError("url is required")
        self.currency = self.currency.upper()
        # A "was" price only counts when it is above the current one
        if self.original_price is not None and self.original_price <= self.price:
            self.original_price = None
        if self.description:
            self.description = self.description[:MAX_DESCRIPTION_LENGTH]


@dataclass(frozen=True)
class SelectorRules:
    """Declarative extraction rules for one retailer family.

    Every selector field is a tuple tried in order; the first selector
    that matches an element with text wins.
    """

    # Product page
    title: Tuple[str, ...]
    price: Tuple[str, ...]
    original_price: Tuple[str, ...] = ()
    image: Tuple[str, ...] = ()
    image_attrs: Tuple[str, ...] = ("src", "data-src")
    rating: Tuple[str, ...] = ()
    rating_source: str = RATING_TEXT
    review_count: Tuple[str, ...] = ()
    stock: Tuple[str, ...] = ()
    stock_mode: str = STOCK_KEYWORDS
    brand: Tuple[str, ...] = ()
    description: Tuple[str, ...] = ()
    description_items: int = 1
    barcode_pattern: Optional[str] = None
    barcode_input: Optional[str] = None

    # Search result page
    card: str = ""
    card_title: Tuple[str, ...] = ()
    card_link: Tuple[str, ...] = ("a",)
    card_price: Tuple[str, ...] = ()
    card_image: Tuple[str, ...] = ("img",)
    card_rating: Tuple[str, ...] = ()
    card_review_count: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RetailerProfile:
    """Construction-time configuration of one retailer storefront."""

    slug: str
    name: str
    domain: str
    base_url: str
    country: str
    currency: str
    search_path: str
    rules: SelectorRules
    adapter_class: Type["BaseAdapter"]
    name_ar: Optional[str] = None
    locale: Optional[str] = None
    language: str = "en"

    def search_url(self, query: str) -> str:
        path = self.search_path.format(query=quote_plus(query), locale=self.locale or "")
        return urljoin(self.base_url, path)


class BaseAdapter(ABC):
    """Abstract base class for all retailer adapters.

    ``extract_one`` returns None (NotFound) when the page lacks a title or a
    valid price; it raises only for transport failures. ``extract_many``
    is bounded by ``search_limit``.
    """

    def __init__(
        self,
        profile: RetailerProfile,
        transport: "FetchTransport",
        search_limit: int = 20,
        item_delay_ms: int = 100,
    ):
        self.profile = profile
        self.rules = profile.rules
        self.transport = transport
        self.search_limit = search_limit
        self.item_delay_ms = item_delay_ms
        self.logger = logger.bind(retailer=profile.slug)

    @property
    def slug(self) -> str:
        return self.profile.slug

    @property
    def currency(self) -> str:
        return self.profile.currency

    @abstractmethod
    async def extract_one(self, url: str) -> Optional[ExtractedRecord]:
        """Extract a single product page.

        Args:
            url: Product page URL on this retailer

        Returns:
            ExtractedRecord, or None if the page has no title or valid price

        Raises:
            TransportFailure: If the page could not be fetched
        """

    @abstractmethod
    async def extract_many(self, query: str) -> List[ExtractedRecord]:
        """Search the retailer and extract up to ``search_limit`` result cards.

        Raises:
            TransportFailure: If the search page could not be fetched
        """

    async def _fetch_soup(self, url: str) -> BeautifulSoup:
        html = await self.transport.get_text(url, retailer=self.slug, language=self.profile.language)
        return BeautifulSoup(html, "html.parser")

    # ------------------------------------------------------------------
    # Element helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _first(node: Tag, selectors: Sequence[str]) -> Optional[Tag]:
        """First element, across the selectors in order, that has text."""
        for selector in selectors:
            for el in node.select(selector):
                if el.get_text(strip=True):
                    return el
        return None

    @staticmethod
    def _first_any(node: Tag, selectors: Sequence[str]) -> Optional[Tag]:
        """First element matching any selector, text or not."""
        for selector in selectors:
            el = node.select_one(selector)
            if el is not None:
                return el
        return None

    def _text(self, node: Tag, selectors: Sequence[str]) -> Optional[str]:
        el = self._first(node, selectors)
        return clean_text(el.get_text(" ", strip=True)) if el is not None else None

    def _absolute(self, href: Optional[str]) -> Optional[str]:
        """Resolve site-relative and protocol-relative links against the storefront."""
        if not href:
            return None
        href = href.strip()
        if href.startswith("//"):
            return f"https:{href}"
        return urljoin(self.profile.base_url, href)

    def _image(self, node: Tag, selectors: Sequence[str]) -> Optional[str]:
        el = self._first_any(node, selectors)
        if el is None:
            return None
        for attr in self.rules.image_attrs:
            value = el.get(attr)
            if value:
                return self._absolute(value)
        return None

    def _barcode(self, url: str, soup: Optional[Tag] = None) -> Optional[str]:
        if self.rules.barcode_pattern:
            match = re.search(self.rules.barcode_pattern, url, re.IGNORECASE)
            if match:
                return match.group(1)
        if soup is not None and self.rules.barcode_input:
            el = soup.select_one(self.rules.barcode_input)
            if el is not None and el.get("value"):
                return el["value"].strip()
        return None

    def _rating(self, node: Tag, selectors: Sequence[str]) -> Optional[Decimal]:
        source = self.rules.rating_source
        if source == RATING_TEXT:
            return parse_rating(self._text(node, selectors))

        el = self._first_any(node, selectors)
        if el is None:
            return None
        if source == RATING_TITLE:
            return parse_rating(el.get("title"))
        if source == RATING_STYLE_WIDTH:
            match = _STYLE_WIDTH.search(el.get("style") or "")
            if not match:
                return None
            return parse_rating(str(Decimal(match.group(1)) / 20))
        raise ValueError(f"Unknown rating source: {source}")

    def _in_stock(self, soup: Tag) -> bool:
        mode = self.rules.stock_mode
        if not self.rules.stock:
            return True

        el = self._first_any(soup, self.rules.stock)
        text = (el.get_text(" ", strip=True) if el is not None else "").lower()

        if mode == STOCK_KEYWORDS:
            return not any(kw in text for kw in OUT_OF_STOCK_KEYWORDS)
        if mode == STOCK_PRESENT:
            return el is not None
        if mode == STOCK_TEXT_PRESENT:
            return bool(text) and "out of stock" not in text
        if mode == STOCK_OOS_MARKER:
            return not text
        raise ValueError(f"Unknown stock mode: {mode}")

    def _description(self, soup: Tag) -> Optional[str]:
        parts: List[str] = []
        for selector in self.rules.description:
            for el in soup.select(selector):
                text = clean_text(el.get_text(" ", strip=True))
                if text:
                    parts.append(text)
                if len(parts) >= self.rules.description_items:
                    break
            if len(parts) >= self.rules.description_items:
                break
        if not parts:
            return None
        return " ".join(parts)[:MAX_DESCRIPTION_LENGTH]

    def _build_record(self, **fields) -> Optional[ExtractedRecord]:
        """Build a record, returning None when required fields are missing."""
        if not fields.get("name"):
            self.logger.debug("extraction_no_title", url=fields.get("url"))
            return None
        price = fields.get("price")
        if not price or price <= 0:
            self.logger.debug("extraction_no_price", url=fields.get("url"))
            return None
        fields.setdefault("category", CategoryClassifier.classify(fields["name"]))
        return ExtractedRecord(currency=self.currency, **fields)


class SelectorAdapter(BaseAdapter):
    """Generic adapter driven entirely by the profile's SelectorRules."""

    async def extract_one(self, url: str) -> Optional[ExtractedRecord]:
        try:
            soup = await self._fetch_soup(url)
        except TransportFailure as e:
            if e.status_code in (404, 410):
                self.logger.info("product_page_gone", url=url, status_code=e.status_code)
                return None
            raise
        return self.parse_product_page(soup, url)

    async def extract_many(self, query: str) -> List[ExtractedRecord]:
        soup = await self._fetch_soup(self.profile.search_url(query))
        cards = soup.select(self.rules.card)[: self.search_limit] if self.rules.card else []

        records: List[ExtractedRecord] = []
        for i, card in enumerate(cards):
            record = self.parse_search_card(card)
            if record is not None:
                records.append(record)
            if self.item_delay_ms and i < len(cards) - 1:
                await asyncio.sleep(self.item_delay_ms / 1000)

        self.logger.info("search_extracted", query=query, cards=len(cards), records=len(records))
        return records

    # ------------------------------------------------------------------
    # Parsing hooks
    # ------------------------------------------------------------------

    def page_price_text(self, soup: BeautifulSoup) -> Optional[str]:
        return self._text(soup, self.rules.price)

    def card_price_text(self, card: Tag) -> Optional[str]:
        return self._text(card, self.rules.card_price)

    def page_brand(self, soup: BeautifulSoup) -> Optional[str]:
        return self._text(soup, self.rules.brand)

    def parse_product_page(self, soup: BeautifulSoup, url: str) -> Optional[ExtractedRecord]:
        """Turn a parsed product page into a record (None when title or price is missing)."""
        url = normalize_url(url)
        return self._build_record(
            name=self._text(soup, self.rules.title),
            price=parse_price(self.page_price_text(soup)),
            original_price=parse_price(self._text(soup, self.rules.original_price)) or None,
            url=url,
            image_url=self._image(soup, self.rules.image),
            in_stock=self._in_stock(soup),
            rating=self._rating(soup, self.rules.rating),
            review_count=parse_review_count(self._text(soup, self.rules.review_count)),
            barcode=self._barcode(url, soup),
            brand=self.page_brand(soup),
            description=self._description(soup),
        )

    def parse_search_card(self, card: Tag) -> Optional[ExtractedRecord]:
        """Turn one search result card into a record. Cards carry no stock signal."""
        link = self._first_any(card, self.rules.card_link)
        href = link.get("href") if link is not None else None
        if not href:
            return None
        url = normalize_url(self._absolute(href))

        return self._build_record(
            name=self._text(card, self.rules.card_title),
            price=parse_price(self.card_price_text(card)),
            url=url,
            image_url=self._image(card, self.rules.card_image),
            in_stock=True,
            rating=self._rating_text_only(card, self.rules.card_rating),
            review_count=parse_review_count(self._text(card, self.rules.card_review_count)),
            barcode=self._barcode(url),
        )

    def _rating_text_only(self, card: Tag, selectors: Sequence[str]) -> Optional[Decimal]:
        if not selectors:
            return None
        return parse_rating(self._text(card, selectors))
