"""Tests for retailer adapters against captured-style HTML fixtures."""

from decimal import Decimal

import httpx
import pytest

from conftest import html_router
from pricehunter.core.exceptions import TransportFailure
from pricehunter.scrapers.adapters.amazon import AmazonAdapter
from pricehunter.scrapers.adapters.noon import NoonAdapter
from pricehunter.scrapers.base import ExtractedRecord, SelectorAdapter


# ============================================================================
# FIXTURES: HTML
# ============================================================================

AMAZON_PRODUCT = """
<html><body>
  <span id="productTitle">  Apple iPhone 15 Pro (256 GB) - Natural Titanium  </span>
  <a id="bylineInfo" href="/stores/Apple">Visit the Apple Store</a>
  <div class="a-section">
    <span class="a-price"><span class="a-offscreen">SAR 4,599.00</span>
      <span class="a-price-whole">4,599.</span><span class="a-price-fraction">00</span></span>
    <span class="a-text-price"><span class="a-offscreen">SAR 5,199.00</span></span>
  </div>
  <img id="landingImage" src="https://m.media-amazon.com/images/I/iphone15.jpg">
  <span class="a-icon-alt">4.6 out of 5 stars</span>
  <span id="acrCustomerReviewText">1,234 ratings</span>
  <div id="availability"><span>In Stock</span></div>
  <div id="feature-bullets"><ul><li>A17 Pro chip</li><li>Titanium design</li></ul></div>
</body></html>
"""

AMAZON_OUT_OF_STOCK = """
<html><body>
  <span id="productTitle">Sony WH-1000XM5 Headphones</span>
  <span class="a-price"><span class="a-offscreen">SAR 1,299.00</span></span>
  <div id="availability"><span>Currently unavailable.</span></div>
</body></html>
"""

AMAZON_NO_PRICE = """
<html><body><span id="productTitle">Discontinued Gadget</span></body></html>
"""

AMAZON_SEARCH = """
<html><body>
  <div data-component-type="s-search-result">
    <h2><a href="/dp/B0AAA11111?ref=sr_1_1"><span>Samsung Galaxy S24 256GB</span></a></h2>
    <span class="a-price"><span class="a-offscreen">SAR 3,299.00</span>
      <span class="a-price-whole">3,299.</span><span class="a-price-fraction">00</span></span>
    <img class="s-image" src="https://m.media-amazon.com/images/I/s24.jpg">
    <span class="a-icon-alt">4.4 out of 5 stars</span>
  </div>
  <div data-component-type="s-search-result">
    <h2><a href="/dp/B0BBB22222"><span>Sponsored listing without price</span></a></h2>
  </div>
  <div data-component-type="s-search-result">
    <h2><a href="/dp/B0CCC33333"><span>Samsung Galaxy S24 Ultra</span></a></h2>
    <span class="a-price"><span class="a-price-whole">5,199</span></span>
  </div>
</body></html>
"""

NOON_PRODUCT = """
<html><body>
  <h1>Samsung Galaxy A55 5G</h1>
  <div class="priceBlock"><span>EGP 18,999</span></div>
  <div data-qa="pdp-brand">Samsung</div>
  <button data-qa="pdp-add-to-cart">Add to cart</button>
</body></html>
"""

JUMIA_PRODUCT = """
<html><body>
  <h1 class="-fs20">Xiaomi Redmi Note 13 128GB</h1>
  <span class="-b -ltr">EGP 9,499.00</span>
  <span class="-tal -gy5 -lthr">EGP 10,999.00</span>
  <p class="-oos-msg">This item is out of stock</p>
</body></html>
"""

EXTRA_PRODUCT = """
<html><body>
  <h1 class="product-name">LG 55 inch OLED TV</h1>
  <div class="price-wrapper"><span class="price">SAR 4,299</span></div>
  <div class="rating-summary"><div class="rating-result" style="width: 90%"></div></div>
  <div class="stock available">In stock</div>
</body></html>
"""


def _adapter(registry, slug):
    adapter = registry.get(slug)
    assert adapter is not None
    return adapter


# ============================================================================
# TESTS: AMAZON
# ============================================================================

class TestAmazonAdapter:
    """Tests for the Amazon storefront adapter."""

    async def test_extract_one_full_page(self, make_registry):
        registry = make_registry(html_router({"/dp/B0CHX1W1XY": AMAZON_PRODUCT}))
        adapter = _adapter(registry, "amazon-sa")
        assert isinstance(adapter, AmazonAdapter)

        record = await adapter.extract_one("https://www.amazon.sa/dp/B0CHX1W1XY?ref_=nav_home&th=1")

        assert isinstance(record, ExtractedRecord)
        assert record.name == "Apple iPhone 15 Pro (256 GB) - Natural Titanium"
        assert record.price == Decimal("4599.00")
        assert record.original_price == Decimal("5199.00")
        assert record.currency == "SAR"
        assert record.url == "https://www.amazon.sa/dp/B0CHX1W1XY?th=1"
        assert record.barcode == "B0CHX1W1XY"
        assert record.brand == "Apple"
        assert record.rating == Decimal("4.6")
        assert record.review_count == 1234
        assert record.in_stock is True
        assert record.image_url == "https://m.media-amazon.com/images/I/iphone15.jpg"
        assert record.description == "A17 Pro chip Titanium design"
        assert record.category == "mobiles"

    async def test_out_of_stock_keyword(self, make_registry):
        registry = make_registry(html_router({"/dp/B0SONY0001": AMAZON_OUT_OF_STOCK}))

        record = await _adapter(registry, "amazon-sa").extract_one("https://www.amazon.sa/dp/B0SONY0001")

        assert record is not None
        assert record.in_stock is False
        assert record.price == Decimal("1299.00")

    async def test_missing_price_is_not_found(self, make_registry):
        registry = make_registry(html_router({"/dp/B0GONE0001": AMAZON_NO_PRICE}))

        assert await _adapter(registry, "amazon-sa").extract_one("https://www.amazon.sa/dp/B0GONE0001") is None

    async def test_404_page_is_not_found(self, make_registry):
        registry = make_registry(html_router({}))

        assert await _adapter(registry, "amazon-sa").extract_one("https://www.amazon.sa/dp/B0MISSING1") is None

    async def test_server_error_raises_transport_failure(self, make_registry):
        def handler(request):
            return httpx.Response(503)

        registry = make_registry(handler)

        with pytest.raises(TransportFailure):
            await _adapter(registry, "amazon-sa").extract_one("https://www.amazon.sa/dp/B0CHX1W1XY")

    async def test_extract_many_skips_cards_without_price(self, make_registry):
        registry = make_registry(html_router({"/s": AMAZON_SEARCH}))

        records = await _adapter(registry, "amazon-sa").extract_many("galaxy s24")

        assert [r.barcode for r in records] == ["B0AAA11111", "B0CCC33333"]
        first = records[0]
        assert first.name == "Samsung Galaxy S24 256GB"
        assert first.price == Decimal("3299.00")
        assert first.url == "https://www.amazon.sa/dp/B0AAA11111"
        assert first.rating == Decimal("4.4")
        assert first.in_stock is True
        assert records[1].price == Decimal("5199")

    async def test_extract_many_respects_limit(self, make_registry):
        registry = make_registry(html_router({"/s": AMAZON_SEARCH}), search_limit=1)

        records = await _adapter(registry, "amazon-sa").extract_many("galaxy s24")

        assert len(records) == 1

    async def test_search_url_encodes_query(self, make_registry):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, text="<html></html>")

        registry = make_registry(handler)
        assert await _adapter(registry, "amazon-ae").extract_many("iphone 15 pro") == []
        assert seen == ["https://www.amazon.ae/s?k=iphone+15+pro"]


# ============================================================================
# TESTS: OTHER RETAILERS
# ============================================================================

class TestNoonAdapter:
    """Tests for the Noon storefront adapter."""

    async def test_price_falls_back_to_currency_span(self, make_registry):
        registry = make_registry(html_router({"/egypt-ar/p/N70012345V": NOON_PRODUCT}))
        adapter = _adapter(registry, "noon-eg")
        assert isinstance(adapter, NoonAdapter)

        record = await adapter.extract_one("https://www.noon.com/egypt-ar/p/N70012345V")

        assert record is not None
        assert record.price == Decimal("18999")
        assert record.currency == "EGP"
        assert record.brand == "Samsung"
        assert record.barcode == "N70012345V"
        assert record.in_stock is True

    async def test_search_url_uses_locale(self, make_registry):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, text="<html></html>")

        registry = make_registry(handler)
        await _adapter(registry, "noon-ae").extract_many("airpods")
        assert seen == ["https://www.noon.com/uae-ar/search/?q=airpods"]


class TestSearchItemDelay:
    """Tests for the pause between successive search result items."""

    @pytest.fixture
    def sleeps(self, monkeypatch):
        calls = []

        async def fake_sleep(seconds):
            calls.append(seconds)

        monkeypatch.setattr("pricehunter.scrapers.base.asyncio.sleep", fake_sleep)
        return calls

    async def test_delay_only_between_items(self, make_registry, sleeps):
        registry = make_registry(html_router({"/s": AMAZON_SEARCH}), item_delay_ms=100)

        records = await _adapter(registry, "amazon-sa").extract_many("galaxy s24")

        # Three cards (one without a price): two pauses, none after the last
        assert len(records) == 2
        assert sleeps == [pytest.approx(0.1), pytest.approx(0.1)]

    async def test_single_item_search_does_not_delay(self, make_registry, sleeps):
        registry = make_registry(html_router({"/s": AMAZON_SEARCH}), search_limit=1, item_delay_ms=100)

        await _adapter(registry, "amazon-sa").extract_many("galaxy s24")

        assert sleeps == []

    async def test_extract_one_never_delays(self, make_registry, sleeps):
        registry = make_registry(html_router({"/dp/B0CHX1W1XY": AMAZON_PRODUCT}), item_delay_ms=100)

        record = await _adapter(registry, "amazon-sa").extract_one("https://www.amazon.sa/dp/B0CHX1W1XY")

        assert record is not None
        assert sleeps == []


class TestSelectorAdapter:
    """Tests for retailers driven purely by selector rules."""

    async def test_jumia_out_of_stock_marker(self, make_registry):
        registry = make_registry(html_router({"/xiaomi-redmi-note-13-123456789.html": JUMIA_PRODUCT}))
        adapter = _adapter(registry, "jumia-eg")
        assert type(adapter) is SelectorAdapter

        record = await adapter.extract_one("https://www.jumia.com.eg/xiaomi-redmi-note-13-123456789.html")

        assert record is not None
        assert record.price == Decimal("9499.00")
        assert record.original_price == Decimal("10999.00")
        assert record.in_stock is False
        assert record.barcode == "123456789"

    async def test_extra_rating_from_style_width(self, make_registry):
        registry = make_registry(html_router({"/en-sa/tv/p/LG55OLED": EXTRA_PRODUCT}))

        record = await _adapter(registry, "extra").extract_one("https://www.extra.com/en-sa/tv/p/LG55OLED")

        assert record is not None
        assert record.rating == Decimal("4.5")
        assert record.in_stock is True
        assert record.price == Decimal("4299")
        assert record.barcode == "LG55OLED"
        assert record.category == "tv"


class TestExtractedRecord:
    """Tests for ExtractedRecord validation."""

    def test_original_price_dropped_when_not_higher(self):
        record = ExtractedRecord(
            name="Phone",
            price=Decimal("100"),
            currency="sar",
            url="https://www.amazon.sa/dp/X",
            original_price=Decimal("100"),
        )
        assert record.original_price is None
        assert record.currency == "SAR"

    @pytest.mark.parametrize("price", [Decimal("0"), Decimal("-1")])
    def test_non_positive_price_rejected(self, price):
        with pytest.raises(ValueError):
            ExtractedRecord(name="Phone", price=price, currency="SAR", url="https://www.amazon.sa/dp/X")

    def test_blank_name_rejected(self):
        with pytest.raises(ValueError):
            ExtractedRecord(name="  ", price=Decimal("1"), currency="SAR", url="https://www.amazon.sa/dp/X")

    def test_description_truncated(self):
        record = ExtractedRecord(
            name="Phone",
            price=Decimal("1"),
            currency="SAR",
            url="https://www.amazon.sa/dp/X",
            description="x" * 800,
        )
        assert len(record.description) == 500
