"""Retailer profiles: storefront location, currency and selector rules.

Amazon and Noon are one family each; the country variants differ only in
domain, locale and currency.
"""

from typing import Dict

from pricehunter.scrapers.adapters.amazon import AmazonAdapter
from pricehunter.scrapers.adapters.noon import NoonAdapter
from pricehunter.scrapers.base import (
    RATING_STYLE_WIDTH,
    RATING_TITLE,
    STOCK_KEYWORDS,
    STOCK_OOS_MARKER,
    STOCK_PRESENT,
    STOCK_TEXT_PRESENT,
    RetailerProfile,
    SelectorAdapter,
    SelectorRules,
)


# ---------------------------------------------------------------------------
# Selector tables
# ---------------------------------------------------------------------------

AMAZON_RULES = SelectorRules(
    title=("#productTitle",),
    price=(".a-price .a-offscreen", ".a-price-whole"),
    original_price=(".a-text-price .a-offscreen",),
    image=("#landingImage", "#imgBlkFront"),
    image_attrs=("src", "data-old-hires"),
    rating=("span.a-icon-alt",),
    review_count=("#acrCustomerReviewText",),
    stock=("#availability span", "#availability"),
    stock_mode=STOCK_KEYWORDS,
    description=("#productDescription p", "#feature-bullets li"),
    description_items=5,
    barcode_pattern=r"/dp/([A-Z0-9]+)",
    card='[data-component-type="s-search-result"]',
    card_title=("h2 a span", "h2 span"),
    card_link=("h2 a", "a.a-link-normal"),
    card_price=(".a-price .a-offscreen",),
    card_image=("img.s-image",),
    card_rating=(".a-icon-star-small .a-icon-alt", ".a-icon-alt"),
    card_review_count=('[aria-label*="stars"] + span',),
)

NOON_RULES = SelectorRules(
    title=('[data-qa="pdp-name"]', ".productTitle", "h1"),
    price=('[data-qa="pdp-price"]', ".priceNow"),
    original_price=('[data-qa="pdp-was-price"]', ".priceWas"),
    image=('[data-qa="pdp-image-main"] img', ".swiper-slide img"),
    rating=('[data-qa="pdp-rating"]', ".stars"),
    stock=('[data-qa="pdp-add-to-cart"]',),
    stock_mode=STOCK_PRESENT,
    brand=('[data-qa="pdp-brand"]', 'a[href*="/brand/"]'),
    barcode_pattern=r"/p/([A-Z0-9]+)",
    card='[data-qa="product-block"], .productContainer',
    card_title=('[data-qa="product-name"]', ".productTitle"),
    card_link=("a",),
    card_price=('[data-qa="product-price"]', ".price"),
    card_image=("img",),
    card_rating=('[data-qa="product-rating"]',),
)

JARIR_RULES = SelectorRules(
    title=(".product-name h1", ".product-title"),
    price=(".special-price .price", ".price"),
    original_price=(".old-price .price",),
    image=("#image-main", ".product-image img"),
    rating=(".rating-result",),
    rating_source=RATING_TITLE,
    review_count=(".reviews-actions a",),
    stock=(".stock.available",),
    stock_mode=STOCK_PRESENT,
    brand=(".product-brand a", ".brand-name"),
    description=(".product-description", ".description"),
    barcode_pattern=r"/(\d+)\.html",
    barcode_input='input[name="product"]',
    card=".product-item, .product-card",
    card_title=(".product-item-link", ".product-name"),
    card_link=(".product-item-link", "a"),
    card_price=(".special-price .price", ".price"),
    card_image=(".product-image-photo", "img"),
)

EXTRA_RULES = SelectorRules(
    title=(".product-name", "h1.title"),
    price=(".price-wrapper .price", ".final-price"),
    original_price=(".old-price .price", ".was-price"),
    image=(".product-image-main img", ".gallery-image"),
    rating=(".rating-summary .rating-result",),
    rating_source=RATING_STYLE_WIDTH,
    review_count=(".reviews-actions .action.view",),
    stock=(".stock.available", ".in-stock"),
    stock_mode=STOCK_TEXT_PRESENT,
    brand=(".product-brand", ".brand"),
    description=(".product-description", ".overview"),
    barcode_pattern=r"/p/([^/?#]+)",
    card=".product-item, .product-tile",
    card_title=(".product-name", ".product-title"),
    card_link=("a.product-link", "a"),
    card_price=(".final-price", ".price"),
    card_image=("img.product-image", "img"),
)

JUMIA_RULES = SelectorRules(
    title=("h1.-fs20", ".-fs20", ".name"),
    price=(".-b.-ltr", ".price .-b"),
    original_price=(".-tal.-gy5.-lthr", ".old-price"),
    image=(".-phs.-pvs img", ".sldr img", ".img-cover"),
    image_attrs=("data-src", "src"),
    rating=(".-fs14 .-pvxs", ".stars"),
    review_count=(".-plxs.-fs14", ".reviews"),
    stock=(".-oos-msg",),
    stock_mode=STOCK_OOS_MARKER,
    brand=(".-mhm a", ".brand"),
    description=(".markup.-pam", ".description"),
    barcode_pattern=r"-(\d+)\.html",
    card="article.prd, .prd",
    card_title=(".name", ".core"),
    card_link=("a.core", "a"),
    card_price=(".prc", ".price"),
    card_image=("img.img", "img"),
    card_rating=(".stars._s",),
)

BTECH_RULES = SelectorRules(
    title=(".product-name", "h1.title"),
    price=(".special-price .price", ".price-box .price"),
    original_price=(".old-price .price",),
    image=(".product-image img", ".gallery-image img"),
    rating=(".rating-summary .rating-result",),
    rating_source=RATING_STYLE_WIDTH,
    review_count=(".reviews-actions",),
    stock=(".stock.available", ".availability.in-stock"),
    stock_mode=STOCK_PRESENT,
    brand=(".product-brand a", ".brand-name"),
    description=(".product-description", ".description-content"),
    barcode_pattern=r"/p/([^/?#]+)",
    card=".product-item, .product-card",
    card_title=(".product-item-link", ".product-name a"),
    card_link=(".product-item-link", "a"),
    card_price=(".special-price .price", ".price"),
    card_image=(".product-image-photo", "img"),
)


# ---------------------------------------------------------------------------
# Storefronts
# ---------------------------------------------------------------------------

def _amazon(country_code: str, country: str, currency: str, name_ar: str) -> RetailerProfile:
    return RetailerProfile(
        slug=f"amazon-{country_code}",
        name=f"Amazon {country}",
        name_ar=name_ar,
        domain=f"amazon.{country_code}",
        base_url=f"https://www.amazon.{country_code}",
        country=country,
        currency=currency,
        search_path="/s?k={query}",
        rules=AMAZON_RULES,
        adapter_class=AmazonAdapter,
    )


def _noon(slug_suffix: str, locale: str, country: str, currency: str, name_ar: str) -> RetailerProfile:
    return RetailerProfile(
        slug=f"noon-{slug_suffix}",
        name=f"Noon {country}",
        name_ar=name_ar,
        domain="noon.com",
        base_url="https://www.noon.com",
        country=country,
        currency=currency,
        search_path="/{locale}/search/?q={query}",
        rules=NOON_RULES,
        adapter_class=NoonAdapter,
        locale=locale,
        language="ar",
    )


RETAILER_PROFILES: Dict[str, RetailerProfile] = {
    p.slug: p
    for p in (
        _amazon("sa", "SA", "SAR", "أمازون السعودية"),
        _amazon("eg", "EG", "EGP", "أمازون مصر"),
        _amazon("ae", "AE", "AED", "أمازون الإمارات"),
        _noon("sa", "saudi-ar", "SA", "SAR", "نون السعودية"),
        _noon("eg", "egypt-ar", "EG", "EGP", "نون مصر"),
        _noon("ae", "uae-ar", "AE", "AED", "نون الإمارات"),
        RetailerProfile(
            slug="jarir",
            name="Jarir Bookstore",
            name_ar="مكتبة جرير",
            domain="jarir.com",
            base_url="https://www.jarir.com",
            country="SA",
            currency="SAR",
            search_path="/sa-en/catalogsearch/result/?q={query}",
            rules=JARIR_RULES,
            adapter_class=SelectorAdapter,
        ),
        RetailerProfile(
            slug="extra",
            name="eXtra",
            name_ar="اكسترا",
            domain="extra.com",
            base_url="https://www.extra.com",
            country="SA",
            currency="SAR",
            search_path="/en-sa/search/?text={query}",
            rules=EXTRA_RULES,
            adapter_class=SelectorAdapter,
        ),
        RetailerProfile(
            slug="jumia-eg",
            name="Jumia Egypt",
            name_ar="جوميا مصر",
            domain="jumia.com.eg",
            base_url="https://www.jumia.com.eg",
            country="EG",
            currency="EGP",
            search_path="/catalog/?q={query}",
            rules=JUMIA_RULES,
            adapter_class=SelectorAdapter,
        ),
        RetailerProfile(
            slug="btech",
            name="B.TECH",
            name_ar="بي تك",
            domain="btech.com",
            base_url="https://btech.com",
            country="EG",
            currency="EGP",
            search_path="/en/catalogsearch/result/?q={query}",
            rules=BTECH_RULES,
            adapter_class=SelectorAdapter,
        ),
    )
}

# Retailers known to the catalog that have no adapter yet, keyed by domain
UNSUPPORTED_RETAILERS: Dict[str, str] = {
    "2b.com.sa": "2b",
    "sharafdg.com": "sharaf-dg",
    "carrefouruae.com": "carrefour-ae",
    "luluhypermarket.com": "lulu-sa",
}

# Noon serves every country from one host; the path locale picks the storefront
NOON_LOCALE_SLUGS = (
    (("/saudi", "saudi-ar", "saudi-en"), "noon-sa"),
    (("/egypt", "egypt-ar", "egypt-en"), "noon-eg"),
    (("/uae", "uae-ar", "uae-en"), "noon-ae"),
)
NOON_DEFAULT_SLUG = "noon-sa"
