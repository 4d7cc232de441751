"""Amazon storefronts (amazon.sa, amazon.eg, amazon.ae)."""

import re
from typing import Optional

from bs4 import BeautifulSoup, Tag

from pricehunter.scrapers.base import SelectorAdapter
from pricehunter.scrapers.utils.normalizer import clean_text


_BYLINE_NOISE = re.compile(r"Visit the|Brand:|Store", re.IGNORECASE)


def split_price_text(node: Tag) -> Optional[str]:
    """Join Amazon's ``.a-price-whole`` and ``.a-price-fraction`` spans."""
    whole = node.select_one(".a-price-whole")
    if whole is None:
        return None
    whole_text = whole.get_text(strip=True)
    fraction = node.select_one(".a-price-fraction")
    fraction_text = fraction.get_text(strip=True) if fraction is not None else ""
    if fraction_text and not whole_text.endswith("."):
        whole_text += "."
    return f"{whole_text}{fraction_text}"


class AmazonAdapter(SelectorAdapter):
    """Amazon splits prices into whole and fraction spans and decorates
    the brand byline, so both get assembled here.
    """

    def page_price_text(self, soup: BeautifulSoup) -> Optional[str]:
        return split_price_text(soup) or super().page_price_text(soup)

    def card_price_text(self, card: Tag) -> Optional[str]:
        return split_price_text(card) or super().card_price_text(card)

    def page_brand(self, soup: BeautifulSoup) -> Optional[str]:
        byline = soup.select_one("#bylineInfo")
        if byline is not None:
            brand = clean_text(_BYLINE_NOISE.sub("", byline.get_text(" ", strip=True)))
            if brand:
                return brand

        # Technical details table
        for row in soup.select("tr"):
            header = row.find(["th", "td"])
            if header is not None and "brand" in header.get_text(strip=True).lower():
                cells = row.find_all("td")
                if cells:
                    return clean_text(cells[-1].get_text(" ", strip=True))
        return None
