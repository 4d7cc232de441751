"""Noon storefronts, one per country locale on www.noon.com."""

import re
from typing import Optional

from bs4 import BeautifulSoup

from pricehunter.scrapers.base import SelectorAdapter


class NoonAdapter(SelectorAdapter):
    """Noon renders the product price in several shapes; when none of the
    configured selectors match, fall back to the first span quoting the
    storefront currency.
    """

    def page_price_text(self, soup: BeautifulSoup) -> Optional[str]:
        text = super().page_price_text(soup)
        if text:
            return text

        pattern = re.compile(re.escape(self.currency))
        span = soup.find("span", string=pattern)
        if span is not None:
            return span.get_text(" ", strip=True)
        return None
