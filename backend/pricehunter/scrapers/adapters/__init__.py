"""Retailer adapters whose markup needs more than a selector table."""

from pricehunter.scrapers.adapters.amazon import AmazonAdapter
from pricehunter.scrapers.adapters.noon import NoonAdapter

__all__ = ["AmazonAdapter", "NoonAdapter"]
