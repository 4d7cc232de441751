"""PriceHunter: multi-retailer price aggregation and price-trend pipeline."""

__version__ = "0.1.0"
