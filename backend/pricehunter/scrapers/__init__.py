"""Retailer acquisition layer.

This package provides:
- The data-driven selector adapter and per-retailer profiles
- The HTTP transport with retry, user-agent rotation and URL allow-listing
- The adapter registry and the fetch orchestration service
"""

from .base import BaseAdapter, ExtractedRecord, RetailerProfile, SelectorAdapter, SelectorRules
from .registry import AdapterRegistry
from .transport import FetchTransport

__all__ = [
    # Base classes
    "BaseAdapter",
    "SelectorAdapter",
    # Data structures
    "ExtractedRecord",
    "RetailerProfile",
    "SelectorRules",
    # Wiring
    "AdapterRegistry",
    "FetchTransport",
]
