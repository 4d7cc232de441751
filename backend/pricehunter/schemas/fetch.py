"""Pydantic schemas for orchestration results returned to callers."""

from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class RetailerResult(BaseModel):
    """Outcome of one retailer branch in a fetch run."""

    success: bool
    count: int = Field(0, ge=0, description="Records saved from this retailer")
    error: Optional[str] = None


class FetchResult(BaseModel):
    """Summary of a fetch_and_save run."""

    query: str
    total_scraped: int = 0
    new_products: int = 0
    updated_products: int = 0
    retailer_results: Dict[str, RetailerResult] = Field(default_factory=dict)
    duration_ms: int = 0
    job_id: Optional[UUID] = None

    @property
    def failed_retailers(self) -> List[str]:
        return sorted(slug for slug, r in self.retailer_results.items() if not r.success)


class UrlFetchResult(BaseModel):
    """Outcome of fetching a single product URL."""

    product_id: Optional[UUID] = None
    is_new: bool = False
    error: Optional[str] = None
