"""Append-only price observations per listing."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricehunter.models.base import Base, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from pricehunter.models.listing import RetailerListing


class PriceHistory(UUIDPrimaryKeyMixin, Base):
    """One observed price for a listing.

    A point is written on every successful fetch, changed price or not,
    so the series records observation time. Rows are never updated.
    """

    __tablename__ = "price_history"

    listing_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("retailer_listings.id", ondelete="CASCADE"),
        nullable=False,
    )

    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    price_usd: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="Observation time, set by the ledger writer",
    )

    __table_args__ = (
        Index("idx_price_history_listing_recorded", "listing_id", "recorded_at"),
    )

    listing: Mapped["RetailerListing"] = relationship(back_populates="price_history")

    def __repr__(self) -> str:
        return f"<PriceHistory(listing_id={self.listing_id}, price={self.price} {self.currency}, recorded_at={self.recorded_at})>"
