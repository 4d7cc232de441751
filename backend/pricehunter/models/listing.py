"""One retailer's offer for a canonical product."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricehunter.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from pricehunter.models.price_history import PriceHistory
    from pricehunter.models.product import Product
    from pricehunter.models.retailer import Retailer


class RetailerListing(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Current price, stock and rating of a product at one retailer.

    Exactly one row per (product_id, retailer_id); every write also
    appends a PriceHistory point.
    """

    __tablename__ = "retailer_listings"

    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    retailer_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("retailers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    url: Mapped[str] = mapped_column(String(2000), nullable=False)

    # Pricing
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, comment="Native-currency price")
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    price_usd: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, comment="Normalized price")
    original_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    discount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="Percent off original")

    # Availability and reviews
    in_stock: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    rating: Mapped[Optional[Decimal]] = mapped_column(Numeric(2, 1), nullable=True)
    review_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    last_fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("product_id", "retailer_id", name="uq_listing_product_retailer"),
    )

    product: Mapped["Product"] = relationship(back_populates="listings")
    retailer: Mapped["Retailer"] = relationship(back_populates="listings")
    price_history: Mapped[list["PriceHistory"]] = relationship(
        back_populates="listing",
        cascade="all, delete-orphan",
        order_by="PriceHistory.recorded_at.desc()",
    )

    def __repr__(self) -> str:
        return f"<RetailerListing(product_id={self.product_id}, retailer_id={self.retailer_id}, price={self.price} {self.currency})>"
