"""Canonical product model shared across retailers."""

from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricehunter.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from pricehunter.models.listing import RetailerListing


class Product(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Retailer-independent catalog entry.

    Created by the reconciler when an extracted record matches nothing,
    afterwards only backfilled. A non-null barcode is unique across the
    table so two products can never share one.
    """

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    name_ar: Mapped[Optional[str]] = mapped_column(String(500), nullable=True, comment="Arabic name")
    slug: Mapped[str] = mapped_column(String(600), unique=True, nullable=False)
    barcode: Mapped[Optional[str]] = mapped_column(
        String(100),
        unique=True,
        nullable=True,
        comment="ASIN, SKU or retailer product code derived from the URL",
    )
    brand: Mapped[Optional[str]] = mapped_column(String(200), nullable=True, index=True)
    category: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    listings: Mapped[list["RetailerListing"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, name='{self.name[:50]}', barcode={self.barcode})>"
