"""Retailer model representing one storefront in one country."""

from typing import TYPE_CHECKING, Optional

from sqlalchemy import JSON, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricehunter.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from pricehunter.models.listing import RetailerListing


class Retailer(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Online retailer storefront (e.g. Amazon Saudi Arabia, Noon Egypt).

    The slug matches the adapter registry key; the country and currency
    drive orchestration scope and price normalization.
    """

    __tablename__ = "retailers"

    name: Mapped[str] = mapped_column(String(100), nullable=False, comment="English display name")
    name_ar: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, comment="Arabic display name")
    slug: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    domain: Mapped[str] = mapped_column(String(200), nullable=False, index=True, comment="Shared by storefronts on one host")
    country: Mapped[str] = mapped_column(String(2), nullable=False, index=True, comment="SA, EG, AE or KW")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, comment="Native listing currency")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    scrape_config: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Per-retailer overrides (rate limit, notes)",
    )

    listings: Mapped[list["RetailerListing"]] = relationship(back_populates="retailer")

    def __repr__(self) -> str:
        return f"<Retailer(slug='{self.slug}', country='{self.country}', currency='{self.currency}')>"
