"""Audit records for fetch runs."""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pricehunter.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class JobStatus(str, enum.Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class JobType(str, enum.Enum):
    FULL_SCRAPE = "FULL_SCRAPE"
    PRODUCT_UPDATE = "PRODUCT_UPDATE"
    PRICE_CHECK = "PRICE_CHECK"
    EXCHANGE_RATE = "EXCHANGE_RATE"


class FetchJob(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Tracks one orchestration run.

    Moves PENDING -> RUNNING -> COMPLETED | FAILED. A run is FAILED only
    when no retailer produced a single item.
    """

    __tablename__ = "fetch_jobs"

    job_type: Mapped[str] = mapped_column(String(20), nullable=False, default=JobType.FULL_SCRAPE.value)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=JobStatus.PENDING.value,
        index=True,
    )
    scope: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Query or URL plus requested country / retailers",
    )
    retailer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("retailers.id", ondelete="SET NULL"),
        nullable=True,
    )

    items_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<FetchJob(id={self.id}, type={self.job_type}, status={self.status}, items={self.items_processed})>"
