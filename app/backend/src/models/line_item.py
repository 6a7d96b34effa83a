"""Claim line item model."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Date,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class ClaimLineItem(Base):
    """Frozen copy of one unit entry's billing fields on a claim."""

    __tablename__ = "claim_line_items"
    __table_args__ = (
        UniqueConstraint("claim_id", "unit_entry_id", name="uq_claim_line_items_unit"),
        UniqueConstraint("claim_id", "line_number", name="uq_claim_line_items_line"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    claim_id: Mapped[int] = mapped_column(ForeignKey("claims.id"), nullable=False, index=True)
    unit_entry_id: Mapped[int] = mapped_column(ForeignKey("unit_entries.id"), nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    job_id: Mapped[int | None] = mapped_column(ForeignKey("jobs.id"))
    price_book_item_id: Mapped[int] = mapped_column(Integer, nullable=False)

    item_code: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str] = mapped_column(String(512), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    unit: Mapped[str] = mapped_column(String(16), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    work_date: Mapped[date | None] = mapped_column(Date)

    photo_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    has_gps: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    gps_accuracy: Mapped[float | None] = mapped_column(Float)
    gps_quality: Mapped[str | None] = mapped_column(String(16))

    performer_tier: Mapped[str | None] = mapped_column(String(16))
    sub_contractor_name: Mapped[str | None] = mapped_column(String(255))
    work_category: Mapped[str | None] = mapped_column(String(32))

    claim: Mapped["Claim"] = relationship("Claim", back_populates="line_items")


@event.listens_for(ClaimLineItem, "before_update")
def _refuse_line_item_update(mapper, connection, target: ClaimLineItem) -> None:  # type: ignore[no-untyped-def]
    raise ValueError("claim line items are immutable once created")


__all__ = ["ClaimLineItem"]
