"""Unit entry model: one billable unit of field work."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from .job import Job

UNIT_STATUSES: tuple[str, ...] = (
    "draft",
    "submitted",
    "verified",
    "approved",
    "invoiced",
    "paid",
    "void",
)
DISPUTABLE_STATUSES: frozenset[str] = frozenset({"submitted", "verified", "approved"})
CLAIMED_STATUSES: frozenset[str] = frozenset({"invoiced", "paid"})


class UnitEntry(Base):
    """The digital receipt for a unit of work priced against a rate-book item.

    The rate-book fields (``item_code`` through ``unit_price``) are a snapshot
    taken at creation and are never rewritten; corrections change ``quantity``
    through a :class:`UnitAdjustment` record.
    """

    __tablename__ = "unit_entries"
    __table_args__ = (
        Index("ix_unit_entries_company_status", "company_id", "status"),
        Index("ix_unit_entries_job_status", "job_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[int] = mapped_column(ForeignKey("jobs.id"), nullable=False, index=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id"), nullable=False, index=True)
    price_book_id: Mapped[int | None] = mapped_column(ForeignKey("price_books.id"))
    price_book_item_id: Mapped[int] = mapped_column(Integer, nullable=False)
    claim_id: Mapped[int | None] = mapped_column(ForeignKey("claims.id"), nullable=True, index=True)

    item_code: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(512), nullable=False)
    category: Mapped[str | None] = mapped_column(String(64))
    subcategory: Mapped[str | None] = mapped_column(String(64))
    unit: Mapped[str] = mapped_column(String(16), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    work_start_time: Mapped[str | None] = mapped_column(String(8))
    work_end_time: Mapped[str | None] = mapped_column(String(8))

    location: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    location_description: Mapped[str | None] = mapped_column(String(255))
    gps_quality: Mapped[str] = mapped_column(String(16), nullable=False, default="none")
    photos: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    photo_waived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    photo_waived_reason: Mapped[str | None] = mapped_column(String(512))
    photo_waived_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    field_conditions: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text)

    performer_tier: Mapped[str] = mapped_column(String(16), nullable=False, default="prime")
    work_category: Mapped[str] = mapped_column(String(32), nullable=False, default="electrical")
    performed_by: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    entered_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    entered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft", index=True)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    submitted_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    verified_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    verification_notes: Mapped[str | None] = mapped_column(Text)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    approval_notes: Mapped[str | None] = mapped_column(Text)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))

    is_disputed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    disputed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    disputed_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    dispute_reason: Mapped[str | None] = mapped_column(Text)
    dispute_category: Mapped[str | None] = mapped_column(String(32))
    dispute_resolution: Mapped[str | None] = mapped_column(Text)
    dispute_resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    dispute_resolved_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))

    offline_id: Mapped[str | None] = mapped_column(String(64), index=True)
    sync_status: Mapped[str] = mapped_column(String(16), nullable=False, default="synced")

    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    deleted_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    delete_reason: Mapped[str | None] = mapped_column(String(512))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    job: Mapped["Job"] = relationship("Job", back_populates="unit_entries")
    adjustments: Mapped[list["UnitAdjustment"]] = relationship(
        "UnitAdjustment",
        back_populates="unit_entry",
        cascade="all, delete-orphan",
        order_by="UnitAdjustment.id",
    )

    @property
    def photo_count(self) -> int:
        return len(self.photos or [])

    @property
    def has_gps(self) -> bool:
        location = self.location or {}
        return location.get("latitude") is not None and location.get("longitude") is not None

    @property
    def gps_accuracy(self) -> float | None:
        return (self.location or {}).get("accuracy")

    @property
    def photo_compliant(self) -> bool:
        return self.photo_count > 0 or (self.photo_waived and bool(self.photo_waived_reason))


class UnitAdjustment(Base):
    """Quantity correction applied to a unit entry."""

    __tablename__ = "unit_adjustments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    unit_entry_id: Mapped[int] = mapped_column(
        ForeignKey("unit_entries.id"), nullable=False, index=True
    )
    adjusted_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    adjusted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    original_quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    new_quantity: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    original_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    new_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    reason: Mapped[str] = mapped_column(String(512), nullable=False)

    unit_entry: Mapped["UnitEntry"] = relationship("UnitEntry", back_populates="adjustments")


__all__ = [
    "CLAIMED_STATUSES",
    "DISPUTABLE_STATUSES",
    "UNIT_STATUSES",
    "UnitAdjustment",
    "UnitEntry",
]
