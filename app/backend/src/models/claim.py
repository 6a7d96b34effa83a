"""Claim (invoice) model."""

from __future__ import annotations

from collections import OrderedDict
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from .change_log import ClaimChangeLog
    from .company import Company
    from .line_item import ClaimLineItem
    from .payment import ClaimPayment

CLAIM_STATUSES: tuple[str, ...] = (
    "draft",
    "pending_review",
    "approved",
    "submitted",
    "paid",
)
EDITABLE_CLAIM_STATUSES: frozenset[str] = frozenset({"draft", "pending_review"})
CATEGORY_BUCKETS: tuple[str, ...] = ("civil", "electrical", "traffic_control", "vegetation", "other")
TIER_BUCKETS: tuple[str, ...] = ("prime", "sub", "sub_of_sub")

ZERO = Decimal("0.00")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Claim(Base):
    """Aggregates approved unit entries of one company into a billable claim."""

    __tablename__ = "claims"
    __table_args__ = (
        UniqueConstraint("company_id", "claim_number", name="uq_claims_company_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    company_id: Mapped[int] = mapped_column(ForeignKey("companies.id"), nullable=False, index=True)
    job_id: Mapped[int | None] = mapped_column(ForeignKey("jobs.id"), nullable=True, index=True)
    job_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    job_number: Mapped[str | None] = mapped_column(String(64))
    utility_code: Mapped[str | None] = mapped_column(String(64))

    claim_number: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    invoice_number: Mapped[str | None] = mapped_column(String(64))
    po_number: Mapped[str | None] = mapped_column(String(64))
    contract_number: Mapped[str | None] = mapped_column(String(64))
    claim_type: Mapped[str] = mapped_column(String(32), nullable=False, default="progress")
    period_start: Mapped[date | None] = mapped_column(Date)
    period_end: Mapped[date | None] = mapped_column(Date)
    description: Mapped[str | None] = mapped_column(Text)
    internal_notes: Mapped[str | None] = mapped_column(Text)
    external_notes: Mapped[str | None] = mapped_column(Text)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    adjustment_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False, default=Decimal("0"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    retention_rate: Mapped[Decimal] = mapped_column(
        Numeric(6, 4), nullable=False, default=Decimal("0")
    )
    retention_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    amount_due: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    total_paid: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=ZERO)
    balance_due: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="draft", index=True)
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    approved_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approval_notes: Mapped[str | None] = mapped_column(Text)
    submitted_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    submission_method: Mapped[str | None] = mapped_column(String(32))
    submission_reference: Mapped[str | None] = mapped_column(String(255))
    due_date: Mapped[date | None] = mapped_column(Date)
    paid_in_full_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    erp_vendor_number: Mapped[str | None] = mapped_column(String(64))
    erp_vendor_site_code: Mapped[str | None] = mapped_column(String(64))
    erp_business_unit: Mapped[str | None] = mapped_column(String(128))
    erp_project_number: Mapped[str | None] = mapped_column(String(64))
    erp_task_number: Mapped[str | None] = mapped_column(String(64))
    erp_expenditure_type: Mapped[str | None] = mapped_column(String(128))
    erp_expenditure_organization: Mapped[str | None] = mapped_column(String(128))
    erp_payment_terms: Mapped[str | None] = mapped_column(String(64))
    erp_exported_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    erp_exported_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    erp_export_format: Mapped[str | None] = mapped_column(String(16))
    erp_export_status: Mapped[str | None] = mapped_column(String(16))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    company: Mapped["Company"] = relationship("Company", back_populates="claims")
    line_items: Mapped[list["ClaimLineItem"]] = relationship(
        "ClaimLineItem",
        back_populates="claim",
        cascade="all, delete-orphan",
        order_by="ClaimLineItem.line_number",
    )
    payments: Mapped[list["ClaimPayment"]] = relationship(
        "ClaimPayment",
        back_populates="claim",
        cascade="all, delete-orphan",
        order_by="ClaimPayment.id",
    )
    change_log: Mapped[list["ClaimChangeLog"]] = relationship(
        "ClaimChangeLog",
        back_populates="claim",
        cascade="all, delete-orphan",
        order_by="ClaimChangeLog.id",
    )

    @property
    def line_item_count(self) -> int:
        return len(self.line_items)

    @property
    def unit_entry_ids(self) -> list[int]:
        return [item.unit_entry_id for item in self.line_items]

    @property
    def is_unpaid(self) -> bool:
        """Submitted to the utility with an outstanding balance."""

        return self.status == "submitted" and (self.balance_due or ZERO) > ZERO

    def days_past_due_on(self, today: date) -> int:
        """Return whole days past the due date on ``today``, or ``0``."""

        if not self.is_unpaid or self.due_date is None:
            return 0
        return max((today - self.due_date).days, 0)

    @property
    def days_past_due(self) -> int:
        return self.days_past_due_on(date.today())

    @property
    def is_past_due(self) -> bool:
        return self.days_past_due > 0

    @property
    def category_totals(self) -> dict[str, Decimal]:
        totals: dict[str, Decimal] = OrderedDict((bucket, ZERO) for bucket in CATEGORY_BUCKETS)
        for item in self.line_items:
            bucket = item.work_category if item.work_category in totals else "other"
            totals[bucket] += item.total_amount
        return dict(totals)

    @property
    def tier_totals(self) -> dict[str, Decimal]:
        totals: dict[str, Decimal] = OrderedDict((bucket, ZERO) for bucket in TIER_BUCKETS)
        for item in self.line_items:
            bucket = item.performer_tier if item.performer_tier in totals else "prime"
            totals[bucket] += item.total_amount
        return dict(totals)

    @property
    def verification_metrics(self) -> dict[str, Any]:
        total_units = len(self.line_items)
        with_photos = sum(1 for item in self.line_items if item.photo_count > 0)
        with_gps = sum(1 for item in self.line_items if item.has_gps)
        high_quality = sum(1 for item in self.line_items if item.gps_quality == "high")
        return {
            "total_units": total_units,
            "units_with_photos": with_photos,
            "units_with_gps": with_gps,
            "high_quality_gps": high_quality,
            "photo_compliance_rate": round(with_photos * 100 / total_units) if total_units else 0,
            "gps_compliance_rate": round(with_gps * 100 / total_units) if total_units else 0,
        }


__all__ = [
    "CATEGORY_BUCKETS",
    "CLAIM_STATUSES",
    "EDITABLE_CLAIM_STATUSES",
    "TIER_BUCKETS",
    "Claim",
]
