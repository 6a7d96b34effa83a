"""Request and response schemas for the billing API."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict


class UnitAdjustmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    adjusted_by: int
    adjusted_at: datetime
    original_quantity: Decimal
    new_quantity: Decimal
    original_total: Decimal
    new_total: Decimal
    reason: str


class UnitEntryRead(BaseModel):
    """Serialized unit entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    job_id: int
    company_id: int
    price_book_id: int | None
    price_book_item_id: int
    claim_id: int | None
    item_code: str
    description: str
    category: str | None
    subcategory: str | None
    unit: str
    unit_price: Decimal
    quantity: Decimal
    total_amount: Decimal
    work_date: date
    work_start_time: str | None
    work_end_time: str | None
    location: dict[str, Any] | None
    location_description: str | None
    gps_quality: str
    photos: list[dict[str, Any]]
    photo_count: int
    photo_waived: bool
    photo_waived_reason: str | None
    field_conditions: dict[str, Any] | None
    notes: str | None
    performer_tier: str
    work_category: str
    performed_by: dict[str, Any]
    entered_by: int
    entered_at: datetime
    status: str
    submitted_at: datetime | None
    submitted_by: int | None
    verified_at: datetime | None
    verified_by: int | None
    verification_notes: str | None
    approved_at: datetime | None
    approved_by: int | None
    approval_notes: str | None
    paid_at: datetime | None
    is_disputed: bool
    disputed_at: datetime | None
    disputed_by: int | None
    dispute_reason: str | None
    dispute_category: str | None
    dispute_resolution: str | None
    dispute_resolved_at: datetime | None
    dispute_resolved_by: int | None
    offline_id: str | None
    sync_status: str
    is_deleted: bool
    delete_reason: str | None
    adjustments: list[UnitAdjustmentRead]


class UnbilledJobGroup(BaseModel):
    job_id: int
    units: list[UnitEntryRead]
    total_amount: Decimal


class UnbilledUnitsRead(BaseModel):
    total_units: int
    total_amount: Decimal
    by_job: list[UnbilledJobGroup]


class BatchResult(BaseModel):
    index: int
    success: bool
    id: int | None = None
    item_code: str | None = None
    total_amount: Decimal | None = None
    status: str | None = None
    error: str | None = None


class BatchCreateRead(BaseModel):
    total: int
    succeeded: int
    failed: int
    results: list[BatchResult]


class ClaimLineItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    line_number: int
    unit_entry_id: int
    price_book_item_id: int
    job_id: int | None
    item_code: str
    description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    total_amount: Decimal
    work_date: date | None
    photo_count: int
    has_gps: bool
    gps_accuracy: float | None
    gps_quality: str | None
    performer_tier: str | None
    sub_contractor_name: str | None
    work_category: str | None


class ClaimPaymentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: Decimal
    payment_date: date
    payment_method: str
    reference_number: str | None
    notes: str | None
    balance_after: Decimal
    recorded_by: int
    recorded_at: datetime


class ChangeLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: int
    action: str
    details: str | None
    previous_status: str | None
    new_status: str | None
    created_at: datetime


class ClaimRead(BaseModel):
    """Serialized claim with line items, payments and change log."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    company_id: int
    claim_number: str
    invoice_number: str | None
    job_id: int | None
    job_ids: list[int]
    job_number: str | None
    claim_type: str
    period_start: date | None
    period_end: date | None
    description: str | None
    internal_notes: str | None
    external_notes: str | None
    po_number: str | None
    contract_number: str | None
    subtotal: Decimal
    adjustment_total: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    retention_rate: Decimal
    retention_amount: Decimal
    total_amount: Decimal
    amount_due: Decimal
    total_paid: Decimal
    balance_due: Decimal
    status: str
    created_by: int
    created_at: datetime
    approved_by: int | None
    approved_at: datetime | None
    approval_notes: str | None
    submitted_by: int | None
    submitted_at: datetime | None
    submission_method: str | None
    submission_reference: str | None
    due_date: date | None
    paid_in_full_at: datetime | None
    erp_vendor_number: str | None
    erp_vendor_site_code: str | None
    erp_business_unit: str | None
    erp_project_number: str | None
    erp_task_number: str | None
    erp_expenditure_type: str | None
    erp_expenditure_organization: str | None
    erp_payment_terms: str | None
    erp_exported_at: datetime | None
    erp_export_format: str | None
    erp_export_status: str | None
    line_item_count: int
    category_totals: dict[str, Decimal]
    tier_totals: dict[str, Decimal]
    verification_metrics: dict[str, Any]
    is_unpaid: bool
    is_past_due: bool
    days_past_due: int
    line_items: list[ClaimLineItemRead]
    payments: list[ClaimPaymentRead]
    change_log: list[ChangeLogRead]


class UnpaidClaimsRead(BaseModel):
    count: int
    total_outstanding: Decimal
    claims: list[ClaimRead]


class RelinkRead(BaseModel):
    claim_id: int
    linked: int
    already_linked: int
    unlinkable: list[int]


class NotesPayload(BaseModel):
    notes: Any = None


class DisputePayload(BaseModel):
    reason: Any = None
    category: Any = None


class ResolveDisputePayload(BaseModel):
    action: Any = None
    resolution: Any = None
    adjusted_quantity: Any = None
    adjusted_reason: Any = None


class DeletePayload(BaseModel):
    reason: Any = None


class BatchCreatePayload(BaseModel):
    entries: Any = None


class ClaimCreatePayload(BaseModel):
    """Unit ids plus claim options (period, rates, notes, ERP references)."""

    model_config = ConfigDict(extra="allow")

    unit_ids: Any = None


class ClaimUpdatePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: Any = None
    description: Any = None
    internal_notes: Any = None
    external_notes: Any = None
    due_date: Any = None
    invoice_number: Any = None
    po_number: Any = None
    contract_number: Any = None
    erp_vendor_number: Any = None
    erp_vendor_site_code: Any = None
    erp_business_unit: Any = None
    erp_project_number: Any = None
    erp_task_number: Any = None
    erp_expenditure_type: Any = None
    erp_expenditure_organization: Any = None
    erp_payment_terms: Any = None


class ClaimSubmitPayload(BaseModel):
    submission_method: Any = None
    submission_reference: Any = None
    due_date: Any = None


class PaymentPayload(BaseModel):
    amount: Any = None
    payment_date: Any = None
    payment_method: Any = None
    reference_number: Any = None
    notes: Any = None


class BulkExportPayload(BaseModel):
    claim_ids: Any = None


__all__ = [
    "BatchCreatePayload",
    "BatchCreateRead",
    "BulkExportPayload",
    "ClaimCreatePayload",
    "ClaimRead",
    "ClaimSubmitPayload",
    "ClaimUpdatePayload",
    "DeletePayload",
    "DisputePayload",
    "NotesPayload",
    "PaymentPayload",
    "RelinkRead",
    "ResolveDisputePayload",
    "UnbilledUnitsRead",
    "UnitEntryRead",
    "UnpaidClaimsRead",
]
