"""Claim aggregation, lifecycle, payments and export tracking."""

from __future__ import annotations

import time
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Mapping

import structlog
from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.backend.src.core.config import get_settings
from app.backend.src.core.errors import (
    EligibilityConflict,
    Forbidden,
    NotFound,
    TransitionRefused,
    ValidationFailed,
)
from app.backend.src.models import (
    Claim,
    ClaimChangeLog,
    ClaimLineItem,
    ClaimPayment,
    Company,
    Job,
    UnitEntry,
    User,
)
from app.backend.src.models.claim import CLAIM_STATUSES, EDITABLE_CLAIM_STATUSES
from app.backend.src.models.payment import PAYMENT_METHODS
from app.backend.src.services import exports, metrics, notifications
from app.backend.src.services.calculations import ZERO, claim_totals, to_decimal, to_money
from app.backend.src.services.sanitize import (
    sanitize_date,
    sanitize_enum,
    sanitize_id,
    sanitize_id_list,
    sanitize_int,
    sanitize_rate,
    sanitize_string,
)
from app.backend.src.services.unit_entries import require_company

LOGGER = structlog.get_logger(__name__)

CLAIM_ROLES: frozenset[str] = frozenset({"pm", "admin"})
CLAIM_TYPES: tuple[str, ...] = (
    "progress",
    "final",
    "retention",
    "change_order",
    "time_and_material",
)
SUBMISSION_METHODS: tuple[str, ...] = ("portal", "email", "api", "mail", "hand_delivery")
EXPORTABLE_STATUSES: frozenset[str] = frozenset({"approved", "submitted"})
PAYABLE_STATUSES: frozenset[str] = frozenset({"approved", "submitted"})
ERP_FIELDS: tuple[str, ...] = (
    "erp_vendor_number",
    "erp_vendor_site_code",
    "erp_business_unit",
    "erp_project_number",
    "erp_task_number",
    "erp_expenditure_type",
    "erp_expenditure_organization",
    "erp_payment_terms",
)
CLAIM_NUMBER_ATTEMPTS = 3
DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 500


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _require_claim_role(user: User, action: str) -> None:
    if (user.role or "").lower() not in CLAIM_ROLES:
        raise Forbidden(f"Only PM or admin can {action}", required_roles=sorted(CLAIM_ROLES))


def _log(
    claim: Claim,
    user: User,
    action: str,
    details: str | None = None,
    *,
    previous_status: str | None = None,
    new_status: str | None = None,
) -> None:
    claim.change_log.append(
        ClaimChangeLog(
            user_id=user.id,
            action=action,
            details=details,
            previous_status=previous_status,
            new_status=new_status,
            created_at=_now(),
        )
    )


def get_claim(session: Session, user: User, claim_id: Any) -> Claim:
    company_id = require_company(user)
    identifier = sanitize_id(claim_id)
    if identifier is None:
        raise ValidationFailed("Invalid claim ID")
    claim = session.execute(
        select(Claim).where(Claim.id == identifier, Claim.company_id == company_id)
    ).scalar_one_or_none()
    if claim is None:
        raise NotFound("Claim not found")
    return claim


def next_claim_number(session: Session, company_id: int, year: int) -> str:
    """Issue the next ``CLM-<year>-<seq>`` number from the company counter.

    The counter is advanced by a single UPDATE inside the caller's
    transaction, so concurrent issuers are ordered by the row lock. Numbers
    are never handed out twice, even after a draft claim is deleted, and
    numbers already present on a claim are skipped.
    """

    while True:
        session.execute(
            update(Company)
            .where(Company.id == company_id)
            .values(
                claim_sequence=case(
                    (Company.claim_sequence_year == year, Company.claim_sequence + 1),
                    else_=1,
                ),
                claim_sequence_year=year,
            )
            .execution_options(synchronize_session=False)
        )
        sequence = session.scalar(
            select(Company.claim_sequence).where(Company.id == company_id)
        )
        number = f"CLM-{year}-{sequence:05d}"
        taken = session.scalar(
            select(Claim.id).where(Claim.company_id == company_id, Claim.claim_number == number)
        )
        if taken is None:
            return number


def check_eligibility(
    session: Session, company_id: int, unit_ids: list[int]
) -> tuple[dict[int, UnitEntry], dict[str, list[int]]]:
    """Load the requested units and partition the ineligible ones.

    Only non-empty partitions are reported.
    """

    units = session.execute(
        select(UnitEntry).where(
            UnitEntry.id.in_(unit_ids),
            UnitEntry.company_id == company_id,
            UnitEntry.is_deleted.is_(False),
        )
    ).scalars()
    by_id = {unit.id: unit for unit in units}

    partition: dict[str, list[int]] = {
        "not_found": [],
        "not_approved": [],
        "already_claimed": [],
        "disputed": [],
    }
    for unit_id in unit_ids:
        unit = by_id.get(unit_id)
        if unit is None:
            partition["not_found"].append(unit_id)
        elif unit.claim_id is not None:
            partition["already_claimed"].append(unit_id)
        elif unit.status != "approved":
            partition["not_approved"].append(unit_id)
        elif unit.is_disputed:
            partition["disputed"].append(unit_id)
    return by_id, {key: ids for key, ids in partition.items() if ids}


def _line_item(unit: UnitEntry, line_number: int) -> ClaimLineItem:
    performer = unit.performed_by or {}
    return ClaimLineItem(
        unit_entry_id=unit.id,
        line_number=line_number,
        price_book_item_id=unit.price_book_item_id,
        job_id=unit.job_id,
        item_code=unit.item_code,
        description=unit.description,
        quantity=unit.quantity,
        unit=unit.unit,
        unit_price=unit.unit_price,
        total_amount=unit.total_amount,
        work_date=unit.work_date,
        photo_count=unit.photo_count,
        has_gps=unit.has_gps,
        gps_accuracy=unit.gps_accuracy,
        gps_quality=unit.gps_quality,
        performer_tier=unit.performer_tier,
        sub_contractor_name=performer.get("sub_contractor_name"),
        work_category=unit.work_category,
    )


def _persist_claim(session: Session, claim: Claim) -> None:
    try:
        claim.claim_number = next_claim_number(
            session, claim.company_id, claim.created_at.year
        )
        session.add(claim)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise


def _reset_identity(claim: Claim) -> None:
    # a rolled-back INSERT leaves generated keys behind on the transient objects
    claim.id = None
    for child in (*claim.line_items, *claim.change_log):
        child.id = None
        child.claim_id = None


def _link_units(session: Session, claim: Claim, unit_ids: list[int]) -> int:
    """Mark still-eligible units as invoiced on ``claim``; return rows matched."""

    result = session.execute(
        update(UnitEntry)
        .where(
            UnitEntry.id.in_(unit_ids),
            UnitEntry.company_id == claim.company_id,
            UnitEntry.status == "approved",
            UnitEntry.claim_id.is_(None),
            UnitEntry.is_deleted.is_(False),
        )
        .values(status="invoiced", claim_id=claim.id, updated_at=_now())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def _expire(session: Session, objects: Iterable[Any]) -> None:
    for obj in objects:
        session.expire(obj)


def _lost_unit_ids(session: Session, unit_ids: list[int]) -> list[int]:
    rows = session.execute(
        select(UnitEntry.id, UnitEntry.status, UnitEntry.claim_id, UnitEntry.is_deleted).where(
            UnitEntry.id.in_(unit_ids)
        )
    ).all()
    state = {row.id: row for row in rows}
    lost = [
        unit_id
        for unit_id in unit_ids
        if unit_id not in state
        or state[unit_id].claim_id is not None
        or state[unit_id].status != "approved"
        or state[unit_id].is_deleted
    ]
    return lost or list(unit_ids)


def create_claim(
    session: Session, user: User, unit_ids: Any, options: Mapping[str, Any] | None = None
) -> Claim:
    """Aggregate approved unit entries into a new draft claim.

    The claim (with its frozen line items) is committed first; the units are
    then moved to ``invoiced`` by one guarded update. If a concurrent claim
    took any of the units, the update is rolled back, the new claim removed,
    and the lost ids reported as already claimed.
    """

    _require_claim_role(user, "create claims")
    company_id = require_company(user)
    options = options or {}
    started = time.perf_counter()

    ids = sanitize_id_list(unit_ids)
    if not ids:
        raise ValidationFailed("unit_ids must contain at least one valid unit ID")

    by_id, partition = check_eligibility(session, company_id, ids)
    if partition:
        metrics.claim_eligibility_conflicts_total.labels(stage="precheck").inc()
        raise EligibilityConflict(
            "Some units are not eligible for billing",
            partition=partition,
            requested=len(ids),
            found=len(by_id),
        )

    units = [by_id[unit_id] for unit_id in ids]
    job_ids = list(dict.fromkeys(unit.job_id for unit in units))
    primary_job_id = sanitize_id(options.get("job_id"))
    if primary_job_id not in job_ids:
        primary_job_id = job_ids[0]
    job = session.get(Job, primary_job_id)
    company = session.get(Company, company_id)

    retention_rate = sanitize_rate(options.get("retention_rate"))
    tax_rate = sanitize_rate(options.get("tax_rate"))
    totals = claim_totals(
        (unit.total_amount for unit in units),
        tax_rate=tax_rate,
        retention_rate=retention_rate,
    )
    if totals.amount_due <= ZERO:
        raise ValidationFailed(
            "Claim amount due must be greater than zero",
            retention_rate=str(retention_rate),
            tax_rate=str(tax_rate),
        )
    notes = sanitize_string(options.get("notes"))
    created_at = _now()

    claim = Claim(
        company_id=company_id,
        job_id=primary_job_id,
        job_ids=job_ids,
        job_number=job.wo_number if job else None,
        utility_code=job.utility_code if job else None,
        claim_type=sanitize_enum(options.get("claim_type"), CLAIM_TYPES, "progress"),
        period_start=sanitize_date(options.get("period_start")),
        period_end=sanitize_date(options.get("period_end")),
        description=sanitize_string(options.get("description")) or notes,
        internal_notes=sanitize_string(options.get("internal_notes")) or notes,
        po_number=sanitize_string(options.get("po_number"), max_length=64),
        contract_number=sanitize_string(options.get("contract_number"), max_length=64),
        subtotal=totals.subtotal,
        adjustment_total=totals.adjustment_total,
        tax_rate=tax_rate,
        tax_amount=totals.tax_amount,
        retention_rate=retention_rate,
        retention_amount=totals.retention_amount,
        total_amount=totals.total_amount,
        amount_due=totals.amount_due,
        total_paid=ZERO,
        balance_due=totals.amount_due,
        status="draft",
        created_by=user.id,
        erp_vendor_number=company.erp_vendor_number if company else None,
        erp_vendor_site_code=company.erp_vendor_site_code if company else None,
        created_at=created_at,
    )
    for field_name in ERP_FIELDS:
        value = sanitize_string(options.get(field_name), max_length=128)
        if value:
            setattr(claim, field_name, value)
    claim.line_items = [_line_item(unit, index) for index, unit in enumerate(units, start=1)]
    _log(claim, user, "created", f"Created with {len(units)} units", new_status="draft")

    for attempt in range(1, CLAIM_NUMBER_ATTEMPTS + 1):
        try:
            _persist_claim(session, claim)
            break
        except IntegrityError:
            session.rollback()
            _, partition = check_eligibility(session, company_id, ids)
            if partition:
                metrics.claim_eligibility_conflicts_total.labels(stage="persist").inc()
                raise EligibilityConflict(
                    "Units were claimed by a concurrent request",
                    partition=partition,
                    requested=len(ids),
                )
            if attempt == CLAIM_NUMBER_ATTEMPTS:
                raise
            LOGGER.warning("claim_number_collision", company_id=company_id, attempt=attempt)
            _reset_identity(claim)

    linked = _link_units(session, claim, ids)
    if linked != len(ids):
        session.rollback()
        lost = _lost_unit_ids(session, ids)
        LOGGER.warning(
            "claim_units_lost_to_concurrent_claim",
            claim_id=claim.id,
            claim_number=claim.claim_number,
            lost_unit_ids=lost,
        )
        session.delete(claim)
        session.commit()
        metrics.claim_eligibility_conflicts_total.labels(stage="link").inc()
        raise EligibilityConflict(
            "Units were claimed by a concurrent request",
            partition={"already_claimed": lost},
            requested=len(ids),
        )
    session.commit()
    _expire(session, units)

    metrics.claims_created_total.inc()
    metrics.claim_creation_seconds.observe(time.perf_counter() - started)
    notifications.audit(
        "claim_created",
        user=user,
        resource_type="claim",
        resource_id=claim.id,
        claim_number=claim.claim_number,
        amount_due=str(claim.amount_due),
    )
    notifications.notify_claim_created(claim, user)
    return claim


def relink_claim_units(session: Session, user: User, claim_id: Any) -> dict[str, Any]:
    """Re-run the unit linking step for a claim whose units were left behind.

    Safe to call repeatedly: units already linked to the claim are counted and
    left untouched.
    """

    if not user.is_admin:
        raise Forbidden("Only admins can relink claim units")
    claim = get_claim(session, user, claim_id)
    if claim.status == "paid":
        raise TransitionRefused("Cannot relink units of a paid claim", status=claim.status)

    unit_ids = claim.unit_entry_ids
    linked = _link_units(session, claim, unit_ids) if unit_ids else 0
    session.commit()

    rows = session.execute(
        select(UnitEntry.id, UnitEntry.claim_id).where(UnitEntry.id.in_(unit_ids))
    ).all()
    on_claim = {row.id for row in rows if row.claim_id == claim.id}
    unlinkable = [unit_id for unit_id in unit_ids if unit_id not in on_claim]

    LOGGER.info(
        "claim_units_relinked",
        claim_id=claim.id,
        linked=linked,
        unlinkable=unlinkable,
    )
    if linked:
        notifications.audit(
            "claim_units_relinked",
            user=user,
            resource_type="claim",
            resource_id=claim.id,
            linked=linked,
        )
    return {
        "claim_id": claim.id,
        "linked": linked,
        "already_linked": len(on_claim) - linked,
        "unlinkable": unlinkable,
    }


def delete_claim(session: Session, user: User, claim_id: Any) -> None:
    """Delete a draft claim and return its units to ``approved``."""

    _require_claim_role(user, "delete claims")
    claim = get_claim(session, user, claim_id)
    if claim.status != "draft":
        raise TransitionRefused("Only draft claims can be deleted", status=claim.status)

    restored = session.execute(
        update(UnitEntry)
        .where(UnitEntry.claim_id == claim.id)
        .values(status="approved", claim_id=None, updated_at=_now())
        .execution_options(synchronize_session=False)
    ).rowcount
    number = claim.claim_number
    session.delete(claim)
    session.commit()
    session.expire_all()

    notifications.audit(
        "claim_deleted",
        user=user,
        resource_type="claim",
        resource_id=claim_id,
        claim_number=number,
        restored_units=restored,
    )


def update_claim(session: Session, user: User, claim_id: Any, payload: Mapping[str, Any]) -> Claim:
    """Edit notes, dates, references or move between draft and pending review."""

    _require_claim_role(user, "update claims")
    claim = get_claim(session, user, claim_id)
    if claim.status not in EDITABLE_CLAIM_STATUSES:
        raise TransitionRefused("Cannot update claim in current status", status=claim.status)

    new_status = None
    if payload.get("status") is not None:
        new_status = sanitize_enum(payload.get("status"), EDITABLE_CLAIM_STATUSES)
        if new_status is None:
            raise ValidationFailed(
                "Status may only move between draft and pending_review; "
                "use the approve or submit operations for later states"
            )
    due_date = None
    if payload.get("due_date") is not None:
        due_date = sanitize_date(payload.get("due_date"))
        if due_date is None:
            raise ValidationFailed("due_date must be an ISO date")

    changed: list[str] = []
    for field_name in ("description", "internal_notes", "external_notes"):
        if field_name in payload:
            setattr(claim, field_name, sanitize_string(payload.get(field_name)))
            changed.append(field_name)
    for field_name in ("invoice_number", "po_number", "contract_number", *ERP_FIELDS):
        if field_name in payload:
            setattr(claim, field_name, sanitize_string(payload.get(field_name), max_length=128))
            changed.append(field_name)
    if due_date is not None:
        claim.due_date = due_date
        changed.append("due_date")
    if changed:
        _log(claim, user, "updated", f"Updated {', '.join(changed)}")

    if new_status is not None and new_status != claim.status:
        previous = claim.status
        claim.status = new_status
        _log(
            claim,
            user,
            "status_changed",
            f"Status changed from {previous} to {new_status}",
            previous_status=previous,
            new_status=new_status,
        )

    session.add(claim)
    session.commit()
    session.refresh(claim)
    return claim


def approve_claim(session: Session, user: User, claim_id: Any, notes: Any = None) -> Claim:
    _require_claim_role(user, "approve claims")
    claim = get_claim(session, user, claim_id)
    if claim.status not in EDITABLE_CLAIM_STATUSES:
        raise TransitionRefused("Claim cannot be approved in current status", status=claim.status)

    previous = claim.status
    safe_notes = sanitize_string(notes)
    claim.status = "approved"
    claim.approved_by = user.id
    claim.approved_at = _now()
    claim.approval_notes = safe_notes
    _log(
        claim,
        user,
        "approved",
        safe_notes or "Approved for submission",
        previous_status=previous,
        new_status="approved",
    )
    session.add(claim)
    session.commit()
    session.refresh(claim)

    notifications.audit(
        "claim_approved",
        user=user,
        resource_type="claim",
        resource_id=claim.id,
        amount_due=str(claim.amount_due),
    )
    return claim


def submit_claim(
    session: Session,
    user: User,
    claim_id: Any,
    *,
    submission_method: Any = None,
    submission_reference: Any = None,
    due_date: Any = None,
) -> Claim:
    """Mark an approved claim as submitted to the utility."""

    _require_claim_role(user, "submit claims")
    claim = get_claim(session, user, claim_id)
    if claim.status != "approved":
        raise TransitionRefused("Claim must be approved before submission", status=claim.status)

    method = "portal"
    if submission_method is not None:
        method = sanitize_enum(submission_method, SUBMISSION_METHODS)
        if method is None:
            raise ValidationFailed(
                "Invalid submission method", allowed_methods=list(SUBMISSION_METHODS)
            )
    safe_due = sanitize_date(due_date)
    if due_date is not None and safe_due is None:
        raise ValidationFailed("due_date must be an ISO date")

    now = _now()
    claim.status = "submitted"
    claim.submitted_at = now
    claim.submitted_by = user.id
    claim.submission_method = method
    claim.submission_reference = sanitize_string(submission_reference, max_length=255)
    claim.due_date = safe_due or (now.date() + timedelta(days=get_settings().claim_due_days))
    _log(
        claim,
        user,
        "submitted",
        f"Submitted via {method}",
        previous_status="approved",
        new_status="submitted",
    )
    session.add(claim)
    session.commit()
    session.refresh(claim)

    notifications.audit(
        "claim_submitted",
        user=user,
        resource_type="claim",
        resource_id=claim.id,
        method=method,
    )
    return claim


def record_payment(
    session: Session, user: User, claim_id: Any, payload: Mapping[str, Any]
) -> Claim:
    """Record a payment and close the claim once it is paid in full.

    When the running total reaches the amount due the claim becomes ``paid``
    and every unit on it is advanced to ``paid`` in the same transaction.
    """

    _require_claim_role(user, "record payments")
    claim = get_claim(session, user, claim_id)
    if claim.status not in PAYABLE_STATUSES:
        raise TransitionRefused(
            "Payments can only be recorded on approved or submitted claims",
            status=claim.status,
        )

    raw_amount = payload.get("amount")
    amount = None if isinstance(raw_amount, (bool, dict, list)) else to_decimal(raw_amount)
    if amount is None or amount <= 0:
        metrics.claim_payments_total.labels(outcome="rejected").inc()
        raise ValidationFailed("Valid payment amount is required")
    amount = to_money(amount)
    balance = to_money(claim.amount_due - claim.total_paid)
    if amount > balance:
        metrics.claim_payments_total.labels(outcome="rejected").inc()
        raise ValidationFailed(
            "Payment exceeds balance due", balance_due=str(balance)
        )

    method = sanitize_enum(payload.get("payment_method"), PAYMENT_METHODS, "ach")
    now = _now()
    total_paid = to_money(claim.total_paid + amount)
    balance_after = to_money(claim.amount_due - total_paid)

    claim.payments.append(
        ClaimPayment(
            amount=amount,
            payment_date=sanitize_date(payload.get("payment_date")) or now.date(),
            payment_method=method,
            reference_number=sanitize_string(payload.get("reference_number"), max_length=128),
            notes=sanitize_string(payload.get("notes")),
            balance_after=balance_after,
            recorded_by=user.id,
            recorded_at=now,
        )
    )
    claim.total_paid = total_paid
    claim.balance_due = balance_after
    _log(claim, user, "payment_recorded", f"Payment of {amount} received via {method}")

    paid_in_full = total_paid >= to_money(claim.amount_due)
    if paid_in_full:
        previous = claim.status
        claim.status = "paid"
        claim.paid_in_full_at = now
        _log(
            claim,
            user,
            "paid",
            "Paid in full",
            previous_status=previous,
            new_status="paid",
        )
        session.execute(
            update(UnitEntry)
            .where(UnitEntry.claim_id == claim.id, UnitEntry.status == "invoiced")
            .values(status="paid", paid_at=now, paid_by=user.id, updated_at=now)
            .execution_options(synchronize_session=False)
        )

    session.add(claim)
    session.commit()
    session.refresh(claim)

    metrics.claim_payments_total.labels(outcome="paid_in_full" if paid_in_full else "partial").inc()
    notifications.audit(
        "claim_payment_recorded",
        user=user,
        resource_type="claim",
        resource_id=claim.id,
        amount=str(amount),
        balance_due=str(claim.balance_due),
    )
    return claim


def list_claims(
    session: Session,
    user: User,
    *,
    status: Any = None,
    job_id: Any = None,
    limit: Any = None,
) -> list[Claim]:
    company_id = require_company(user)
    stmt = select(Claim).where(Claim.company_id == company_id)
    safe_status = sanitize_enum(status, CLAIM_STATUSES)
    if safe_status:
        stmt = stmt.where(Claim.status == safe_status)
    safe_job_id = sanitize_id(job_id)
    if safe_job_id is not None:
        stmt = stmt.where(Claim.job_id == safe_job_id)
    stmt = stmt.order_by(Claim.created_at.desc(), Claim.id.desc()).limit(
        sanitize_int(limit, DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT)
    )
    return list(session.execute(stmt).scalars())


def list_unpaid(session: Session, user: User) -> dict[str, Any]:
    """Submitted claims with an outstanding balance."""

    company_id = require_company(user)
    claims = list(
        session.execute(
            select(Claim)
            .where(
                Claim.company_id == company_id,
                Claim.status == "submitted",
                Claim.balance_due > 0,
            )
            .order_by(Claim.due_date.asc(), Claim.id.asc())
        ).scalars()
    )
    return {
        "count": len(claims),
        "total_outstanding": to_money(sum((claim.balance_due for claim in claims), ZERO)),
        "claims": claims,
    }


def list_past_due(session: Session, user: User, today: date | None = None) -> list[Claim]:
    company_id = require_company(user)
    current = today or date.today()
    return list(
        session.execute(
            select(Claim)
            .where(
                Claim.company_id == company_id,
                Claim.status == "submitted",
                Claim.balance_due > 0,
                Claim.due_date < current,
            )
            .order_by(Claim.due_date.asc(), Claim.id.asc())
        ).scalars()
    )


def _track_export(
    session: Session, claims: list[Claim], user: User, export_format: str, action: str, details: str
) -> None:
    """Stamp export metadata; a failure here never fails the export itself."""

    try:
        now = _now()
        for claim in claims:
            claim.erp_exported_at = now
            claim.erp_exported_by = user.id
            claim.erp_export_format = export_format
            claim.erp_export_status = "exported"
            _log(claim, user, action, details)
            session.add(claim)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        LOGGER.warning(
            "export_tracking_failed",
            claim_ids=[claim.id for claim in claims],
            export_format=export_format,
            error=str(exc),
        )


def export_invoice_payload(session: Session, user: User, claim_id: Any) -> dict[str, Any]:
    claim = get_claim(session, user, claim_id)
    payload = exports.build_invoice_payload(claim)
    _track_export(session, [claim], user, "json", "erp_export", "Exported payables invoice payload")
    metrics.claim_exports_total.labels(format="json").inc()
    return payload


def export_bulk_interface(session: Session, user: User, claim_id: Any) -> tuple[str, str]:
    """Return ``(filename, csv)`` for one claim's bulk-interface export."""

    claim = get_claim(session, user, claim_id)
    document = exports.render_bulk_interface_csv(exports.build_bulk_interface(claim))
    _track_export(session, [claim], user, "fbdi", "erp_export_fbdi", "Exported bulk interface CSV")
    metrics.claim_exports_total.labels(format="fbdi").inc()
    return f"{claim.claim_number}_FBDI.csv", document


def export_line_items(session: Session, user: User, claim_id: Any) -> tuple[str, str]:
    claim = get_claim(session, user, claim_id)
    metrics.claim_exports_total.labels(format="csv").inc()
    return f"{claim.claim_number}.csv", exports.render_line_items_csv(claim)


def bulk_export(session: Session, user: User, claim_ids: Any) -> tuple[str, str]:
    """Export several approved or submitted claims as one interface document."""

    company_id = require_company(user)
    ids = sanitize_id_list(claim_ids)
    if not ids:
        raise ValidationFailed("claim_ids must contain at least one valid claim ID")

    found = {
        claim.id: claim
        for claim in session.execute(
            select(Claim).where(
                Claim.id.in_(ids),
                Claim.company_id == company_id,
                Claim.status.in_(EXPORTABLE_STATUSES),
            )
        ).scalars()
    }
    claims = [found[claim_id] for claim_id in ids if claim_id in found]
    if not claims:
        raise NotFound("No valid claims found for export")

    merged = exports.merge_bulk_interfaces(exports.build_bulk_interface(claim) for claim in claims)
    document = exports.render_bulk_interface_csv(merged, bulk=True)
    _track_export(
        session,
        claims,
        user,
        "fbdi_bulk",
        "erp_bulk_export",
        f"Bulk exported with {len(claims) - 1} other claims",
    )
    metrics.claim_exports_total.labels(format="fbdi_bulk").inc()
    return f"FBDI_bulk_{len(claims)}claims.csv", document


__all__ = [
    "CLAIM_TYPES",
    "SUBMISSION_METHODS",
    "approve_claim",
    "bulk_export",
    "check_eligibility",
    "create_claim",
    "delete_claim",
    "export_bulk_interface",
    "export_invoice_payload",
    "export_line_items",
    "get_claim",
    "list_claims",
    "list_past_due",
    "list_unpaid",
    "next_claim_number",
    "record_payment",
    "relink_claim_units",
    "submit_claim",
    "update_claim",
]
