"""Unit entry lifecycle: creation, review workflow, disputes and deletion."""

from __future__ import annotations

from collections import OrderedDict
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Mapping

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.backend.src.core.config import get_settings
from app.backend.src.core.errors import (
    BillingError,
    Forbidden,
    NotFound,
    TransitionRefused,
    ValidationFailed,
)
from app.backend.src.models import Job, UnitAdjustment, UnitEntry, User
from app.backend.src.models.unit_entry import CLAIMED_STATUSES, DISPUTABLE_STATUSES, UNIT_STATUSES
from app.backend.src.schemas.evidence import PERFORMER_TIERS, WORK_CATEGORIES
from app.backend.src.services import metrics, notifications
from app.backend.src.services.calculations import MAX_LINE_TOTAL, ZERO, line_total, to_money
from app.backend.src.services.catalog import find_rate_item
from app.backend.src.services.sanitize import (
    sanitize_date,
    sanitize_enum,
    sanitize_field_conditions,
    sanitize_id,
    sanitize_int,
    sanitize_location,
    sanitize_performed_by,
    sanitize_photos,
    sanitize_quantity,
    sanitize_string,
)

LOGGER = structlog.get_logger(__name__)

VERIFY_ROLES: frozenset[str] = frozenset({"gf", "qa", "pm", "admin"})
APPROVE_ROLES: frozenset[str] = frozenset({"pm", "admin"})
RESOLVE_ROLES: frozenset[str] = frozenset({"pm", "gf", "admin"})
DISPUTE_CATEGORIES: tuple[str, ...] = (
    "quantity",
    "rate",
    "quality",
    "location",
    "photo",
    "duplicate",
    "other",
)
RESOLUTION_ACTIONS: tuple[str, ...] = ("accept", "adjust", "void", "resubmit")
DEFAULT_LIST_LIMIT = 100
MAX_LIST_LIMIT = 500


def _now() -> datetime:
    return datetime.now(timezone.utc)


def gps_quality(accuracy: float | None) -> str:
    """Classify a GPS accuracy reading in meters."""

    if accuracy is None:
        return "none"
    if accuracy < 10:
        return "high"
    if accuracy < 50:
        return "medium"
    return "low"


def require_company(user: User) -> int:
    if not user.company_id:
        raise ValidationFailed("User not associated with a company")
    return user.company_id


def _require_role(user: User, roles: frozenset[str], action: str) -> None:
    if (user.role or "").lower() not in roles:
        raise Forbidden(
            f"Insufficient permissions to {action}",
            required_roles=sorted(roles),
        )


def get_unit(session: Session, user: User, unit_id: Any) -> UnitEntry:
    """Return a live unit entry belonging to the caller's company."""

    company_id = require_company(user)
    identifier = sanitize_id(unit_id)
    if identifier is None:
        raise ValidationFailed("Invalid unit entry ID")
    unit = session.execute(
        select(UnitEntry).where(
            UnitEntry.id == identifier,
            UnitEntry.company_id == company_id,
            UnitEntry.is_deleted.is_(False),
        )
    ).scalar_one_or_none()
    if unit is None:
        raise NotFound("Unit entry not found")
    return unit


def evidence_error(unit: UnitEntry, threshold: float) -> str | None:
    """Return why ``unit`` may not be submitted, or ``None`` when it may."""

    if not unit.photo_compliant:
        return "At least one photo (or a photo waiver with a reason) is required"
    if unit.has_gps:
        accuracy = unit.gps_accuracy
        if accuracy is None or accuracy >= threshold:
            return f"GPS accuracy must be under {threshold:g}m to submit"
    return None


def _qualifies_for_auto_submit(unit: UnitEntry, threshold: float) -> bool:
    return unit.has_gps and evidence_error(unit, threshold) is None


def create_unit(session: Session, user: User, payload: Mapping[str, Any]) -> UnitEntry:
    """Record a unit of field work priced against the company's rate book.

    The rate-book item is snapshotted onto the entry. When the evidence is
    complete and a GPS fix under the accuracy threshold is present the entry
    is submitted straight away.
    """

    company_id = require_company(user)
    settings = get_settings()

    job_id = sanitize_id(payload.get("job_id"))
    if job_id is None:
        raise ValidationFailed("job_id is required")
    quantity = sanitize_quantity(payload.get("quantity"))
    if quantity is None:
        raise ValidationFailed("quantity must be a positive number")
    work_date = sanitize_date(payload.get("work_date"))
    if work_date is None:
        raise ValidationFailed("work_date must be an ISO date")

    job = session.execute(
        select(Job).where(
            Job.id == job_id,
            Job.company_id == company_id,
            Job.is_deleted.is_(False),
        )
    ).scalar_one_or_none()
    if job is None:
        raise NotFound("Job not found")

    photos = sanitize_photos(payload.get("photos"))
    photo_waived = payload.get("photo_waived") is True
    waiver_reason = sanitize_string(payload.get("photo_waived_reason"), max_length=512)
    if not photos and not (photo_waived and waiver_reason):
        raise ValidationFailed(
            "At least one photo is required unless the photo is waived with a reason"
        )

    rate_item = find_rate_item(
        session,
        company_id,
        price_book_id=sanitize_id(payload.get("price_book_id")),
        price_book_item_id=sanitize_id(payload.get("price_book_item_id")),
        item_code=sanitize_string(payload.get("item_code")),
        utility_code=job.utility_code,
    )
    if rate_item is None:
        raise ValidationFailed("Rate item not found in price book")
    total_amount = line_total(quantity, rate_item.unit_price)
    if total_amount > MAX_LINE_TOTAL:
        raise ValidationFailed("quantity exceeds the billable limit for this item")

    location = sanitize_location(payload.get("location"))
    field_conditions = sanitize_field_conditions(payload.get("field_conditions"))
    performer = sanitize_performed_by(
        payload.get("performed_by"), user_id=user.id, user_name=user.name
    )
    offline_id = sanitize_string(payload.get("offline_id"), max_length=64)

    unit = UnitEntry(
        job_id=job.id,
        company_id=company_id,
        price_book_id=rate_item.price_book_id,
        price_book_item_id=rate_item.item_id,
        item_code=rate_item.item_code,
        description=rate_item.description,
        category=rate_item.category,
        subcategory=rate_item.subcategory,
        unit=rate_item.unit,
        unit_price=rate_item.unit_price,
        quantity=quantity,
        total_amount=total_amount,
        work_date=work_date,
        work_start_time=sanitize_string(payload.get("work_start_time"), max_length=8),
        work_end_time=sanitize_string(payload.get("work_end_time"), max_length=8),
        location=location.to_storage() if location else None,
        location_description=sanitize_string(
            payload.get("location_description"), max_length=255
        ),
        gps_quality=gps_quality(location.accuracy if location else None),
        photos=[photo.to_storage() for photo in photos],
        photo_waived=photo_waived,
        photo_waived_reason=waiver_reason if photo_waived else None,
        photo_waived_by=user.id if photo_waived else None,
        field_conditions=field_conditions.to_storage() if field_conditions else None,
        notes=sanitize_string(payload.get("notes")),
        performer_tier=performer.tier,
        work_category=performer.work_category,
        performed_by=performer.to_storage(),
        entered_by=user.id,
        entered_at=_now(),
        status="draft",
        offline_id=offline_id,
        sync_status="pending" if offline_id else "synced",
    )
    session.add(unit)
    session.commit()
    session.refresh(unit)

    metrics.unit_transitions_total.labels(action="create").inc()
    LOGGER.info(
        "unit_entry_created",
        unit_id=unit.id,
        job_id=unit.job_id,
        item_code=unit.item_code,
        total_amount=str(unit.total_amount),
    )

    if _qualifies_for_auto_submit(unit, settings.gps_accuracy_threshold_m):
        unit = submit_unit(session, user, unit.id)
    return unit


def batch_create_units(
    session: Session, user: User, entries: Any
) -> list[dict[str, Any]]:
    """Create several unit entries, reporting each outcome independently."""

    require_company(user)
    max_entries = get_settings().max_batch_units
    if not isinstance(entries, list) or not entries:
        raise ValidationFailed("entries array is required and must not be empty")
    if len(entries) > max_entries:
        raise ValidationFailed(f"Maximum {max_entries} entries per batch")

    results: list[dict[str, Any]] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            results.append({"index": index, "success": False, "error": "Entry must be an object"})
            continue
        try:
            unit = create_unit(session, user, entry)
        except BillingError as exc:
            session.rollback()
            results.append({"index": index, "success": False, "error": exc.message})
            continue
        results.append(
            {
                "index": index,
                "success": True,
                "id": unit.id,
                "item_code": unit.item_code,
                "total_amount": unit.total_amount,
                "status": unit.status,
            }
        )

    LOGGER.info(
        "unit_entry_batch_created",
        total=len(entries),
        succeeded=sum(1 for result in results if result["success"]),
    )
    return results


def submit_unit(session: Session, user: User, unit_id: Any) -> UnitEntry:
    unit = get_unit(session, user, unit_id)
    if unit.status != "draft":
        raise TransitionRefused("Only draft units can be submitted", status=unit.status)
    problem = evidence_error(unit, get_settings().gps_accuracy_threshold_m)
    if problem:
        raise ValidationFailed(problem)

    unit.status = "submitted"
    unit.submitted_at = _now()
    unit.submitted_by = user.id
    session.add(unit)
    session.commit()
    session.refresh(unit)

    metrics.unit_transitions_total.labels(action="submit").inc()
    LOGGER.info("unit_entry_submitted", unit_id=unit.id, user_id=user.id)
    notifications.notify_unit_submitted(unit, user)
    return unit


def verify_unit(session: Session, user: User, unit_id: Any, notes: Any = None) -> UnitEntry:
    _require_role(user, VERIFY_ROLES, "verify units")
    unit = get_unit(session, user, unit_id)
    if unit.status != "submitted":
        raise TransitionRefused("Only submitted units can be verified", status=unit.status)

    unit.status = "verified"
    unit.verified_at = _now()
    unit.verified_by = user.id
    unit.verification_notes = sanitize_string(notes)
    session.add(unit)
    session.commit()
    session.refresh(unit)

    metrics.unit_transitions_total.labels(action="verify").inc()
    LOGGER.info("unit_entry_verified", unit_id=unit.id, user_id=user.id)
    return unit


def approve_unit(session: Session, user: User, unit_id: Any, notes: Any = None) -> UnitEntry:
    _require_role(user, APPROVE_ROLES, "approve units")
    unit = get_unit(session, user, unit_id)
    if unit.status not in {"submitted", "verified"}:
        raise TransitionRefused(
            "Only submitted or verified units can be approved", status=unit.status
        )
    if unit.is_disputed:
        raise TransitionRefused("Cannot approve a disputed unit; resolve the dispute first")

    unit.status = "approved"
    unit.approved_at = _now()
    unit.approved_by = user.id
    unit.approval_notes = sanitize_string(notes)
    session.add(unit)
    session.commit()
    session.refresh(unit)

    metrics.unit_transitions_total.labels(action="approve").inc()
    notifications.audit(
        "unit_approved",
        user=user,
        resource_type="unit_entry",
        resource_id=unit.id,
        total_amount=str(unit.total_amount),
    )
    notifications.notify_unit_approved(unit, user)
    return unit


def dispute_unit(
    session: Session, user: User, unit_id: Any, reason: Any, category: Any = None
) -> UnitEntry:
    """Flag a unit as disputed without changing its status."""

    safe_reason = sanitize_string(reason)
    if not safe_reason:
        raise ValidationFailed("Dispute reason is required")
    unit = get_unit(session, user, unit_id)
    if unit.status not in DISPUTABLE_STATUSES:
        raise TransitionRefused(
            "Only submitted, verified or approved units can be disputed", status=unit.status
        )
    if unit.is_disputed:
        raise TransitionRefused("Unit is already disputed")

    unit.is_disputed = True
    unit.disputed_at = _now()
    unit.disputed_by = user.id
    unit.dispute_reason = safe_reason
    unit.dispute_category = sanitize_enum(category, DISPUTE_CATEGORIES, "other")
    unit.dispute_resolution = None
    unit.dispute_resolved_at = None
    unit.dispute_resolved_by = None
    session.add(unit)
    session.commit()
    session.refresh(unit)

    metrics.unit_transitions_total.labels(action="dispute").inc()
    notifications.audit(
        "unit_disputed",
        user=user,
        resource_type="unit_entry",
        resource_id=unit.id,
        category=unit.dispute_category,
    )
    return unit


def resolve_dispute(
    session: Session,
    user: User,
    unit_id: Any,
    *,
    action: Any,
    resolution: Any,
    adjusted_quantity: Any = None,
    adjusted_reason: Any = None,
) -> UnitEntry:
    """Close a dispute by accepting, adjusting, voiding or returning the unit."""

    _require_role(user, RESOLVE_ROLES, "resolve disputes")
    safe_action = sanitize_enum(action, RESOLUTION_ACTIONS)
    if safe_action is None:
        raise ValidationFailed(
            "Invalid action", allowed_actions=list(RESOLUTION_ACTIONS)
        )
    safe_resolution = sanitize_string(resolution)
    if not safe_resolution:
        raise ValidationFailed("Resolution text is required")
    unit = get_unit(session, user, unit_id)
    if not unit.is_disputed:
        raise TransitionRefused("Unit is not disputed")

    new_quantity: Decimal | None = None
    if safe_action == "adjust":
        new_quantity = sanitize_quantity(adjusted_quantity)
        if new_quantity is None or new_quantity == unit.quantity:
            raise ValidationFailed(
                "Adjusted quantity must be provided and different from current quantity"
            )
        if line_total(new_quantity, unit.unit_price) > MAX_LINE_TOTAL:
            raise ValidationFailed("Adjusted quantity exceeds the billable limit for this item")

    now = _now()
    if safe_action == "accept":
        unit.status = "approved"
        unit.approved_at = now
        unit.approved_by = user.id
    elif safe_action == "adjust":
        new_total = line_total(new_quantity, unit.unit_price)
        unit.adjustments.append(
            UnitAdjustment(
                adjusted_by=user.id,
                adjusted_at=now,
                original_quantity=unit.quantity,
                new_quantity=new_quantity,
                original_total=unit.total_amount,
                new_total=new_total,
                reason=sanitize_string(adjusted_reason, max_length=512)
                or "Dispute resolution adjustment",
            )
        )
        unit.quantity = new_quantity
        unit.total_amount = new_total
        unit.status = "approved"
        unit.approved_at = now
        unit.approved_by = user.id
    elif safe_action == "void":
        unit.is_deleted = True
        unit.deleted_at = now
        unit.deleted_by = user.id
        unit.delete_reason = safe_resolution[:512]
    else:
        unit.status = "draft"

    unit.is_disputed = False
    unit.dispute_resolution = safe_resolution
    unit.dispute_resolved_at = now
    unit.dispute_resolved_by = user.id
    session.add(unit)
    session.commit()
    session.refresh(unit)

    metrics.unit_transitions_total.labels(action=f"resolve_{safe_action}").inc()
    notifications.audit(
        "unit_dispute_resolved",
        user=user,
        resource_type="unit_entry",
        resource_id=unit.id,
        action=safe_action,
    )
    if safe_action in {"void", "resubmit"}:
        prefix = "Unit voided" if safe_action == "void" else "Resubmission required"
        notifications.notify_unit_rejected(unit, user, f"{prefix}: {safe_resolution}")
    else:
        notifications.notify_unit_approved(unit, user)
    return unit


def delete_unit(session: Session, user: User, unit_id: Any, reason: Any = None) -> UnitEntry:
    """Soft delete a unit entry.

    Draft entries may be removed by any user of the company. Entries further
    along the workflow may only be removed by administrators and are voided;
    entries already on a claim must have the claim deleted first.
    """

    unit = get_unit(session, user, unit_id)
    if unit.status in CLAIMED_STATUSES or unit.claim_id is not None:
        raise TransitionRefused(
            "Cannot delete a unit that is on a claim; delete the claim first",
            status=unit.status,
        )
    if unit.status != "draft":
        if not user.is_admin:
            raise Forbidden("Can only delete draft units. Admins can delete any pre-invoiced unit.")
        unit.status = "void"

    unit.is_deleted = True
    unit.deleted_at = _now()
    unit.deleted_by = user.id
    unit.delete_reason = sanitize_string(reason, max_length=512) or "Deleted by user"
    session.add(unit)
    session.commit()
    session.refresh(unit)

    metrics.unit_transitions_total.labels(action="delete").inc()
    notifications.audit(
        "unit_deleted",
        user=user,
        resource_type="unit_entry",
        resource_id=unit.id,
        status=unit.status,
    )
    return unit


def list_units(
    session: Session,
    user: User,
    *,
    job_id: Any = None,
    status: Any = None,
    work_category: Any = None,
    tier: Any = None,
    start_date: Any = None,
    end_date: Any = None,
    limit: Any = None,
) -> list[UnitEntry]:
    """Return live unit entries of the caller's company, newest work first.

    Foremen only see the entries they recorded themselves.
    """

    company_id = require_company(user)
    stmt = select(UnitEntry).where(
        UnitEntry.company_id == company_id,
        UnitEntry.is_deleted.is_(False),
    )
    safe_job_id = sanitize_id(job_id)
    if safe_job_id is not None:
        stmt = stmt.where(UnitEntry.job_id == safe_job_id)
    safe_status = sanitize_enum(status, UNIT_STATUSES)
    if safe_status:
        stmt = stmt.where(UnitEntry.status == safe_status)
    safe_category = sanitize_enum(work_category, WORK_CATEGORIES)
    if safe_category:
        stmt = stmt.where(UnitEntry.work_category == safe_category)
    safe_tier = sanitize_enum(tier, PERFORMER_TIERS)
    if safe_tier:
        stmt = stmt.where(UnitEntry.performer_tier == safe_tier)
    safe_start = sanitize_date(start_date)
    if safe_start:
        stmt = stmt.where(UnitEntry.work_date >= safe_start)
    safe_end = sanitize_date(end_date)
    if safe_end:
        stmt = stmt.where(UnitEntry.work_date <= safe_end)
    if (user.role or "").lower() == "foreman":
        stmt = stmt.where(UnitEntry.entered_by == user.id)

    stmt = stmt.order_by(UnitEntry.work_date.desc(), UnitEntry.id.desc()).limit(
        sanitize_int(limit, DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT)
    )
    return list(session.execute(stmt).scalars())


def list_unbilled(session: Session, user: User) -> dict[str, Any]:
    """Approved, unclaimed, undisputed units grouped by job."""

    company_id = require_company(user)
    units = list(
        session.execute(
            select(UnitEntry)
            .where(
                UnitEntry.company_id == company_id,
                UnitEntry.status == "approved",
                UnitEntry.claim_id.is_(None),
                UnitEntry.is_disputed.is_(False),
                UnitEntry.is_deleted.is_(False),
            )
            .order_by(UnitEntry.job_id, UnitEntry.work_date, UnitEntry.id)
        ).scalars()
    )

    groups: OrderedDict[int, dict[str, Any]] = OrderedDict()
    for unit in units:
        group = groups.setdefault(
            unit.job_id,
            {"job_id": unit.job_id, "units": [], "total_amount": ZERO},
        )
        group["units"].append(unit)
        group["total_amount"] = to_money(group["total_amount"] + unit.total_amount)

    return {
        "total_units": len(units),
        "total_amount": to_money(sum((unit.total_amount for unit in units), ZERO)),
        "by_job": list(groups.values()),
    }


def list_disputed(session: Session, user: User) -> list[UnitEntry]:
    company_id = require_company(user)
    return list(
        session.execute(
            select(UnitEntry)
            .where(
                UnitEntry.company_id == company_id,
                UnitEntry.is_disputed.is_(True),
                UnitEntry.is_deleted.is_(False),
            )
            .order_by(UnitEntry.disputed_at.desc(), UnitEntry.id.desc())
        ).scalars()
    )


__all__ = [
    "DISPUTE_CATEGORIES",
    "RESOLUTION_ACTIONS",
    "approve_unit",
    "batch_create_units",
    "create_unit",
    "delete_unit",
    "dispute_unit",
    "evidence_error",
    "get_unit",
    "gps_quality",
    "list_disputed",
    "list_unbilled",
    "list_units",
    "require_company",
    "resolve_dispute",
    "submit_unit",
    "verify_unit",
]
