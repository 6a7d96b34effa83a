"""Notification and audit hooks.

Delivery (email, push, in-app) belongs to an external collaborator; this
module emits structured events for it. Every hook is best effort: failures
are logged and never propagate into the billing operation that fired them.
"""

from __future__ import annotations

from typing import Any

import structlog

LOGGER = structlog.get_logger(__name__)
AUDIT_LOGGER = structlog.get_logger("audit")


def notify_unit_submitted(unit: Any, submitted_by: Any) -> None:
    """Tell the general foreman that a unit is waiting for review."""

    try:
        LOGGER.info(
            "unit_submitted",
            unit_id=unit.id,
            job_id=unit.job_id,
            item_code=unit.item_code,
            submitted_by=submitted_by.id,
        )
    except Exception as exc:
        LOGGER.warning("notification_failed", notification="unit_submitted", error=str(exc))


def notify_unit_approved(unit: Any, approved_by: Any) -> None:
    try:
        LOGGER.info(
            "unit_approved",
            unit_id=unit.id,
            job_id=unit.job_id,
            total_amount=str(unit.total_amount),
            approved_by=approved_by.id,
        )
    except Exception as exc:
        LOGGER.warning("notification_failed", notification="unit_approved", error=str(exc))


def notify_unit_rejected(unit: Any, rejected_by: Any, reason: str) -> None:
    try:
        LOGGER.info(
            "unit_rejected",
            unit_id=unit.id,
            job_id=unit.job_id,
            rejected_by=rejected_by.id,
            reason=reason,
        )
    except Exception as exc:
        LOGGER.warning("notification_failed", notification="unit_rejected", error=str(exc))


def notify_claim_created(claim: Any, created_by: Any) -> None:
    try:
        LOGGER.info(
            "claim_created",
            claim_id=claim.id,
            claim_number=claim.claim_number,
            amount_due=str(claim.amount_due),
            line_items=claim.line_item_count,
            created_by=created_by.id,
        )
    except Exception as exc:
        LOGGER.warning("notification_failed", notification="claim_created", error=str(exc))


def audit(action: str, *, user: Any, resource_type: str, resource_id: Any, **details: Any) -> None:
    """Write a sensitive-transition record to the ``audit`` logger."""

    try:
        AUDIT_LOGGER.info(
            action,
            user_id=getattr(user, "id", None),
            company_id=getattr(user, "company_id", None),
            resource_type=resource_type,
            resource_id=resource_id,
            **details,
        )
    except Exception as exc:  # pragma: no cover - logging sink failure
        LOGGER.warning("audit_failed", action=action, error=str(exc))


__all__ = [
    "audit",
    "notify_claim_created",
    "notify_unit_approved",
    "notify_unit_rejected",
    "notify_unit_submitted",
]
