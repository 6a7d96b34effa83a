"""Unit entry endpoints: field capture, review workflow and disputes."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.backend.src.core.security import require_company_user
from app.backend.src.db import get_session_dependency
from app.backend.src.models import User
from app.backend.src.schemas.billing import (
    BatchCreatePayload,
    BatchCreateRead,
    DeletePayload,
    DisputePayload,
    NotesPayload,
    ResolveDisputePayload,
    UnbilledUnitsRead,
    UnitEntryRead,
)
from app.backend.src.services import unit_entries

router = APIRouter(prefix="/billing/units", tags=["billing-units"])

SessionDep = Annotated[Session, Depends(get_session_dependency)]
CompanyUser = Annotated[User, Depends(require_company_user)]


@router.get("", response_model=list[UnitEntryRead])
def list_units(
    session: SessionDep,
    current_user: CompanyUser,
    job_id: str | None = None,
    status: str | None = None,
    work_category: str | None = None,
    tier: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    limit: str | None = None,
):
    """List unit entries, newest work date first."""

    return unit_entries.list_units(
        session,
        current_user,
        job_id=job_id,
        status=status,
        work_category=work_category,
        tier=tier,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )


@router.get("/unbilled", response_model=UnbilledUnitsRead)
def list_unbilled(session: SessionDep, current_user: CompanyUser):
    """Approved units not yet on a claim, grouped by job."""

    return unit_entries.list_unbilled(session, current_user)


@router.get("/disputed", response_model=list[UnitEntryRead])
def list_disputed(session: SessionDep, current_user: CompanyUser):
    return unit_entries.list_disputed(session, current_user)


@router.get("/{unit_id}", response_model=UnitEntryRead)
def get_unit(unit_id: str, session: SessionDep, current_user: CompanyUser):
    return unit_entries.get_unit(session, current_user, unit_id)


@router.post("", response_model=UnitEntryRead, status_code=status.HTTP_201_CREATED)
def create_unit(
    session: SessionDep,
    current_user: CompanyUser,
    payload: Annotated[dict[str, Any], Body()],
):
    """Record a unit of work priced from the active rate book."""

    return unit_entries.create_unit(session, current_user, payload)


@router.post("/batch", response_model=BatchCreateRead)
def batch_create(payload: BatchCreatePayload, session: SessionDep, current_user: CompanyUser):
    """Create several entries at once (offline sync).

    Responds ``201`` when at least one entry was created, ``400`` otherwise.
    """

    results = unit_entries.batch_create_units(session, current_user, payload.entries)
    succeeded = sum(1 for result in results if result["success"])
    body = BatchCreateRead(
        total=len(results),
        succeeded=succeeded,
        failed=len(results) - succeeded,
        results=results,
    )
    return JSONResponse(
        status_code=status.HTTP_201_CREATED if succeeded else status.HTTP_400_BAD_REQUEST,
        content=body.model_dump(mode="json"),
    )


@router.post("/{unit_id}/submit", response_model=UnitEntryRead)
def submit_unit(unit_id: str, session: SessionDep, current_user: CompanyUser):
    return unit_entries.submit_unit(session, current_user, unit_id)


@router.post("/{unit_id}/verify", response_model=UnitEntryRead)
def verify_unit(
    unit_id: str,
    session: SessionDep,
    current_user: CompanyUser,
    payload: NotesPayload | None = None,
):
    notes = payload.notes if payload else None
    return unit_entries.verify_unit(session, current_user, unit_id, notes)


@router.post("/{unit_id}/approve", response_model=UnitEntryRead)
def approve_unit(
    unit_id: str,
    session: SessionDep,
    current_user: CompanyUser,
    payload: NotesPayload | None = None,
):
    notes = payload.notes if payload else None
    return unit_entries.approve_unit(session, current_user, unit_id, notes)


@router.post("/{unit_id}/dispute", response_model=UnitEntryRead)
def dispute_unit(
    unit_id: str,
    payload: DisputePayload,
    session: SessionDep,
    current_user: CompanyUser,
):
    return unit_entries.dispute_unit(
        session, current_user, unit_id, payload.reason, payload.category
    )


@router.post("/{unit_id}/resolve-dispute", response_model=UnitEntryRead)
def resolve_dispute(
    unit_id: str,
    payload: ResolveDisputePayload,
    session: SessionDep,
    current_user: CompanyUser,
):
    """Close a dispute by accepting, adjusting, voiding or returning the entry."""

    return unit_entries.resolve_dispute(
        session,
        current_user,
        unit_id,
        action=payload.action,
        resolution=payload.resolution,
        adjusted_quantity=payload.adjusted_quantity,
        adjusted_reason=payload.adjusted_reason,
    )


@router.delete("/{unit_id}")
def delete_unit(
    unit_id: str,
    session: SessionDep,
    current_user: CompanyUser,
    payload: DeletePayload | None = None,
) -> dict[str, Any]:
    reason = payload.reason if payload else None
    unit = unit_entries.delete_unit(session, current_user, unit_id, reason)
    return {"id": unit.id, "deleted": unit.is_deleted, "status": unit.status}
