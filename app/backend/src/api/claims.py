"""Claim endpoints: aggregation, review, payments and ERP exports."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.backend.src.core.security import require_company_user, require_role
from app.backend.src.db import get_session_dependency
from app.backend.src.models import User
from app.backend.src.schemas.billing import (
    BulkExportPayload,
    ClaimCreatePayload,
    ClaimRead,
    ClaimSubmitPayload,
    ClaimUpdatePayload,
    NotesPayload,
    PaymentPayload,
    RelinkRead,
    UnpaidClaimsRead,
)
from app.backend.src.services import claims

router = APIRouter(prefix="/billing/claims", tags=["billing-claims"])

SessionDep = Annotated[Session, Depends(get_session_dependency)]
CompanyUser = Annotated[User, Depends(require_company_user)]
ClaimManager = Annotated[User, Depends(require_role({"pm"}))]
AdminUser = Annotated[User, Depends(require_role({"admin"}))]


def _csv_response(filename: str, document: str) -> Response:
    return Response(
        content=document,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("", response_model=list[ClaimRead])
def list_claims(
    session: SessionDep,
    current_user: CompanyUser,
    status: str | None = None,
    job_id: str | None = None,
    limit: str | None = None,
):
    return claims.list_claims(session, current_user, status=status, job_id=job_id, limit=limit)


@router.get("/unpaid", response_model=UnpaidClaimsRead)
def list_unpaid(session: SessionDep, current_user: CompanyUser):
    """Submitted claims with an outstanding balance."""

    return claims.list_unpaid(session, current_user)


@router.get("/past-due", response_model=list[ClaimRead])
def list_past_due(session: SessionDep, current_user: CompanyUser):
    return claims.list_past_due(session, current_user)


@router.get("/{claim_id}", response_model=ClaimRead)
def get_claim(claim_id: str, session: SessionDep, current_user: CompanyUser):
    return claims.get_claim(session, current_user, claim_id)


@router.post("", response_model=ClaimRead, status_code=status.HTTP_201_CREATED)
def create_claim(payload: ClaimCreatePayload, session: SessionDep, current_user: ClaimManager):
    """Aggregate approved unit entries into a draft claim."""

    options = payload.model_dump(exclude={"unit_ids"})
    return claims.create_claim(session, current_user, payload.unit_ids, options)


@router.post("/bulk-export-fbdi")
def bulk_export(payload: BulkExportPayload, session: SessionDep, current_user: CompanyUser):
    filename, document = claims.bulk_export(session, current_user, payload.claim_ids)
    return _csv_response(filename, document)


@router.put("/{claim_id}", response_model=ClaimRead)
def update_claim(
    claim_id: str,
    payload: ClaimUpdatePayload,
    session: SessionDep,
    current_user: ClaimManager,
):
    return claims.update_claim(
        session, current_user, claim_id, payload.model_dump(exclude_unset=True)
    )


@router.delete("/{claim_id}")
def delete_claim(claim_id: str, session: SessionDep, current_user: ClaimManager) -> dict[str, Any]:
    """Delete a draft claim; its units return to the approved pool."""

    claims.delete_claim(session, current_user, claim_id)
    return {"id": claim_id, "deleted": True}


@router.post("/{claim_id}/approve", response_model=ClaimRead)
def approve_claim(
    claim_id: str,
    session: SessionDep,
    current_user: ClaimManager,
    payload: NotesPayload | None = None,
):
    notes = payload.notes if payload else None
    return claims.approve_claim(session, current_user, claim_id, notes)


@router.post("/{claim_id}/submit", response_model=ClaimRead)
def submit_claim(
    claim_id: str,
    session: SessionDep,
    current_user: ClaimManager,
    payload: ClaimSubmitPayload | None = None,
):
    payload = payload or ClaimSubmitPayload()
    return claims.submit_claim(
        session,
        current_user,
        claim_id,
        submission_method=payload.submission_method,
        submission_reference=payload.submission_reference,
        due_date=payload.due_date,
    )


@router.post("/{claim_id}/payment", response_model=ClaimRead)
def record_payment(
    claim_id: str,
    payload: PaymentPayload,
    session: SessionDep,
    current_user: ClaimManager,
):
    """Record a utility payment against a claim."""

    return claims.record_payment(session, current_user, claim_id, payload.model_dump())


@router.post("/{claim_id}/relink", response_model=RelinkRead)
def relink_units(claim_id: str, session: SessionDep, current_user: AdminUser):
    return claims.relink_claim_units(session, current_user, claim_id)


@router.get("/{claim_id}/export-oracle")
def export_invoice_payload(
    claim_id: str, session: SessionDep, current_user: CompanyUser
) -> dict[str, Any]:
    return claims.export_invoice_payload(session, current_user, claim_id)


@router.get("/{claim_id}/export-fbdi")
def export_bulk_interface(claim_id: str, session: SessionDep, current_user: CompanyUser):
    filename, document = claims.export_bulk_interface(session, current_user, claim_id)
    return _csv_response(filename, document)


@router.get("/{claim_id}/export-csv")
def export_line_items(claim_id: str, session: SessionDep, current_user: CompanyUser):
    filename, document = claims.export_line_items(session, current_user, claim_id)
    return _csv_response(filename, document)
