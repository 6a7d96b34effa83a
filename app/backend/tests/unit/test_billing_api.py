"""API tests for the billing endpoints."""

from __future__ import annotations

import os
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any

sys.path.append(str(Path(__file__).resolve().parents[4]))

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_fieldbill.db")

import pytest
from fastapi.testclient import TestClient

from app.backend.src.core.security import get_current_user
from app.backend.src.db import get_engine, session_scope
from app.backend.src.main import app
from app.backend.src.models import Company, Job, PriceBook, PriceBookItem, User
from app.backend.src.models.base import Base
from app.backend.src.models.user import ROLES


@pytest.fixture(autouse=True)
def setup_database() -> None:  # type: ignore[no-untyped-def]
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def job_id() -> int:
    with session_scope() as session:
        company = Company(
            name="Sierra Line Services", erp_vendor_number="V-10042", erp_vendor_site_code="MAIN"
        )
        session.add(company)
        session.flush()
        job = Job(company_id=company.id, wo_number="WO-1001", utility_code="PGE")
        book = PriceBook(company_id=company.id, utility_code="PGE", name="PGE MSA", status="active")
        book.items = [
            PriceBookItem(
                item_code="POLE-SET",
                description="Set wood pole",
                category="electrical",
                unit="EA",
                unit_price=Decimal("100.00"),
            )
        ]
        users = [
            User(
                email=f"{role}@sierraline.example",
                name=f"Test {role}",
                role=role,
                company_id=company.id,
                is_approved=True,
            )
            for role in ROLES
        ]
        users.append(User(email="nobody@example.com", name="Unassigned", role="pm", is_approved=True))
        session.add_all([job, book, *users])
        session.flush()
        identifier = job.id
    return identifier


@pytest.fixture()
def acting_as() -> dict[str, str]:  # type: ignore[no-untyped-def]
    identity = {"email": "foreman@sierraline.example"}

    def _override() -> User:
        with session_scope() as session:
            return session.query(User).filter(User.email == identity["email"]).one()

    app.dependency_overrides[get_current_user] = _override
    yield identity
    app.dependency_overrides.pop(get_current_user, None)


@pytest.fixture()
def client(acting_as) -> TestClient:  # type: ignore[no-untyped-def]
    return TestClient(app)


def _unit_payload(job_id: int, **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "job_id": job_id,
        "item_code": "POLE-SET",
        "quantity": 2,
        "work_date": "2024-05-01",
        "photos": [{"url": "https://files.example/units/1.jpg", "photoType": "after"}],
    }
    payload.update(overrides)
    return payload


def _approved_unit(client: TestClient, acting_as: dict[str, str], job_id: int) -> int:
    acting_as["email"] = "foreman@sierraline.example"
    created = client.post("/api/billing/units", json=_unit_payload(job_id))
    unit_id = created.json()["id"]
    client.post(f"/api/billing/units/{unit_id}/submit")
    acting_as["email"] = "pm@sierraline.example"
    client.post(f"/api/billing/units/{unit_id}/approve", json={"notes": "ok"})
    return unit_id


def test_missing_token_is_rejected(job_id: int) -> None:
    response = TestClient(app).get("/api/billing/units")

    assert response.status_code == 401
    assert response.json()["detail"] == "Authorization header missing"


def test_user_without_company_is_rejected(
    client: TestClient, acting_as: dict[str, str], job_id: int
) -> None:
    acting_as["email"] = "nobody@example.com"

    response = client.get("/api/billing/claims")

    assert response.status_code == 400
    assert response.json()["detail"] == {"error": "User not associated with a company"}


def test_unit_to_claim_to_export_flow(
    client: TestClient, acting_as: dict[str, str], job_id: int
) -> None:
    created = client.post("/api/billing/units", json=_unit_payload(job_id))
    assert created.status_code == 201
    unit = created.json()
    assert unit["status"] == "draft"
    assert unit["total_amount"] == "200.00"
    assert unit["photo_count"] == 1

    submitted = client.post(f"/api/billing/units/{unit['id']}/submit")
    assert submitted.json()["status"] == "submitted"

    acting_as["email"] = "pm@sierraline.example"
    approved = client.post(f"/api/billing/units/{unit['id']}/approve", json={"notes": "ok"})
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"

    unbilled = client.get("/api/billing/units/unbilled").json()
    assert unbilled["total_units"] == 1
    assert unbilled["total_amount"] == "200.00"

    created_claim = client.post(
        "/api/billing/claims", json={"unit_ids": [unit["id"]], "po_number": "PO-1"}
    )
    assert created_claim.status_code == 201
    claim = created_claim.json()
    assert claim["subtotal"] == "200.00"
    assert claim["total_amount"] == "200.00"
    assert claim["amount_due"] == "200.00"
    assert claim["line_item_count"] == 1
    assert claim["po_number"] == "PO-1"
    assert claim["category_totals"]["electrical"] == "200.00"
    assert claim["verification_metrics"]["units_with_photos"] == 1

    export = client.get(f"/api/billing/claims/{claim['id']}/export-fbdi")
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert f'filename="{claim["claim_number"]}_FBDI.csv"' in export.headers["content-disposition"]
    header_row = export.text.splitlines()[2].split(",")
    assert header_row[0] == claim["claim_number"]
    assert header_row[3] == "200.00"
    assert client.get(f"/api/billing/claims/{claim['id']}/export-fbdi").text == export.text

    lines_csv = client.get(f"/api/billing/claims/{claim['id']}/export-csv")
    assert lines_csv.text.splitlines()[1].startswith("1,POLE-SET,Set wood pole,2,EA,100.00,200.00")

    invoice = client.get(f"/api/billing/claims/{claim['id']}/export-oracle").json()
    assert invoice["InvoiceAmount"] == 200.0
    assert invoice["PurchaseOrderNumber"] == "PO-1"

    unit_after = client.get(f"/api/billing/units/{unit['id']}").json()
    assert unit_after["status"] == "invoiced"
    assert unit_after["claim_id"] == claim["id"]


def test_claim_lifecycle_and_payments(
    client: TestClient, acting_as: dict[str, str], job_id: int
) -> None:
    unit_id = _approved_unit(client, acting_as, job_id)
    claim_id = client.post("/api/billing/claims", json={"unit_ids": [unit_id]}).json()["id"]

    updated = client.put(f"/api/billing/claims/{claim_id}", json={"status": "pending_review"})
    assert updated.json()["status"] == "pending_review"
    assert client.post(f"/api/billing/claims/{claim_id}/approve").json()["status"] == "approved"
    submitted = client.post(
        f"/api/billing/claims/{claim_id}/submit", json={"submission_method": "email"}
    )
    assert submitted.json()["submission_method"] == "email"

    too_much = client.post(f"/api/billing/claims/{claim_id}/payment", json={"amount": 250})
    assert too_much.status_code == 400
    assert too_much.json()["detail"]["balance_due"] == "200.00"

    partial = client.post(f"/api/billing/claims/{claim_id}/payment", json={"amount": "50"})
    assert partial.json()["balance_due"] == "150.00"
    unpaid = client.get("/api/billing/claims/unpaid").json()
    assert unpaid["count"] == 1
    assert unpaid["total_outstanding"] == "150.00"

    paid = client.post(
        f"/api/billing/claims/{claim_id}/payment",
        json={"amount": 150, "payment_method": "wire", "reference_number": "W-1"},
    ).json()
    assert paid["status"] == "paid"
    assert [payment["balance_after"] for payment in paid["payments"]] == ["150.00", "0.00"]
    assert client.get(f"/api/billing/units/{unit_id}").json()["status"] == "paid"


def test_claim_creation_conflicts_and_roles(
    client: TestClient, acting_as: dict[str, str], job_id: int
) -> None:
    pending = client.post("/api/billing/units", json=_unit_payload(job_id)).json()["id"]

    denied = client.post("/api/billing/claims", json={"unit_ids": [pending]})
    assert denied.status_code == 403

    acting_as["email"] = "pm@sierraline.example"
    conflict = client.post("/api/billing/claims", json={"unit_ids": [pending]})
    assert conflict.status_code == 400
    assert conflict.json()["detail"]["details"] == {"not_approved": [pending]}

    missing = client.post("/api/billing/claims", json={})
    assert missing.status_code == 400


def test_delete_draft_claim_via_api(
    client: TestClient, acting_as: dict[str, str], job_id: int
) -> None:
    unit_id = _approved_unit(client, acting_as, job_id)
    claim_id = client.post("/api/billing/claims", json={"unit_ids": [unit_id]}).json()["id"]

    response = client.delete(f"/api/billing/claims/{claim_id}")

    assert response.status_code == 200
    assert client.get(f"/api/billing/claims/{claim_id}").status_code == 404
    assert client.get(f"/api/billing/units/{unit_id}").json()["status"] == "approved"


def test_batch_create_status_codes(client: TestClient, job_id: int) -> None:
    mixed = client.post(
        "/api/billing/units/batch",
        json={"entries": [_unit_payload(job_id), _unit_payload(job_id, quantity=0)]},
    )
    assert mixed.status_code == 201
    body = mixed.json()
    assert body["succeeded"] == 1
    assert body["failed"] == 1
    assert body["results"][1]["error"] == "quantity must be a positive number"

    failed = client.post(
        "/api/billing/units/batch", json={"entries": [_unit_payload(job_id, quantity=0)]}
    )
    assert failed.status_code == 400

    empty = client.post("/api/billing/units/batch", json={"entries": []})
    assert empty.status_code == 400


def test_dispute_and_resolve_via_api(
    client: TestClient, acting_as: dict[str, str], job_id: int
) -> None:
    unit_id = _approved_unit(client, acting_as, job_id)

    acting_as["email"] = "qa@sierraline.example"
    disputed = client.post(
        f"/api/billing/units/{unit_id}/dispute",
        json={"reason": "Only one pole", "category": "quantity"},
    )
    assert disputed.json()["is_disputed"] is True
    assert [unit["id"] for unit in client.get("/api/billing/units/disputed").json()] == [unit_id]

    acting_as["email"] = "gf@sierraline.example"
    resolved = client.post(
        f"/api/billing/units/{unit_id}/resolve-dispute",
        json={"action": "adjust", "resolution": "Recounted", "adjusted_quantity": 1},
    ).json()
    assert resolved["status"] == "approved"
    assert resolved["total_amount"] == "100.00"
    assert len(resolved["adjustments"]) == 1


def test_delete_unit_via_api(client: TestClient, job_id: int) -> None:
    unit_id = client.post("/api/billing/units", json=_unit_payload(job_id)).json()["id"]

    response = client.request(
        "DELETE", f"/api/billing/units/{unit_id}", json={"reason": "Entered twice"}
    )

    assert response.status_code == 200
    assert response.json() == {"id": unit_id, "deleted": True, "status": "draft"}
    assert client.get(f"/api/billing/units/{unit_id}").status_code == 404


def test_health_endpoints(client: TestClient, job_id: int) -> None:
    assert client.get("/api/health/live").json() == {"status": "live"}
    assert client.get("/api/health/ready").json() == {"status": "ready", "active_price_books": 1}
    assert client.get("/api/metrics").status_code == 200
