"""Unit tests for the unit entry lifecycle service."""

from __future__ import annotations

import os
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any

sys.path.append(str(Path(__file__).resolve().parents[4]))

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_fieldbill.db")

import pytest

from app.backend.src.core.errors import (
    Forbidden,
    NotFound,
    TransitionRefused,
    ValidationFailed,
)
from app.backend.src.db import get_engine, session_scope
from app.backend.src.models import (
    Company,
    Job,
    PriceBook,
    PriceBookItem,
    UnitEntry,
    User,
)
from app.backend.src.models.base import Base
from app.backend.src.models.user import ROLES
from app.backend.src.services import unit_entries
from app.backend.src.services.calculations import to_money


@pytest.fixture(autouse=True)
def setup_database() -> None:  # type: ignore[no-untyped-def]
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def seeded() -> dict[str, Any]:
    with session_scope() as session:
        company = Company(name="Sierra Line Services")
        rival = Company(name="Rival Electric")
        session.add_all([company, rival])
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
        rival_book = PriceBook(
            company_id=rival.id, utility_code="PGE", name="Rival MSA", status="active"
        )
        rival_book.items = [
            PriceBookItem(
                item_code="RIVAL-ONLY",
                description="Rival item",
                unit="EA",
                unit_price=Decimal("5.00"),
            )
        ]
        users = {
            role: User(
                email=f"{role}@sierraline.example",
                name=f"Test {role}",
                role=role,
                company_id=company.id,
                is_approved=True,
            )
            for role in ROLES
        }
        session.add_all([job, book, rival_book, *users.values()])
        session.flush()
        data = {
            "job_id": job.id,
            "book_id": book.id,
            "item_id": book.items[0].id,
            "rival_book_id": rival_book.id,
            "rival_item_id": rival_book.items[0].id,
            "users": users,
        }
    return data


def _payload(seeded: dict[str, Any], **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "job_id": seeded["job_id"],
        "item_code": "POLE-SET",
        "quantity": "2",
        "work_date": "2024-05-01",
        "photos": [{"url": "https://files.example/units/1.jpg", "photoType": "after"}],
    }
    payload.update(overrides)
    return payload


def _approved_unit(seeded: dict[str, Any], **overrides: Any) -> int:
    users = seeded["users"]
    with session_scope() as session:
        unit = unit_entries.create_unit(session, users["foreman"], _payload(seeded, **overrides))
        unit_entries.submit_unit(session, users["foreman"], unit.id)
        unit_entries.approve_unit(session, users["pm"], unit.id)
        return unit.id


def test_create_unit_snapshots_rate_item(seeded: dict[str, Any]) -> None:
    foreman = seeded["users"]["foreman"]
    with session_scope() as session:
        unit = unit_entries.create_unit(session, foreman, _payload(seeded))

    assert unit.status == "draft"
    assert unit.item_code == "POLE-SET"
    assert unit.description == "Set wood pole"
    assert unit.unit_price == Decimal("100.00")
    assert unit.total_amount == Decimal("200.00")
    assert unit.total_amount == (unit.quantity * unit.unit_price).quantize(Decimal("0.01"))
    assert unit.price_book_id == seeded["book_id"]
    assert unit.performed_by["foreman_id"] == foreman.id
    assert unit.gps_quality == "none"


def test_fractional_quantity_total_matches_stored_quantity(seeded: dict[str, Any]) -> None:
    with session_scope() as session:
        created = unit_entries.create_unit(
            session, seeded["users"]["foreman"], _payload(seeded, quantity="1.2345")
        )

    with session_scope() as session:
        stored = session.get(UnitEntry, created.id)
        quantity, unit_price, total = stored.quantity, stored.unit_price, stored.total_amount

    assert quantity == Decimal("1.235")
    assert total == Decimal("123.50")
    assert total == to_money(quantity * unit_price)


def test_adjusted_quantity_is_normalised_before_comparison(seeded: dict[str, Any]) -> None:
    users = seeded["users"]
    unit_id = _approved_unit(seeded)
    with session_scope() as session:
        unit_entries.dispute_unit(session, users["qa"], unit_id, "Partial set")

        with pytest.raises(ValidationFailed):
            unit_entries.resolve_dispute(
                session,
                users["pm"],
                unit_id,
                action="adjust",
                resolution="Recounted",
                adjusted_quantity="2.0004",
            )

        unit_entries.resolve_dispute(
            session,
            users["pm"],
            unit_id,
            action="adjust",
            resolution="Recounted",
            adjusted_quantity="0.5004",
        )

    with session_scope() as session:
        stored = session.get(UnitEntry, unit_id)
        quantity, total = stored.quantity, stored.total_amount

    assert quantity == Decimal("0.500")
    assert total == Decimal("50.00")


def test_create_unit_auto_submits_with_accurate_gps(seeded: dict[str, Any]) -> None:
    foreman = seeded["users"]["foreman"]
    location = {"latitude": 38.58, "longitude": -121.49, "accuracy": 8}
    with session_scope() as session:
        unit = unit_entries.create_unit(session, foreman, _payload(seeded, location=location))

    assert unit.status == "submitted"
    assert unit.submitted_by == foreman.id
    assert unit.gps_quality == "high"


def test_create_unit_with_poor_gps_stays_draft_and_cannot_submit(seeded: dict[str, Any]) -> None:
    foreman = seeded["users"]["foreman"]
    location = {"latitude": 38.58, "longitude": -121.49, "accuracy": 80}
    with session_scope() as session:
        unit = unit_entries.create_unit(session, foreman, _payload(seeded, location=location))
        assert unit.status == "draft"

        with pytest.raises(ValidationFailed) as exc:
            unit_entries.submit_unit(session, foreman, unit.id)

    assert exc.value.status_code == 400
    assert "GPS accuracy" in exc.value.detail["error"]


def test_create_unit_requires_photo_or_waiver(seeded: dict[str, Any]) -> None:
    foreman = seeded["users"]["foreman"]
    with session_scope() as session:
        with pytest.raises(ValidationFailed):
            unit_entries.create_unit(session, foreman, _payload(seeded, photos=[]))

        unit = unit_entries.create_unit(
            session,
            foreman,
            _payload(seeded, photos=[], photo_waived=True, photo_waived_reason="Night work"),
        )

    assert unit.photo_waived is True
    assert unit.photo_waived_by == foreman.id


@pytest.mark.parametrize(
    "overrides",
    [
        {"quantity": 0},
        {"quantity": "-1"},
        {"quantity": "0.0004"},
        {"quantity": "1e20"},
        {"work_date": "yesterday"},
        {"job_id": {"$gt": 0}},
    ],
)
def test_create_unit_rejects_invalid_input(seeded: dict[str, Any], overrides: dict[str, Any]) -> None:
    with session_scope() as session:
        with pytest.raises(ValidationFailed):
            unit_entries.create_unit(session, seeded["users"]["foreman"], _payload(seeded, **overrides))


def test_create_unit_ignores_other_company_price_books(seeded: dict[str, Any]) -> None:
    foreman = seeded["users"]["foreman"]
    with session_scope() as session:
        with pytest.raises(ValidationFailed) as exc:
            unit_entries.create_unit(
                session,
                foreman,
                _payload(
                    seeded,
                    item_code=None,
                    price_book_id=seeded["rival_book_id"],
                    price_book_item_id=seeded["rival_item_id"],
                ),
            )

    assert exc.value.detail["error"] == "Rate item not found in price book"


def test_user_without_company_is_refused(seeded: dict[str, Any]) -> None:
    drifter = User(id=999, email="drifter@example.com", name="Drifter", role="foreman")
    with session_scope() as session:
        with pytest.raises(ValidationFailed) as exc:
            unit_entries.create_unit(session, drifter, _payload(seeded))

    assert exc.value.detail["error"] == "User not associated with a company"


def test_review_workflow_enforces_roles(seeded: dict[str, Any]) -> None:
    users = seeded["users"]
    with session_scope() as session:
        unit = unit_entries.create_unit(session, users["foreman"], _payload(seeded))
        unit_entries.submit_unit(session, users["foreman"], unit.id)

        with pytest.raises(Forbidden):
            unit_entries.verify_unit(session, users["foreman"], unit.id)

        unit_entries.verify_unit(session, users["gf"], unit.id, "Checked in field")
        with pytest.raises(Forbidden):
            unit_entries.approve_unit(session, users["qa"], unit.id)

        approved = unit_entries.approve_unit(session, users["pm"], unit.id, "OK to bill")

    assert approved.status == "approved"
    assert approved.verified_by == users["gf"].id
    assert approved.approved_by == users["pm"].id
    assert approved.approval_notes == "OK to bill"


def test_submit_requires_draft(seeded: dict[str, Any]) -> None:
    unit_id = _approved_unit(seeded)
    with session_scope() as session:
        with pytest.raises(TransitionRefused):
            unit_entries.submit_unit(session, seeded["users"]["foreman"], unit_id)


def test_disputed_unit_cannot_be_approved(seeded: dict[str, Any]) -> None:
    users = seeded["users"]
    with session_scope() as session:
        unit = unit_entries.create_unit(session, users["foreman"], _payload(seeded))
        unit_entries.submit_unit(session, users["foreman"], unit.id)
        disputed = unit_entries.dispute_unit(
            session, users["qa"], unit.id, "Count looks high", "quantity"
        )
        assert disputed.status == "submitted"
        assert disputed.is_disputed is True

        with pytest.raises(TransitionRefused):
            unit_entries.approve_unit(session, users["pm"], unit.id)
        with pytest.raises(TransitionRefused):
            unit_entries.dispute_unit(session, users["qa"], unit.id, "Again")


def test_dispute_requires_reason_and_eligible_status(seeded: dict[str, Any]) -> None:
    users = seeded["users"]
    with session_scope() as session:
        unit = unit_entries.create_unit(session, users["foreman"], _payload(seeded))
        with pytest.raises(ValidationFailed):
            unit_entries.dispute_unit(session, users["qa"], unit.id, "   ")
        with pytest.raises(TransitionRefused):
            unit_entries.dispute_unit(session, users["qa"], unit.id, "Draft entry")


def test_resolve_adjust_requires_different_quantity(seeded: dict[str, Any]) -> None:
    users = seeded["users"]
    unit_id = _approved_unit(seeded)
    with session_scope() as session:
        unit_entries.dispute_unit(session, users["qa"], unit_id, "Only one pole set")

        with pytest.raises(ValidationFailed):
            unit_entries.resolve_dispute(
                session,
                users["pm"],
                unit_id,
                action="adjust",
                resolution="Recounted",
                adjusted_quantity="2",
            )

        unit = unit_entries.resolve_dispute(
            session,
            users["pm"],
            unit_id,
            action="adjust",
            resolution="Recounted",
            adjusted_quantity="1",
            adjusted_reason="Second pole not set",
        )
        adjustments = list(unit.adjustments)

    assert unit.status == "approved"
    assert unit.is_disputed is False
    assert unit.quantity == Decimal("1")
    assert unit.total_amount == Decimal("100.00")
    assert len(adjustments) == 1
    assert adjustments[0].original_quantity == Decimal("2")
    assert adjustments[0].original_total == Decimal("200.00")
    assert adjustments[0].new_total == Decimal("100.00")
    assert adjustments[0].reason == "Second pole not set"


def test_resolve_void_keeps_status_and_hides_unit(seeded: dict[str, Any]) -> None:
    users = seeded["users"]
    unit_id = _approved_unit(seeded)
    with session_scope() as session:
        unit_entries.dispute_unit(session, users["qa"], unit_id, "Duplicate entry", "duplicate")
        unit = unit_entries.resolve_dispute(
            session, users["gf"], unit_id, action="void", resolution="Duplicate of another entry"
        )
        assert unit.status == "approved"
        assert unit.is_deleted is True

        with pytest.raises(NotFound):
            unit_entries.get_unit(session, users["pm"], unit_id)


def test_resolve_resubmit_returns_to_draft(seeded: dict[str, Any]) -> None:
    users = seeded["users"]
    unit_id = _approved_unit(seeded)
    with session_scope() as session:
        unit_entries.dispute_unit(session, users["qa"], unit_id, "Photo is blurry", "photo")
        unit = unit_entries.resolve_dispute(
            session, users["pm"], unit_id, action="resubmit", resolution="Retake photo"
        )

    assert unit.status == "draft"
    assert unit.dispute_resolution == "Retake photo"


def test_resolve_rejects_unknown_action(seeded: dict[str, Any]) -> None:
    users = seeded["users"]
    unit_id = _approved_unit(seeded)
    with session_scope() as session:
        unit_entries.dispute_unit(session, users["qa"], unit_id, "Wrong rate", "rate")
        with pytest.raises(ValidationFailed) as exc:
            unit_entries.resolve_dispute(
                session, users["pm"], unit_id, action="ignore", resolution="n/a"
            )

    assert exc.value.detail["allowed_actions"] == ["accept", "adjust", "void", "resubmit"]


def test_delete_rules(seeded: dict[str, Any]) -> None:
    users = seeded["users"]
    approved_id = _approved_unit(seeded)
    with session_scope() as session:
        draft = unit_entries.create_unit(session, users["foreman"], _payload(seeded))
        deleted = unit_entries.delete_unit(session, users["foreman"], draft.id, "Entered twice")
        assert deleted.is_deleted is True
        assert deleted.status == "draft"

        with pytest.raises(Forbidden):
            unit_entries.delete_unit(session, users["pm"], approved_id)

        voided = unit_entries.delete_unit(session, users["admin"], approved_id)

    assert voided.status == "void"
    assert voided.delete_reason == "Deleted by user"


def test_delete_refuses_claimed_units(seeded: dict[str, Any]) -> None:
    unit_id = _approved_unit(seeded)
    with session_scope() as session:
        unit = session.get(UnitEntry, unit_id)
        unit.status = "invoiced"

    with session_scope() as session:
        with pytest.raises(TransitionRefused):
            unit_entries.delete_unit(session, seeded["users"]["admin"], unit_id)


def test_batch_create_reports_each_entry(seeded: dict[str, Any]) -> None:
    foreman = seeded["users"]["foreman"]
    entries = [
        _payload(seeded),
        _payload(seeded, quantity="abc"),
        "not-an-object",
        _payload(seeded, item_code="MISSING"),
    ]
    with session_scope() as session:
        results = unit_entries.batch_create_units(session, foreman, entries)
        stored = session.query(UnitEntry).count()

    assert [result["success"] for result in results] == [True, False, False, False]
    assert results[0]["total_amount"] == Decimal("200.00")
    assert results[1]["error"] == "quantity must be a positive number"
    assert results[3]["index"] == 3
    assert stored == 1


def test_batch_create_limits(seeded: dict[str, Any]) -> None:
    foreman = seeded["users"]["foreman"]
    with session_scope() as session:
        with pytest.raises(ValidationFailed):
            unit_entries.batch_create_units(session, foreman, [])
        with pytest.raises(ValidationFailed):
            unit_entries.batch_create_units(session, foreman, [_payload(seeded)] * 51)


def test_foreman_only_lists_own_entries(seeded: dict[str, Any]) -> None:
    users = seeded["users"]
    with session_scope() as session:
        unit_entries.create_unit(session, users["foreman"], _payload(seeded))
        unit_entries.create_unit(session, users["gf"], _payload(seeded, work_date="2024-05-02"))

        own = unit_entries.list_units(session, users["foreman"])
        everyone = unit_entries.list_units(session, users["pm"])
        newest_first = [unit.work_date.isoformat() for unit in everyone]

    assert len(own) == 1
    assert own[0].entered_by == users["foreman"].id
    assert newest_first == ["2024-05-02", "2024-05-01"]


def test_list_units_filters(seeded: dict[str, Any]) -> None:
    users = seeded["users"]
    _approved_unit(seeded, performed_by={"tier": "sub", "workCategory": "civil"})
    with session_scope() as session:
        unit_entries.create_unit(session, users["foreman"], _payload(seeded, work_date="2024-06-10"))

        approved = unit_entries.list_units(session, users["pm"], status="approved")
        subs = unit_entries.list_units(session, users["pm"], tier="sub", work_category="civil")
        june = unit_entries.list_units(session, users["pm"], start_date="2024-06-01")
        limited = unit_entries.list_units(session, users["pm"], limit="1")

    assert len(approved) == 1
    assert len(subs) == 1
    assert [unit.work_date.isoformat() for unit in june] == ["2024-06-10"]
    assert len(limited) == 1


def test_unbilled_excludes_disputed_units(seeded: dict[str, Any]) -> None:
    users = seeded["users"]
    first = _approved_unit(seeded)
    second = _approved_unit(seeded, quantity="3")
    with session_scope() as session:
        unit_entries.dispute_unit(session, users["qa"], second, "Check count")
        unbilled = unit_entries.list_unbilled(session, users["pm"])
        disputed = unit_entries.list_disputed(session, users["pm"])

    assert unbilled["total_units"] == 1
    assert unbilled["total_amount"] == Decimal("200.00")
    assert unbilled["by_job"][0]["job_id"] == seeded["job_id"]
    assert [unit.id for unit in unbilled["by_job"][0]["units"]] == [first]
    assert [unit.id for unit in disputed] == [second]


def test_units_are_tenant_scoped(seeded: dict[str, Any]) -> None:
    unit_id = _approved_unit(seeded)
    with session_scope() as session:
        outsider = User(email="out@rival.example", name="Outsider", role="pm", is_approved=True)
        rival = session.query(Company).filter(Company.name == "Rival Electric").one()
        outsider.company_id = rival.id
        session.add(outsider)
        session.flush()

        with pytest.raises(NotFound):
            unit_entries.get_unit(session, outsider, unit_id)
