"""Unit tests for input sanitization and money helpers."""

from __future__ import annotations

import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[4]))

import pytest

from app.backend.src.services.calculations import (
    claim_totals,
    format_money,
    line_total,
    to_decimal,
    to_money,
)
from app.backend.src.services.sanitize import (
    sanitize_date,
    sanitize_enum,
    sanitize_id,
    sanitize_id_list,
    sanitize_int,
    sanitize_location,
    sanitize_performed_by,
    sanitize_photos,
    sanitize_quantity,
    sanitize_rate,
    sanitize_string,
)


def test_sanitize_string_rejects_containers_and_operators() -> None:
    assert sanitize_string("  pole set  ") == "pole set"
    assert sanitize_string({"$ne": None}) is None
    assert sanitize_string(["a"]) is None
    assert sanitize_string("$where") is None
    assert sanitize_string("abcdef", max_length=3) == "abc"


@pytest.mark.parametrize(
    "value, expected",
    [(7, 7), ("12", 12), (" 3 ", 3), (0, None), (-4, None), ("abc", None), (True, None), ({"id": 1}, None)],
)
def test_sanitize_id(value: object, expected: int | None) -> None:
    assert sanitize_id(value) == expected


def test_sanitize_id_list_drops_invalid_and_duplicates() -> None:
    assert sanitize_id_list([3, "1", "x", 3, None, {"$gt": 0}, 2]) == [3, 1, 2]
    assert sanitize_id_list("1,2") == []


def test_sanitize_int_defaults_and_clamps() -> None:
    assert sanitize_int("25", 100, 500) == 25
    assert sanitize_int("9000", 100, 500) == 500
    assert sanitize_int("-1", 100, 500) == 100
    assert sanitize_int("ten", 100, 500) == 100


def test_sanitize_date_accepts_iso_dates_only() -> None:
    assert sanitize_date("2024-03-05") == date(2024, 3, 5)
    assert sanitize_date("2024-03-05T10:30:00Z") == date(2024, 3, 5)
    assert sanitize_date("03/05/2024") is None
    assert sanitize_date(["2024-03-05"]) is None


def test_sanitize_enum_falls_back_to_default() -> None:
    assert sanitize_enum("sub", ("prime", "sub"), "prime") == "sub"
    assert sanitize_enum("contractor", ("prime", "sub"), "prime") == "prime"
    assert sanitize_enum(None, ("prime", "sub")) is None


def test_sanitize_quantity_requires_positive_numbers() -> None:
    assert sanitize_quantity("2.5") == Decimal("2.5")
    assert sanitize_quantity(0.1) == Decimal("0.1")
    assert sanitize_quantity(0) is None
    assert sanitize_quantity("-3") is None
    assert sanitize_quantity("lots") is None
    assert sanitize_quantity(True) is None
    assert sanitize_quantity("NaN") is None
    assert sanitize_quantity("1.2345") == Decimal("1.235")
    assert sanitize_quantity("0.0004") is None
    assert sanitize_quantity("999999999.999") == Decimal("999999999.999")
    assert sanitize_quantity("1e20") is None


def test_sanitize_rate_limits_to_fraction() -> None:
    assert sanitize_rate("0.10") == Decimal("0.10")
    assert sanitize_rate(1.5) == Decimal("0")
    assert sanitize_rate(None) == Decimal("0")


def test_sanitize_location_discards_non_numeric_coordinates() -> None:
    fix = sanitize_location(
        {"latitude": "38.58", "longitude": -121.49, "accuracy": 8, "extra": "ignored"}
    )

    assert fix is not None
    assert fix.latitude is None
    assert fix.longitude == -121.49
    assert fix.has_position is False
    assert "extra" not in fix.to_storage()
    assert sanitize_location("38.58,-121.49") is None


def test_sanitize_photos_applies_defaults() -> None:
    photos = sanitize_photos(
        [
            {"url": "https://files.example/p1.jpg", "photoType": "selfie", "fileSize": "big"},
            "not-a-photo",
            {"r2Key": "units/2.jpg", "photoType": "before", "gpsCoordinates": "nowhere"},
        ]
    )

    assert len(photos) == 2
    assert photos[0].photo_type == "after"
    assert photos[0].mime_type == "image/jpeg"
    assert photos[0].file_size is None
    assert photos[1].storage_key == "units/2.jpg"
    assert photos[1].photo_type == "before"
    assert photos[1].gps_coordinates is None


def test_sanitize_performed_by_defaults_foreman_to_caller() -> None:
    performer = sanitize_performed_by(
        {"tier": "vendor", "workCategory": "civil", "crewSize": -2, "subContractorName": "  Acme "},
        user_id=9,
        user_name="Dana",
    )

    assert performer.tier == "prime"
    assert performer.work_category == "civil"
    assert performer.crew_size == 1
    assert performer.foreman_id == 9
    assert performer.foreman_name == "Dana"
    assert performer.sub_contractor_name == "Acme"


def test_money_helpers_round_half_up() -> None:
    assert to_money("2.005") == Decimal("2.01")
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_decimal("inf") is None
    assert line_total(Decimal("3"), Decimal("33.335")) == Decimal("100.01")
    assert format_money(200) == "200.00"


def test_claim_totals_invariants() -> None:
    totals = claim_totals(
        [Decimal("100.00"), Decimal("250.50")],
        tax_rate=Decimal("0.0825"),
        retention_rate=Decimal("0.10"),
    )

    assert totals.subtotal == Decimal("350.50")
    assert totals.tax_amount == Decimal("28.92")
    assert totals.retention_amount == Decimal("35.05")
    assert totals.total_amount == totals.subtotal + totals.adjustment_total + totals.tax_amount
    assert totals.amount_due == totals.total_amount - totals.retention_amount
