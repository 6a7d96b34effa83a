"""Input sanitization helpers for request bodies and query strings."""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable

from pydantic import ValidationError

from app.backend.src.schemas.evidence import FieldConditions, GpsFix, PerformedBy, UnitPhoto
from app.backend.src.services.calculations import to_decimal

_CONTAINER_TYPES = (dict, list, tuple, set)

# quantity columns are Numeric(12, 3)
QUANTITY_STEP = Decimal("0.001")
MAX_QUANTITY = Decimal("999999999.999")


def sanitize_string(value: Any, *, max_length: int | None = None) -> str | None:
    """Return a trimmed string, or ``None`` for containers and operator-like input."""

    if value is None or isinstance(value, _CONTAINER_TYPES):
        return None
    text = str(value).strip()
    if text.startswith("$"):
        return None
    if max_length is not None:
        text = text[:max_length]
    return text


def sanitize_id(value: Any) -> int | None:
    """Return a positive integer identifier or ``None``."""

    if value is None or isinstance(value, bool) or isinstance(value, _CONTAINER_TYPES):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    text = str(value).strip()
    if not text.isdigit():
        return None
    number = int(text)
    return number if number > 0 else None


def sanitize_id_list(values: Any) -> list[int]:
    """Sanitize a list of identifiers, dropping invalid ones and duplicates.

    Order of first appearance is preserved.
    """

    if not isinstance(values, (list, tuple)):
        return []
    seen: set[int] = set()
    result: list[int] = []
    for value in values:
        identifier = sanitize_id(value)
        if identifier is None or identifier in seen:
            continue
        seen.add(identifier)
        result.append(identifier)
    return result


def sanitize_int(value: Any, default: int = 0, maximum: int | None = None) -> int:
    """Parse a non-negative integer, clamped to ``maximum``."""

    if value is None or isinstance(value, bool) or isinstance(value, _CONTAINER_TYPES):
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    if number < 0:
        return default
    if maximum is not None:
        number = min(number, maximum)
    return number


def sanitize_date(value: Any) -> date | None:
    """Parse an ISO date (or datetime) string into a :class:`date`."""

    if value is None or isinstance(value, bool) or isinstance(value, _CONTAINER_TYPES):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def sanitize_enum(value: Any, allowed: Iterable[str], default: str | None = None) -> str | None:
    text = sanitize_string(value)
    if text is not None and text in set(allowed):
        return text
    return default


def sanitize_quantity(value: Any) -> Decimal | None:
    """Return a strictly positive quantity rounded to thousandths, or ``None``.

    Values that round to zero or exceed the storable range are rejected.
    """

    if isinstance(value, (str, int, float, Decimal)) and not isinstance(value, bool):
        number = to_decimal(value)
        if number is None or number > MAX_QUANTITY:
            return None
        number = number.quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)
        if number > 0:
            return number
    return None


def sanitize_rate(value: Any) -> Decimal:
    """Return a fractional rate in ``[0, 1]``; anything else is zero."""

    number = to_decimal(value) if not isinstance(value, _CONTAINER_TYPES) else None
    if number is None or number < 0 or number > 1:
        return Decimal("0")
    return number


def sanitize_location(value: Any) -> GpsFix | None:
    if not isinstance(value, dict):
        return None
    try:
        return GpsFix.model_validate(value)
    except ValidationError:
        return None


def sanitize_photos(value: Any) -> list[UnitPhoto]:
    if not isinstance(value, list):
        return []
    photos: list[UnitPhoto] = []
    for raw in value:
        if not isinstance(raw, dict):
            continue
        try:
            photos.append(UnitPhoto.model_validate(raw))
        except ValidationError:
            continue
    return photos


def sanitize_field_conditions(value: Any) -> FieldConditions | None:
    if not isinstance(value, dict):
        return None
    return FieldConditions.model_validate(value)


def sanitize_performed_by(value: Any, *, user_id: int, user_name: str | None) -> PerformedBy:
    """Validate performer attribution, defaulting the foreman to the caller."""

    performer = PerformedBy.model_validate(value if isinstance(value, dict) else {})
    updates: dict[str, Any] = {}
    if performer.foreman_id is None:
        updates["foreman_id"] = user_id
    if performer.foreman_name is None:
        updates["foreman_name"] = user_name
    return performer.model_copy(update=updates) if updates else performer


__all__ = [
    "sanitize_date",
    "sanitize_enum",
    "sanitize_field_conditions",
    "sanitize_id",
    "sanitize_id_list",
    "sanitize_int",
    "sanitize_location",
    "sanitize_performed_by",
    "sanitize_photos",
    "sanitize_quantity",
    "sanitize_rate",
    "sanitize_string",
]
