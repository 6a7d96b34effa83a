"""Calculation helpers."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")
# line and unit totals are Numeric(14, 2)
MAX_LINE_TOTAL = Decimal("999999999999.99")


def to_decimal(value: object, default: Decimal | None = None) -> Decimal | None:
    """Coerce ``value`` into a :class:`Decimal` without float artefacts."""

    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = repr(value)
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    if not result.is_finite():
        return default
    return result


def to_money(value: object) -> Decimal:
    """Round to cents using half-up rounding."""

    amount = to_decimal(value, ZERO)
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def line_total(quantity: Decimal, unit_price: Decimal) -> Decimal:
    """Compute ``quantity * unit_price`` rounded to cents."""
    return to_money(Decimal(quantity) * Decimal(unit_price))


def format_money(value: object) -> str:
    return f"{to_money(value):.2f}"


@dataclass(frozen=True)
class ClaimTotals:
    subtotal: Decimal
    adjustment_total: Decimal
    tax_amount: Decimal
    retention_amount: Decimal
    total_amount: Decimal
    amount_due: Decimal


def claim_totals(
    line_amounts: Iterable[Decimal],
    *,
    tax_rate: Decimal = ZERO,
    retention_rate: Decimal = ZERO,
    adjustment_total: Decimal = ZERO,
) -> ClaimTotals:
    """Derive claim money fields from its line amounts.

    ``total = subtotal + adjustments + tax`` and ``due = total - retention``;
    tax and retention are both computed on the subtotal.
    """

    subtotal = to_money(sum((to_money(amount) for amount in line_amounts), ZERO))
    adjustments = to_money(adjustment_total)
    tax_amount = to_money(subtotal * Decimal(tax_rate))
    retention_amount = to_money(subtotal * Decimal(retention_rate))
    total_amount = subtotal + adjustments + tax_amount
    return ClaimTotals(
        subtotal=subtotal,
        adjustment_total=adjustments,
        tax_amount=tax_amount,
        retention_amount=retention_amount,
        total_amount=total_amount,
        amount_due=total_amount - retention_amount,
    )


__all__ = [
    "CENTS",
    "ClaimTotals",
    "MAX_LINE_TOTAL",
    "ZERO",
    "claim_totals",
    "format_money",
    "line_total",
    "to_decimal",
    "to_money",
]
