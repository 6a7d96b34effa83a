"""Rate-book lookups."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.backend.src.models import PriceBook, PriceBookItem


@dataclass(frozen=True)
class RateItem:
    """Snapshot of a priced catalog entry at lookup time."""

    price_book_id: int
    item_id: int
    item_code: str
    description: str
    category: str | None
    subcategory: str | None
    unit: str
    unit_price: Decimal

    @classmethod
    def from_model(cls, item: PriceBookItem) -> "RateItem":
        return cls(
            price_book_id=item.price_book_id,
            item_id=item.id,
            item_code=item.item_code,
            description=item.description,
            category=item.category,
            subcategory=item.subcategory,
            unit=item.unit,
            unit_price=Decimal(item.unit_price),
        )


def get_active_price_book(
    session: Session, company_id: int, utility_code: str | None
) -> PriceBook | None:
    """Return the most recent active price book for a company and utility."""

    stmt = (
        select(PriceBook)
        .where(
            PriceBook.company_id == company_id,
            PriceBook.status == "active",
        )
        .order_by(PriceBook.effective_date.desc(), PriceBook.id.desc())
    )
    if utility_code:
        stmt = stmt.where(PriceBook.utility_code == utility_code)
    return session.execute(stmt).scalars().first()


def find_rate_item(
    session: Session,
    company_id: int,
    *,
    price_book_id: int | None = None,
    price_book_item_id: int | None = None,
    item_code: str | None = None,
    utility_code: str | None = None,
) -> RateItem | None:
    """Resolve a rate item by explicit reference or by code in the active book.

    Explicit ``price_book_id`` + ``price_book_item_id`` wins; otherwise the
    item code is looked up among active items of the company's active price
    book for the utility. Price books of other companies never match.
    """

    if price_book_id and price_book_item_id:
        item = session.execute(
            select(PriceBookItem)
            .join(PriceBook, PriceBook.id == PriceBookItem.price_book_id)
            .where(
                PriceBook.id == price_book_id,
                PriceBook.company_id == company_id,
                PriceBookItem.id == price_book_item_id,
            )
        ).scalar_one_or_none()
        return RateItem.from_model(item) if item else None

    if item_code:
        price_book = get_active_price_book(session, company_id, utility_code)
        if price_book is None:
            return None
        item = session.execute(
            select(PriceBookItem).where(
                PriceBookItem.price_book_id == price_book.id,
                PriceBookItem.item_code == item_code,
                PriceBookItem.is_active.is_(True),
            )
        ).scalars().first()
        return RateItem.from_model(item) if item else None

    return None


__all__ = ["RateItem", "find_rate_item", "get_active_price_book"]
