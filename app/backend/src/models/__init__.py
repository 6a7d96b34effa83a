"""ORM models exposed for easy imports."""

from .change_log import ClaimChangeLog
from .claim import Claim
from .company import Company
from .job import Job
from .line_item import ClaimLineItem
from .payment import ClaimPayment
from .price_book import PriceBook, PriceBookItem
from .unit_entry import UnitAdjustment, UnitEntry
from .user import User

__all__ = [
    "Claim",
    "ClaimChangeLog",
    "ClaimLineItem",
    "ClaimPayment",
    "Company",
    "Job",
    "PriceBook",
    "PriceBookItem",
    "UnitAdjustment",
    "UnitEntry",
    "User",
]
