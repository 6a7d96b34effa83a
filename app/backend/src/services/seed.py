"""Utilities for seeding development data."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.orm import Session

from app.backend.src.models import Company, Job, PriceBook, PriceBookItem, User
from app.backend.src.models.user import ROLES

DEFAULT_COMPANY_NAME = "Sierra Line Services"
DEFAULT_UTILITY_CODE = "PGE"
DEFAULT_JOB_NUMBER = "WO-1001"
DEFAULT_EMAIL_DOMAIN = "sierraline.example"

DEFAULT_RATE_ITEMS: tuple[dict[str, object], ...] = (
    {
        "item_code": "POLE-SET-45",
        "description": "Set 45ft wood pole",
        "category": "electrical",
        "unit": "EA",
        "unit_price": Decimal("1250.00"),
    },
    {
        "item_code": "TRENCH-LF",
        "description": "Trench and backfill",
        "category": "civil",
        "unit": "LF",
        "unit_price": Decimal("38.50"),
    },
    {
        "item_code": "TC-FLAG-HR",
        "description": "Flagger, per hour",
        "category": "traffic_control",
        "unit": "HR",
        "unit_price": Decimal("72.00"),
    },
)


@dataclass
class SeedResult:
    """Information about the seeded company and its records."""

    company: Company
    job: Job
    price_book: PriceBook
    users: dict[str, User] = field(default_factory=dict)
    company_created: bool = False
    created_users: list[str] = field(default_factory=list)


def _ensure_price_book(session: Session, company: Company, utility_code: str) -> PriceBook:
    book = (
        session.query(PriceBook)
        .filter(
            PriceBook.company_id == company.id,
            PriceBook.utility_code == utility_code,
            PriceBook.status == "active",
        )
        .one_or_none()
    )
    if book is not None:
        return book

    book = PriceBook(
        company_id=company.id,
        utility_code=utility_code,
        name=f"{utility_code} Master Service Agreement",
        status="active",
    )
    book.items = [PriceBookItem(**item) for item in DEFAULT_RATE_ITEMS]
    session.add(book)
    session.flush()
    return book


def seed_development_data(
    session: Session,
    *,
    company_name: str = DEFAULT_COMPANY_NAME,
    utility_code: str = DEFAULT_UTILITY_CODE,
    job_number: str = DEFAULT_JOB_NUMBER,
    email_domain: str = DEFAULT_EMAIL_DOMAIN,
    admin_auth0_sub: str | None = None,
) -> SeedResult:
    """Ensure a demo company with one user per role, a job and a rate book exist.

    Existing records are reused, so the function can be run repeatedly.
    """

    company = session.query(Company).filter(Company.name == company_name).one_or_none()
    company_created = False
    if company is None:
        company = Company(
            name=company_name,
            erp_vendor_number="V-10042",
            erp_vendor_site_code="MAIN",
        )
        session.add(company)
        session.flush()
        company_created = True

    users: dict[str, User] = {}
    created_users: list[str] = []
    for role in ROLES:
        email = f"{role}@{email_domain}"
        user = session.query(User).filter(User.email == email).one_or_none()
        if user is None:
            user = User(
                email=email,
                name=f"Demo {role.upper()}",
                role=role,
                company_id=company.id,
                is_approved=True,
            )
            session.add(user)
            created_users.append(role)
        else:
            user.company_id = company.id
            user.role = role
        if role == "admin" and admin_auth0_sub:
            user.auth0_sub = admin_auth0_sub
        users[role] = user
    session.flush()

    job = (
        session.query(Job)
        .filter(Job.company_id == company.id, Job.wo_number == job_number)
        .one_or_none()
    )
    if job is None:
        job = Job(
            company_id=company.id,
            wo_number=job_number,
            title="Feeder rebuild",
            utility_code=utility_code,
        )
        session.add(job)
        session.flush()

    price_book = _ensure_price_book(session, company, utility_code)

    return SeedResult(
        company=company,
        job=job,
        price_book=price_book,
        users=users,
        company_created=company_created,
        created_users=created_users,
    )


__all__ = ["SeedResult", "seed_development_data"]
