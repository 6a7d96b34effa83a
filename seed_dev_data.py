"""Seed the development database with a demo company, crew and rate book."""

import os

from app.backend.src.db import get_engine, session_scope
from app.backend.src.models.base import Base
from app.backend.src.services.seed import seed_development_data


def main() -> None:
    """Create tables (if needed) and ensure the demo records exist."""

    engine = get_engine()
    Base.metadata.create_all(bind=engine)

    with session_scope() as session:
        auth0_sub = os.environ.get("AUTH0_DEMO_SUB")
        result = seed_development_data(session, admin_auth0_sub=auth0_sub)
        session.flush()

        print("✅ Development data ready!")
        company_status = "created" if result.company_created else "unchanged"
        print(f"Company ({company_status}): {result.company.name} [id={result.company.id}]")
        print(f"Job: {result.job.wo_number} [id={result.job.id}]")
        print(
            f"Price book: {result.price_book.name} "
            f"[id={result.price_book.id}, items={len(result.price_book.items)}]"
        )
        for role, user in result.users.items():
            marker = "created" if role in result.created_users else "unchanged"
            print(f"User ({marker}): {user.name} <{user.email}> [id={user.id}, role={role}]")
        print()
        if auth0_sub:
            print(f"Linked Auth0 subject to admin: {auth0_sub}")
        else:
            print("Set AUTH0_DEMO_SUB to link an Auth0 subject to the demo admin.")


if __name__ == "__main__":
    main()
