"""Unit tests for Auth0 user resolution and role enforcement."""

from __future__ import annotations

import os
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[4]))

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_fieldbill.db")

import pytest
from fastapi import HTTPException

from app.backend.src.core.security import (
    enforce_roles,
    normalize_audiences,
    require_role,
    resolve_user,
    split_audiences,
)
from app.backend.src.db import get_engine, session_scope
from app.backend.src.models import Company, User
from app.backend.src.models.base import Base


@pytest.fixture(autouse=True)
def setup_database() -> None:  # type: ignore[no-untyped-def]
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def provisioned_user() -> int:
    with session_scope() as session:
        company = Company(name="Sierra Line Services")
        session.add(company)
        session.flush()
        user = User(
            email="pm@sierraline.example",
            name="Pat",
            role="pm",
            company_id=company.id,
            is_approved=True,
        )
        session.add(user)
        session.flush()
        user_id = user.id
    return user_id


def test_audience_helpers() -> None:
    assert split_audiences("https://api.fieldbill, https://api.fieldbill other") == [
        "https://api.fieldbill",
        "other",
    ]
    assert split_audiences(None) == []
    assert normalize_audiences(["https://api.fieldbill/"]) == {
        "https://api.fieldbill",
        "https://api.fieldbill/",
    }


def test_resolve_user_links_subject_by_email(provisioned_user: int) -> None:
    with session_scope() as session:
        user = resolve_user(session, {"sub": "auth0|abc", "email": "pm@sierraline.example"})
        assert user.id == provisioned_user
        assert user.auth0_sub == "auth0|abc"

        again = resolve_user(session, {"sub": "auth0|abc"})
        assert again.id == provisioned_user


def test_resolve_user_refuses_unknown_callers(provisioned_user: int) -> None:
    with session_scope() as session:
        with pytest.raises(HTTPException) as exc:
            resolve_user(session, {"sub": "auth0|stranger", "email": "stranger@example.com"})
        assert exc.value.status_code == 403

        with pytest.raises(HTTPException) as missing:
            resolve_user(session, {"email": "pm@sierraline.example"})
        assert missing.value.status_code == 401


def test_enforce_roles() -> None:
    pm = User(email="pm@example.com", name="PM", role="pm", company_id=1)
    admin = User(email="admin@example.com", name="Admin", role="admin", company_id=1)
    unassigned = User(email="new@example.com", name="New", company_id=1)

    assert enforce_roles(pm, {"pm"}) is pm
    assert enforce_roles(admin, {"pm"}) is admin
    with pytest.raises(HTTPException) as exc:
        enforce_roles(admin, {"pm"}, allow_admin=False)
    assert exc.value.status_code == 403
    with pytest.raises(HTTPException):
        enforce_roles(unassigned, {"pm"})

    dependency = require_role({"PM"})
    assert dependency(pm) is pm
