"""Session helpers shared by the API, the services and the seed scripts.

Billing services commit their own work, so request sessions only need to be
rolled back on failure and closed afterwards. :func:`session_scope` adds a
trailing commit for scripts and fixtures that write outside the services.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from ..models.base import Base
from .session import SessionLocal, engine as _engine

LOGGER = structlog.get_logger(__name__)


@contextmanager
def get_session() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
    except Exception as exc:
        if session.in_transaction():
            LOGGER.debug("session_rolled_back", error_type=type(exc).__name__)
        session.rollback()
        raise
    finally:
        session.close()


def get_session_dependency() -> Iterator[Session]:
    """FastAPI dependency yielding a request-scoped session."""

    with get_session() as session:
        yield session


def get_engine() -> Engine:
    return _engine


@contextmanager
def session_scope() -> Iterator[Session]:
    """Yield a session and commit whatever is still pending on exit."""

    with get_session() as session:
        yield session
        session.commit()


__all__ = [
    "Base",
    "get_engine",
    "get_session",
    "get_session_dependency",
    "session_scope",
]
