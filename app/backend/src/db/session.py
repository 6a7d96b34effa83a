"""Engine and session factory for the billing database."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import sessionmaker

from app.backend.src.core.config import Settings, get_settings

LOGGER = structlog.get_logger(__name__)
PROJECT_ROOT = Path(__file__).resolve().parents[4]


def resolve_database_url(raw_url: str) -> URL:
    """Anchor relative SQLite paths at the project root.

    Seed scripts, the API and the test-suite run from different working
    directories; without this they would each open a different file.
    """

    url = make_url(raw_url)
    if not url.drivername.startswith("sqlite"):
        return url

    database = url.database or ""
    if database in {"", ":memory:"}:
        return url

    db_path = Path(database)
    resolved = (db_path if db_path.is_absolute() else PROJECT_ROOT / db_path).resolve()
    if resolved != db_path:
        LOGGER.debug("database_path_resolved", original=str(db_path), resolved=str(resolved))
    return url.set(database=str(resolved))


def build_engine(settings: Settings) -> Engine:
    url = resolve_database_url(settings.database_url)
    connect_args: dict[str, Any] = {}
    if url.drivername.startswith("sqlite"):
        # request threads share the pool; concurrent claim creation waits on the file lock
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = settings.sqlite_busy_timeout_ms / 1000

    built = create_engine(url, pool_pre_ping=True, future=True, connect_args=connect_args)

    if url.drivername.startswith("sqlite"):

        @event.listens_for(built, "connect")
        def _set_busy_timeout(dbapi_connection, _record) -> None:  # type: ignore[no-untyped-def]
            cursor = dbapi_connection.cursor()
            cursor.execute(f"PRAGMA busy_timeout = {int(settings.sqlite_busy_timeout_ms)}")
            cursor.close()

    LOGGER.info(
        "database_engine_initialized",
        url=url.render_as_string(hide_password=True),
        dialect=built.dialect.name,
    )
    return built


engine = build_engine(get_settings())
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)

__all__ = ["SessionLocal", "build_engine", "engine", "resolve_database_url"]
