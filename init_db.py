"""Create the billing tables for the configured database."""

from app.backend.src.core.config import get_settings
from app.backend.src.db import get_engine
from app.backend.src.models import *  # noqa
from app.backend.src.models.base import Base


def init_db() -> None:
    engine = get_engine()
    print(f"🚀 Connecting to {get_settings().database_url}")
    Base.metadata.create_all(bind=engine)
    tables = ", ".join(sorted(Base.metadata.tables))
    print(f"✅ Tables ready: {tables}")


if __name__ == "__main__":
    init_db()
