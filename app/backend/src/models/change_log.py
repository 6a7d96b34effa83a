"""Claim change-log model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class ClaimChangeLog(Base):
    """Append-only record of an action taken on a claim."""

    __tablename__ = "claim_change_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    claim_id: Mapped[int] = mapped_column(ForeignKey("claims.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    details: Mapped[str | None] = mapped_column(String(1024))
    previous_status: Mapped[str | None] = mapped_column(String(32))
    new_status: Mapped[str | None] = mapped_column(String(32))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    claim: Mapped["Claim"] = relationship("Claim", back_populates="change_log")


@event.listens_for(ClaimChangeLog, "before_update")
def _refuse_change_log_update(mapper, connection, target: ClaimChangeLog) -> None:  # type: ignore[no-untyped-def]
    raise ValueError("claim change log entries are append-only")


__all__ = ["ClaimChangeLog"]
