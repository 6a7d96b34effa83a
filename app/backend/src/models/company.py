"""Company (contractor tenant) model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class Company(Base):
    """Represents a contractor organization; the tenant boundary."""

    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    erp_vendor_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    erp_vendor_site_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # last issued claim sequence; restarts with each calendar year
    claim_sequence_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    claim_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    users: Mapped[list["User"]] = relationship("User", back_populates="company")
    jobs: Mapped[list["Job"]] = relationship("Job", back_populates="company")
    claims: Mapped[list["Claim"]] = relationship("Claim", back_populates="company")


__all__ = ["Company"]
