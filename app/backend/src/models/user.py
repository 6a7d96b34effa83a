"""User model."""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

ROLES: tuple[str, ...] = ("foreman", "gf", "qa", "pm", "admin")


class User(Base):
    """Represents an application user scoped to one company."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "(role IS NULL) OR (role IN ('foreman','gf','qa','pm','admin'))",
            name="ck_users_role_valid",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_approved: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )
    company_id: Mapped[int | None] = mapped_column(
        ForeignKey("companies.id"), nullable=True, index=True
    )
    auth0_sub: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True, index=True
    )
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    company: Mapped["Company | None"] = relationship("Company", back_populates="users")

    @property
    def is_admin(self) -> bool:
        """Return ``True`` for administrators."""

        return (self.role or "").lower() == "admin"

    @property
    def company_name(self) -> str | None:
        """Return the associated company's name, if available."""

        return self.company.name if self.company else None


__all__ = ["ROLES", "User"]
