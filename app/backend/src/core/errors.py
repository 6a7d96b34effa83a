"""Error taxonomy for billing operations.

Every failure a caller can correct is raised as an :class:`HTTPException`
subclass carrying a structured ``detail`` payload of the form
``{"error": <message>, **extra}``. Services raise these before any state is
touched, so FastAPI can render them directly.
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, status


class BillingError(HTTPException):
    """Base class for structured billing refusals."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **extra: Any) -> None:
        detail: dict[str, Any] = {"error": message}
        detail.update(extra)
        super().__init__(status_code=self.status_code, detail=detail)
        self.message = message
        self.extra = extra


class ValidationFailed(BillingError):
    """Malformed or missing input."""


class TransitionRefused(BillingError):
    """Valid input applied to an entity in the wrong state."""


class EligibilityConflict(BillingError):
    """A batch operation where some members fail a cross-cutting rule."""

    def __init__(self, message: str, *, partition: dict[str, list[int]], **extra: Any) -> None:
        super().__init__(message, details=partition, **extra)
        self.partition = partition


class NotFound(BillingError):
    """Tenant-scoped lookup miss."""

    status_code = status.HTTP_404_NOT_FOUND


class Forbidden(BillingError):
    """Caller lacks the role required for an operation."""

    status_code = status.HTTP_403_FORBIDDEN


__all__ = [
    "BillingError",
    "EligibilityConflict",
    "Forbidden",
    "NotFound",
    "TransitionRefused",
    "ValidationFailed",
]
