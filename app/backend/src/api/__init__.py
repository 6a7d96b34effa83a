"""Public API routers exposed by the FastAPI application."""

from . import claims, health, units

__all__ = [
    "claims",
    "health",
    "units",
]
