"""Liveness, readiness and Prometheus endpoints for the billing service."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import get_session_dependency
from ..models import PriceBook

router = APIRouter(tags=["health"])
LOGGER = structlog.get_logger(__name__)


@router.get("/health/live")
def liveness() -> dict[str, str]:
    return {"status": "live"}


@router.get("/health/ready")
def readiness(session: Session = Depends(get_session_dependency)) -> dict[str, Any]:
    """Report ready once the billing schema answers a query.

    Counting active price books touches a real billing table, so a database
    that is reachable but not yet initialised reports 503.
    """

    try:
        active_books = session.scalar(
            select(func.count(PriceBook.id)).where(PriceBook.status == "active")
        )
    except SQLAlchemyError as exc:
        LOGGER.warning("readiness_check_failed", error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "Database not ready"},
        ) from exc
    return {"status": "ready", "active_price_books": int(active_books or 0)}


@router.get("/metrics")
def metrics() -> Response:
    """Expose Prometheus metrics."""

    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
