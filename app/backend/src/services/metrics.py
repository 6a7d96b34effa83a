"""Prometheus metric definitions for unit-price billing."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

unit_transitions_total = Counter(
    "unit_transitions_total",
    "Unit entry lifecycle transitions by action.",
    labelnames=["action"],
)

claims_created_total = Counter(
    "claims_created_total",
    "Claims created from approved unit entries.",
)

claim_eligibility_conflicts_total = Counter(
    "claim_eligibility_conflicts_total",
    "Claim creations refused because requested units were not eligible.",
    labelnames=["stage"],
)

claim_payments_total = Counter(
    "claim_payments_total",
    "Payments recorded against claims.",
    labelnames=["outcome"],
)

claim_exports_total = Counter(
    "claim_exports_total",
    "ERP exports generated by format.",
    labelnames=["format"],
)

claim_creation_seconds = Histogram(
    "claim_creation_seconds",
    "Time spent aggregating units into a claim.",
)

__all__ = [
    "claim_creation_seconds",
    "claim_eligibility_conflicts_total",
    "claim_exports_total",
    "claim_payments_total",
    "claims_created_total",
    "unit_transitions_total",
]
