"""Security helpers for Auth0 integration."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Iterable

import httpx
import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.backend.src.core.config import get_settings
from app.backend.src.db import get_session_dependency
from app.backend.src.models import User

ALGORITHMS = ["RS256"]
EMAIL_CLAIMS = ("email", "https://fieldbill/email")
_scheme = HTTPBearer(auto_error=False)

LOGGER = structlog.get_logger(__name__)


# -------------------------------------------------------
# JWKS + Token Utilities
# -------------------------------------------------------

@lru_cache()
def _fetch_jwks(domain: str) -> dict[str, Any]:
    """Fetch (and cache) the JWKS for the given Auth0 domain."""
    jwks_url = f"https://{domain}/.well-known/jwks.json"
    try:
        with httpx.Client(timeout=5.0) as client:
            response = client.get(jwks_url)
            response.raise_for_status()
            return response.json()
    except httpx.HTTPError as exc:
        LOGGER.error("jwks_fetch_failed", domain=domain, error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Unable to retrieve JWKS",
        ) from exc


def _get_rsa_key(token: str, domain: str) -> dict[str, str] | None:
    """Return the RSA key that matches the token header."""
    try:
        unverified_header = jwt.get_unverified_header(token)
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header",
        ) from exc

    if "kid" not in unverified_header:
        return None

    for key in _fetch_jwks(domain).get("keys", []):
        if key.get("kid") == unverified_header["kid"]:
            return {
                "kty": key.get("kty"),
                "kid": key.get("kid"),
                "use": key.get("use"),
                "n": key.get("n"),
                "e": key.get("e"),
            }
    return None


def normalize_audiences(values: Iterable[str]) -> set[str]:
    """Return audience strings with and without a trailing slash."""
    normalized: set[str] = set()
    for value in values:
        trimmed = value.strip().rstrip("/")
        if trimmed:
            normalized.update({trimmed, f"{trimmed}/"})
    return normalized


def split_audiences(raw_value: str | None) -> list[str]:
    """Split a comma or whitespace separated audience setting."""
    if not raw_value:
        return []
    values: list[str] = []
    for part in raw_value.replace(",", " ").split():
        if part not in values:
            values.append(part)
    return values


def _decode_token(token: str, *, domain: str, audiences: list[str]) -> dict[str, Any]:
    """Decode and validate an Auth0 access token."""
    rsa_key = _get_rsa_key(token, domain)
    if not rsa_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unable to validate token",
        )

    try:
        payload = jwt.decode(
            token,
            rsa_key,
            algorithms=ALGORITHMS,
            issuer=f"https://{domain}/",
            options={"verify_aud": False},
        )
    except JWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        ) from exc

    claim = payload.get("aud")
    token_audiences = [claim] if isinstance(claim, str) else list(claim or [])
    if not normalize_audiences(a for a in token_audiences if isinstance(a, str)) & normalize_audiences(
        audiences
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token audience",
        )
    return payload


# -------------------------------------------------------
# User Resolution
# -------------------------------------------------------

def resolve_user(session: Session, payload: dict[str, Any]) -> User:
    """Map a verified Auth0 payload to a provisioned application user.

    Users are provisioned by an administrator with a company and a role; a
    token whose subject is unknown is linked by email the first time it is
    seen. Unknown callers are refused rather than created.
    """
    subject = payload.get("sub")
    if not subject:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing subject",
        )

    user = session.query(User).filter(User.auth0_sub == subject).one_or_none()
    if user:
        return user

    email = next((payload[key] for key in EMAIL_CLAIMS if payload.get(key)), None)
    user = session.query(User).filter(User.email == email).one_or_none() if email else None
    if user is None:
        LOGGER.warning("auth_user_not_provisioned", subject=subject)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User record not found",
        )

    user.auth0_sub = subject
    session.add(user)
    session.commit()
    LOGGER.info("auth_subject_linked", user_id=user.id)
    return user


# -------------------------------------------------------
# Current User + Role Enforcement
# -------------------------------------------------------

def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_scheme),
    session: Session = Depends(get_session_dependency),
) -> User:
    """Resolve the authenticated user from the Auth0 bearer token."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
        )

    settings = get_settings()
    audiences = split_audiences(settings.auth0_audience)
    if not settings.auth0_domain or not audiences:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Auth0 configuration is incomplete",
        )

    payload = _decode_token(
        credentials.credentials,
        domain=settings.auth0_domain,
        audiences=audiences,
    )
    user = resolve_user(session, payload)

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )
    if not user.is_approved and not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account pending approval",
        )
    return user


def enforce_roles(user: User, allowed_roles: set[str], *, allow_admin: bool = True) -> User:
    """Ensure the authenticated user has one of the allowed roles."""
    role = (user.role or "").lower()
    if not role:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User role not assigned",
        )
    if role in {value.lower() for value in allowed_roles}:
        return user
    if allow_admin and role == "admin":
        return user
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="Insufficient permissions",
    )


def require_company_user(user: User = Depends(get_current_user)) -> User:
    """Dependency ensuring the caller belongs to a company."""
    if not user.company_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "User not associated with a company"},
        )
    return user


def require_role(
    roles: Iterable[str],
    *,
    allow_admin: bool = True,
):
    """Return a dependency that enforces one of the provided roles."""
    normalized_roles = {value.lower() for value in roles}

    def dependency(user: User = Depends(require_company_user)) -> User:
        return enforce_roles(user, normalized_roles, allow_admin=allow_admin)

    return dependency


__all__ = [
    "enforce_roles",
    "get_current_user",
    "normalize_audiences",
    "require_company_user",
    "require_role",
    "resolve_user",
    "split_audiences",
]
