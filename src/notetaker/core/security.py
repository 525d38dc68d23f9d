"""Caller identity for the HTTP API and shared-secret checks for vendor webhooks.

Access tokens are HS256 JWTs issued by the calendar/auth frontend. The
``sub`` claim is the user id that owns events, bot settings, social
connections and automations. Webhooks carry no JWT; a vendor proves itself
by echoing a per-vendor shared token in a header.
"""

from __future__ import annotations

import hmac
from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, Request, status
from jose import JWTError, jwt

from src.notetaker.config import get_settings

_UNAUTHORIZED = "Could not validate credentials"


def _unauthorized(detail: str = _UNAUTHORIZED) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# ── Access Tokens ────────────────────────────────────────────────────────────


def create_access_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """Issue an access token for ``user_id`` (used by tests and the tick script)."""
    settings = get_settings()
    issued = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {"sub": user_id, "iat": issued, "exp": issued + lifetime, "type": "access"}
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def bearer_token(request: Request) -> str | None:
    """Return the raw token from ``Authorization: Bearer <token>``, if any."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token


def user_id_from_token(token: str) -> str:
    """Validate an access token and return its owner.

    Raises:
        HTTPException(401): Bad signature, expired, not an access token,
            or no ``sub`` claim.
    """
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise _unauthorized()
    if claims.get("type") != "access" or not claims.get("sub"):
        raise _unauthorized()
    return str(claims["sub"])


# ── Webhook Shared Tokens ────────────────────────────────────────────────────


def webhook_token_matches(expected: str, presented: str | None) -> bool:
    """Constant-time check of a vendor's webhook token.

    An empty ``expected`` means verification is disabled for that vendor.
    """
    if not expected:
        return True
    return hmac.compare_digest(expected.encode(), (presented or "").encode())
