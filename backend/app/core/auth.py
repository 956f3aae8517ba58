"""
Claimant identity
=================
The hosted auth service issues HS256 JWTs; this module only verifies them
and turns the claims into a CurrentUser. Sign-in, OTP confirmation and
session refresh stay with the auth service.

Claims used:
  sub   - claimant id (organizations.user_id)
  email - shown on the dashboard
  aud   - must equal settings.JWT_AUDIENCE ("authenticated")
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.config import settings

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str | None = None
    role: str | None = None


# ── JWT issue (local development / tests) ──────────────────────

def create_access_token(
    user_id: str,
    email: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(UTC)
    payload: dict[str, Any] = {
        "sub": user_id,
        "aud": settings.JWT_AUDIENCE,
        "role": "authenticated",
        "iat": now,
        "exp": now + (expires_delta or timedelta(hours=1)),
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


# ── JWT verification ───────────────────────────────────────────

def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _decode_token(token: str) -> dict[str, Any]:
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
    except JWTError as err:
        raise _unauthorized("Invalid or expired session token.") from err


# ── FastAPI dependencies ───────────────────────────────────────

async def get_current_user_optional(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> CurrentUser | None:
    """The signed-in claimant, or None when no bearer token was sent."""
    if credentials is None:
        return None
    if credentials.scheme.lower() != "bearer":
        raise _unauthorized("Use 'Authorization: Bearer <token>'.")
    payload = _decode_token(credentials.credentials)
    subject = payload.get("sub")
    if not subject:
        raise _unauthorized("Token has no subject.")
    return CurrentUser(id=str(subject), email=payload.get("email"), role=payload.get("role"))


async def get_current_user(
    user: CurrentUser | None = Depends(get_current_user_optional),
) -> CurrentUser:
    """The signed-in claimant; 401 otherwise."""
    if user is None:
        raise _unauthorized("Authentication required.")
    return user
