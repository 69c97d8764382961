from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from jwt import ExpiredSignatureError
from jwt import InvalidTokenError as PyJWTInvalidTokenError

from app.core.config import settings

ALGORITHM = "HS256"


class TokenValidationError(Exception):
    """Raised when a token cannot be validated."""


class TokenExpiredError(TokenValidationError):
    """Raised when a token is expired."""


def create_access_token(subject: str, expires_minutes: int = 60 * 24) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
        "type": "access",
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGORITHM)


def decode_token(token: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpiredError("Token has expired") from exc
    except PyJWTInvalidTokenError as exc:
        raise TokenValidationError("Token is invalid") from exc
    if payload.get("type", "access") != "access":
        raise TokenValidationError("Token type mismatch")
    if not payload.get("sub"):
        raise TokenValidationError("Token has no subject")
    return payload


def verify_admin_credentials(username: str, password: str) -> bool:
    """Constant-time check of the configured admin basic-auth pair."""
    user_ok = secrets.compare_digest(username.encode(), settings.ADMIN_USERNAME.encode())
    password_ok = secrets.compare_digest(password.encode(), settings.ADMIN_PASSWORD.encode())
    return user_ok and password_ok
