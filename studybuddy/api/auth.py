"""
Bearer token authentication.

Tokens are HS256 JWTs whose ``sub`` claim is the learner id. Roles are not
carried in the token; staff checks read the user_roles table.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from loguru import logger
from pydantic import BaseModel

from config import Settings, get_settings
from studybuddy.core.errors import AuthError

bearer_scheme = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    """Authenticated caller."""

    user_id: str


def create_access_token(
    user_id: str,
    expires_delta: timedelta | None = None,
    settings: Settings | None = None,
    extra_claims: dict[str, Any] | None = None,
) -> str:
    """Mint a signed token for ``user_id``."""
    settings = settings or get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    claims = {**(extra_claims or {}), "sub": user_id, "exp": expire}
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings | None = None) -> str:
    """
    Verify a token and return its subject.

    Raises:
        AuthError: Token invalid, expired or missing a subject
    """
    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.warning("Rejected bearer token: {}", e)
        raise AuthError() from e

    subject = payload.get("sub")
    if not isinstance(subject, str) or not subject:
        raise AuthError()
    return subject


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> CurrentUser:
    """FastAPI dependency resolving the caller from the Authorization header."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthError()
    return CurrentUser(user_id=decode_access_token(credentials.credentials))
