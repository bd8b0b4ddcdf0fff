"""
Session token helpers.

Tokens are issued by the login flow (outside this service) and carry
the user id in ``sub``. This module signs and verifies them with the
shared secret.
"""

from datetime import timedelta
from typing import Any
from uuid import UUID

from jose import JWTError, jwt

from assetdesk.core.config import settings
from assetdesk.core.exceptions import UnauthenticatedError
from assetdesk.utils.timezone import utc_now


def create_access_token(user_id: UUID, username: str | None = None, expires_minutes: int | None = None) -> str:
    """Create JWT access token."""
    expire = utc_now() + timedelta(
        minutes=expires_minutes or settings.auth.access_token_expire_minutes
    )
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "exp": expire,
        "type": "access",
    }
    if username:
        payload["username"] = username
    return jwt.encode(
        payload,
        settings.auth.secret_key,
        algorithm=settings.auth.algorithm,
    )


def decode_access_token(token: str) -> UUID:
    """
    Verify a token and return its subject.

    Raises:
        UnauthenticatedError: bad signature, expired, or no usable subject
    """
    try:
        payload = jwt.decode(
            token,
            settings.auth.secret_key,
            algorithms=[settings.auth.algorithm],
        )
    except JWTError as exc:
        raise UnauthenticatedError("Invalid token") from exc

    if payload.get("type", "access") != "access":
        raise UnauthenticatedError("Invalid token type")

    try:
        return UUID(str(payload.get("sub")))
    except ValueError as exc:
        raise UnauthenticatedError("Invalid token subject") from exc
