"""
Authentication dependencies.

The caller's token comes from the ``Authorization: Bearer`` header or,
for browser sessions, the auth cookie. Resolving it yields an
``Identity`` (or None for anonymous callers); deciding what that
identity may do is the route guard's job.

Tokens are issued by the identity provider, not by this API, so the
scheme is a plain bearer one with no login URL.
"""

from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from assetdesk.core.config import settings
from assetdesk.core.exceptions import UnauthenticatedError
from assetdesk.core.security import decode_access_token
from assetdesk.models.user import User
from assetdesk.rbac.guard import Identity
from assetdesk.utils.context import set_user_id
from .database import get_db


bearer_scheme = HTTPBearer(auto_error=False)


def extract_token(request: Request, bearer: HTTPAuthorizationCredentials | None) -> str | None:
    if bearer and bearer.credentials:
        return bearer.credentials
    return request.cookies.get(settings.auth.cookie_name) or None


async def get_identity(
    request: Request,
    bearer: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Identity | None:
    """
    Resolve the caller, or None when no token was sent.

    Raises:
        UnauthenticatedError: token invalid, or the user is unknown or inactive
    """
    token = extract_token(request, bearer)
    if not token:
        return None

    user_id = decode_access_token(token)
    user = await db.get(User, user_id)
    if user is None:
        raise UnauthenticatedError("User not found")
    if not user.is_active:
        raise UnauthenticatedError("User is inactive")

    set_user_id(str(user.id))
    return Identity(user_id=user.id, username=user.username)


CurrentIdentity = Annotated[Identity | None, Depends(get_identity)]
