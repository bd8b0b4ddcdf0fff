"""
Route Guard.

Framework-neutral adapter between request handling and the engine.
Given the caller's identity (already extracted from the token by the
HTTP layer, or None), each check returns either an ``AuthContext`` for
the handler or a ``Rejection`` describing why the request stops.

This module is also the single place where the error taxonomy is
mapped to HTTP status codes.
"""

from dataclasses import dataclass, field
from typing import Any, Union
from uuid import UUID

import structlog

from assetdesk.core.exceptions import (
    AssetDeskError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from assetdesk.models.rbac import Role
from assetdesk.rbac.service import RBACService
from assetdesk.rbac.types import (
    EffectivePermissions,
    PermissionKey,
    PermissionTarget,
    parse_targets,
)

logger = structlog.get_logger()


STATUS_CODES: dict[type[AssetDeskError], int] = {
    UnauthenticatedError: 401,
    ForbiddenError: 403,
    NotFoundError: 404,
    ConflictError: 409,
    ValidationError: 400,
}


@dataclass(frozen=True)
class Identity:
    """Who the caller is, as established by the authentication layer."""

    user_id: UUID
    username: str


@dataclass
class AuthContext:
    """Resolved authorization context handed to route handlers."""

    user_id: UUID
    username: str
    roles: list[str]
    permissions: EffectivePermissions
    highest_role: Role | None = None

    @property
    def full_access(self) -> bool:
        return self.permissions.full_access

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": str(self.user_id),
            "username": self.username,
            "roles": self.roles,
            "highest_role": self.highest_role.name if self.highest_role else None,
            "full_access": self.full_access,
            "permissions": sorted(str(key) for key in self.permissions.keys),
        }


@dataclass
class Rejection:
    """A standardized refusal: status, machine code and human message."""

    status_code: int
    code: str
    error: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"error": self.error, "code": self.code}
        if self.details:
            data["details"] = self.details
        return data


GuardResult = Union[AuthContext, Rejection]


def rejection_for(error: AssetDeskError) -> Rejection:
    """
    Map a domain error to a rejection.

    Unauthenticated callers only ever see a generic message.
    """
    status_code = 500
    for error_type in type(error).__mro__:
        if error_type in STATUS_CODES:
            status_code = STATUS_CODES[error_type]
            break

    if isinstance(error, UnauthenticatedError):
        return Rejection(status_code, error.code, "Authentication required")
    return Rejection(status_code, error.code, error.message, dict(error.details))


def has_permission(context: AuthContext, target: PermissionTarget) -> bool:
    """
    In-handler check against an already resolved context.

    Usage:
        if not has_permission(auth, "tickets:view:ALL"):
            query = query.where(Ticket.owner_id == auth.user_id)
    """
    return context.permissions.allows(target)


class RouteGuard:
    """Permission and role gates for request handlers."""

    def __init__(self, rbac: RBACService):
        self.rbac = rbac

    async def authenticate(self, identity: Identity | None) -> GuardResult:
        """Resolve the caller's context, or reject an anonymous caller with 401."""
        if identity is None:
            return rejection_for(UnauthenticatedError("Not authenticated"))

        effective = await self.rbac.engine.resolve(identity.user_id)
        return AuthContext(
            user_id=identity.user_id,
            username=identity.username,
            roles=effective.role_names,
            permissions=effective,
            highest_role=effective.highest_role,
        )

    def _forbid(self, context: AuthContext, code: str, message: str, **details: Any) -> Rejection:
        logger.info(
            "Authorization denied",
            user_id=str(context.user_id),
            code=code,
            **details,
        )
        return Rejection(403, code, message, details)

    async def require_all(
        self,
        identity: Identity | None,
        *targets: PermissionTarget,
    ) -> GuardResult:
        """Allow only if every target permission is held."""
        keys = parse_targets(targets)
        outcome = await self.authenticate(identity)
        if isinstance(outcome, Rejection):
            return outcome

        missing: list[PermissionKey] = []
        for key in keys:
            if not outcome.permissions.allows(key):
                missing.append(key)
                break
        if missing:
            return self._forbid(
                outcome,
                "INSUFFICIENT_PERMISSIONS",
                "Insufficient permissions",
                required=[str(key) for key in keys],
                missing=[str(key) for key in missing],
            )
        return outcome

    async def require_any(
        self,
        identity: Identity | None,
        *targets: PermissionTarget,
    ) -> GuardResult:
        """Allow if at least one target permission is held (deny for no targets)."""
        keys = parse_targets(targets)
        outcome = await self.authenticate(identity)
        if isinstance(outcome, Rejection):
            return outcome

        if not any(outcome.permissions.allows(key) for key in keys):
            return self._forbid(
                outcome,
                "PERMISSION_REQUIRED",
                "One of the listed permissions is required",
                required=[str(key) for key in keys],
            )
        return outcome

    async def require_role(
        self,
        identity: Identity | None,
        *role_names: str,
    ) -> GuardResult:
        """Allow if the caller currently holds one of the named roles."""
        outcome = await self.authenticate(identity)
        if isinstance(outcome, Rejection):
            return outcome

        wanted = list(role_names)
        if wanted and not set(wanted) & set(outcome.roles):
            return self._forbid(
                outcome,
                "ROLE_REQUIRED",
                "Required role missing",
                required=wanted,
            )
        return outcome

