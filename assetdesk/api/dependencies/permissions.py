"""
Permission checking dependencies.

Factories parse their permission strings once, when the route module
is imported, so a typo fails at startup rather than on first request.

Usage:
    @router.delete("/{role_id}")
    async def delete_role(
        role_id: UUID,
        auth: AuthContext = Depends(require_all_permissions("roles:delete")),
    ):
        ...
"""

from typing import Annotated, Callable

from fastapi import Depends

from assetdesk.api.errors import GuardRejected
from assetdesk.rbac.guard import AuthContext, GuardResult, Rejection, RouteGuard
from assetdesk.rbac.types import parse_targets
from .auth import CurrentIdentity
from .services import get_route_guard


def _unwrap(outcome: GuardResult) -> AuthContext:
    if isinstance(outcome, Rejection):
        raise GuardRejected(outcome)
    return outcome


def require_all_permissions(*targets: str) -> Callable:
    """Dependency factory: every listed permission is required."""
    keys = parse_targets(targets)

    async def check_permissions(
        identity: CurrentIdentity,
        guard: RouteGuard = Depends(get_route_guard),
    ) -> AuthContext:
        return _unwrap(await guard.require_all(identity, *keys))

    return check_permissions


def require_any_permission(*targets: str) -> Callable:
    """Dependency factory: at least one listed permission is required."""
    keys = parse_targets(targets)

    async def check_permissions(
        identity: CurrentIdentity,
        guard: RouteGuard = Depends(get_route_guard),
    ) -> AuthContext:
        return _unwrap(await guard.require_any(identity, *keys))

    return check_permissions


def require_role(*role_names: str) -> Callable:
    """Dependency factory: one of the listed roles is required."""
    names = [name.upper() for name in role_names]

    async def check_role(
        identity: CurrentIdentity,
        guard: RouteGuard = Depends(get_route_guard),
    ) -> AuthContext:
        return _unwrap(await guard.require_role(identity, *names))

    return check_role


async def get_auth_context(
    identity: CurrentIdentity,
    guard: RouteGuard = Depends(get_route_guard),
) -> AuthContext:
    """Authenticated caller with no specific permission required."""
    return _unwrap(await guard.authenticate(identity))


CurrentAuth = Annotated[AuthContext, Depends(get_auth_context)]
