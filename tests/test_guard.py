"""
Tests for the route guard and the error-to-status mapping.
"""

from uuid import uuid4

import pytest

from assetdesk.core.exceptions import (
    AssetDeskError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from assetdesk.rbac.guard import AuthContext, Identity, Rejection, RouteGuard, has_permission, rejection_for


@pytest.fixture
def guard(rbac) -> RouteGuard:
    return RouteGuard(rbac)


async def _identity(factory, *roles) -> Identity:
    user_id = await factory.holder(*roles)
    return Identity(user_id=user_id, username="jdoe")


@pytest.mark.asyncio
async def test_anonymous_caller_is_rejected_with_401(guard):
    result = await guard.require_all(None, "tickets:view")

    assert isinstance(result, Rejection)
    assert result.status_code == 401
    assert result.code == "UNAUTHENTICATED"
    assert result.to_dict() == {"error": "Authentication required", "code": "UNAUTHENTICATED"}


@pytest.mark.asyncio
async def test_authenticate_resolves_context(guard, factory):
    support = await factory.role("SUPPORT", 60, permissions=["tickets:view"])
    identity = await _identity(factory, support)

    context = await guard.authenticate(identity)

    assert isinstance(context, AuthContext)
    assert context.username == "jdoe"
    assert context.roles == ["SUPPORT"]
    assert context.highest_role.name == "SUPPORT"
    assert not context.full_access
    assert context.to_dict()["permissions"] == ["tickets:view:ALL"]


@pytest.mark.asyncio
async def test_authenticated_user_without_roles_gets_empty_context(guard):
    context = await guard.authenticate(Identity(user_id=uuid4(), username="nobody"))

    assert isinstance(context, AuthContext)
    assert context.roles == []
    assert context.highest_role is None


@pytest.mark.asyncio
async def test_require_all(guard, factory):
    support = await factory.role("SUPPORT", 60, permissions=["tickets:view", "tickets:edit"])
    identity = await _identity(factory, support)

    allowed = await guard.require_all(identity, "tickets:view", "tickets:edit")
    denied = await guard.require_all(identity, "tickets:view", "tickets:delete", "roles:edit")

    assert isinstance(allowed, AuthContext)
    assert isinstance(denied, Rejection)
    assert denied.status_code == 403
    assert denied.code == "INSUFFICIENT_PERMISSIONS"
    assert denied.details["required"] == ["tickets:view", "tickets:delete", "roles:edit"]
    assert denied.details["missing"] == ["tickets:delete"]


@pytest.mark.asyncio
async def test_require_any(guard, factory):
    support = await factory.role("SUPPORT", 60, permissions=["tickets:view"])
    identity = await _identity(factory, support)

    allowed = await guard.require_any(identity, "roles:edit", "tickets:view")
    denied = await guard.require_any(identity, "roles:edit", "users:view")

    assert isinstance(allowed, AuthContext)
    assert isinstance(denied, Rejection)
    assert denied.status_code == 403
    assert denied.code == "PERMISSION_REQUIRED"


@pytest.mark.asyncio
async def test_require_any_without_targets_agrees_with_engine(guard, factory, rbac):
    support = await factory.role("SUPPORT", 60, permissions=["tickets:view"])
    identity = await _identity(factory, support)

    denied = await guard.require_any(identity)

    assert isinstance(denied, Rejection)
    assert denied.code == "PERMISSION_REQUIRED"
    assert not await rbac.engine.has_any_permission(identity.user_id)
    assert isinstance(await guard.require_all(identity), AuthContext)
    assert await rbac.engine.has_all_permissions(identity.user_id)


@pytest.mark.asyncio
async def test_require_role(guard, factory):
    support = await factory.role("SUPPORT", 60)
    identity = await _identity(factory, support)

    assert isinstance(await guard.require_role(identity, "ADMIN", "SUPPORT"), AuthContext)

    denied = await guard.require_role(identity, "ADMIN")
    assert isinstance(denied, Rejection)
    assert denied.status_code == 403
    assert denied.code == "ROLE_REQUIRED"
    assert denied.details == {"required": ["ADMIN"]}


@pytest.mark.asyncio
async def test_guard_targets_are_validated(guard):
    with pytest.raises(ValidationError):
        await guard.require_all(None, "not-a-permission")


@pytest.mark.asyncio
async def test_has_permission_on_resolved_context(guard, factory):
    user_role = await factory.role("USER", 50, permissions=["tickets:view:OWN"])
    identity = await _identity(factory, user_role)
    context = await guard.authenticate(identity)

    assert has_permission(context, "tickets:view:OWN")
    assert not has_permission(context, "tickets:view:ALL")


@pytest.mark.parametrize(
    "error, status_code, code",
    [
        (UnauthenticatedError("token expired"), 401, "UNAUTHENTICATED"),
        (ForbiddenError("no", code="ROLE_HIERARCHY"), 403, "ROLE_HIERARCHY"),
        (NotFoundError("Role not found"), 404, "NOT_FOUND"),
        (ConflictError("taken", code="ROLE_IN_USE"), 409, "ROLE_IN_USE"),
        (ValidationError("bad"), 400, "VALIDATION_ERROR"),
        (AssetDeskError("boom"), 500, "ERROR"),
    ],
)
def test_rejection_for_maps_error_taxonomy(error, status_code, code):
    rejection = rejection_for(error)

    assert rejection.status_code == status_code
    assert rejection.code == code


def test_unauthenticated_rejection_hides_details():
    rejection = rejection_for(UnauthenticatedError("signature mismatch", details={"token": "abc"}))

    assert rejection.error == "Authentication required"
    assert rejection.details == {}


def test_forbidden_rejection_keeps_details():
    rejection = rejection_for(ForbiddenError("Cannot manage", details={"role": "ADMIN"}))

    assert rejection.to_dict() == {"error": "Cannot manage", "code": "FORBIDDEN", "details": {"role": "ADMIN"}}
