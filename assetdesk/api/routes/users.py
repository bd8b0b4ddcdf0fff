"""
User role assignment, override and effective permission routes.
"""

from uuid import UUID
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from assetdesk.api.dependencies.database import get_db
from assetdesk.api.dependencies.permissions import CurrentAuth, require_all_permissions
from assetdesk.api.dependencies.services import RBAC
from assetdesk.core.exceptions import ForbiddenError, NotFoundError
from assetdesk.models.rbac import Role, UserRoleAssignment
from assetdesk.models.user import User
from assetdesk.rbac.guard import AuthContext, has_permission
from assetdesk.schemas.rbac import (
    EffectivePermissionsResponse,
    OverrideResponse,
    OverrideSet,
    PermissionResponse,
    RoleAssign,
    RoleResponse,
    UserRoleResponse,
)

router = APIRouter()


def _assignment_response(assignment: UserRoleAssignment, role: Role) -> UserRoleResponse:
    return UserRoleResponse(
        assignment_id=assignment.id,
        role=RoleResponse.model_validate(role),
        is_primary=assignment.is_primary,
        assigned_by=assignment.assigned_by,
        reason=assignment.reason,
        expires_at=assignment.expires_at,
        assigned_at=assignment.created_at,
    )


async def _get_user(db: AsyncSession, user_id: UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found", details={"user_id": str(user_id)})
    return user


def _require_self_or(auth: AuthContext, user_id: UUID, *targets: str) -> None:
    if auth.user_id == user_id:
        return
    if not any(has_permission(auth, target) for target in targets):
        raise ForbiddenError(
            "Insufficient permissions",
            code="PERMISSION_REQUIRED",
            details={"required": list(targets)},
        )


# ============================================================
# ROLES
# ============================================================

@router.get("/{user_id}/roles", response_model=list[UserRoleResponse])
async def get_user_roles(user_id: UUID, rbac: RBAC, auth: CurrentAuth):
    """Current roles of a user, highest first."""
    _require_self_or(auth, user_id, "roles:view")
    held = await rbac.assignments.get_user_roles(user_id)
    return [_assignment_response(active.assignment, active.role) for active in held]


@router.post("/{user_id}/roles", response_model=UserRoleResponse, status_code=status.HTTP_201_CREATED)
async def assign_role(
    user_id: UUID,
    data: RoleAssign,
    rbac: RBAC,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_all_permissions("roles:assign")),
):
    """Give a role to a user."""
    await _get_user(db, user_id)
    assignment = await rbac.assignments.assign_role(
        user_id,
        data.role_id,
        assigned_by=auth.user_id,
        expires_at=data.expires_at,
        reason=data.reason,
        is_primary=data.is_primary,
    )
    role = await rbac.roles.get_role(data.role_id)
    return _assignment_response(assignment, role)


@router.delete("/{user_id}/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_role(
    user_id: UUID,
    role_id: UUID,
    rbac: RBAC,
    auth: AuthContext = Depends(require_all_permissions("roles:assign")),
):
    """Take a role away from a user."""
    await rbac.assignments.remove_role(user_id, role_id, actor_id=auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{user_id}/roles/{role_id}/primary", response_model=UserRoleResponse)
async def set_primary_role(
    user_id: UUID,
    role_id: UUID,
    rbac: RBAC,
    auth: AuthContext = Depends(require_all_permissions("roles:assign")),
):
    """Mark one of the user's roles as primary."""
    assignment = await rbac.assignments.set_primary(user_id, role_id, actor_id=auth.user_id)
    role = await rbac.roles.get_role(role_id)
    return _assignment_response(assignment, role)


# ============================================================
# PERMISSIONS
# ============================================================

@router.get("/{user_id}/permissions", response_model=EffectivePermissionsResponse)
async def get_effective_permissions(user_id: UUID, rbac: RBAC, auth: CurrentAuth):
    """Everything a user may do right now."""
    _require_self_or(auth, user_id, "permissions:view", "users:view")
    effective = await rbac.engine.resolve(user_id)
    highest = effective.highest_role
    return EffectivePermissionsResponse(
        user_id=user_id,
        roles=effective.role_names,
        highest_role=highest.name if highest else None,
        full_access=effective.full_access,
        permissions=sorted(str(key) for key in effective.keys),
    )


@router.get("/{user_id}/overrides", response_model=list[OverrideResponse])
async def list_overrides(
    user_id: UUID,
    rbac: RBAC,
    _: AuthContext = Depends(require_all_permissions("permissions:view")),
):
    """Active per-user permission overrides."""
    details = await rbac.overrides.get_override_details(user_id)
    return [
        OverrideResponse(
            id=override.id,
            permission=PermissionResponse.model_validate(permission),
            granted=override.granted,
            reason=override.reason,
            granted_by=override.granted_by,
            expires_at=override.expires_at,
        )
        for override, permission in details
    ]


@router.put("/{user_id}/overrides/{permission_id}", response_model=OverrideResponse)
async def set_override(
    user_id: UUID,
    permission_id: UUID,
    data: OverrideSet,
    rbac: RBAC,
    db: AsyncSession = Depends(get_db),
    auth: AuthContext = Depends(require_all_permissions("permissions:grant")),
):
    """Grant or revoke one permission for one user."""
    await _get_user(db, user_id)
    override = await rbac.overrides.set_override(
        user_id,
        permission_id,
        data.granted,
        granted_by=auth.user_id,
        reason=data.reason,
        expires_at=data.expires_at,
    )
    permission = await rbac.catalog.get_permission(permission_id)
    return OverrideResponse(
        id=override.id,
        permission=PermissionResponse.model_validate(permission),
        granted=override.granted,
        reason=override.reason,
        granted_by=override.granted_by,
        expires_at=override.expires_at,
    )


@router.delete("/{user_id}/overrides/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def clear_override(
    user_id: UUID,
    permission_id: UUID,
    rbac: RBAC,
    auth: AuthContext = Depends(require_all_permissions("permissions:grant")),
):
    """Remove a user's override so role grants apply again."""
    await rbac.overrides.clear_override(user_id, permission_id, actor_id=auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
