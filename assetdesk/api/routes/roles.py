"""
Role management routes.

Each mutation is gated twice: the route requires the generic
``roles:<action>`` permission, and the service then refuses roles (or
levels) that are not strictly below the caller's highest role.
"""

from uuid import UUID
from fastapi import APIRouter, Depends, Query, Response, status

from assetdesk.api.dependencies.permissions import require_all_permissions
from assetdesk.api.dependencies.services import RBAC
from assetdesk.models.rbac import Role
from assetdesk.rbac.guard import AuthContext
from assetdesk.rbac.service import RBACService
from assetdesk.schemas.rbac import (
    PermissionResponse,
    RoleClone,
    RoleCreate,
    RoleDetailResponse,
    RolePermissionsUpdate,
    RoleReorder,
    RoleResponse,
    RoleUpdate,
)

router = APIRouter()


async def _role_detail(rbac: RBACService, role: Role, auth: AuthContext) -> RoleDetailResponse:
    permissions = await rbac.roles.get_role_permissions(role.id)
    decision = await rbac.engine.authorize_role_action(auth.user_id, "edit", role_id=role.id)
    return RoleDetailResponse(
        **RoleResponse.model_validate(role).model_dump(),
        permissions=[str(p.key) for p in permissions],
        user_count=await rbac.assignments.count_holders(role.id),
        can_manage=decision.allowed,
    )


@router.get("", response_model=list[RoleResponse])
async def list_roles(
    rbac: RBAC,
    include_inactive: bool = Query(False),
    _: AuthContext = Depends(require_all_permissions("roles:view")),
):
    """Roles, most authoritative first."""
    roles = await rbac.roles.get_role_hierarchy(include_inactive=include_inactive)
    return [RoleResponse.model_validate(r) for r in roles]


@router.post("", response_model=RoleDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    data: RoleCreate,
    rbac: RBAC,
    auth: AuthContext = Depends(require_all_permissions("roles:create")),
):
    """Create a custom role below the caller's level."""
    role = await rbac.roles.create_role(
        data.name,
        display_name=data.display_name,
        description=data.description,
        color=data.color,
        icon=data.icon,
        level=data.level,
        priority=data.priority,
        max_users=data.max_users,
        permissions=data.permissions,
        actor_id=auth.user_id,
    )
    return await _role_detail(rbac, role, auth)


@router.post("/reorder", response_model=list[RoleResponse])
async def reorder_roles(
    data: RoleReorder,
    rbac: RBAC,
    auth: AuthContext = Depends(require_all_permissions("roles:edit")),
):
    """Rewrite display priorities in the given order."""
    roles = await rbac.roles.reorder_roles(data.role_ids, actor_id=auth.user_id)
    return [RoleResponse.model_validate(r) for r in roles]


@router.get("/{role_id}", response_model=RoleDetailResponse)
async def get_role(
    role_id: UUID,
    rbac: RBAC,
    auth: AuthContext = Depends(require_all_permissions("roles:view")),
):
    """Role with grants, holder count and whether the caller may manage it."""
    role = await rbac.roles.get_role(role_id)
    return await _role_detail(rbac, role, auth)


@router.patch("/{role_id}", response_model=RoleDetailResponse)
async def update_role(
    role_id: UUID,
    data: RoleUpdate,
    rbac: RBAC,
    auth: AuthContext = Depends(require_all_permissions("roles:edit")),
):
    """Partially update a role."""
    role = await rbac.roles.update_role(
        role_id,
        data.model_dump(exclude_unset=True),
        actor_id=auth.user_id,
    )
    return await _role_detail(rbac, role, auth)


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: UUID,
    rbac: RBAC,
    auth: AuthContext = Depends(require_all_permissions("roles:delete")),
):
    """Soft delete a role nobody holds any more."""
    await rbac.roles.delete_role(role_id, actor_id=auth.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put("/{role_id}/permissions", response_model=list[PermissionResponse])
async def set_role_permissions(
    role_id: UUID,
    data: RolePermissionsUpdate,
    rbac: RBAC,
    auth: AuthContext = Depends(require_all_permissions("roles:edit")),
):
    """Replace a role's grants."""
    permissions = await rbac.roles.set_role_permissions(
        role_id,
        data.permissions,
        actor_id=auth.user_id,
    )
    return [PermissionResponse.model_validate(p) for p in permissions]


@router.post("/{role_id}/clone", response_model=RoleDetailResponse, status_code=status.HTTP_201_CREATED)
async def clone_role(
    role_id: UUID,
    data: RoleClone,
    rbac: RBAC,
    auth: AuthContext = Depends(require_all_permissions("roles:create")),
):
    """Copy a role and its grants under a new name."""
    role = await rbac.roles.clone_role(
        role_id,
        data.name,
        display_name=data.display_name,
        actor_id=auth.user_id,
    )
    return await _role_detail(rbac, role, auth)
