"""
Permission catalog routes.
"""

from uuid import UUID
from fastapi import APIRouter, Depends, Query, status

from assetdesk.api.dependencies.permissions import require_all_permissions
from assetdesk.api.dependencies.services import RBAC
from assetdesk.rbac.guard import AuthContext
from assetdesk.schemas.rbac import PermissionCategory, PermissionCreate, PermissionResponse

router = APIRouter()


@router.get("", response_model=list[PermissionResponse])
async def list_permissions(
    rbac: RBAC,
    category: str | None = None,
    resource: str | None = None,
    include_inactive: bool = Query(False),
    _: AuthContext = Depends(require_all_permissions("permissions:view")),
):
    """List the permission catalog."""
    permissions = await rbac.catalog.list_permissions(
        category=category,
        resource=resource,
        include_inactive=include_inactive,
    )
    return [PermissionResponse.model_validate(p) for p in permissions]


@router.get("/grouped", response_model=list[PermissionCategory])
async def list_permissions_by_category(
    rbac: RBAC,
    _: AuthContext = Depends(require_all_permissions("permissions:view")),
):
    """Active permissions grouped by category."""
    grouped = await rbac.catalog.permissions_by_category()
    return [
        PermissionCategory(
            category=category,
            permissions=[PermissionResponse.model_validate(p) for p in permissions],
        )
        for category, permissions in grouped.items()
    ]


@router.post("", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    data: PermissionCreate,
    rbac: RBAC,
    _: AuthContext = Depends(require_all_permissions("permissions:create")),
):
    """Add a permission to the catalog."""
    permission = await rbac.catalog.create_permission(
        data.resource,
        data.action,
        data.scope,
        display_name=data.display_name,
        category=data.category,
        name=data.name,
        description=data.description,
        risk_level=data.risk_level,
        requires_mfa=data.requires_mfa,
    )
    return PermissionResponse.model_validate(permission)


@router.delete("/{permission_id}", response_model=PermissionResponse)
async def deactivate_permission(
    permission_id: UUID,
    rbac: RBAC,
    _: AuthContext = Depends(require_all_permissions("permissions:delete")),
):
    """Retire a permission; it stops granting anything."""
    permission = await rbac.catalog.deactivate_permission(permission_id)
    return PermissionResponse.model_validate(permission)
