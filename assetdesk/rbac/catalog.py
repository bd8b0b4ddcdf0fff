"""
Permission Catalog.

The universe of grantable (resource, action, scope) triples. Roles and
overrides may only reference permissions that exist here.
"""

from collections import OrderedDict
from uuid import UUID

import structlog

from assetdesk.core.exceptions import ConflictError, NotFoundError, ValidationError
from assetdesk.models.rbac import Permission, RiskLevel
from assetdesk.rbac.interfaces import RBACStore
from assetdesk.rbac.types import SCOPE_ALL, PermissionKey, PermissionTarget

logger = structlog.get_logger()


def _catalog_order(permission: Permission) -> tuple[str, str, str, str]:
    return (permission.category, permission.resource, permission.action, permission.scope)


class PermissionCatalog:
    """Read and administer the permission catalog."""

    def __init__(self, store: RBACStore):
        self.store = store

    async def list_permissions(
        self,
        *,
        category: str | None = None,
        resource: str | None = None,
        include_inactive: bool = False,
    ) -> list[Permission]:
        """List permissions ordered by (category, resource, action, scope)."""
        permissions = await self.store.list_permissions(
            include_inactive=include_inactive,
            category=category,
            resource=resource.lower() if resource else None,
        )
        return sorted(permissions, key=_catalog_order)

    async def permissions_by_category(self) -> dict[str, list[Permission]]:
        """Active permissions grouped by category, in catalog order."""
        grouped: dict[str, list[Permission]] = OrderedDict()
        for permission in await self.list_permissions():
            grouped.setdefault(permission.category, []).append(permission)
        return grouped

    async def find_permission(
        self,
        resource: str,
        action: str,
        scope: str = SCOPE_ALL,
    ) -> Permission | None:
        """Find the active permission for an exact triple."""
        return await self.store.find_permission(resource.lower(), action.lower(), scope.upper())

    async def find_by_key(self, key: PermissionTarget) -> Permission | None:
        """Find by ``"resource:action[:scope]"``; a missing scope means ALL."""
        key = PermissionKey.parse(key, default_scope=SCOPE_ALL)
        return await self.find_permission(key.resource, key.action, key.scope or SCOPE_ALL)

    async def resolve_keys(self, keys: list[PermissionTarget]) -> list[Permission]:
        """
        Map permission keys to active catalog entries.

        Raises:
            ValidationError: listing every key the catalog does not know
        """
        resolved: list[Permission] = []
        unknown: list[str] = []
        for raw in keys:
            permission = await self.find_by_key(raw)
            if permission is None:
                unknown.append(str(raw))
            elif permission not in resolved:
                resolved.append(permission)

        if unknown:
            raise ValidationError(
                "Unknown permissions",
                code="UNKNOWN_PERMISSION",
                details={"unknown": unknown},
            )
        return resolved

    async def get_permission(self, permission_id: UUID) -> Permission:
        permission = await self.store.get_permission(permission_id)
        if permission is None:
            raise NotFoundError("Permission not found", details={"permission_id": str(permission_id)})
        return permission

    async def create_permission(
        self,
        resource: str,
        action: str,
        scope: str = SCOPE_ALL,
        *,
        display_name: str,
        category: str,
        name: str | None = None,
        description: str | None = None,
        risk_level: RiskLevel = RiskLevel.NORMAL,
        requires_mfa: bool = False,
    ) -> Permission:
        """
        Add a permission to the catalog.

        Raises:
            ValidationError: if resource, action or scope is empty
            ConflictError: if an active permission has the same triple
        """
        key = PermissionKey.parse(f"{resource}:{action}:{scope or SCOPE_ALL}")
        if key.scope is None:
            raise ValidationError("Catalog permissions need a concrete scope")
        if not display_name.strip() or not category.strip():
            raise ValidationError("display_name and category are required")

        existing = await self.store.find_permission(key.resource, key.action, key.scope)
        if existing is not None:
            raise ConflictError(
                f"Permission {key} already exists",
                details={"permission_id": str(existing.id)},
            )

        permission = Permission(
            name=name or f"{key.resource}.{key.action}",
            display_name=display_name.strip(),
            description=description,
            category=category.strip(),
            resource=key.resource,
            action=key.action,
            scope=key.scope,
            risk_level=RiskLevel(risk_level),
            requires_mfa=requires_mfa,
            is_active=True,
        )
        permission = await self.store.add_permission(permission)

        logger.info(
            "Permission created",
            permission_id=str(permission.id),
            permission=str(key),
            risk_level=permission.risk_level.value,
        )
        return permission

    async def deactivate_permission(self, permission_id: UUID) -> Permission:
        """
        Retire a permission. It stays referenced by history but grants nothing.

        Raises:
            NotFoundError: if the permission does not exist
        """
        permission = await self.get_permission(permission_id)
        if not permission.is_active:
            return permission

        permission = await self.store.update_permission(permission, is_active=False)
        logger.info(
            "Permission deactivated",
            permission_id=str(permission.id),
            permission=str(permission.key),
        )
        return permission
