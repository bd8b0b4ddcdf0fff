"""
SQLAlchemy-backed RBAC store.

Works on the request's ``AsyncSession`` and only flushes: the caller
owns the transaction (``get_db`` commits once the request succeeds),
so a multi-step operation such as "demote the old primary, insert the
new one" becomes visible atomically.

Every flushed row is refreshed so later attribute access never
triggers a lazy load outside the async context.
"""

from typing import Any, Iterable, TypeVar
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from assetdesk.core.exceptions import ConflictError
from assetdesk.models.base import Base
from assetdesk.models.rbac import (
    Permission,
    PermissionOverride,
    Role,
    RolePermission,
    UserRoleAssignment,
)
from assetdesk.rbac.interfaces import RBACStore

ModelT = TypeVar("ModelT", bound=Base)


class SQLAlchemyRBACStore(RBACStore):
    """``RBACStore`` over an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ============================================================
    # HELPERS
    # ============================================================

    async def _flush(self, *rows: Base, label: str) -> None:
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise ConflictError(
                f"Duplicate {label}",
                details={"constraint": str(exc.orig)},
            ) from exc
        for row in rows:
            await self.session.refresh(row)

    async def _insert(self, row: ModelT, label: str) -> ModelT:
        self.session.add(row)
        await self._flush(row, label=label)
        return row

    async def _patch(self, row: ModelT, changes: dict[str, Any], label: str) -> ModelT:
        for name, value in changes.items():
            setattr(row, name, value)
        await self._flush(row, label=label)
        return row

    # ============================================================
    # PERMISSIONS
    # ============================================================

    async def get_permission(self, permission_id: UUID) -> Permission | None:
        return await self.session.get(Permission, permission_id)

    async def get_permissions(self, permission_ids: Iterable[UUID]) -> dict[UUID, Permission]:
        ids = list(permission_ids)
        if not ids:
            return {}
        result = await self.session.execute(select(Permission).where(Permission.id.in_(ids)))
        return {p.id: p for p in result.scalars().all()}

    async def find_permission(self, resource: str, action: str, scope: str) -> Permission | None:
        result = await self.session.execute(
            select(Permission).where(
                Permission.resource == resource,
                Permission.action == action,
                Permission.scope == scope,
                Permission.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def list_permissions(
        self,
        *,
        include_inactive: bool = False,
        category: str | None = None,
        resource: str | None = None,
    ) -> list[Permission]:
        query = select(Permission)
        if not include_inactive:
            query = query.where(Permission.is_active.is_(True))
        if category is not None:
            query = query.where(Permission.category == category)
        if resource is not None:
            query = query.where(Permission.resource == resource)
        query = query.order_by(
            Permission.category,
            Permission.resource,
            Permission.action,
            Permission.scope,
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def add_permission(self, permission: Permission) -> Permission:
        return await self._insert(permission, "permission")

    async def update_permission(self, permission: Permission, **changes: Any) -> Permission:
        return await self._patch(permission, changes, "permission")

    # ============================================================
    # ROLES
    # ============================================================

    async def get_role(self, role_id: UUID) -> Role | None:
        return await self.session.get(Role, role_id)

    async def get_roles(self, role_ids: Iterable[UUID]) -> dict[UUID, Role]:
        ids = list(role_ids)
        if not ids:
            return {}
        result = await self.session.execute(select(Role).where(Role.id.in_(ids)))
        return {r.id: r for r in result.scalars().all()}

    async def find_role_by_name(self, name: str) -> Role | None:
        result = await self.session.execute(
            select(Role).where(
                func.upper(Role.name) == name.upper(),
                Role.is_active.is_(True),
                Role.deleted_at.is_(None),
            )
        )
        return result.scalars().first()

    async def list_roles(self, *, include_inactive: bool = False) -> list[Role]:
        query = select(Role)
        if not include_inactive:
            query = query.where(Role.is_active.is_(True), Role.deleted_at.is_(None))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def add_role(self, role: Role) -> Role:
        return await self._insert(role, "role name")

    async def update_role(self, role: Role, **changes: Any) -> Role:
        return await self._patch(role, changes, "role name")

    # ============================================================
    # ROLE PERMISSIONS
    # ============================================================

    async def list_role_permissions(self, role_ids: Iterable[UUID]) -> dict[UUID, list[Permission]]:
        ids = list(role_ids)
        granted: dict[UUID, list[Permission]] = {rid: [] for rid in ids}
        if not ids:
            return granted

        result = await self.session.execute(
            select(RolePermission.role_id, Permission)
            .join(Permission, Permission.id == RolePermission.permission_id)
            .where(
                RolePermission.role_id.in_(ids),
                RolePermission.is_active.is_(True),
                Permission.is_active.is_(True),
            )
        )
        for role_id, permission in result.all():
            granted[role_id].append(permission)
        return granted

    async def get_role_permission_links(self, role_id: UUID) -> list[RolePermission]:
        result = await self.session.execute(
            select(RolePermission).where(RolePermission.role_id == role_id)
        )
        return list(result.scalars().all())

    async def add_role_permission(self, link: RolePermission) -> RolePermission:
        return await self._insert(link, "role permission")

    async def update_role_permission(self, link: RolePermission, **changes: Any) -> RolePermission:
        return await self._patch(link, changes, "role permission")

    # ============================================================
    # ASSIGNMENTS
    # ============================================================

    async def list_user_assignments(self, user_id: UUID) -> list[UserRoleAssignment]:
        result = await self.session.execute(
            select(UserRoleAssignment).where(
                UserRoleAssignment.user_id == user_id,
                UserRoleAssignment.is_active.is_(True),
            )
        )
        return list(result.scalars().all())

    async def list_role_assignments(self, role_id: UUID) -> list[UserRoleAssignment]:
        result = await self.session.execute(
            select(UserRoleAssignment).where(
                UserRoleAssignment.role_id == role_id,
                UserRoleAssignment.is_active.is_(True),
            )
        )
        return list(result.scalars().all())

    async def _demote_primary(self, user_id: UUID, keep: UUID | None = None) -> None:
        statement = (
            update(UserRoleAssignment)
            .where(
                UserRoleAssignment.user_id == user_id,
                UserRoleAssignment.is_active.is_(True),
                UserRoleAssignment.is_primary.is_(True),
            )
            .values(is_primary=False)
            .execution_options(synchronize_session="fetch")
        )
        if keep is not None:
            statement = statement.where(UserRoleAssignment.id != keep)
        await self.session.execute(statement)

    async def add_assignment(
        self,
        assignment: UserRoleAssignment,
        *,
        retire: Iterable[UUID] = (),
    ) -> UserRoleAssignment:
        # Demotions run as statements ahead of the insert so the partial
        # unique indexes never see two active rows at once
        retired = list(retire)
        if retired:
            await self.session.execute(
                update(UserRoleAssignment)
                .where(UserRoleAssignment.id.in_(retired))
                .values(is_active=False, is_primary=False)
                .execution_options(synchronize_session="fetch")
            )
        if assignment.is_primary:
            await self._demote_primary(assignment.user_id)
        return await self._insert(assignment, "role assignment")

    async def update_assignment(
        self,
        assignment: UserRoleAssignment,
        **changes: Any,
    ) -> UserRoleAssignment:
        return await self._patch(assignment, changes, "role assignment")

    async def promote_assignment(self, assignment: UserRoleAssignment) -> UserRoleAssignment:
        await self._demote_primary(assignment.user_id, keep=assignment.id)
        return await self._patch(assignment, {"is_primary": True}, "primary role assignment")

    # ============================================================
    # OVERRIDES
    # ============================================================

    async def list_overrides(self, user_id: UUID) -> list[PermissionOverride]:
        result = await self.session.execute(
            select(PermissionOverride).where(
                PermissionOverride.user_id == user_id,
                PermissionOverride.is_active.is_(True),
            )
        )
        return list(result.scalars().all())

    async def add_override(self, override: PermissionOverride) -> PermissionOverride:
        return await self._insert(override, "permission override")

    async def update_override(self, override: PermissionOverride, **changes: Any) -> PermissionOverride:
        return await self._patch(override, changes, "permission override")
