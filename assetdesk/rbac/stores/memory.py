"""
In-memory RBAC store.

Keeps model instances (never attached to a session) in dicts and
enforces the same uniqueness rules as the partial indexes of the
relational schema. Not shared between processes.

Usage:
    rbac = RBACService(MemoryRBACStore())
"""

from typing import Any, Callable, Iterable, TypeVar
from uuid import UUID, uuid4

from assetdesk.core.exceptions import ConflictError
from assetdesk.models.rbac import (
    Permission,
    PermissionOverride,
    Role,
    RolePermission,
    UserRoleAssignment,
)
from assetdesk.rbac.interfaces import RBACStore
from assetdesk.utils.timezone import utc_now

RowT = TypeVar("RowT")


def _active(row: Any) -> bool:
    return bool(row.is_active)


class MemoryRBACStore(RBACStore):
    """Dict-backed ``RBACStore``."""

    def __init__(self) -> None:
        self.permissions: dict[UUID, Permission] = {}
        self.roles: dict[UUID, Role] = {}
        self.role_permissions: dict[UUID, RolePermission] = {}
        self.assignments: dict[UUID, UserRoleAssignment] = {}
        self.overrides: dict[UUID, PermissionOverride] = {}

    # ============================================================
    # HELPERS
    # ============================================================

    @staticmethod
    def _stamp(row: Any) -> None:
        if row.id is None:
            row.id = uuid4()
        now = utc_now()
        if row.created_at is None:
            row.created_at = now
        row.updated_at = now

    @staticmethod
    def _ensure_unique(
        table: dict[UUID, RowT],
        row: RowT,
        identity: Callable[[RowT], tuple],
        label: str,
        applies: Callable[[RowT], bool] = _active,
    ) -> None:
        if not applies(row):
            return
        wanted = identity(row)
        for other in table.values():
            if other is row or other.id == row.id:
                continue
            if applies(other) and identity(other) == wanted:
                raise ConflictError(
                    f"Duplicate {label}",
                    details={"key": [str(part) for part in wanted]},
                )

    def _insert(self, table: dict[UUID, RowT], row: RowT, check: Callable[[RowT], None]) -> RowT:
        self._stamp(row)
        check(row)
        table[row.id] = row
        return row

    def _patch(self, row: RowT, changes: dict[str, Any], check: Callable[[RowT], None]) -> RowT:
        previous = {name: getattr(row, name) for name in changes}
        for name, value in changes.items():
            setattr(row, name, value)
        try:
            check(row)
        except ConflictError:
            for name, value in previous.items():
                setattr(row, name, value)
            raise
        row.updated_at = utc_now()
        return row

    # ============================================================
    # UNIQUENESS RULES
    # ============================================================

    def _check_permission(self, row: Permission) -> None:
        self._ensure_unique(
            self.permissions, row,
            lambda p: (p.resource, p.action, p.scope),
            "permission",
        )

    def _check_role(self, row: Role) -> None:
        self._ensure_unique(self.roles, row, lambda r: (r.name.upper(),), "role name")

    def _check_role_permission(self, row: RolePermission) -> None:
        self._ensure_unique(
            self.role_permissions, row,
            lambda link: (link.role_id, link.permission_id),
            "role permission",
            applies=lambda link: True,
        )

    def _check_assignment(self, row: UserRoleAssignment) -> None:
        self._ensure_unique(
            self.assignments, row,
            lambda a: (a.user_id, a.role_id),
            "role assignment",
        )
        self._ensure_unique(
            self.assignments, row,
            lambda a: (a.user_id,),
            "primary role assignment",
            applies=lambda a: bool(a.is_active and a.is_primary),
        )

    def _check_override(self, row: PermissionOverride) -> None:
        self._ensure_unique(
            self.overrides, row,
            lambda o: (o.user_id, o.permission_id),
            "permission override",
        )

    # ============================================================
    # PERMISSIONS
    # ============================================================

    async def get_permission(self, permission_id: UUID) -> Permission | None:
        return self.permissions.get(permission_id)

    async def get_permissions(self, permission_ids: Iterable[UUID]) -> dict[UUID, Permission]:
        return {pid: self.permissions[pid] for pid in permission_ids if pid in self.permissions}

    async def find_permission(self, resource: str, action: str, scope: str) -> Permission | None:
        for permission in self.permissions.values():
            if (
                permission.is_active
                and permission.resource == resource
                and permission.action == action
                and permission.scope == scope
            ):
                return permission
        return None

    async def list_permissions(
        self,
        *,
        include_inactive: bool = False,
        category: str | None = None,
        resource: str | None = None,
    ) -> list[Permission]:
        return [
            p for p in self.permissions.values()
            if (include_inactive or p.is_active)
            and (category is None or p.category == category)
            and (resource is None or p.resource == resource)
        ]

    async def add_permission(self, permission: Permission) -> Permission:
        return self._insert(self.permissions, permission, self._check_permission)

    async def update_permission(self, permission: Permission, **changes: Any) -> Permission:
        return self._patch(permission, changes, self._check_permission)

    # ============================================================
    # ROLES
    # ============================================================

    async def get_role(self, role_id: UUID) -> Role | None:
        return self.roles.get(role_id)

    async def get_roles(self, role_ids: Iterable[UUID]) -> dict[UUID, Role]:
        return {rid: self.roles[rid] for rid in role_ids if rid in self.roles}

    async def find_role_by_name(self, name: str) -> Role | None:
        wanted = name.upper()
        for role in self.roles.values():
            if role.is_available and role.name.upper() == wanted:
                return role
        return None

    async def list_roles(self, *, include_inactive: bool = False) -> list[Role]:
        return [r for r in self.roles.values() if include_inactive or r.is_available]

    async def add_role(self, role: Role) -> Role:
        return self._insert(self.roles, role, self._check_role)

    async def update_role(self, role: Role, **changes: Any) -> Role:
        return self._patch(role, changes, self._check_role)

    # ============================================================
    # ROLE PERMISSIONS
    # ============================================================

    async def list_role_permissions(self, role_ids: Iterable[UUID]) -> dict[UUID, list[Permission]]:
        granted: dict[UUID, list[Permission]] = {rid: [] for rid in role_ids}
        for link in self.role_permissions.values():
            if not link.is_active or link.role_id not in granted:
                continue
            permission = self.permissions.get(link.permission_id)
            if permission is not None and permission.is_active:
                granted[link.role_id].append(permission)
        return granted

    async def get_role_permission_links(self, role_id: UUID) -> list[RolePermission]:
        return [link for link in self.role_permissions.values() if link.role_id == role_id]

    async def add_role_permission(self, link: RolePermission) -> RolePermission:
        return self._insert(self.role_permissions, link, self._check_role_permission)

    async def update_role_permission(self, link: RolePermission, **changes: Any) -> RolePermission:
        return self._patch(link, changes, self._check_role_permission)

    # ============================================================
    # ASSIGNMENTS
    # ============================================================

    async def list_user_assignments(self, user_id: UUID) -> list[UserRoleAssignment]:
        return [a for a in self.assignments.values() if a.user_id == user_id and a.is_active]

    async def list_role_assignments(self, role_id: UUID) -> list[UserRoleAssignment]:
        return [a for a in self.assignments.values() if a.role_id == role_id and a.is_active]

    def _demote_primary(self, user_id: UUID, keep: UUID | None = None) -> None:
        for other in self.assignments.values():
            if other.user_id == user_id and other.is_active and other.is_primary and other.id != keep:
                other.is_primary = False
                other.updated_at = utc_now()

    async def add_assignment(
        self,
        assignment: UserRoleAssignment,
        *,
        retire: Iterable[UUID] = (),
    ) -> UserRoleAssignment:
        self._stamp(assignment)
        # Demotions are undone when the insert is rejected
        retired = [self.assignments[rid] for rid in retire if rid in self.assignments]
        snapshot = [(row, row.is_active, row.is_primary) for row in self.assignments.values()]
        for row in retired:
            row.is_active = False
            row.is_primary = False
        if assignment.is_primary:
            self._demote_primary(assignment.user_id)
        try:
            self._check_assignment(assignment)
        except ConflictError:
            for row, is_active, is_primary in snapshot:
                row.is_active = is_active
                row.is_primary = is_primary
            raise
        self.assignments[assignment.id] = assignment
        return assignment

    async def update_assignment(
        self,
        assignment: UserRoleAssignment,
        **changes: Any,
    ) -> UserRoleAssignment:
        return self._patch(assignment, changes, self._check_assignment)

    async def promote_assignment(self, assignment: UserRoleAssignment) -> UserRoleAssignment:
        self._demote_primary(assignment.user_id, keep=assignment.id)
        assignment.is_primary = True
        assignment.updated_at = utc_now()
        return assignment

    # ============================================================
    # OVERRIDES
    # ============================================================

    async def list_overrides(self, user_id: UUID) -> list[PermissionOverride]:
        return [o for o in self.overrides.values() if o.user_id == user_id and o.is_active]

    async def add_override(self, override: PermissionOverride) -> PermissionOverride:
        return self._insert(self.overrides, override, self._check_override)

    async def update_override(self, override: PermissionOverride, **changes: Any) -> PermissionOverride:
        return self._patch(override, changes, self._check_override)
