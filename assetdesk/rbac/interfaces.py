"""
Storage interface consumed by the authorization services.

The services never touch a database session directly; they go through
an ``RBACStore``. Two implementations ship:

- ``SQLAlchemyRBACStore``: async SQLAlchemy session (production)
- ``MemoryRBACStore``: dicts in process (unit tests, experiments)

Contract shared by both:
- Reads filtered to "active" return rows whose ``is_active`` flag is
  set; expiry is NOT evaluated here, callers do that with their clock.
- Each write is atomic. ``add_assignment`` and ``promote_assignment``
  apply their demotions and the insert/update as one unit.
- Uniqueness violations raise ``ConflictError``.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable
from uuid import UUID

from assetdesk.models.rbac import (
    Permission,
    PermissionOverride,
    Role,
    RolePermission,
    UserRoleAssignment,
)


class RBACStore(ABC):
    """Abstract data-access interface for roles, permissions and grants."""

    # ============================================================
    # PERMISSIONS
    # ============================================================

    @abstractmethod
    async def get_permission(self, permission_id: UUID) -> Permission | None:
        """Get a permission by id, active or not."""
        ...

    @abstractmethod
    async def get_permissions(self, permission_ids: Iterable[UUID]) -> dict[UUID, Permission]:
        """Get several permissions by id."""
        ...

    @abstractmethod
    async def find_permission(self, resource: str, action: str, scope: str) -> Permission | None:
        """Find the active permission with this exact triple."""
        ...

    @abstractmethod
    async def list_permissions(
        self,
        *,
        include_inactive: bool = False,
        category: str | None = None,
        resource: str | None = None,
    ) -> list[Permission]:
        ...

    @abstractmethod
    async def add_permission(self, permission: Permission) -> Permission:
        ...

    @abstractmethod
    async def update_permission(self, permission: Permission, **changes: Any) -> Permission:
        ...

    # ============================================================
    # ROLES
    # ============================================================

    @abstractmethod
    async def get_role(self, role_id: UUID) -> Role | None:
        """Get a role by id, including inactive and deleted roles."""
        ...

    @abstractmethod
    async def get_roles(self, role_ids: Iterable[UUID]) -> dict[UUID, Role]:
        ...

    @abstractmethod
    async def find_role_by_name(self, name: str) -> Role | None:
        """Find an active role by name, case-insensitively."""
        ...

    @abstractmethod
    async def list_roles(self, *, include_inactive: bool = False) -> list[Role]:
        ...

    @abstractmethod
    async def add_role(self, role: Role) -> Role:
        ...

    @abstractmethod
    async def update_role(self, role: Role, **changes: Any) -> Role:
        ...

    # ============================================================
    # ROLE PERMISSIONS
    # ============================================================

    @abstractmethod
    async def list_role_permissions(self, role_ids: Iterable[UUID]) -> dict[UUID, list[Permission]]:
        """
        Active permissions granted through active links, keyed by role id.

        Roles without grants map to an empty list.
        """
        ...

    @abstractmethod
    async def get_role_permission_links(self, role_id: UUID) -> list[RolePermission]:
        """All links of a role, active or not."""
        ...

    @abstractmethod
    async def add_role_permission(self, link: RolePermission) -> RolePermission:
        ...

    @abstractmethod
    async def update_role_permission(self, link: RolePermission, **changes: Any) -> RolePermission:
        ...

    # ============================================================
    # ASSIGNMENTS
    # ============================================================

    @abstractmethod
    async def list_user_assignments(self, user_id: UUID) -> list[UserRoleAssignment]:
        """Active assignment rows of a user (expired ones included)."""
        ...

    @abstractmethod
    async def list_role_assignments(self, role_id: UUID) -> list[UserRoleAssignment]:
        """Active assignment rows referencing a role (expired ones included)."""
        ...

    @abstractmethod
    async def add_assignment(
        self,
        assignment: UserRoleAssignment,
        *,
        retire: Iterable[UUID] = (),
    ) -> UserRoleAssignment:
        """
        Insert an assignment.

        Rows listed in ``retire`` are deactivated first. When the new row
        is primary, the user's other active primary is demoted in the
        same unit of work.
        """
        ...

    @abstractmethod
    async def update_assignment(
        self,
        assignment: UserRoleAssignment,
        **changes: Any,
    ) -> UserRoleAssignment:
        ...

    @abstractmethod
    async def promote_assignment(self, assignment: UserRoleAssignment) -> UserRoleAssignment:
        """Make ``assignment`` the user's only active primary."""
        ...

    # ============================================================
    # OVERRIDES
    # ============================================================

    @abstractmethod
    async def list_overrides(self, user_id: UUID) -> list[PermissionOverride]:
        """Active override rows of a user (expired ones included)."""
        ...

    @abstractmethod
    async def add_override(self, override: PermissionOverride) -> PermissionOverride:
        ...

    @abstractmethod
    async def update_override(self, override: PermissionOverride, **changes: Any) -> PermissionOverride:
        ...
