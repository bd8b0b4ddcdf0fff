"""
RBAC Models - Permissions, Roles, and Assignments.

Tables:
- permissions: catalog of (resource, action, scope) triples
- roles: named roles with a numeric authority level
- role_permissions: grants of catalog permissions to roles
- user_role_assignments: users holding roles (one primary at most)
- permission_overrides: per-user grant/revoke exceptions

Rows are never hard deleted once referenced; ``is_active`` flags retire
them so the audit trail survives. Uniqueness invariants hold among
active rows only and are backed by partial unique indexes, which is
what serializes concurrent duplicate assignments.

There are no ORM relationships between these tables: the stores load
what a decision needs with explicit queries so nothing lazy-loads
inside an async session.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID
from sqlalchemy import (
    Boolean,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, StandardMixin, AuditMixin, SoftDeleteMixin

if TYPE_CHECKING:
    from assetdesk.rbac.types import PermissionKey


class RiskLevel(str, Enum):
    """Ordered risk classification of a permission."""

    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.rank >= other.rank


_RISK_ORDER = [RiskLevel.LOW, RiskLevel.NORMAL, RiskLevel.HIGH, RiskLevel.CRITICAL]

# Default scope for permissions that are not narrowed to the caller's records
SCOPE_ALL = "ALL"


class Permission(Base, StandardMixin):
    """
    Permission catalog entry.

    Identified by (resource, action, scope). ``*`` in resource or action
    is a wildcard; ``*:*`` grants full access.

    Examples:
        Permission(resource="tickets", action="view", scope="ALL")
        Permission(resource="tickets", action="edit", scope="OWN")
    """

    __tablename__ = "permissions"
    __table_args__ = (
        Index(
            "uq_permissions_active_triple",
            "resource",
            "action",
            "scope",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    name: Mapped[str] = mapped_column(String(150), nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    resource: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    scope: Mapped[str] = mapped_column(String(20), nullable=False, default=SCOPE_ALL)

    risk_level: Mapped[RiskLevel] = mapped_column(
        SQLEnum(RiskLevel, name="risk_level", native_enum=False, length=20),
        nullable=False,
        default=RiskLevel.NORMAL,
    )
    requires_mfa: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def key(self) -> "PermissionKey":
        """(resource, action, scope) as a value object."""
        from assetdesk.rbac.types import PermissionKey

        return PermissionKey(self.resource, self.action, self.scope)

    @property
    def audit_required(self) -> bool:
        """High and critical permissions are audited on use."""
        return self.risk_level >= RiskLevel.HIGH

    def __repr__(self) -> str:
        return f"<Permission {self.resource}:{self.action}:{self.scope}>"


class Role(Base, StandardMixin, AuditMixin, SoftDeleteMixin):
    """
    Role definition.

    ``level`` orders management capability: an actor may only manage
    roles strictly below their own highest level. ``priority`` breaks
    display ties (lower sorts first).
    """

    __tablename__ = "roles"
    __table_args__ = (
        Index(
            "uq_roles_active_name",
            "name",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    icon: Mapped[str | None] = mapped_column(String(50), nullable=True)

    level: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False)

    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    max_users: Mapped[int | None] = mapped_column(Integer, nullable=True)

    @property
    def is_available(self) -> bool:
        """Active and not soft deleted."""
        return bool(self.is_active) and self.deleted_at is None

    def __repr__(self) -> str:
        return f"<Role {self.name} level={self.level}>"


class RolePermission(Base, StandardMixin):
    """Grant of a catalog permission to a role."""

    __tablename__ = "role_permissions"
    __table_args__ = (
        UniqueConstraint("role_id", "permission_id", name="uq_role_permission"),
    )

    role_id: Mapped[UUID] = mapped_column(
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    permission_id: Mapped[UUID] = mapped_column(
        ForeignKey("permissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    granted_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<RolePermission role={self.role_id} permission={self.permission_id}>"


class UserRoleAssignment(Base, StandardMixin):
    """
    A user holding a role.

    ``expires_at`` is evaluated when read: an expired row grants nothing
    even while ``is_active`` is still true.
    """

    __tablename__ = "user_role_assignments"
    __table_args__ = (
        Index(
            "uq_user_role_assignments_active",
            "user_id",
            "role_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index(
            "uq_user_role_assignments_primary",
            "user_id",
            unique=True,
            postgresql_where=text("is_active AND is_primary"),
            sqlite_where=text("is_active = 1 AND is_primary = 1"),
        ),
    )

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_id: Mapped[UUID] = mapped_column(
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    assigned_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        primary = " primary" if self.is_primary else ""
        return f"<UserRoleAssignment user={self.user_id} role={self.role_id}{primary}>"


class PermissionOverride(Base, StandardMixin):
    """
    Per-user exception to role-derived permissions.

    ``granted=True`` adds the permission, ``granted=False`` removes it.
    At most one active override exists per (user, permission).
    """

    __tablename__ = "permission_overrides"
    __table_args__ = (
        Index(
            "uq_permission_overrides_active",
            "user_id",
            "permission_id",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
    )

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    permission_id: Mapped[UUID] = mapped_column(
        ForeignKey("permissions.id", ondelete="CASCADE"),
        nullable=False,
    )
    granted: Mapped[bool] = mapped_column(Boolean, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    granted_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        verb = "grant" if self.granted else "revoke"
        return f"<PermissionOverride {verb} user={self.user_id} permission={self.permission_id}>"
