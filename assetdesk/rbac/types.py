"""
Value types shared by the authorization services.

``PermissionKey`` is the single representation of a permission target.
Strings such as ``"tickets:view"`` are parsed once at the boundary
(route guard factories, service inputs) and never re-split downstream.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable, Union
from uuid import UUID

from assetdesk.core.exceptions import ValidationError

if TYPE_CHECKING:
    from assetdesk.models.rbac import Role, UserRoleAssignment


WILDCARD = "*"
SCOPE_ALL = "ALL"


@dataclass(frozen=True)
class PermissionKey:
    """
    A (resource, action, scope) permission target.

    ``scope=None`` means "any scope" and is only meaningful as a query;
    catalog entries always carry a concrete scope.
    """

    resource: str
    action: str
    scope: str | None = None

    @classmethod
    def parse(cls, value: Union[str, "PermissionKey"], default_scope: str | None = None) -> "PermissionKey":
        """
        Parse ``"resource:action[:scope]"``.

        Resource and action are lower-cased, scope is upper-cased.

        Raises:
            ValidationError: on anything but two or three non-empty parts
        """
        if isinstance(value, PermissionKey):
            return value
        if not isinstance(value, str):
            raise ValidationError(
                f"Permission must be a string, got {type(value).__name__}",
                details={"permission": repr(value)},
            )

        parts = [part.strip() for part in value.split(":")]
        if len(parts) not in (2, 3) or not all(parts):
            raise ValidationError(
                f"Malformed permission '{value}', expected 'resource:action[:scope]'",
                details={"permission": value},
            )

        resource, action = parts[0].lower(), parts[1].lower()
        scope = parts[2].upper() if len(parts) == 3 else default_scope
        if scope == WILDCARD:
            scope = None
        return cls(resource, action, scope)

    @property
    def is_full_access(self) -> bool:
        return self.resource == WILDCARD and self.action == WILDCARD

    def with_scope(self, scope: str | None) -> "PermissionKey":
        return PermissionKey(self.resource, self.action, scope)

    def covers(self, target: "PermissionKey") -> bool:
        """
        Whether holding this key satisfies a request for ``target``.

        A wildcard resource or action matches anything. An unscoped
        target matches any scope; ``ALL`` satisfies every scope.
        """
        if self.resource != WILDCARD and self.resource != target.resource:
            return False
        if self.action != WILDCARD and self.action != target.action:
            return False
        if target.scope is None or self.scope is None:
            return True
        return self.scope == SCOPE_ALL or self.scope == target.scope

    def __str__(self) -> str:
        if self.scope is None:
            return f"{self.resource}:{self.action}"
        return f"{self.resource}:{self.action}:{self.scope}"


PermissionTarget = Union[str, PermissionKey]


def parse_targets(targets: Iterable[PermissionTarget]) -> list[PermissionKey]:
    return [PermissionKey.parse(target) for target in targets]


def outranks(actor_level: int | None, target_level: int) -> bool:
    """
    Strict level comparison used for every management decision.

    Equal levels never outrank each other, so nobody can manage the
    role they hold. An actor without a role outranks nothing.
    """
    if actor_level is None:
        return False
    return actor_level > target_level


@dataclass
class ActiveRole:
    """A current assignment joined to its role."""

    assignment: "UserRoleAssignment"
    role: "Role"

    @property
    def name(self) -> str:
        return self.role.name

    @property
    def level(self) -> int:
        return self.role.level

    @property
    def is_primary(self) -> bool:
        return bool(self.assignment.is_primary)


@dataclass
class EffectivePermissions:
    """
    Snapshot of what a user may do, resolved at a single point in time.

    ``full_access`` is set when a held role carries ``*:*``; the key set
    is then not consulted.
    """

    user_id: UUID
    roles: list[ActiveRole] = field(default_factory=list)
    keys: frozenset[PermissionKey] = frozenset()
    full_access: bool = False
    resolved_at: datetime | None = None

    @property
    def role_names(self) -> list[str]:
        return [active.name for active in self.roles]

    @property
    def highest_role(self) -> "Role | None":
        return self.roles[0].role if self.roles else None

    @property
    def highest_level(self) -> int | None:
        return self.roles[0].level if self.roles else None

    def allows(self, target: PermissionTarget) -> bool:
        target = PermissionKey.parse(target)
        if self.full_access:
            return True
        return any(held.covers(target) for held in self.keys)

    def missing(self, targets: Iterable[PermissionTarget]) -> list[PermissionKey]:
        return [key for key in parse_targets(targets) if not self.allows(key)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": str(self.user_id),
            "roles": self.role_names,
            "full_access": self.full_access,
            "permissions": sorted(str(key) for key in self.keys),
        }


@dataclass
class PolicyDecision:
    """
    Result of a policy evaluation.

    Attributes:
        allowed: Whether the action is permitted
        reason: Human-readable explanation (for errors/logging)
        metadata: Additional data (machine code, missing permissions)
    """
    allowed: bool
    reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def allow(cls, reason: str | None = None) -> "PolicyDecision":
        return cls(allowed=True, reason=reason)

    @classmethod
    def deny(cls, reason: str = "Permission denied", **metadata: Any) -> "PolicyDecision":
        return cls(allowed=False, reason=reason, metadata=metadata)

    def __bool__(self) -> bool:
        return self.allowed
