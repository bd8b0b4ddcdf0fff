"""
Authorization Decision Engine.

Combines the three layers into allow/deny answers:

1. Current role assignments of the user (expired ones ignored)
2. Union of the active permissions granted to those roles
3. Per-user overrides applied to that union

A role granting ``*:*`` short-circuits to full access before overrides
are consulted. A user with no current assignment is denied everything.

The engine keeps no state between calls: every decision reads fresh
data from the store, so it is safe to share across concurrent requests.
Denial is a normal ``False``, never an exception.
"""

from typing import Iterable
from uuid import UUID

from assetdesk.core.exceptions import ValidationError
from assetdesk.rbac.assignments import UserRoleLedger
from assetdesk.rbac.hierarchy import RoleHierarchyStore
from assetdesk.rbac.interfaces import RBACStore
from assetdesk.rbac.overrides import PermissionOverrideLayer
from assetdesk.rbac.types import (
    EffectivePermissions,
    PermissionKey,
    PermissionTarget,
    PolicyDecision,
    outranks,
)

ROLE_ACTIONS = frozenset({"view", "create", "edit", "delete", "assign"})


class AuthorizationEngine:
    """Answers "may this user do that" questions."""

    def __init__(
        self,
        store: RBACStore,
        ledger: UserRoleLedger,
        overrides: PermissionOverrideLayer,
        roles: RoleHierarchyStore,
    ):
        self.store = store
        self.ledger = ledger
        self.overrides = overrides
        self.roles = roles

    async def resolve(self, user_id: UUID) -> EffectivePermissions:
        """Resolve everything the user may do right now."""
        now = self.ledger.clock()
        held = await self.ledger.get_user_roles(user_id)
        if not held:
            return EffectivePermissions(user_id=user_id, resolved_at=now)

        granted = await self.store.list_role_permissions([active.role.id for active in held])
        keys: set[PermissionKey] = set()
        for permissions in granted.values():
            keys.update(permission.key for permission in permissions)

        if any(key.is_full_access for key in keys):
            return EffectivePermissions(
                user_id=user_id,
                roles=held,
                keys=frozenset(keys),
                full_access=True,
                resolved_at=now,
            )

        resolved = await self.overrides.apply(user_id, keys)
        return EffectivePermissions(
            user_id=user_id,
            roles=held,
            keys=resolved,
            resolved_at=now,
        )

    async def has_permission(
        self,
        user_id: UUID,
        resource: str,
        action: str,
        scope: str | None = None,
    ) -> bool:
        """
        Check one (resource, action[, scope]).

        Without a scope any granted scope matches; a granted ALL scope
        satisfies every requested scope.
        """
        target = PermissionKey(resource.lower(), action.lower(), scope.upper() if scope else None)
        effective = await self.resolve(user_id)
        return effective.allows(target)

    async def has_any_permission(self, user_id: UUID, *targets: PermissionTarget) -> bool:
        """True if at least one target is allowed (False for no targets)."""
        keys = [PermissionKey.parse(target) for target in targets]
        if not keys:
            return False
        effective = await self.resolve(user_id)
        return any(effective.allows(key) for key in keys)

    async def has_all_permissions(self, user_id: UUID, *targets: PermissionTarget) -> bool:
        """True if every target is allowed (True for no targets)."""
        keys = [PermissionKey.parse(target) for target in targets]
        if not keys:
            return True
        effective = await self.resolve(user_id)
        return all(effective.allows(key) for key in keys)

    async def has_role(self, user_id: UUID, role_names: str | Iterable[str]) -> bool:
        """
        Membership check by canonical role name.

        Names are matched exactly against the stored uppercase tokens.
        """
        wanted = {role_names} if isinstance(role_names, str) else set(role_names)
        held = await self.ledger.get_user_roles(user_id)
        return any(active.name in wanted for active in held)

    async def can_manage_role(self, actor_id: UUID, role_id: UUID) -> bool:
        return await self.roles.can_manage_role(actor_id, role_id)

    async def authorize_role_action(
        self,
        actor_id: UUID,
        action: str,
        *,
        role_id: UUID | None = None,
        level: int | None = None,
    ) -> PolicyDecision:
        """
        Two-layer check for role management.

        The actor needs the generic ``roles:<action>`` permission AND must
        outrank the specific role (and the requested level, if any).
        Holding ``roles:edit`` alone never allows editing a role at or
        above one's own level.
        """
        action = action.lower()
        if action not in ROLE_ACTIONS:
            raise ValidationError(f"Unknown role action '{action}'", details={"allowed": sorted(ROLE_ACTIONS)})

        target = PermissionKey("roles", action)
        effective = await self.resolve(actor_id)
        if not effective.allows(target):
            return PolicyDecision.deny(
                f"Missing permission: {target}",
                code="INSUFFICIENT_PERMISSIONS",
                missing=[str(target)],
            )

        actor_level = effective.highest_level
        if role_id is not None:
            role = await self.store.get_role(role_id)
            if role is None:
                return PolicyDecision.deny("Role not found", code="NOT_FOUND")
            if not outranks(actor_level, role.level):
                return PolicyDecision.deny(
                    f"Role {role.name} is not below your highest role",
                    code="ROLE_HIERARCHY",
                    role=role.name,
                )
        if level is not None and not outranks(actor_level, level):
            return PolicyDecision.deny(
                f"Level {level} is not below your highest role",
                code="ROLE_HIERARCHY",
                level=level,
            )

        return PolicyDecision.allow(f"Has permission: {target}")
