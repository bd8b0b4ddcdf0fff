"""
Role Hierarchy Store.

Roles carry a numeric ``level``; management rights flow strictly
downwards. Every mutation taking an ``actor_id`` checks that the target
role (and any new level) sits strictly below the actor's highest role.
``actor_id=None`` is the system itself (seeding) and skips the checks.

System roles may additionally only be edited by holders of the top
role, and are never deleted.
"""

import re
from dataclasses import dataclass
from typing import Any, Iterable
from uuid import UUID

import structlog

from assetdesk.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from assetdesk.models.rbac import Permission, Role, RolePermission
from assetdesk.rbac.assignments import UserRoleLedger, hierarchy_denied
from assetdesk.rbac.catalog import PermissionCatalog
from assetdesk.rbac.interfaces import RBACStore
from assetdesk.rbac.types import PermissionTarget, outranks

logger = structlog.get_logger()


@dataclass(frozen=True)
class RoleDefaults:
    """Values applied to custom roles when the caller leaves them out."""

    level: int = 10
    priority: int = 500
    color: str = "#95A5A6"
    top_role_name: str = "SUPER_ADMIN"


ROLE_DEFAULTS = RoleDefaults()

ROLE_NAME_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]*$")

# Fields a role update may touch; the name is the role's identity
EDITABLE_FIELDS = frozenset({
    "display_name",
    "description",
    "color",
    "icon",
    "level",
    "priority",
    "is_active",
    "max_users",
})


def normalize_role_name(name: str) -> str:
    """``"field tech"`` -> ``"FIELD_TECH"``"""
    canonical = re.sub(r"[\s\-]+", "_", (name or "").strip()).upper()
    if not ROLE_NAME_PATTERN.match(canonical):
        raise ValidationError(
            f"Invalid role name '{name}'",
            details={"name": name},
        )
    return canonical


def hierarchy_order(role: Role) -> tuple[int, int, str]:
    return (-role.level, role.priority, role.name)


class RoleHierarchyStore:
    """Create, edit and delete roles and their permission grants."""

    def __init__(
        self,
        store: RBACStore,
        ledger: UserRoleLedger,
        catalog: PermissionCatalog,
        defaults: RoleDefaults = ROLE_DEFAULTS,
    ):
        self.store = store
        self.ledger = ledger
        self.catalog = catalog
        self.defaults = defaults

    # ============================================================
    # READS
    # ============================================================

    async def get_role_hierarchy(self, *, include_inactive: bool = False) -> list[Role]:
        """Roles, most authoritative first: level desc, priority asc, name asc."""
        roles = await self.store.list_roles(include_inactive=include_inactive)
        return sorted(roles, key=hierarchy_order)

    async def get_role(self, role_id: UUID) -> Role:
        role = await self.store.get_role(role_id)
        if role is None or role.is_deleted:
            raise NotFoundError("Role not found", details={"role_id": str(role_id)})
        return role

    async def get_role_by_name(self, name: str) -> Role | None:
        return await self.store.find_role_by_name(name)

    async def get_role_permissions(self, role_id: UUID) -> list[Permission]:
        granted = await self.store.list_role_permissions([role_id])
        return sorted(
            granted.get(role_id, []),
            key=lambda p: (p.category, p.resource, p.action, p.scope),
        )

    async def can_manage_role(self, actor_id: UUID, role_id: UUID) -> bool:
        """
        Whether the actor's highest role is strictly above the target role.

        Unknown roles and actors without a current role yield False.
        """
        role = await self.store.get_role(role_id)
        if role is None:
            return False
        actor_level = await self.ledger.get_highest_level(actor_id)
        return outranks(actor_level, role.level)

    # ============================================================
    # AUTHORIZATION HELPERS
    # ============================================================

    async def _require_level_below_actor(self, actor_id: UUID | None, role: Role, level: int | None = None) -> None:
        if actor_id is None:
            return
        actor_level = await self.ledger.get_highest_level(actor_id)
        if not outranks(actor_level, role.level):
            raise hierarchy_denied(actor_level, role)
        if level is not None and not outranks(actor_level, level):
            raise ForbiddenError(
                "Cannot set a role level at or above your own",
                code="ROLE_HIERARCHY",
                details={"level": level, "actor_level": actor_level},
            )

    async def _require_editable(self, actor_id: UUID | None, role: Role, level: int | None = None) -> None:
        if actor_id is None:
            return
        if role.is_system:
            highest = await self.ledger.get_highest_role(actor_id)
            if highest is None or highest.name != self.defaults.top_role_name:
                raise ForbiddenError(
                    f"System role {role.name} can only be changed by {self.defaults.top_role_name}",
                    code="SYSTEM_ROLE",
                    details={"role": role.name},
                )
        await self._require_level_below_actor(actor_id, role, level)

    async def _require_unheld(self, role: Role) -> None:
        holders = await self.ledger.count_holders(role.id)
        if holders:
            raise ConflictError(
                f"Role {role.name} is still assigned to {holders} user(s)",
                code="ROLE_IN_USE",
                details={"role": role.name, "assignments": holders},
            )

    @staticmethod
    def _validate_level(level: Any, field: str = "level") -> int:
        if isinstance(level, bool) or not isinstance(level, int) or level < 0:
            raise ValidationError(f"{field} must be a non-negative integer", details={field: level})
        return level

    # ============================================================
    # ROLE CRUD
    # ============================================================

    async def create_role(
        self,
        name: str,
        *,
        display_name: str | None = None,
        description: str | None = None,
        color: str | None = None,
        icon: str | None = None,
        level: int | None = None,
        priority: int | None = None,
        max_users: int | None = None,
        is_system: bool = False,
        permissions: Iterable[PermissionTarget] = (),
        actor_id: UUID | None = None,
    ) -> Role:
        """
        Create a custom role, optionally with initial permissions.

        Raises:
            ValidationError: bad name, level or unknown permission key;
                or the name collides with an active role
            ForbiddenError: level not below the actor's, or a user tried
                to create a system role
        """
        canonical = normalize_role_name(name)
        level = self._validate_level(self.defaults.level if level is None else level)
        priority = self._validate_level(self.defaults.priority if priority is None else priority, "priority")
        if max_users is not None:
            self._validate_level(max_users, "max_users")

        if is_system and actor_id is not None:
            raise ForbiddenError("System roles are installed by seeding only", code="SYSTEM_ROLE")

        if await self.store.find_role_by_name(canonical) is not None:
            raise ValidationError(
                f"Role {canonical} already exists",
                code="DUPLICATE_ROLE",
                details={"name": canonical},
            )

        if actor_id is not None:
            actor_level = await self.ledger.get_highest_level(actor_id)
            if not outranks(actor_level, level):
                raise ForbiddenError(
                    "Cannot create a role at or above your own level",
                    code="ROLE_HIERARCHY",
                    details={"level": level, "actor_level": actor_level},
                )

        grants = await self.catalog.resolve_keys(list(permissions))

        role = Role(
            name=canonical,
            display_name=(display_name or canonical.replace("_", " ").title()).strip(),
            description=description,
            color=color or self.defaults.color,
            icon=icon,
            level=level,
            priority=priority,
            is_system=is_system,
            is_active=True,
            max_users=max_users,
            created_by=actor_id,
            updated_by=actor_id,
        )
        role = await self.store.add_role(role)
        for permission in grants:
            await self.store.add_role_permission(
                RolePermission(
                    role_id=role.id,
                    permission_id=permission.id,
                    is_active=True,
                    granted_by=actor_id,
                )
            )

        logger.info(
            "Role created",
            role_id=str(role.id),
            role=role.name,
            level=role.level,
            permissions=len(grants),
            created_by=str(actor_id) if actor_id else None,
        )
        return role

    async def update_role(
        self,
        role_id: UUID,
        patch: dict[str, Any],
        *,
        actor_id: UUID | None = None,
    ) -> Role:
        """
        Partially update a role: only the keys present in ``patch`` change.

        Raises:
            NotFoundError: role missing
            ValidationError: unknown or immutable field, bad level
            ForbiddenError: system role and actor is not top tier, role
                not below the actor, or new level not below the actor
            ConflictError: deactivating a role users currently hold
        """
        role = await self.get_role(role_id)

        unknown = set(patch) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                "Fields cannot be updated",
                details={"fields": sorted(unknown)},
            )

        changes = dict(patch)
        if "level" in changes:
            changes["level"] = self._validate_level(changes["level"])
        if "priority" in changes:
            changes["priority"] = self._validate_level(changes["priority"], "priority")
        if changes.get("max_users") is not None:
            self._validate_level(changes["max_users"], "max_users")
        if "display_name" in changes and not (changes["display_name"] or "").strip():
            raise ValidationError("display_name cannot be empty")

        await self._require_editable(actor_id, role, changes.get("level"))

        if "is_active" in changes and not changes["is_active"] and role.is_active:
            await self._require_unheld(role)

        if not changes:
            return role

        changes["updated_by"] = actor_id
        role = await self.store.update_role(role, **changes)

        logger.info(
            "Role updated",
            role_id=str(role.id),
            role=role.name,
            fields=sorted(set(changes) - {"updated_by"}),
            updated_by=str(actor_id) if actor_id else None,
        )
        return role

    async def delete_role(self, role_id: UUID, *, actor_id: UUID | None = None) -> Role:
        """
        Soft delete a role.

        Raises:
            NotFoundError: role missing
            ForbiddenError: system role, or role not below the actor
            ConflictError: users currently hold the role
        """
        role = await self.get_role(role_id)
        if role.is_system:
            raise ForbiddenError(
                f"System role {role.name} cannot be deleted",
                code="SYSTEM_ROLE",
                details={"role": role.name},
            )
        await self._require_level_below_actor(actor_id, role)

        await self._require_unheld(role)

        # Lapsed assignments no longer grant anything; retire them with the role
        for row in await self.store.list_role_assignments(role.id):
            await self.store.update_assignment(row, is_active=False, is_primary=False)

        role = await self.store.update_role(
            role,
            is_active=False,
            deleted_at=self.ledger.clock(),
            deleted_by=actor_id,
            updated_by=actor_id,
        )
        logger.info(
            "Role deleted",
            role_id=str(role.id),
            role=role.name,
            deleted_by=str(actor_id) if actor_id else None,
        )
        return role

    # ============================================================
    # ROLE PERMISSIONS
    # ============================================================

    async def set_role_permissions(
        self,
        role_id: UUID,
        permissions: Iterable[PermissionTarget],
        *,
        actor_id: UUID | None = None,
    ) -> list[Permission]:
        """
        Make the role's active grants exactly ``permissions``.

        Links that are no longer wanted are deactivated, inactive links
        are reactivated and missing ones created.
        """
        role = await self.get_role(role_id)
        await self._require_editable(actor_id, role)
        wanted = {p.id: p for p in await self.catalog.resolve_keys(list(permissions))}

        links = {link.permission_id: link for link in await self.store.get_role_permission_links(role.id)}
        added, removed = 0, 0
        for permission_id, link in links.items():
            if permission_id in wanted:
                if not link.is_active:
                    await self.store.update_role_permission(link, is_active=True, granted_by=actor_id)
                    added += 1
            elif link.is_active:
                await self.store.update_role_permission(link, is_active=False)
                removed += 1

        for permission_id in wanted.keys() - links.keys():
            await self.store.add_role_permission(
                RolePermission(
                    role_id=role.id,
                    permission_id=permission_id,
                    is_active=True,
                    granted_by=actor_id,
                )
            )
            added += 1

        logger.info(
            "Role permissions synced",
            role=role.name,
            granted=added,
            revoked=removed,
            total=len(wanted),
            updated_by=str(actor_id) if actor_id else None,
        )
        return await self.get_role_permissions(role.id)

    async def grant_permission(
        self,
        role_id: UUID,
        permission: PermissionTarget,
        *,
        actor_id: UUID | None = None,
    ) -> RolePermission:
        role = await self.get_role(role_id)
        await self._require_editable(actor_id, role)
        (target,) = await self.catalog.resolve_keys([permission])

        for link in await self.store.get_role_permission_links(role.id):
            if link.permission_id == target.id:
                if link.is_active:
                    return link
                link = await self.store.update_role_permission(link, is_active=True, granted_by=actor_id)
                break
        else:
            link = await self.store.add_role_permission(
                RolePermission(
                    role_id=role.id,
                    permission_id=target.id,
                    is_active=True,
                    granted_by=actor_id,
                )
            )

        logger.info("Role permission granted", role=role.name, permission=str(target.key))
        return link

    async def revoke_permission(
        self,
        role_id: UUID,
        permission: PermissionTarget,
        *,
        actor_id: UUID | None = None,
    ) -> bool:
        """Returns False when the role did not hold the permission."""
        role = await self.get_role(role_id)
        await self._require_editable(actor_id, role)
        (target,) = await self.catalog.resolve_keys([permission])

        for link in await self.store.get_role_permission_links(role.id):
            if link.permission_id == target.id and link.is_active:
                await self.store.update_role_permission(link, is_active=False)
                logger.info("Role permission revoked", role=role.name, permission=str(target.key))
                return True
        return False

    # ============================================================
    # CLONE & REORDER
    # ============================================================

    async def clone_role(
        self,
        role_id: UUID,
        new_name: str,
        *,
        display_name: str | None = None,
        actor_id: UUID | None = None,
    ) -> Role:
        """Copy a role's display fields, level and grants into a new custom role."""
        source = await self.get_role(role_id)
        await self._require_level_below_actor(actor_id, source)
        permissions = await self.get_role_permissions(source.id)

        return await self.create_role(
            new_name,
            display_name=display_name or f"{source.display_name} (Copy)",
            description=source.description,
            color=source.color,
            icon=source.icon,
            level=source.level,
            priority=source.priority,
            max_users=source.max_users,
            permissions=[p.key for p in permissions],
            actor_id=actor_id,
        )

    async def reorder_roles(
        self,
        ordered_ids: list[UUID],
        *,
        actor_id: UUID | None = None,
    ) -> list[Role]:
        """
        Rewrite priorities so ``ordered_ids`` is the display order.

        Every listed role must be editable by the actor; nothing changes
        unless all of them are.
        """
        if len(set(ordered_ids)) != len(ordered_ids):
            raise ValidationError("Role ids must be unique")

        roles = [await self.get_role(role_id) for role_id in ordered_ids]
        for role in roles:
            await self._require_editable(actor_id, role)

        for index, role in enumerate(roles, start=1):
            priority = index * 10
            if role.priority != priority:
                await self.store.update_role(role, priority=priority, updated_by=actor_id)

        logger.info("Roles reordered", roles=[role.name for role in roles])
        return await self.get_role_hierarchy()
