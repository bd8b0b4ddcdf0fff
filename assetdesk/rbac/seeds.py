"""
Default permission catalog and built-in roles.

``seed_defaults`` is idempotent: permissions and roles that already
exist are left untouched, so administrators' later edits to a built-in
role's grants survive a re-seed.

Usage:
    async with async_session_factory() as session:
        await seed_defaults(RBACService(SQLAlchemyRBACStore(session)))
        await session.commit()
"""

from dataclasses import dataclass, field
from typing import Callable

import structlog

from assetdesk.models.rbac import Permission, RiskLevel
from assetdesk.rbac.service import RBACService

logger = structlog.get_logger()

LOW, NORMAL, HIGH, CRITICAL = RiskLevel.LOW, RiskLevel.NORMAL, RiskLevel.HIGH, RiskLevel.CRITICAL


@dataclass(frozen=True)
class PermissionSeed:
    category: str
    resource: str
    action: str
    display_name: str
    risk_level: RiskLevel = NORMAL
    scope: str = "ALL"
    requires_mfa: bool = False

    @property
    def key(self) -> str:
        return f"{self.resource}:{self.action}:{self.scope}"


@dataclass(frozen=True)
class RoleSeed:
    name: str
    display_name: str
    description: str
    level: int
    priority: int
    color: str
    icon: str
    max_users: int | None = None
    grants: Callable[[PermissionSeed], bool] = field(default=lambda seed: False)


def _crud(category: str, resource: str, label: str, delete_risk: RiskLevel = HIGH) -> list[PermissionSeed]:
    return [
        PermissionSeed(category, resource, "view", f"View {label}", LOW),
        PermissionSeed(category, resource, "create", f"Create {label}", NORMAL),
        PermissionSeed(category, resource, "edit", f"Edit {label}", NORMAL),
        PermissionSeed(category, resource, "delete", f"Delete {label}", delete_risk),
    ]


DEFAULT_PERMISSIONS: list[PermissionSeed] = [
    PermissionSeed("system", "*", "*", "Full access", CRITICAL, requires_mfa=True),
    # Assets
    *_crud("assets", "equipment", "equipment"),
    PermissionSeed("assets", "equipment", "assign", "Assign equipment"),
    PermissionSeed("assets", "equipment", "export", "Export equipment"),
    *_crud("assets", "printers", "printers"),
    PermissionSeed("assets", "printers", "maintenance", "Printer maintenance"),
    *_crud("assets", "consumables", "consumables"),
    *_crud("assets", "inventory", "inventory"),
    PermissionSeed("assets", "inventory", "export", "Export inventory"),
    # Support
    *_crud("support", "tickets", "tickets"),
    PermissionSeed("support", "tickets", "view", "View own tickets", LOW, scope="OWN"),
    PermissionSeed("support", "tickets", "edit", "Edit own tickets", LOW, scope="OWN"),
    PermissionSeed("support", "tickets", "assign", "Assign tickets"),
    PermissionSeed("support", "tickets", "close", "Close tickets"),
    # People
    *_crud("hr", "employees", "employees"),
    PermissionSeed("hr", "employees", "export", "Export employees"),
    # Finance
    *_crud("finance", "purchase_requests", "purchase requests"),
    PermissionSeed("finance", "purchase_requests", "view", "View own purchase requests", LOW, scope="OWN"),
    PermissionSeed("finance", "purchase_requests", "approve", "Approve purchase requests", HIGH, requires_mfa=True),
    # System
    PermissionSeed("system", "backups", "view", "View backups", LOW),
    PermissionSeed("system", "backups", "create", "Create backups"),
    PermissionSeed("system", "backups", "restore", "Restore backups", CRITICAL, requires_mfa=True),
    PermissionSeed("system", "backups", "delete", "Delete backups", HIGH),
    # Access control
    PermissionSeed("users", "users", "view", "View users", LOW),
    PermissionSeed("users", "users", "create", "Create users", HIGH, requires_mfa=True),
    PermissionSeed("users", "users", "edit", "Edit users", HIGH, requires_mfa=True),
    PermissionSeed("users", "users", "delete", "Delete users", CRITICAL, requires_mfa=True),
    PermissionSeed("users", "roles", "view", "View roles", LOW),
    PermissionSeed("users", "roles", "create", "Create roles", CRITICAL, requires_mfa=True),
    PermissionSeed("users", "roles", "edit", "Edit roles", CRITICAL, requires_mfa=True),
    PermissionSeed("users", "roles", "delete", "Delete roles", CRITICAL, requires_mfa=True),
    PermissionSeed("users", "roles", "assign", "Assign roles", HIGH, requires_mfa=True),
    PermissionSeed("users", "permissions", "view", "View permissions", LOW),
    PermissionSeed("users", "permissions", "create", "Create permissions", CRITICAL, requires_mfa=True),
    PermissionSeed("users", "permissions", "delete", "Retire permissions", CRITICAL, requires_mfa=True),
    PermissionSeed("users", "permissions", "grant", "Grant user permission overrides", CRITICAL, requires_mfa=True),
]


def _not_wildcard(seed: PermissionSeed) -> bool:
    return seed.resource != "*"


def _admin(seed: PermissionSeed) -> bool:
    return _not_wildcard(seed) and seed.key not in {"backups:restore:ALL", "permissions:grant:ALL"}


def _it_manager(seed: PermissionSeed) -> bool:
    if seed.category in {"assets", "support", "hr", "finance"}:
        return True
    if seed.category == "users":
        return seed.action in {"view", "assign", "edit"} and seed.resource != "permissions"
    return seed.resource == "backups" and seed.action in {"view", "create"}


def _technician(seed: PermissionSeed) -> bool:
    if seed.category in {"assets", "support"}:
        return seed.action != "delete"
    if seed.category == "hr":
        return seed.action in {"view", "edit"}
    return seed.key in {"users:view:ALL", "purchase_requests:view:ALL", "purchase_requests:create:ALL"}


def _support(seed: PermissionSeed) -> bool:
    if seed.category == "support":
        return seed.action in {"view", "create", "edit", "assign"}
    return seed.category in {"assets", "hr"} and seed.action == "view"


def _user(seed: PermissionSeed) -> bool:
    if seed.scope == "OWN":
        return True
    return seed.key in {
        "tickets:create:ALL",
        "purchase_requests:create:ALL",
        "equipment:view:ALL",
    }


def _viewer(seed: PermissionSeed) -> bool:
    return _not_wildcard(seed) and seed.action == "view" and seed.category in {"assets", "support", "hr"}


BUILTIN_ROLES: list[RoleSeed] = [
    RoleSeed(
        "SUPER_ADMIN", "Super Administrator",
        "Unrestricted access. Reserved for the principal administrators.",
        100, 1000, "#DC2626", "crown", max_users=2,
        grants=lambda seed: seed.resource == "*",
    ),
    RoleSeed(
        "ADMIN", "Administrator",
        "Broad administrative access short of restoring backups and per-user grants.",
        90, 900, "#7C3AED", "shield-check", max_users=5, grants=_admin,
    ),
    RoleSeed(
        "IT_MANAGER", "IT Manager",
        "Runs the IT department: assets, support, people and purchasing.",
        80, 800, "#2563EB", "briefcase", max_users=3, grants=_it_manager,
    ),
    RoleSeed(
        "TECHNICIAN", "Technician",
        "Maintains equipment and works tickets.",
        70, 700, "#059669", "wrench", grants=_technician,
    ),
    RoleSeed(
        "SUPPORT", "Support",
        "Front-line helpdesk.",
        60, 600, "#D97706", "headset", grants=_support,
    ),
    RoleSeed(
        "USER", "User",
        "Regular employee: own tickets and requests.",
        50, 500, "#6B7280", "user", grants=_user,
    ),
    RoleSeed(
        "VIEWER", "Viewer",
        "Read-only access to assets, tickets and employees.",
        40, 400, "#9CA3AF", "eye", grants=_viewer,
    ),
]


async def seed_permissions(rbac: RBACService, seeds: list[PermissionSeed] = DEFAULT_PERMISSIONS) -> list[Permission]:
    """Create missing catalog entries; returns the full seeded set."""
    permissions: list[Permission] = []
    for seed in seeds:
        permission = await rbac.catalog.find_permission(seed.resource, seed.action, seed.scope)
        if permission is None:
            permission = await rbac.catalog.create_permission(
                seed.resource,
                seed.action,
                seed.scope,
                display_name=seed.display_name,
                category=seed.category,
                name=f"{seed.resource}.{seed.action}" + ("" if seed.scope == "ALL" else f".{seed.scope.lower()}"),
                risk_level=seed.risk_level,
                requires_mfa=seed.requires_mfa,
            )
        permissions.append(permission)
    return permissions


async def seed_defaults(
    rbac: RBACService,
    permissions: list[PermissionSeed] = DEFAULT_PERMISSIONS,
    roles: list[RoleSeed] = BUILTIN_ROLES,
) -> dict[str, int]:
    """
    Install the default catalog and built-in system roles.

    Returns counts of what was created.
    """
    before = len(await rbac.catalog.list_permissions())
    await seed_permissions(rbac, permissions)
    created_permissions = len(await rbac.catalog.list_permissions()) - before

    created_roles = 0
    for seed in roles:
        if await rbac.roles.get_role_by_name(seed.name) is not None:
            continue
        await rbac.roles.create_role(
            seed.name,
            display_name=seed.display_name,
            description=seed.description,
            color=seed.color,
            icon=seed.icon,
            level=seed.level,
            priority=seed.priority,
            max_users=seed.max_users,
            is_system=True,
            permissions=[p.key for p in permissions if seed.grants(p)],
        )
        created_roles += 1

    logger.info(
        "Default RBAC data seeded",
        permissions_created=created_permissions,
        roles_created=created_roles,
    )
    return {"permissions": created_permissions, "roles": created_roles}
