"""
RBAC Service - one object wiring the authorization components together.

Usage:
    rbac = RBACService(SQLAlchemyRBACStore(db))

    role = await rbac.roles.create_role(
        "field_tech",
        level=60,
        permissions=["equipment:view", "tickets:edit"],
        actor_id=current_user.id,
    )
    await rbac.assignments.assign_role(user_id, role.id, assigned_by=current_user.id)

    if await rbac.engine.has_permission(user_id, "tickets", "edit"):
        ...

Construct one per request (SQL store) or per process (memory store);
nothing is kept at module level.
"""

from dataclasses import replace

from assetdesk.rbac.assignments import UserRoleLedger
from assetdesk.rbac.catalog import PermissionCatalog
from assetdesk.rbac.engine import AuthorizationEngine
from assetdesk.rbac.hierarchy import ROLE_DEFAULTS, RoleHierarchyStore
from assetdesk.rbac.interfaces import RBACStore
from assetdesk.rbac.overrides import PermissionOverrideLayer
from assetdesk.utils.timezone import Clock, utc_now


class RBACService:
    """
    Facade over the catalog, role hierarchy, assignment ledger,
    override layer and decision engine sharing one store and clock.
    """

    def __init__(
        self,
        store: RBACStore,
        *,
        top_role_name: str | None = None,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.clock = clock

        defaults = ROLE_DEFAULTS
        if top_role_name:
            defaults = replace(defaults, top_role_name=top_role_name)

        self.catalog = PermissionCatalog(store)
        self.assignments = UserRoleLedger(store, clock=clock)
        self.overrides = PermissionOverrideLayer(store, self.assignments, clock=clock)
        self.roles = RoleHierarchyStore(store, self.assignments, self.catalog, defaults=defaults)
        self.engine = AuthorizationEngine(store, self.assignments, self.overrides, self.roles)
