"""
Role-based access control for AssetDesk.

Components:
- PermissionCatalog: what can be granted
- RoleHierarchyStore: roles, their levels and grants
- UserRoleLedger: who holds which role
- PermissionOverrideLayer: per-user grant/revoke exceptions
- AuthorizationEngine: allow/deny decisions over the layers above
- RouteGuard: turns decisions into contexts or rejections at the edge

Usage:
    from assetdesk.rbac import RBACService, MemoryRBACStore

    rbac = RBACService(MemoryRBACStore())
    await rbac.engine.has_permission(user_id, "tickets", "view")
"""

from .types import PermissionKey, EffectivePermissions, PolicyDecision
from .interfaces import RBACStore
from .stores import MemoryRBACStore, SQLAlchemyRBACStore
from .service import RBACService
from .guard import AuthContext, Identity, Rejection, RouteGuard, has_permission, rejection_for

__all__ = [
    "PermissionKey",
    "EffectivePermissions",
    "PolicyDecision",
    "RBACStore",
    "MemoryRBACStore",
    "SQLAlchemyRBACStore",
    "RBACService",
    "AuthContext",
    "Identity",
    "Rejection",
    "RouteGuard",
    "has_permission",
    "rejection_for",
]
