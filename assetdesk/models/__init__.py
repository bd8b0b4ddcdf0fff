"""
Database models.
"""

from .base import Base
from .user import User
from .rbac import (
    RiskLevel,
    Permission,
    Role,
    RolePermission,
    UserRoleAssignment,
    PermissionOverride,
)

__all__ = [
    "Base",
    "User",
    "RiskLevel",
    "Permission",
    "Role",
    "RolePermission",
    "UserRoleAssignment",
    "PermissionOverride",
]
