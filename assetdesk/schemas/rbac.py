"""
RBAC schemas.
"""

from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, ConfigDict, Field

from assetdesk.models.rbac import RiskLevel


# ============================================================
# PERMISSIONS
# ============================================================

class PermissionResponse(BaseModel):
    """Permission catalog entry."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    display_name: str
    description: str | None = None
    category: str
    resource: str
    action: str
    scope: str
    risk_level: RiskLevel
    requires_mfa: bool
    audit_required: bool
    is_active: bool


class PermissionCreate(BaseModel):
    """Permission create schema."""
    resource: str = Field(..., min_length=1, max_length=100)
    action: str = Field(..., min_length=1, max_length=50)
    scope: str = Field("ALL", min_length=1, max_length=20)
    display_name: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1, max_length=100)
    name: str | None = Field(None, max_length=150)
    description: str | None = Field(None, max_length=500)
    risk_level: RiskLevel = RiskLevel.NORMAL
    requires_mfa: bool = False


class PermissionCategory(BaseModel):
    """Permissions of one category."""
    category: str
    permissions: list[PermissionResponse]


# ============================================================
# ROLES
# ============================================================

class RoleResponse(BaseModel):
    """Role response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    display_name: str
    description: str | None = None
    color: str | None = None
    icon: str | None = None
    level: int
    priority: int
    is_system: bool
    is_active: bool
    max_users: int | None = None
    created_at: datetime
    updated_at: datetime


class RoleDetailResponse(RoleResponse):
    """Role with its grants and holder count."""
    permissions: list[str] = []
    user_count: int = 0
    can_manage: bool = False


class RoleCreate(BaseModel):
    """Role create schema."""
    name: str = Field(..., min_length=1, max_length=100)
    display_name: str | None = Field(None, max_length=200)
    description: str | None = Field(None, max_length=500)
    color: str | None = Field(None, max_length=20)
    icon: str | None = Field(None, max_length=50)
    level: int | None = Field(None, ge=0, le=1000)
    priority: int | None = Field(None, ge=0)
    max_users: int | None = Field(None, ge=0)
    permissions: list[str] = []


class RoleUpdate(BaseModel):
    """Role update schema; only fields that are sent change."""
    display_name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=500)
    color: str | None = Field(None, max_length=20)
    icon: str | None = Field(None, max_length=50)
    level: int | None = Field(None, ge=0, le=1000)
    priority: int | None = Field(None, ge=0)
    is_active: bool | None = None
    max_users: int | None = Field(None, ge=0)


class RolePermissionsUpdate(BaseModel):
    """Full replacement of a role's grants."""
    permissions: list[str]


class RoleClone(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    display_name: str | None = Field(None, max_length=200)


class RoleReorder(BaseModel):
    role_ids: list[UUID] = Field(..., min_length=1)


# ============================================================
# ASSIGNMENTS
# ============================================================

class RoleAssign(BaseModel):
    """Assign a role to a user."""
    role_id: UUID
    is_primary: bool = False
    expires_at: datetime | None = None
    reason: str | None = Field(None, max_length=500)


class UserRoleResponse(BaseModel):
    """A current role assignment."""
    assignment_id: UUID
    role: RoleResponse
    is_primary: bool
    assigned_by: UUID | None = None
    reason: str | None = None
    expires_at: datetime | None = None
    assigned_at: datetime


# ============================================================
# OVERRIDES & EFFECTIVE PERMISSIONS
# ============================================================

class OverrideSet(BaseModel):
    granted: bool
    reason: str | None = Field(None, max_length=500)
    expires_at: datetime | None = None


class OverrideResponse(BaseModel):
    id: UUID
    permission: PermissionResponse
    granted: bool
    reason: str | None = None
    granted_by: UUID | None = None
    expires_at: datetime | None = None


class EffectivePermissionsResponse(BaseModel):
    user_id: UUID
    roles: list[str]
    highest_role: str | None = None
    full_access: bool
    permissions: list[str]


class AuthContextResponse(EffectivePermissionsResponse):
    username: str
