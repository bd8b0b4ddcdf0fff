"""
Permission Override Layer.

Per-user exceptions applied on top of role-derived permissions. An
override always wins over what roles imply, whether it grants or
revokes. Resolution works on sets of permission keys, so the
outcome does not depend on the order overrides were created in.
"""

from datetime import datetime
from typing import AbstractSet
from uuid import UUID

import structlog

from assetdesk.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from assetdesk.models.rbac import Permission, PermissionOverride
from assetdesk.rbac.assignments import UserRoleLedger
from assetdesk.rbac.interfaces import RBACStore
from assetdesk.rbac.types import PermissionKey, outranks
from assetdesk.utils.timezone import Clock, is_expired, to_utc, utc_now

logger = structlog.get_logger()


class PermissionOverrideLayer:
    """Read, set and apply per-user permission overrides."""

    def __init__(self, store: RBACStore, ledger: UserRoleLedger, clock: Clock = utc_now):
        self.store = store
        self.ledger = ledger
        self.clock = clock

    async def get_overrides(self, user_id: UUID) -> list[PermissionOverride]:
        """Active, unexpired overrides of a user."""
        now = self.clock()
        rows = await self.store.list_overrides(user_id)
        return [row for row in rows if not is_expired(row.expires_at, now)]

    async def get_override_details(
        self,
        user_id: UUID,
    ) -> list[tuple[PermissionOverride, Permission]]:
        """Overrides joined to their permissions, for listings."""
        overrides = await self.get_overrides(user_id)
        permissions = await self.store.get_permissions({o.permission_id for o in overrides})
        return [
            (override, permissions[override.permission_id])
            for override in overrides
            if override.permission_id in permissions
        ]

    async def apply(self, user_id: UUID, keys: AbstractSet[PermissionKey]) -> frozenset[PermissionKey]:
        """
        Resolve overrides against role-derived ``keys``.

        Revokes remove every held key they cover, so revoking
        ``tickets:view:ALL`` also drops ``tickets:view:OWN``. Grants then
        add their exact key. Overrides pointing at retired permissions are
        ignored.
        """
        details = await self.get_override_details(user_id)
        granted: set[PermissionKey] = set()
        revoked: set[PermissionKey] = set()
        for override, permission in details:
            if not permission.is_active:
                continue
            (granted if override.granted else revoked).add(permission.key)

        kept = {key for key in keys if not any(r.covers(key) for r in revoked)}
        return frozenset(kept | granted)

    async def _require_outranks_user(self, actor_id: UUID | None, user_id: UUID) -> None:
        """The actor's highest role must sit strictly above the target user's."""
        if actor_id is None:
            return
        if actor_id == user_id:
            raise ForbiddenError(
                "Cannot change your own permission overrides",
                code="SELF_OVERRIDE",
                details={"user_id": str(user_id)},
            )
        actor_level = await self.ledger.get_highest_level(actor_id)
        target_level = await self.ledger.get_highest_level(user_id)
        # A user without roles sits below every role holder
        if not outranks(actor_level, -1 if target_level is None else target_level):
            raise ForbiddenError(
                "Cannot change overrides of a user who is not below your highest role",
                code="ROLE_HIERARCHY",
                details={
                    "user_id": str(user_id),
                    "user_level": target_level,
                    "actor_level": actor_level,
                },
            )

    async def set_override(
        self,
        user_id: UUID,
        permission_id: UUID,
        granted: bool,
        *,
        granted_by: UUID | None = None,
        reason: str | None = None,
        expires_at: datetime | None = None,
    ) -> PermissionOverride:
        """
        Grant or revoke one permission for one user.

        Replaces the user's existing active override for the permission.
        ``granted_by`` is the acting user; when set, the target user must
        sit strictly below the actor's highest role and may not be the
        actor. ``None`` means the system itself.

        Raises:
            NotFoundError: permission missing or retired
            ForbiddenError: self-targeted, or target not below the actor
            ValidationError: expiry not in the future
        """
        permission = await self.store.get_permission(permission_id)
        if permission is None or not permission.is_active:
            raise NotFoundError("Permission not found", details={"permission_id": str(permission_id)})

        await self._require_outranks_user(granted_by, user_id)

        if expires_at is not None:
            expires_at = to_utc(expires_at)
            if is_expired(expires_at, self.clock()):
                raise ValidationError(
                    "expires_at must be in the future",
                    details={"expires_at": expires_at.isoformat()},
                )

        existing = next(
            (row for row in await self.store.list_overrides(user_id) if row.permission_id == permission_id),
            None,
        )
        if existing is not None:
            override = await self.store.update_override(
                existing,
                granted=granted,
                reason=reason,
                granted_by=granted_by,
                expires_at=expires_at,
            )
        else:
            override = await self.store.add_override(
                PermissionOverride(
                    user_id=user_id,
                    permission_id=permission_id,
                    granted=granted,
                    is_active=True,
                    reason=reason,
                    granted_by=granted_by,
                    expires_at=expires_at,
                )
            )

        logger.info(
            "Permission override set",
            user_id=str(user_id),
            permission=str(permission.key),
            granted=granted,
            granted_by=str(granted_by) if granted_by else None,
        )
        return override

    async def clear_override(
        self,
        user_id: UUID,
        permission_id: UUID,
        *,
        actor_id: UUID | None = None,
    ) -> PermissionOverride:
        """
        Deactivate the user's override for a permission.

        Raises:
            ForbiddenError: self-targeted, or target not below the actor
            NotFoundError: no active override exists
        """
        await self._require_outranks_user(actor_id, user_id)
        for row in await self.store.list_overrides(user_id):
            if row.permission_id == permission_id:
                override = await self.store.update_override(row, is_active=False)
                logger.info(
                    "Permission override cleared",
                    user_id=str(user_id),
                    permission_id=str(permission_id),
                )
                return override

        raise NotFoundError(
            "Permission override not found",
            details={"user_id": str(user_id), "permission_id": str(permission_id)},
        )
