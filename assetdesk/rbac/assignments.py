"""
User-Role Assignment Ledger.

Tracks which users hold which roles. Expiry is evaluated lazily with
the injected clock: an assignment whose ``expires_at`` has passed is
ignored everywhere, even while its row is still flagged active.
"""

from datetime import datetime
from uuid import UUID

import structlog

from assetdesk.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from assetdesk.models.rbac import Role, UserRoleAssignment
from assetdesk.rbac.interfaces import RBACStore
from assetdesk.rbac.types import ActiveRole, outranks
from assetdesk.utils.timezone import Clock, is_expired, to_utc, utc_now

logger = structlog.get_logger()


def _holder_order(active: ActiveRole) -> tuple:
    # Highest level first, then the primary role, then display order
    return (-active.role.level, not active.is_primary, active.role.priority, active.role.name)


def hierarchy_denied(actor_level: int | None, role: Role) -> ForbiddenError:
    return ForbiddenError(
        f"Cannot manage role {role.name}: it is not below your highest role",
        code="ROLE_HIERARCHY",
        details={
            "role": role.name,
            "role_level": role.level,
            "actor_level": actor_level,
        },
    )


class UserRoleLedger:
    """Assign, remove and read user role assignments."""

    def __init__(self, store: RBACStore, clock: Clock = utc_now):
        self.store = store
        self.clock = clock

    def _is_current(self, assignment: UserRoleAssignment, now: datetime) -> bool:
        return bool(assignment.is_active) and not is_expired(assignment.expires_at, now)

    async def _current_assignments(self, user_id: UUID) -> list[UserRoleAssignment]:
        now = self.clock()
        rows = await self.store.list_user_assignments(user_id)
        return [row for row in rows if self._is_current(row, now)]

    # ============================================================
    # READS
    # ============================================================

    async def get_user_roles(self, user_id: UUID) -> list[ActiveRole]:
        """
        Current assignments of a user joined to their roles.

        Excludes inactive and expired assignments and roles that have
        been deactivated or deleted. Ordered by role level descending,
        so the highest role is first.
        """
        assignments = await self._current_assignments(user_id)
        if not assignments:
            return []

        roles = await self.store.get_roles({a.role_id for a in assignments})
        active = [
            ActiveRole(assignment=a, role=roles[a.role_id])
            for a in assignments
            if a.role_id in roles and roles[a.role_id].is_available
        ]
        return sorted(active, key=_holder_order)

    async def get_highest_role(self, user_id: UUID) -> Role | None:
        """Highest current role, or None for a user without authority."""
        roles = await self.get_user_roles(user_id)
        return roles[0].role if roles else None

    async def get_highest_level(self, user_id: UUID) -> int | None:
        role = await self.get_highest_role(user_id)
        return role.level if role else None

    async def count_holders(self, role_id: UUID) -> int:
        """Number of current assignments referencing a role."""
        now = self.clock()
        rows = await self.store.list_role_assignments(role_id)
        return sum(1 for row in rows if self._is_current(row, now))

    async def _require_manageable(self, actor_id: UUID | None, role: Role) -> None:
        if actor_id is None:
            return
        actor_level = await self.get_highest_level(actor_id)
        if not outranks(actor_level, role.level):
            raise hierarchy_denied(actor_level, role)

    async def _get_assignable_role(self, role_id: UUID) -> Role:
        role = await self.store.get_role(role_id)
        if role is None or not role.is_available:
            raise NotFoundError("Role not found", details={"role_id": str(role_id)})
        return role

    # ============================================================
    # MUTATIONS
    # ============================================================

    async def assign_role(
        self,
        user_id: UUID,
        role_id: UUID,
        *,
        assigned_by: UUID | None = None,
        expires_at: datetime | None = None,
        reason: str | None = None,
        is_primary: bool = False,
    ) -> UserRoleAssignment:
        """
        Give a role to a user.

        ``assigned_by`` is the acting user; when set, the role must be
        strictly below the actor's highest role. ``None`` means the
        system itself (seeding) and skips the hierarchy check.

        Raises:
            NotFoundError: role missing or inactive
            ForbiddenError: role not below the actor's highest role
            ValidationError: expiry not in the future
            ConflictError: user already holds the role, or the role is full
        """
        now = self.clock()
        role = await self._get_assignable_role(role_id)

        if expires_at is not None:
            expires_at = to_utc(expires_at)
            if is_expired(expires_at, now):
                raise ValidationError(
                    "expires_at must be in the future",
                    details={"expires_at": expires_at.isoformat()},
                )

        await self._require_manageable(assigned_by, role)

        # Active rows for this pair that have lapsed are retired, not duplicated
        retire: list[UUID] = []
        for existing in await self.store.list_user_assignments(user_id):
            if existing.role_id != role_id:
                continue
            if self._is_current(existing, now):
                raise ConflictError(
                    f"User already holds role {role.name}",
                    code="DUPLICATE_ASSIGNMENT",
                    details={"assignment_id": str(existing.id)},
                )
            retire.append(existing.id)

        if role.max_users is not None and await self.count_holders(role.id) >= role.max_users:
            raise ConflictError(
                f"Role {role.name} is limited to {role.max_users} users",
                code="ROLE_FULL",
                details={"max_users": role.max_users},
            )

        assignment = UserRoleAssignment(
            user_id=user_id,
            role_id=role.id,
            is_active=True,
            is_primary=is_primary,
            assigned_by=assigned_by,
            reason=reason,
            expires_at=expires_at,
        )
        assignment = await self.store.add_assignment(assignment, retire=retire)

        logger.info(
            "Role assigned",
            user_id=str(user_id),
            role=role.name,
            assigned_by=str(assigned_by) if assigned_by else None,
            is_primary=is_primary,
            expires_at=expires_at.isoformat() if expires_at else None,
        )
        return assignment

    async def _find_active(self, user_id: UUID, role_id: UUID) -> UserRoleAssignment | None:
        for row in await self.store.list_user_assignments(user_id):
            if row.role_id == role_id:
                return row
        return None

    async def remove_role(
        self,
        user_id: UUID,
        role_id: UUID,
        *,
        actor_id: UUID | None = None,
        missing_ok: bool = False,
    ) -> bool:
        """
        Take a role away from a user.

        Strict by default: removing an assignment that does not exist is
        a NotFoundError. Cleanup call sites pass ``missing_ok=True`` to
        get ``False`` instead.

        Raises:
            NotFoundError: no active assignment (unless ``missing_ok``)
            ForbiddenError: role not below the actor's highest role
        """
        assignment = await self._find_active(user_id, role_id)
        if assignment is None:
            if missing_ok:
                return False
            raise NotFoundError(
                "Role assignment not found",
                details={"user_id": str(user_id), "role_id": str(role_id)},
            )

        role = await self.store.get_role(role_id)
        if role is not None:
            await self._require_manageable(actor_id, role)

        await self.store.update_assignment(assignment, is_active=False, is_primary=False)

        logger.info(
            "Role removed",
            user_id=str(user_id),
            role=role.name if role else str(role_id),
            removed_by=str(actor_id) if actor_id else None,
        )
        return True

    async def set_primary(
        self,
        user_id: UUID,
        role_id: UUID,
        *,
        actor_id: UUID | None = None,
    ) -> UserRoleAssignment:
        """
        Make one of the user's current assignments their primary role.

        Raises:
            NotFoundError: user does not currently hold the role
            ForbiddenError: role not below the actor's highest role
        """
        now = self.clock()
        assignment = await self._find_active(user_id, role_id)
        if assignment is None or not self._is_current(assignment, now):
            raise NotFoundError(
                "Role assignment not found",
                details={"user_id": str(user_id), "role_id": str(role_id)},
            )

        role = await self._get_assignable_role(role_id)
        await self._require_manageable(actor_id, role)

        assignment = await self.store.promote_assignment(assignment)
        logger.info("Primary role changed", user_id=str(user_id), role=role.name)
        return assignment
