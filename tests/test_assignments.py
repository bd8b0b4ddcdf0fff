"""
Tests for the user-role assignment ledger.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from assetdesk.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError


def _held(active_roles):
    return [(active.name, active.is_primary) for active in active_roles]


@pytest.mark.asyncio
async def test_assign_role(rbac, factory):
    clerk = await factory.role("CLERK", 30)
    user_id = uuid4()

    assignment = await rbac.assignments.assign_role(user_id, clerk.id, reason="New hire")

    assert assignment.is_active
    assert assignment.reason == "New hire"
    assert assignment.assigned_by is None
    assert _held(await rbac.assignments.get_user_roles(user_id)) == [("CLERK", False)]


@pytest.mark.asyncio
async def test_duplicate_assignment_conflicts(rbac, factory):
    clerk = await factory.role("CLERK", 30)
    user_id = await factory.holder(clerk)

    with pytest.raises(ConflictError) as exc_info:
        await rbac.assignments.assign_role(user_id, clerk.id)

    assert exc_info.value.code == "DUPLICATE_ASSIGNMENT"
    assert len(await rbac.assignments.get_user_roles(user_id)) == 1


@pytest.mark.asyncio
async def test_user_roles_are_ordered_by_level(rbac, factory):
    viewer = await factory.role("VIEWER", 40)
    manager = await factory.role("MANAGER", 80)
    support = await factory.role("SUPPORT", 60)
    user_id = await factory.holder(viewer, manager, support)

    held = await rbac.assignments.get_user_roles(user_id)

    assert [active.name for active in held] == ["MANAGER", "SUPPORT", "VIEWER"]
    assert (await rbac.assignments.get_highest_role(user_id)).name == "MANAGER"
    assert await rbac.assignments.get_highest_level(user_id) == 80


@pytest.mark.asyncio
async def test_user_without_roles_has_no_highest_role(rbac):
    user_id = uuid4()

    assert await rbac.assignments.get_user_roles(user_id) == []
    assert await rbac.assignments.get_highest_role(user_id) is None
    assert await rbac.assignments.get_highest_level(user_id) is None


# ============ Primary ============


@pytest.mark.asyncio
async def test_new_primary_demotes_previous_primary(rbac, factory):
    support = await factory.role("SUPPORT", 60)
    clerk = await factory.role("CLERK", 30)
    user_id = uuid4()

    await rbac.assignments.assign_role(user_id, support.id, is_primary=True)
    await rbac.assignments.assign_role(user_id, clerk.id, is_primary=True)

    assert _held(await rbac.assignments.get_user_roles(user_id)) == [("SUPPORT", False), ("CLERK", True)]


@pytest.mark.asyncio
async def test_set_primary(rbac, factory):
    support = await factory.role("SUPPORT", 60)
    clerk = await factory.role("CLERK", 30)
    user_id = await factory.holder(support, clerk)

    await rbac.assignments.set_primary(user_id, clerk.id)
    assert _held(await rbac.assignments.get_user_roles(user_id)) == [("SUPPORT", False), ("CLERK", True)]

    await rbac.assignments.set_primary(user_id, support.id)
    assert _held(await rbac.assignments.get_user_roles(user_id)) == [("SUPPORT", True), ("CLERK", False)]


@pytest.mark.asyncio
async def test_set_primary_requires_current_assignment(rbac, factory):
    clerk = await factory.role("CLERK", 30)

    with pytest.raises(NotFoundError):
        await rbac.assignments.set_primary(uuid4(), clerk.id)


# ============ Expiry ============


@pytest.mark.asyncio
async def test_expired_assignment_grants_nothing(rbac, factory, clock):
    clerk = await factory.role("CLERK", 30)
    user_id = await factory.holder(clerk, expires_at=clock() + timedelta(hours=1))

    assert await rbac.engine.has_role(user_id, "CLERK")

    clock.advance(hours=1)

    assert await rbac.assignments.get_user_roles(user_id) == []
    assert not await rbac.engine.has_role(user_id, "CLERK")
    assert await rbac.assignments.count_holders(clerk.id) == 0


@pytest.mark.asyncio
async def test_role_can_be_reassigned_after_expiry(rbac, factory, clock):
    clerk = await factory.role("CLERK", 30)
    user_id = await factory.holder(clerk, expires_at=clock() + timedelta(days=1))
    clock.advance(days=2)

    assignment = await rbac.assignments.assign_role(user_id, clerk.id)

    assert assignment.expires_at is None
    assert len(await rbac.store.list_user_assignments(user_id)) == 1
    assert _held(await rbac.assignments.get_user_roles(user_id)) == [("CLERK", False)]


@pytest.mark.asyncio
@pytest.mark.parametrize("offset", [timedelta(0), timedelta(minutes=-5)])
async def test_expiry_must_be_in_the_future(rbac, factory, clock, offset):
    clerk = await factory.role("CLERK", 30)

    with pytest.raises(ValidationError):
        await rbac.assignments.assign_role(uuid4(), clerk.id, expires_at=clock() + offset)


# ============ Removal ============


@pytest.mark.asyncio
async def test_remove_role(rbac, factory):
    clerk = await factory.role("CLERK", 30)
    user_id = await factory.holder(clerk)

    assert await rbac.assignments.remove_role(user_id, clerk.id) is True
    assert await rbac.assignments.get_user_roles(user_id) == []


@pytest.mark.asyncio
async def test_remove_missing_assignment(rbac, factory):
    clerk = await factory.role("CLERK", 30)
    user_id = uuid4()

    with pytest.raises(NotFoundError):
        await rbac.assignments.remove_role(user_id, clerk.id)

    assert await rbac.assignments.remove_role(user_id, clerk.id, missing_ok=True) is False


@pytest.mark.asyncio
async def test_removed_role_can_be_assigned_again(rbac, factory):
    clerk = await factory.role("CLERK", 30)
    user_id = await factory.holder(clerk)
    await rbac.assignments.remove_role(user_id, clerk.id)

    await rbac.assignments.assign_role(user_id, clerk.id)

    assert await rbac.engine.has_role(user_id, "CLERK")


# ============ Hierarchy ============


@pytest.mark.asyncio
async def test_actor_assigns_only_roles_below_own(rbac, factory):
    support = await factory.role("SUPPORT", 60)
    peer = await factory.role("DISPATCH", 60)
    clerk = await factory.role("CLERK", 30)
    actor = await factory.holder(support)
    user_id = uuid4()

    with pytest.raises(ForbiddenError) as exc_info:
        await rbac.assignments.assign_role(user_id, peer.id, assigned_by=actor)
    assert exc_info.value.code == "ROLE_HIERARCHY"

    assignment = await rbac.assignments.assign_role(user_id, clerk.id, assigned_by=actor)
    assert assignment.assigned_by == actor


@pytest.mark.asyncio
async def test_actor_cannot_remove_higher_role(rbac, factory):
    support = await factory.role("SUPPORT", 60)
    admin = await factory.role("ADMIN", 90)
    actor = await factory.holder(support)
    victim = await factory.holder(admin)

    with pytest.raises(ForbiddenError):
        await rbac.assignments.remove_role(victim, admin.id, actor_id=actor)

    assert await rbac.engine.has_role(victim, "ADMIN")


@pytest.mark.asyncio
async def test_actor_without_role_cannot_assign(rbac, factory):
    clerk = await factory.role("CLERK", 30)

    with pytest.raises(ForbiddenError):
        await rbac.assignments.assign_role(uuid4(), clerk.id, assigned_by=uuid4())


# ============ Role state ============


@pytest.mark.asyncio
async def test_role_capacity_is_enforced(rbac, factory):
    top = await factory.role("SUPER_ADMIN", 100, max_users=1)
    first = await factory.holder(top)

    with pytest.raises(ConflictError) as exc_info:
        await rbac.assignments.assign_role(uuid4(), top.id)
    assert exc_info.value.code == "ROLE_FULL"

    await rbac.assignments.remove_role(first, top.id)
    await rbac.assignments.assign_role(uuid4(), top.id)
    assert await rbac.assignments.count_holders(top.id) == 1


@pytest.mark.asyncio
async def test_inactive_or_unknown_role_cannot_be_assigned(rbac, factory):
    clerk = await factory.role("CLERK", 30)
    await rbac.roles.update_role(clerk.id, {"is_active": False})

    with pytest.raises(NotFoundError):
        await rbac.assignments.assign_role(uuid4(), clerk.id)
    with pytest.raises(NotFoundError):
        await rbac.assignments.assign_role(uuid4(), uuid4())


@pytest.mark.asyncio
async def test_deactivated_role_stops_counting_for_holders(rbac, factory):
    manager = await factory.role("MANAGER", 80)
    clerk = await factory.role("CLERK", 30)
    user_id = await factory.holder(manager, clerk)

    await rbac.roles.update_role(manager.id, {"is_active": False})

    assert [active.name for active in await rbac.assignments.get_user_roles(user_id)] == ["CLERK"]
    assert await rbac.assignments.get_highest_level(user_id) == 30
