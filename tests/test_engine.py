"""
Tests for the authorization decision engine.
"""

from uuid import uuid4

import pytest
import pytest_asyncio

from assetdesk.core.exceptions import ValidationError
from assetdesk.rbac.seeds import seed_defaults


@pytest_asyncio.fixture
async def technician_setup(rbac, factory):
    """ADMIN (level 100, wildcard), TECHNICIAN (level 50) and a level 10 role."""
    admin = await factory.role("ADMIN", 100, permissions=["*:*"])
    technician = await factory.role("TECHNICIAN", 50, permissions=["equipment:edit", "tickets:view"])
    intern = await factory.role("INTERN", 10)
    return admin, technician, intern


# ============ Scenarios ============


@pytest.mark.asyncio
async def test_technician_scenario(rbac, factory, technician_setup):
    admin, technician, intern = technician_setup
    user_id = await factory.holder(technician)

    assert await rbac.engine.has_permission(user_id, "equipment", "edit")
    assert not await rbac.engine.has_permission(user_id, "roles", "delete")
    assert not await rbac.engine.can_manage_role(user_id, admin.id)
    assert await rbac.engine.can_manage_role(user_id, intern.id)


@pytest.mark.asyncio
async def test_override_revokes_role_grant_scenario(rbac, factory, technician_setup):
    _, technician, _ = technician_setup
    user_id = await factory.holder(technician)
    tickets_view = await rbac.catalog.find_by_key("tickets:view")

    await rbac.overrides.set_override(user_id, tickets_view.id, granted=False)

    assert not await rbac.engine.has_permission(user_id, "tickets", "view")
    assert await rbac.engine.has_permission(user_id, "equipment", "edit")


@pytest.mark.asyncio
async def test_override_revokes_every_scope_of_seeded_technician(rbac, factory):
    await seed_defaults(rbac)
    technician = await rbac.roles.get_role_by_name("TECHNICIAN")
    user_id = await factory.holder(technician)
    view_all = await rbac.catalog.find_permission("tickets", "view", "ALL")
    assert await rbac.engine.has_permission(user_id, "tickets", "view", "OWN")

    await rbac.overrides.set_override(user_id, view_all.id, granted=False)

    assert not await rbac.engine.has_permission(user_id, "tickets", "view")
    assert not await rbac.engine.has_permission(user_id, "tickets", "view", "OWN")
    assert await rbac.engine.has_permission(user_id, "tickets", "edit")


# ============ Properties ============


@pytest.mark.asyncio
async def test_user_without_assignments_is_denied_everything(rbac, factory):
    await factory.role("ADMIN", 100, permissions=["*:*"])
    user_id = uuid4()

    assert not await rbac.engine.has_permission(user_id, "tickets", "view")
    assert not await rbac.engine.has_permission(user_id, "*", "*")
    assert not await rbac.engine.has_any_permission(user_id, "tickets:view", "equipment:view")


@pytest.mark.asyncio
async def test_grant_override_without_assignment_grants_nothing(rbac, factory):
    user_id = uuid4()
    export = await factory.permission("equipment:export")
    await rbac.overrides.set_override(user_id, export.id, granted=True)

    assert not await rbac.engine.has_permission(user_id, "equipment", "export")


@pytest.mark.asyncio
async def test_higher_level_manages_lower_level_only(rbac, factory):
    high = await factory.role("HIGH", 70)
    low = await factory.role("LOW", 20)
    high_user = await factory.holder(high)
    low_user = await factory.holder(low)

    assert await rbac.engine.can_manage_role(high_user, low.id)
    assert not await rbac.engine.can_manage_role(low_user, high.id)


@pytest.mark.asyncio
async def test_nobody_manages_their_own_role(rbac, factory):
    support = await factory.role("SUPPORT", 60)
    peer = await factory.role("DISPATCH", 60)
    user_id = await factory.holder(support)

    assert not await rbac.engine.can_manage_role(user_id, support.id)
    assert not await rbac.engine.can_manage_role(user_id, peer.id)


@pytest.mark.asyncio
async def test_wildcard_allows_arbitrary_permissions(rbac, factory, technician_setup):
    admin, _, _ = technician_setup
    user_id = await factory.holder(admin)

    assert await rbac.engine.has_permission(user_id, "anything", "at_all")
    assert await rbac.engine.has_permission(user_id, "tickets", "view", "OWN")
    assert await rbac.engine.has_all_permissions(user_id, "roles:delete", "backups:restore")
    assert (await rbac.engine.resolve(user_id)).full_access


@pytest.mark.asyncio
async def test_wildcard_is_not_narrowed_by_revoke_overrides(rbac, factory, technician_setup):
    admin, _, _ = technician_setup
    user_id = await factory.holder(admin)
    backups = await factory.permission("backups:restore")
    await rbac.overrides.set_override(user_id, backups.id, granted=False)

    assert await rbac.engine.has_permission(user_id, "backups", "restore")


@pytest.mark.asyncio
async def test_roles_union_their_permissions(rbac, factory):
    viewer = await factory.role("VIEWER", 40, permissions=["equipment:view"])
    helper = await factory.role("HELPER", 45, permissions=["tickets:create"])
    user_id = await factory.holder(viewer, helper)

    effective = await rbac.engine.resolve(user_id)

    assert {str(key) for key in effective.keys} == {"equipment:view:ALL", "tickets:create:ALL"}
    assert effective.role_names == ["HELPER", "VIEWER"]
    assert effective.highest_level == 45
    assert not effective.full_access


@pytest.mark.asyncio
async def test_inactive_role_permission_links_grant_nothing(rbac, factory):
    helper = await factory.role("HELPER", 45, permissions=["tickets:create", "tickets:view"])
    user_id = await factory.holder(helper)

    await rbac.roles.revoke_permission(helper.id, "tickets:create")

    assert not await rbac.engine.has_permission(user_id, "tickets", "create")
    assert await rbac.engine.has_permission(user_id, "tickets", "view")


# ============ Scopes ============


@pytest.mark.asyncio
async def test_all_scope_satisfies_narrower_scope(rbac, factory):
    support = await factory.role("SUPPORT", 60, permissions=["tickets:view:ALL"])
    user_id = await factory.holder(support)

    assert await rbac.engine.has_permission(user_id, "tickets", "view", "OWN")
    assert await rbac.engine.has_permission(user_id, "tickets", "view", "ALL")
    assert await rbac.engine.has_permission(user_id, "tickets", "view")


@pytest.mark.asyncio
async def test_own_scope_does_not_satisfy_all(rbac, factory):
    user_role = await factory.role("USER", 50, permissions=["tickets:view:OWN"])
    user_id = await factory.holder(user_role)

    assert await rbac.engine.has_permission(user_id, "tickets", "view")
    assert await rbac.engine.has_permission(user_id, "tickets", "view", "own")
    assert not await rbac.engine.has_permission(user_id, "tickets", "view", "ALL")
    assert not await rbac.engine.has_permission(user_id, "tickets", "view", "TEAM")


# ============ Companion checks ============


@pytest.mark.asyncio
async def test_any_and_all_permissions(rbac, factory):
    support = await factory.role("SUPPORT", 60, permissions=["tickets:view", "tickets:edit"])
    user_id = await factory.holder(support)

    assert await rbac.engine.has_any_permission(user_id, "equipment:delete", "tickets:edit")
    assert not await rbac.engine.has_any_permission(user_id, "equipment:delete", "roles:edit")
    assert await rbac.engine.has_all_permissions(user_id, "tickets:view", "tickets:edit")
    assert not await rbac.engine.has_all_permissions(user_id, "tickets:view", "equipment:delete")


@pytest.mark.asyncio
async def test_empty_target_lists(rbac):
    user_id = uuid4()

    assert not await rbac.engine.has_any_permission(user_id)
    assert await rbac.engine.has_all_permissions(user_id)


@pytest.mark.asyncio
async def test_malformed_targets_raise(rbac):
    with pytest.raises(ValidationError):
        await rbac.engine.has_any_permission(uuid4(), "tickets")


@pytest.mark.asyncio
async def test_has_role_matches_canonical_names(rbac, factory):
    support = await factory.role("support", 60)
    user_id = await factory.holder(support)

    assert await rbac.engine.has_role(user_id, "SUPPORT")
    assert await rbac.engine.has_role(user_id, ["ADMIN", "SUPPORT"])
    assert not await rbac.engine.has_role(user_id, "support")
    assert not await rbac.engine.has_role(user_id, [])


# ============ Role management policy ============


@pytest.mark.asyncio
async def test_role_permission_alone_does_not_allow_editing_higher_roles(rbac, factory):
    manager = await factory.role("MANAGER", 80, permissions=["roles:edit", "roles:view"])
    admin = await factory.role("ADMIN", 90)
    clerk = await factory.role("CLERK", 30)
    actor = await factory.holder(manager)

    denied = await rbac.engine.authorize_role_action(actor, "edit", role_id=admin.id)
    allowed = await rbac.engine.authorize_role_action(actor, "edit", role_id=clerk.id)

    assert not denied
    assert denied.metadata["code"] == "ROLE_HIERARCHY"
    assert allowed


@pytest.mark.asyncio
async def test_hierarchy_alone_does_not_allow_role_actions(rbac, factory):
    manager = await factory.role("MANAGER", 80, permissions=["roles:view"])
    clerk = await factory.role("CLERK", 30)
    actor = await factory.holder(manager)

    decision = await rbac.engine.authorize_role_action(actor, "delete", role_id=clerk.id)

    assert not decision.allowed
    assert decision.metadata == {"code": "INSUFFICIENT_PERMISSIONS", "missing": ["roles:delete"]}


@pytest.mark.asyncio
async def test_role_action_checks_requested_level(rbac, factory):
    manager = await factory.role("MANAGER", 80, permissions=["roles:create"])
    actor = await factory.holder(manager)

    assert await rbac.engine.authorize_role_action(actor, "create", level=79)
    decision = await rbac.engine.authorize_role_action(actor, "create", level=80)
    assert decision.metadata["code"] == "ROLE_HIERARCHY"


@pytest.mark.asyncio
async def test_role_action_on_unknown_role(rbac, factory):
    manager = await factory.role("MANAGER", 80, permissions=["roles:edit"])
    actor = await factory.holder(manager)

    decision = await rbac.engine.authorize_role_action(actor, "edit", role_id=uuid4())

    assert decision.metadata["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_unknown_role_action_is_rejected(rbac):
    with pytest.raises(ValidationError):
        await rbac.engine.authorize_role_action(uuid4(), "promote")
