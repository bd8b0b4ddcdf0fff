"""
Tests for the permission catalog.
"""

import pytest

from assetdesk.core.exceptions import ConflictError, NotFoundError, ValidationError
from assetdesk.models.rbac import RiskLevel


@pytest.mark.asyncio
async def test_list_permissions_is_ordered(rbac, factory):
    await factory.permission("tickets:view", category="support")
    await factory.permission("equipment:edit", category="assets")
    await factory.permission("equipment:create", category="assets")
    await factory.permission("tickets:view:OWN", category="support")

    keys = [str(p.key) for p in await rbac.catalog.list_permissions()]

    assert keys == [
        "equipment:create:ALL",
        "equipment:edit:ALL",
        "tickets:view:ALL",
        "tickets:view:OWN",
    ]


@pytest.mark.asyncio
async def test_list_permissions_filters(rbac, factory):
    await factory.permission("tickets:view", category="support")
    await factory.permission("equipment:edit", category="assets")

    assets = await rbac.catalog.list_permissions(category="assets")
    tickets = await rbac.catalog.list_permissions(resource="TICKETS")

    assert [p.resource for p in assets] == ["equipment"]
    assert [p.resource for p in tickets] == ["tickets"]


@pytest.mark.asyncio
async def test_find_permission_by_triple(rbac, factory):
    created = await factory.permission("tickets:edit:OWN")

    found = await rbac.catalog.find_permission("Tickets", "edit", "own")
    missing = await rbac.catalog.find_permission("tickets", "edit", "ALL")

    assert found is not None and found.id == created.id
    assert missing is None


@pytest.mark.asyncio
async def test_create_permission_defaults(rbac):
    permission = await rbac.catalog.create_permission(
        "Printers",
        "Maintenance",
        display_name="Printer maintenance",
        category="assets",
    )

    assert permission.resource == "printers"
    assert permission.action == "maintenance"
    assert permission.scope == "ALL"
    assert permission.name == "printers.maintenance"
    assert permission.risk_level is RiskLevel.NORMAL
    assert permission.is_active
    assert not permission.audit_required


@pytest.mark.asyncio
async def test_high_risk_permissions_require_audit(rbac):
    permission = await rbac.catalog.create_permission(
        "backups",
        "restore",
        display_name="Restore backups",
        category="system",
        risk_level=RiskLevel.CRITICAL,
        requires_mfa=True,
    )

    assert permission.audit_required
    assert permission.requires_mfa


@pytest.mark.asyncio
async def test_duplicate_active_triple_conflicts(rbac, factory):
    await factory.permission("tickets:view")

    with pytest.raises(ConflictError):
        await rbac.catalog.create_permission(
            "tickets", "view", "ALL", display_name="Again", category="support"
        )


@pytest.mark.asyncio
async def test_create_permission_requires_display_fields(rbac):
    with pytest.raises(ValidationError):
        await rbac.catalog.create_permission("tickets", "view", display_name=" ", category="support")


@pytest.mark.asyncio
async def test_deactivated_triple_can_be_recreated(rbac, factory):
    old = await factory.permission("tickets:view")
    await rbac.catalog.deactivate_permission(old.id)

    new = await factory.permission("tickets:view")

    assert new.id != old.id
    assert [p.id for p in await rbac.catalog.list_permissions()] == [new.id]
    assert len(await rbac.catalog.list_permissions(include_inactive=True)) == 2


@pytest.mark.asyncio
async def test_deactivate_unknown_permission(rbac):
    from uuid import uuid4

    with pytest.raises(NotFoundError):
        await rbac.catalog.deactivate_permission(uuid4())


@pytest.mark.asyncio
async def test_permissions_by_category(rbac, factory):
    await factory.permission("tickets:view", category="support")
    await factory.permission("equipment:view", category="assets")
    await factory.permission("tickets:create", category="support")

    grouped = await rbac.catalog.permissions_by_category()

    assert list(grouped) == ["assets", "support"]
    assert [str(p.key) for p in grouped["support"]] == ["tickets:create:ALL", "tickets:view:ALL"]


@pytest.mark.asyncio
async def test_resolve_keys_reports_every_unknown_key(rbac, factory):
    await factory.permission("tickets:view")

    with pytest.raises(ValidationError) as exc_info:
        await rbac.catalog.resolve_keys(["tickets:view", "tickets:explode", "nope:nothing"])

    assert exc_info.value.details["unknown"] == ["tickets:explode", "nope:nothing"]
