"""
Tests for the permission key value type and level comparison.
"""

import pytest

from assetdesk.core.exceptions import ValidationError
from assetdesk.models.rbac import RiskLevel
from assetdesk.rbac.types import PermissionKey, outranks


def test_parse_normalizes_case():
    key = PermissionKey.parse(" Tickets : VIEW : own ")

    assert key == PermissionKey("tickets", "view", "OWN")
    assert str(key) == "tickets:view:OWN"


def test_parse_without_scope_matches_any_scope():
    key = PermissionKey.parse("equipment:edit")

    assert key.scope is None
    assert PermissionKey.parse("equipment:edit", default_scope="ALL").scope == "ALL"


@pytest.mark.parametrize("raw", ["tickets", "tickets:", ":view", "a:b:c:d", "", "tickets::ALL"])
def test_parse_rejects_malformed_strings(raw):
    with pytest.raises(ValidationError):
        PermissionKey.parse(raw)


def test_parse_passes_keys_through():
    key = PermissionKey("roles", "edit", "ALL")
    assert PermissionKey.parse(key) is key


def test_all_scope_satisfies_narrower_request():
    held = PermissionKey("tickets", "view", "ALL")

    assert held.covers(PermissionKey("tickets", "view", "OWN"))
    assert held.covers(PermissionKey("tickets", "view"))


def test_narrow_scope_does_not_satisfy_all():
    held = PermissionKey("tickets", "view", "OWN")

    assert held.covers(PermissionKey("tickets", "view", "OWN"))
    assert held.covers(PermissionKey("tickets", "view"))
    assert not held.covers(PermissionKey("tickets", "view", "ALL"))


def test_wildcards_cover_resource_and_action():
    assert PermissionKey("*", "*", "ALL").is_full_access
    assert PermissionKey("tickets", "*", "ALL").covers(PermissionKey("tickets", "delete"))
    assert not PermissionKey("tickets", "*", "ALL").covers(PermissionKey("equipment", "delete"))
    assert PermissionKey("*", "view", "ALL").covers(PermissionKey("printers", "view"))


def test_outranks_is_strict():
    assert outranks(90, 50)
    assert not outranks(50, 50)
    assert not outranks(40, 50)
    assert not outranks(None, 0)


def test_risk_levels_are_ordered():
    assert RiskLevel.LOW < RiskLevel.NORMAL < RiskLevel.HIGH < RiskLevel.CRITICAL
    assert max([RiskLevel.HIGH, RiskLevel.LOW, RiskLevel.CRITICAL]) is RiskLevel.CRITICAL
