import pytest

from isagip.access import manager as access
from isagip.access import policy
from isagip.access.models import Capability, Role, RolePolicy


def test_system_admin_sees_registration_but_not_dashboard():
    assert access.is_visible(Role.SYSTEM_ADMIN, "Registration")
    assert access.is_visible(Role.SYSTEM_ADMIN, "Resident Management")
    assert not access.is_visible(Role.SYSTEM_ADMIN, "Dashboard")
    assert not access.is_visible(Role.SYSTEM_ADMIN, "Ambulance")


def test_live_viewer_only_sees_reports_viewing():
    assert access.is_visible(Role.LIVE_VIEWER, "Reports Viewing")
    assert not access.is_visible(Role.LIVE_VIEWER, "Reports")
    assert not access.is_visible(Role.LIVE_VIEWER, "Dashboard")
    assert access.is_visible(Role.LIVE_VIEWER, "Settings")


def test_longest_label_wins():
    assert access.resolve_menu_item("Reports Viewing").page == "reportsViewing.html"
    assert access.resolve_menu_item("  Reports ").page == "reports.html"
    assert access.resolve_menu_item("Inbox") is None


def test_denied_label_hides_compound_text():
    assert not access.is_visible(Role.SYSTEM_ADMIN, "Reports Settings")
    assert not access.is_visible(Role.LIVE_VIEWER, "Settings / Dashboard")
    assert access.is_visible(Role.BARANGAY_STAFF, "Reports Viewing Settings")
    assert [i.label for i in access.matched_menu_items("Reports Viewing")] == ["Reports Viewing"]


def test_staff_menu_pages():
    pages = [item.page for item in access.visible_menu(Role.BARANGAY_STAFF)]
    assert pages == ["dashboard.html", "reports.html", "reportsViewing.html", "ambulance.html", "settings.html"]


def test_aliases_share_policy():
    assert access.can(Role.RESPONDER, Capability.MANAGE_REPORTS)
    assert not access.can(Role.RESPONDER, Capability.REGISTER_ACCOUNTS)
    assert access.can(Role.ADMIN, Capability.REGISTER_ACCOUNTS)
    assert access.destination_for(Role.ADMIN) == "register-staff.html"


def test_unknown_role_falls_back_to_admin_policy():
    assert access.effective_role("janitor") == Role.SYSTEM_ADMIN
    assert access.can("janitor", Capability.REGISTER_ACCOUNTS)
    assert access.destination_for("janitor") == "register-staff.html"


def test_deny_beats_allow(monkeypatch):
    both = RolePolicy(allowed=frozenset({Capability.SETTINGS}), denied=frozenset({Capability.SETTINGS}))
    monkeypatch.setitem(policy.ROLE_POLICIES, Role.BARANGAY_STAFF, both)
    assert not access.can(Role.BARANGAY_STAFF, Capability.SETTINGS)


@pytest.mark.parametrize("stored, expected", [
    ("system_admin", Role.SYSTEM_ADMIN),
    ("Barangay Admin", Role.SYSTEM_ADMIN),
    ("tv viewer", Role.LIVE_VIEWER),
    ("clerk", Role.BARANGAY_STAFF),
    (None, Role.BARANGAY_STAFF),
])
def test_normalize_role(stored, expected):
    assert access.normalize_role(stored) == expected


def test_destination_ignores_forbidden_preference():
    assert access.destination_for(Role.BARANGAY_STAFF, "ambulance.html") == "ambulance.html"
    assert access.destination_for(Role.BARANGAY_STAFF, "register-staff.html") == "dashboard.html"
    assert access.destination_for(Role.LIVE_VIEWER) == "reportsViewing.html"


def test_policy_tables_are_plain_data():
    tables = access.policy_tables()
    assert tables["aliases"] == {"admin": "system_admin", "responder": "barangay_staff"}
    assert "view_dashboard" in tables["roles"]["system_admin"]["denied"]
    assert tables["pages"]["register-resident.html"] == "register_accounts"
