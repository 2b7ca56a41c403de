"""Routing and permission tables.

Plain data so they can be served as-is by ``GET /api/access/policy`` and
swapped out in tests. Nothing here is editable at runtime.
"""
from .models import Capability, MenuItem, Role, RolePolicy

MENU_ITEMS = (
    MenuItem(label="Dashboard", page="dashboard.html", capability=Capability.VIEW_DASHBOARD),
    MenuItem(label="Reports", page="reports.html", capability=Capability.MANAGE_REPORTS),
    MenuItem(label="Reports Viewing", page="reportsViewing.html", capability=Capability.VIEW_REPORTS),
    MenuItem(label="Ambulance", page="ambulance.html", capability=Capability.MANAGE_AMBULANCES),
    MenuItem(label="Registration", page="register-staff.html", capability=Capability.REGISTER_ACCOUNTS),
    MenuItem(label="Resident Management", page="resident-management.html", capability=Capability.MANAGE_RESIDENTS),
    MenuItem(label="Settings", page="settings.html", capability=Capability.SETTINGS),
)

# Pages reachable without a menu entry of their own
EXTRA_PAGES = {
    "register-resident.html": Capability.REGISTER_ACCOUNTS,
}

PAGE_CAPABILITIES = {item.page: item.capability for item in MENU_ITEMS}
PAGE_CAPABILITIES.update(EXTRA_PAGES)

ROLE_POLICIES = {
    Role.SYSTEM_ADMIN: RolePolicy(
        allowed=frozenset({Capability.REGISTER_ACCOUNTS, Capability.MANAGE_RESIDENTS, Capability.SETTINGS}),
        denied=frozenset({Capability.VIEW_DASHBOARD, Capability.MANAGE_REPORTS,
                          Capability.VIEW_REPORTS, Capability.MANAGE_AMBULANCES}),
    ),
    Role.BARANGAY_STAFF: RolePolicy(
        allowed=frozenset({Capability.VIEW_DASHBOARD, Capability.MANAGE_REPORTS, Capability.VIEW_REPORTS,
                           Capability.MANAGE_AMBULANCES, Capability.SETTINGS}),
        denied=frozenset({Capability.REGISTER_ACCOUNTS, Capability.MANAGE_RESIDENTS}),
    ),
    Role.LIVE_VIEWER: RolePolicy(
        allowed=frozenset({Capability.VIEW_REPORTS, Capability.SETTINGS}),
        denied=frozenset({Capability.VIEW_DASHBOARD, Capability.MANAGE_REPORTS, Capability.MANAGE_AMBULANCES,
                          Capability.REGISTER_ACCOUNTS, Capability.MANAGE_RESIDENTS}),
    ),
}

# Roles that share another role's policy and landing page
ROLE_ALIASES = {
    Role.ADMIN: Role.SYSTEM_ADMIN,
    Role.RESPONDER: Role.BARANGAY_STAFF,
}

DEFAULT_ROLE = Role.SYSTEM_ADMIN

ROLE_DESTINATIONS = {
    Role.SYSTEM_ADMIN: "register-staff.html",
    Role.BARANGAY_STAFF: "dashboard.html",
    Role.LIVE_VIEWER: "reportsViewing.html",
}

ROLE_DISPLAY_NAMES = {
    Role.SYSTEM_ADMIN: "System Administrator",
    Role.BARANGAY_STAFF: "Barangay Staff",
    Role.LIVE_VIEWER: "Live Viewer",
    Role.RESPONDER: "Responder",
    Role.ADMIN: "Administrator",
}
