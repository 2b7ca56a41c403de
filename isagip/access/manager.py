import logging
from typing import List, Optional, Union

from .models import Capability, MenuItem, Role, RolePolicy
from . import policy

logger = logging.getLogger("access.manager")

RoleLike = Union[Role, str, None]


def parse_role(role: RoleLike) -> Optional[Role]:
    """Return the Role for a stored value, or None when it is not a known role"""
    if isinstance(role, Role):
        return role
    try:
        return Role(str(role))
    except ValueError:
        return None


def normalize_role(role: RoleLike) -> Role:
    """Map an account's stored role onto a known role.

    Exact role values are kept; legacy values containing "admin" or "viewer"
    map to system_admin and live_viewer, anything else to barangay_staff.
    """
    parsed = parse_role(role)
    if parsed is not None:
        return parsed
    text = str(role or "").lower()
    if "admin" in text:
        return Role.SYSTEM_ADMIN
    if "viewer" in text:
        return Role.LIVE_VIEWER
    return Role.BARANGAY_STAFF


def effective_role(role: RoleLike) -> Role:
    """Role whose policy applies: aliases collapse, unknown roles fall back to the default"""
    parsed = parse_role(role)
    if parsed is None:
        logger.warning(f"Unknown role '{role}', falling back to {policy.DEFAULT_ROLE.value} policy")
        return policy.DEFAULT_ROLE
    return policy.ROLE_ALIASES.get(parsed, parsed)


def policy_for(role: RoleLike) -> RolePolicy:
    return policy.ROLE_POLICIES[effective_role(role)]


def matched_menu_items(label: str) -> List[MenuItem]:
    """Menu items whose label appears in a display text.

    A label found only inside a longer matched label is dropped, so
    "Reports Viewing" matches Reports Viewing and never Reports.
    """
    text = (label or "").strip()
    found = [item for item in policy.MENU_ITEMS if item.label in text]
    return [
        item for item in found
        if not any(item.label != other.label and item.label in other.label for other in found)
    ]


def resolve_menu_item(label: str) -> Optional[MenuItem]:
    """The menu item a display text refers to; the longest label wins"""
    matched = matched_menu_items(label)
    if not matched:
        return None
    return max(matched, key=lambda item: len(item.label))


def can(role: RoleLike, capability: Capability) -> bool:
    role_policy = policy_for(role)
    if capability in role_policy.denied:
        return False
    return capability in role_policy.allowed


def is_visible(role: RoleLike, menu_label: str) -> bool:
    """Hidden when any matched label is denied, whatever else the text matches"""
    matched = matched_menu_items(menu_label)
    if not matched:
        logger.debug(f"Menu label '{menu_label}' does not match any menu item")
        return False
    role_policy = policy_for(role)
    if any(item.capability in role_policy.denied for item in matched):
        return False
    return any(item.capability in role_policy.allowed for item in matched)


def visible_menu(role: RoleLike) -> List[MenuItem]:
    return [item for item in policy.MENU_ITEMS if can(role, item.capability)]


def is_page_allowed(role: RoleLike, page: Optional[str]) -> bool:
    capability = policy.PAGE_CAPABILITIES.get(page or "")
    if capability is None:
        return False
    return can(role, capability)


def destination_for(role: RoleLike, preferred: Optional[str] = None) -> str:
    """Landing page after login; a preferred page counts only if the role may open it"""
    if preferred and is_page_allowed(role, preferred):
        return preferred
    if preferred:
        logger.info(f"Ignoring default landing '{preferred}' not permitted for role '{role}'")
    return policy.ROLE_DESTINATIONS[effective_role(role)]


def display_name(role: RoleLike) -> str:
    parsed = parse_role(role)
    return policy.ROLE_DISPLAY_NAMES.get(parsed, "Unknown Role")


def policy_tables() -> dict:
    """The routing configuration as plain data"""
    return {
        "menu": [item.model_dump(mode="json") for item in policy.MENU_ITEMS],
        "pages": {page: cap.value for page, cap in policy.PAGE_CAPABILITIES.items()},
        "roles": {
            role.value: {
                "allowed": sorted(c.value for c in rp.allowed),
                "denied": sorted(c.value for c in rp.denied),
                "destination": policy.ROLE_DESTINATIONS[role],
            }
            for role, rp in policy.ROLE_POLICIES.items()
        },
        "aliases": {alias.value: target.value for alias, target in policy.ROLE_ALIASES.items()},
        "default_role": policy.DEFAULT_ROLE.value,
    }
