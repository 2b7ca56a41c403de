from enum import Enum
from typing import FrozenSet, List, Optional

from pydantic import BaseModel


class Role(str, Enum):
    SYSTEM_ADMIN = "system_admin"
    BARANGAY_STAFF = "barangay_staff"
    LIVE_VIEWER = "live_viewer"
    RESPONDER = "responder"
    ADMIN = "admin"


class Capability(str, Enum):
    VIEW_DASHBOARD = "view_dashboard"
    MANAGE_REPORTS = "manage_reports"
    VIEW_REPORTS = "view_reports"
    MANAGE_AMBULANCES = "manage_ambulances"
    REGISTER_ACCOUNTS = "register_accounts"
    MANAGE_RESIDENTS = "manage_residents"
    SETTINGS = "settings"


class AuthTier(str, Enum):
    CREDENTIAL = "credential"
    GUEST = "guest"


class MenuItem(BaseModel):
    label: str
    page: str
    capability: Capability


class RolePolicy(BaseModel):
    allowed: FrozenSet[Capability]
    denied: FrozenSet[Capability]


class MenuResponse(BaseModel):
    role: Role
    items: List[MenuItem]
    destination: str


class VisibilityCheck(BaseModel):
    role: Role
    label: str
    item: Optional[MenuItem]
    visible: bool
