from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from isagip.access.models import AuthTier, MenuItem, Role


class LoginRequest(BaseModel):
    username: str
    password: str


class Session(BaseModel):
    id: str
    role: Role
    identity: str
    tier: AuthTier
    created_at: datetime
    expires_at: datetime

    @property
    def is_guest(self) -> bool:
        return self.tier == AuthTier.GUEST


class AccountProfile(BaseModel):
    first: str = ""
    middle: str = ""
    last: str = ""
    suffix: str = ""
    age: str = ""
    birth: str = ""
    contact: str = ""
    address: str = ""
    responder_type: str = ""
    photo: str = ""
    valid_id: str = ""


class Account(BaseModel):
    username: str
    email: str = ""
    password_hash: str
    role: str
    profile: AccountProfile = Field(default_factory=AccountProfile)
    fcm_token: Optional[str] = None
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    version: int = 0

    @property
    def display_name(self) -> str:
        name = f"{self.profile.first} {self.profile.last}".strip()
        if name and self.profile.suffix:
            name = f"{name} {self.profile.suffix}"
        return name or self.username


class LoginResponse(BaseModel):
    token: str
    session: Session
    destination: str
    role_name: str


class SessionInfo(BaseModel):
    session: Session
    role_name: str
    menu: List[MenuItem]
    destination: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str


class PasswordResetRequest(BaseModel):
    new_password: str
    confirm: bool = False
