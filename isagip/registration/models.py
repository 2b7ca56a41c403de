from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class ResidentStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class RequestKind(str, Enum):
    REGISTRATION = "registration"
    PROFILE_UPDATE = "profile_update"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Resident(BaseModel):
    username: str
    first: str = ""
    middle: str = ""
    last: str = ""
    suffix: str = ""
    email: str = ""
    contact: str = ""
    status: ResidentStatus = ResidentStatus.ACTIVE
    address: str = ""
    notes: str = ""
    gender: str = ""
    birth: str = ""
    photo: str = ""
    valid_id: str = ""
    password_hash: str = ""
    created_at: Optional[datetime] = None
    version: int = 0

    @property
    def full_name(self) -> str:
        parts = [self.first, self.middle, self.last, self.suffix]
        return " ".join(p for p in parts if p)


class ResidentView(BaseModel):
    """Resident without the password hash, plus whether an update awaits review"""
    username: str
    first: str
    middle: str
    last: str
    suffix: str
    full_name: str
    email: str
    contact: str
    status: ResidentStatus
    address: str
    notes: str
    gender: str
    birth: str
    photo: str
    valid_id: str
    created_at: Optional[datetime] = None
    pending_update: bool = False

    @classmethod
    def of(cls, resident: Resident, pending_update: bool = False) -> "ResidentView":
        data = resident.model_dump(exclude={"password_hash", "version"})
        return cls(full_name=resident.full_name, pending_update=pending_update, **data)


# Fields a resident may change through an update request
UPDATABLE_FIELDS = ("first", "middle", "last", "suffix", "email", "contact", "address", "gender", "birth", "photo")


class RegistrationRequest(BaseModel):
    id: str
    kind: RequestKind
    target_username: str
    email: str = ""
    changes: Dict[str, str] = Field(default_factory=dict)
    proofs: List[str] = Field(default_factory=list)
    requested_at: datetime
    password_hash: str = ""
    status: RequestStatus = RequestStatus.PENDING
    reviewer: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    reason: Optional[str] = None
    version: int = 0


class Feedback(BaseModel):
    username: str
    kind: RequestKind
    status: RequestStatus
    reason: Optional[str] = None
    reviewer: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    version: int = 0


class StaffRegistration(BaseModel):
    username: str = ""
    email: str = ""
    password: str = ""
    password2: str = ""
    first: str = ""
    middle: str = ""
    last: str = ""
    suffix: str = ""
    age: str = ""
    birth: str = ""
    contact: str = ""
    address: str = ""
    role: str = "barangay_staff"
    responder_type: str = ""
    photo: str = ""
    valid_id: str = ""


class ResidentRegistration(BaseModel):
    username: str = ""
    email: str = ""
    password: str = ""
    password2: str = ""
    first: str = ""
    middle: str = ""
    last: str = ""
    suffix: str = ""
    gender: str = ""
    birth: str = ""
    contact: str = ""
    address: str = ""
    photo: str = ""
    valid_id: str = ""
    notes: str = ""


class UpdateRequestSubmit(BaseModel):
    username: str
    changes: Dict[str, str]
    proofs: List[str] = Field(default_factory=list)


class ResidentUpdate(BaseModel):
    first: Optional[str] = None
    middle: Optional[str] = None
    last: Optional[str] = None
    suffix: Optional[str] = None
    email: Optional[str] = None
    contact: Optional[str] = None
    status: Optional[ResidentStatus] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    gender: Optional[str] = None
    birth: Optional[str] = None


class RejectRequest(BaseModel):
    reason: str = ""
    confirm: bool = False


class ConfirmRequest(BaseModel):
    confirm: bool = False
