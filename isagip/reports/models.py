from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class ReportType(str, Enum):
    MEDICAL = "Medical"
    FIRE = "Fire"
    POLICE = "Police"
    GENERAL = "General"


class ReportStatus(str, Enum):
    PENDING = "Pending"
    RELAYED = "Relayed"
    ONGOING = "Ongoing"
    RESPONDED = "Responded"
    RESOLVED = "Resolved"


class Severity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class Coordinates(BaseModel):
    lat: float
    lng: float


class HistoryEntry(BaseModel):
    timestamp: datetime
    actor: str
    action: str
    details: str = ""


class Attribution(BaseModel):
    by: str
    at: datetime


class ReportFields(BaseModel):
    """Stored report data shared by the record and its API view"""
    id: str
    type: ReportType = ReportType.GENERAL
    description: str
    status: ReportStatus = ReportStatus.PENDING
    street: str = ""
    landmark: str = ""
    location: Optional[Coordinates] = None
    photo: Optional[str] = None
    reported_by: str
    severity: Optional[Severity] = None
    assigned_responder: Optional[str] = None
    assigned_vehicle_id: Optional[str] = None
    closed_by: Optional[str] = None
    closed_at: Optional[datetime] = None
    created_at: datetime
    last_updated_at: Optional[datetime] = None
    last_updated_by: Optional[str] = None
    field_updates: Dict[str, Attribution] = Field(default_factory=dict)
    notes: str = ""
    archived: bool = False
    history: List[HistoryEntry] = Field(default_factory=list)
    version: int = 0

    @property
    def is_resolved(self) -> bool:
        return self.status == ReportStatus.RESOLVED


class Report(ReportFields):
    @model_validator(mode="after")
    def check_closed(self):
        if self.status == ReportStatus.RESOLVED and (not self.closed_by or self.closed_at is None):
            raise ValueError("a resolved report needs closed_by and closed_at")
        return self

    @property
    def response_time_minutes(self) -> Optional[int]:
        if self.closed_at is None:
            return None
        return int((self.closed_at - self.created_at).total_seconds() // 60)

    @property
    def response_time(self) -> str:
        minutes = self.response_time_minutes
        return "N/A" if minutes is None else f"{minutes} minutes"


class ReportView(ReportFields):
    """Report as returned by the API, with the derived response time"""
    response_time_minutes: Optional[int] = None
    response_time: str = "N/A"

    @classmethod
    def of(cls, report: Report) -> "ReportView":
        data = report.model_dump()
        data["response_time_minutes"] = report.response_time_minutes
        data["response_time"] = report.response_time
        return cls.model_validate(data)


class ReportSubmit(BaseModel):
    type: ReportType = ReportType.GENERAL
    description: str
    street: str = ""
    landmark: str = ""
    location: Optional[Coordinates] = None
    photo: Optional[str] = None
    reported_by: Optional[str] = None
    notes: str = ""
    relayed: bool = False


class ReportDispatch(BaseModel):
    responder: Optional[str] = None
    ambulance_id: Optional[str] = None
    severity: Optional[Severity] = None


class SeverityUpdate(BaseModel):
    severity: Severity


class ResponderUpdate(BaseModel):
    responder: str


class VehicleUpdate(BaseModel):
    ambulance_id: str


class NoteUpdate(BaseModel):
    notes: str


class ResolveRequest(BaseModel):
    confirm: bool = False
    notes: Optional[str] = None
