from enum import Enum
from typing import Optional

from pydantic import BaseModel, model_validator


class AmbulanceStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    IN_USE = "IN-USE"
    MAINTENANCE = "MAINTENANCE"


class Ambulance(BaseModel):
    id: str
    name: str
    status: AmbulanceStatus = AmbulanceStatus.AVAILABLE
    location: str = ""
    assigned_report_id: Optional[str] = None
    version: int = 0

    @model_validator(mode="after")
    def check_assignment(self):
        # IN-USE exactly when linked to a report
        if (self.status == AmbulanceStatus.IN_USE) != bool(self.assigned_report_id):
            raise ValueError("an IN-USE ambulance must be linked to a report, any other status must not be")
        if self.status != AmbulanceStatus.IN_USE and self.location:
            raise ValueError("only an IN-USE ambulance has a location")
        return self


class AmbulanceCreate(BaseModel):
    name: str


class AmbulanceAssign(BaseModel):
    report_id: str


class AmbulanceStatusUpdate(BaseModel):
    status: AmbulanceStatus
