from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"


class Preferences(BaseModel):
    identity: str
    default_landing: Optional[str] = None
    theme: Theme = Theme.LIGHT
    language: str = "en"
    time_format: str = "12h"
    date_format: str = "YYYY-MM-DD"
    timezone: str = "Asia/Manila"
    version: int = 0


class PreferencesUpdate(BaseModel):
    default_landing: Optional[str] = None
    theme: Optional[Theme] = None
    language: Optional[str] = None
    time_format: Optional[str] = None
    date_format: Optional[str] = None
    timezone: Optional[str] = None
