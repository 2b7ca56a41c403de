import re
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from . import config

DISPLAY_FORMAT = "%Y-%m-%d %I:%M %p"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def local_zone(name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(name or config.TIMEZONE)


def to_local(value: datetime, tz: Optional[str] = None) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(local_zone(tz))


def format_timestamp(value: Optional[datetime], tz: Optional[str] = None) -> str:
    """Format a timestamp the way the dashboard tables show it, in local time"""
    if value is None:
        return ""
    return to_local(value, tz).strftime(DISPLAY_FORMAT)


def parse_timestamp(text: str, tz: Optional[str] = None) -> datetime:
    """Read a dashboard timestamp written in local time"""
    return datetime.strptime(text, DISPLAY_FORMAT).replace(tzinfo=local_zone(tz))


def digits_only(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def is_valid_email(value: str) -> bool:
    # The dashboard only ever checked for an "@"
    return "@" in (value or "")
