import csv
import io
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from isagip.shared.errors import NotFoundError
from isagip.shared.store import RecordStore
from isagip.shared.utils import format_timestamp, to_local
from .models import Attribution, HistoryEntry, Report, ReportStatus

logger = logging.getLogger("reports.utils")

TRANSITIONS = {
    ReportStatus.PENDING: {ReportStatus.RELAYED, ReportStatus.ONGOING, ReportStatus.RESOLVED},
    ReportStatus.RELAYED: {ReportStatus.ONGOING, ReportStatus.RESOLVED},
    ReportStatus.ONGOING: {ReportStatus.RESPONDED, ReportStatus.RESOLVED},
    ReportStatus.RESPONDED: {ReportStatus.ONGOING, ReportStatus.RESOLVED},
    ReportStatus.RESOLVED: set(),
}

SUMMARY_HEADERS = ["Report ID", "Type", "Description", "Status", "Street", "Landmark",
                   "Location", "Reported By", "Timestamp"]
RECEIVED_HEADERS = ["Description", "Status", "Street", "Landmark", "Photo", "Actions", "Timestamp",
                    "Response Time", "Reported By", "Closed By", "Last Updated By", "Last Updated At", "Notes"]
RECEIVED_ACTIONS = "Ambulance/Responded/View/View History"
RECEIVED_FILENAME = "received-reports.csv"

PERIODS = ("year", "month", "week", "all")


def can_transition(current: ReportStatus, target: ReportStatus) -> bool:
    return target in TRANSITIONS[current]


def quote_cell(value) -> str:
    text = "" if value is None else str(value)
    if any(ch in text for ch in ('"', ",", "\n")):
        text = '"' + text.replace('"', '""') + '"'
    return text


def _to_csv(headers: List[str], rows: Iterable[list]) -> str:
    body = "\n".join(",".join(quote_cell(v) for v in row) for row in rows)
    return "\n".join([",".join(headers), body])


def summary_csv(reports: Iterable[Report], tz: Optional[str] = None) -> str:
    """Dashboard export, one row per report"""
    return _to_csv(SUMMARY_HEADERS, (
        [r.id, r.type.value, r.description, r.status.value, r.street, r.landmark,
         r.street, r.reported_by, format_timestamp(r.created_at, tz)]
        for r in reports
    ))


def received_csv(reports: Iterable[Report], tz: Optional[str] = None) -> str:
    """Received reports table export"""
    return _to_csv(RECEIVED_HEADERS, (
        [r.description, r.status.value, r.street, r.landmark, "Yes" if r.photo else "No", RECEIVED_ACTIONS,
         format_timestamp(r.created_at, tz), r.response_time, r.reported_by, r.closed_by or "",
         r.last_updated_by or "", format_timestamp(r.last_updated_at, tz), r.notes]
        for r in reports
    ))


def parse_csv(text: str) -> List[List[str]]:
    """Read an export back into rows of cell values, header row included"""
    return [row for row in csv.reader(io.StringIO(text)) if row]


def in_period(report: Report, period: str, month: int, year: int, tz: Optional[str] = None) -> bool:
    """Dashboard period filter on local dates; "week" keeps the days within 7 of the 15th"""
    ts = to_local(report.created_at, tz)
    if period == "year":
        return ts.year == year
    if period == "month":
        return ts.year == year and ts.month == month
    if period == "week":
        return ts.year == year and ts.month == month and abs(ts.day - 15) <= 7
    return True


def period_label(period: str, month: int, year: int) -> str:
    if period == "year":
        return str(year)
    if period == "month":
        return f"{year}-{month:02d}"
    if period == "week":
        return f"{year}-Wk"
    return "all"


def summary_filename(period: str, month: int, year: int) -> str:
    return f"iSagip-reports-{period_label(period, month, year)}.csv"


def matches_search(report: Report, search: Optional[str]) -> bool:
    if not search:
        return True
    needle = search.strip().lower()
    haystack = " ".join([report.id, report.description, report.street, report.landmark,
                         report.reported_by, report.type.value]).lower()
    return needle in haystack


COLLECTION = "reports"


async def load_report(store: RecordStore, report_id: str) -> Report:
    raw = await store.read_record(COLLECTION, report_id)
    if raw is None:
        logger.warning(f"Report {report_id} not found")
        raise NotFoundError(f"Report {report_id} not found.")
    return Report.model_validate(raw)


async def save_report(store: RecordStore, report: Report) -> Report:
    ack = await store.write_record(COLLECTION, report.id, report.model_dump(mode="json"))
    report.version = ack["version"]
    return report


def add_history(report: Report, actor: str, action: str, details: str, at: datetime) -> None:
    """Append a history entry and stamp the report as last touched by the actor"""
    report.history.append(HistoryEntry(timestamp=at, actor=actor, action=action, details=details))
    report.last_updated_by = actor
    report.last_updated_at = at


def attribute(report: Report, field: str, actor: str, at: datetime) -> None:
    report.field_updates[field] = Attribution(by=actor, at=at)
