import logging
from datetime import datetime
from typing import List, Optional
from urllib.parse import urlencode

from isagip.ambulances import manager as ambulances
from isagip.notifications.manager import notify_new_report
from isagip.shared.errors import ValidationError
from isagip.shared.store import RecordStore, next_sequence
from isagip.shared.utils import utcnow
from .models import (
    HistoryEntry, Report, ReportDispatch, ReportStatus, ReportSubmit, ReportType, ReportView,
    ResolveRequest, Severity,
)
from .utils import (
    COLLECTION, TRANSITIONS, add_history, attribute, can_transition, in_period, load_report,
    matches_search, save_report,
)

logger = logging.getLogger("reports.manager")

BASE_URL = "/api/reports/"


async def _next_report_id(store: RecordStore, year: int) -> str:
    while True:
        seq = await next_sequence(store, f"reports-{year}")
        report_id = f"REP-{year}-{seq:03d}"
        if await store.read_record(COLLECTION, report_id) is None:
            return report_id
        logger.debug(f"Report id {report_id} already taken, skipping")


def _transition(report: Report, target: ReportStatus, actor: str, action: str, details: str, at: datetime) -> None:
    if report.is_resolved:
        logger.warning(f"Rejected change to resolved report {report.id}")
        raise ValidationError(f"Report {report.id} is resolved and can no longer change.", field="status")
    if not can_transition(report.status, target):
        logger.warning(f"Rejected transition {report.status.value} -> {target.value} on {report.id}")
        raise ValidationError(
            f"Cannot move a {report.status.value} report to {target.value}.", field="status"
        )
    previous = report.status
    report.status = target
    add_history(report, actor, action, details or f"{previous.value} -> {target.value}", at)
    attribute(report, "status", actor, at)


def _ensure_open(report: Report) -> None:
    if report.is_resolved:
        logger.warning(f"Rejected change to resolved report {report.id}")
        raise ValidationError(f"Report {report.id} is resolved and can no longer change.", field="status")


async def create_report(store: RecordStore, data: ReportSubmit, reported_by: str) -> Report:
    """File a new report; it starts Pending, or Relayed when acknowledged on intake"""
    description = data.description.strip()
    if not description:
        raise ValidationError("Description is required.", field="description")
    reporter = (data.reported_by or reported_by or "").strip() or "Anonymous"
    now = utcnow()

    async with store.transaction():
        report = Report(
            id=await _next_report_id(store, now.year),
            type=data.type,
            description=description,
            street=data.street.strip(),
            landmark=data.landmark.strip(),
            location=data.location,
            photo=data.photo,
            reported_by=reporter,
            notes=data.notes,
            created_at=now,
        )
        add_history(report, reporter, "Created", f"{report.type.value} report received.", now)
        if data.relayed:
            _transition(report, ReportStatus.RELAYED, reported_by or reporter, "Relayed",
                        "Acknowledged on intake.", now)
        await save_report(store, report)

    logger.info(f"Report {report.id} ({report.type.value}) created by '{reporter}'")
    await notify_new_report(store, report)
    return report


async def get_report(store: RecordStore, report_id: str) -> Report:
    return await load_report(store, report_id)


async def get_history(store: RecordStore, report_id: str) -> List[HistoryEntry]:
    report = await load_report(store, report_id)
    return report.history


async def relay_report(store: RecordStore, session, report_id: str) -> Report:
    async with store.transaction():
        report = await load_report(store, report_id)
        _transition(report, ReportStatus.RELAYED, session.identity, "Relayed", "Report relayed to responders.", utcnow())
        await save_report(store, report)
    logger.info(f"Report {report_id} relayed by '{session.identity}'")
    return report


def _apply_severity(report: Report, severity: Severity, actor: str, at: datetime) -> None:
    report.severity = severity
    add_history(report, actor, "Severity Set", f"Severity: {severity.value}", at)
    attribute(report, "severity", actor, at)


def _apply_responder(report: Report, responder: str, actor: str, at: datetime) -> None:
    report.assigned_responder = responder
    add_history(report, actor, "Responder Assigned", f"Responder: {responder}", at)
    attribute(report, "assigned_responder", actor, at)


async def dispatch_report(store: RecordStore, session, report_id: str, dispatch: ReportDispatch) -> Report:
    """Send help: Pending/Relayed -> Ongoing, with optional severity, responder and ambulance"""
    actor = session.identity
    logger.info(f"'{actor}' dispatching report {report_id}: {dispatch.model_dump(exclude_none=True)}")
    async with store.transaction():
        report = await load_report(store, report_id)
        now = utcnow()
        if report.status not in (ReportStatus.PENDING, ReportStatus.RELAYED):
            _ensure_open(report)
            raise ValidationError("Only Pending or Relayed reports can be dispatched.", field="status")
        _transition(report, ReportStatus.ONGOING, actor, "Dispatched", "Help dispatched.", now)
        if dispatch.severity:
            _apply_severity(report, dispatch.severity, actor, now)
        if dispatch.responder and dispatch.responder.strip():
            _apply_responder(report, dispatch.responder.strip(), actor, now)
        await save_report(store, report)
        if dispatch.ambulance_id:
            _, report = await ambulances.assign(store, session, dispatch.ambulance_id, report.id)
    logger.info(f"Report {report_id} dispatched by '{actor}'")
    return report


async def toggle_respond(store: RecordStore, session, report_id: str) -> Report:
    """The table's "Responded" button: Ongoing <-> Responded, Pending/Relayed -> Ongoing"""
    async with store.transaction():
        report = await load_report(store, report_id)
        _ensure_open(report)
        target = ReportStatus.ONGOING if report.status != ReportStatus.ONGOING else ReportStatus.RESPONDED
        _transition(report, target, session.identity, "Status Changed", f"Status set to {target.value}", utcnow())
        await save_report(store, report)
    logger.info(f"Report {report_id} is now {report.status.value} ('{session.identity}')")
    return report


async def set_severity(store: RecordStore, session, report_id: str, severity: Severity) -> Report:
    async with store.transaction():
        report = await load_report(store, report_id)
        _ensure_open(report)
        _apply_severity(report, severity, session.identity, utcnow())
        await save_report(store, report)
    logger.info(f"Report {report_id} severity set to {severity.value} by '{session.identity}'")
    return report


async def assign_responder(store: RecordStore, session, report_id: str, responder: str) -> Report:
    responder = (responder or "").strip()
    if not responder:
        raise ValidationError("Responder is required.", field="responder")
    async with store.transaction():
        report = await load_report(store, report_id)
        _ensure_open(report)
        _apply_responder(report, responder, session.identity, utcnow())
        await save_report(store, report)
    logger.info(f"Report {report_id} assigned to responder '{responder}' by '{session.identity}'")
    return report


async def assign_vehicle(store: RecordStore, session, report_id: str, ambulance_id: str) -> Report:
    _, report = await ambulances.assign(store, session, ambulance_id, report_id)
    return report


async def add_note(store: RecordStore, session, report_id: str, text: str) -> Report:
    """Notes stay open on resolved reports"""
    text = (text or "").strip()
    if not text:
        raise ValidationError("Note cannot be empty.", field="notes")
    async with store.transaction():
        report = await load_report(store, report_id)
        report.notes = f"{report.notes}\n{text}" if report.notes else text
        now = utcnow()
        add_history(report, session.identity, "Note Added", text, now)
        attribute(report, "notes", session.identity, now)
        await save_report(store, report)
    logger.info(f"Note added to report {report_id} by '{session.identity}'")
    return report


async def set_photo(store: RecordStore, session, report_id: str, url: str) -> Report:
    async with store.transaction():
        report = await load_report(store, report_id)
        _ensure_open(report)
        report.photo = url
        now = utcnow()
        add_history(report, session.identity, "Photo Attached", url, now)
        attribute(report, "photo", session.identity, now)
        await save_report(store, report)
    return report


async def resolve_report(store: RecordStore, session, report_id: str, request: ResolveRequest) -> Report:
    """Close a report for good and free the ambulances still on it"""
    if not request.confirm:
        logger.info(f"Resolve of {report_id} not confirmed by '{session.identity}'")
        raise ValidationError("Please confirm closing this report.", field="confirm")

    actor = session.identity
    async with store.transaction():
        report = await load_report(store, report_id)
        now = utcnow()
        _transition(report, ReportStatus.RESOLVED, actor, "Closed", request.notes or "Report closed.", now)
        report.closed_by = actor
        report.closed_at = now
        report.archived = True
        if request.notes:
            report.notes = f"{report.notes}\n{request.notes}" if report.notes else request.notes
        released = await ambulances.release_for_report(store, report, actor, now)
        await save_report(store, report)
    logger.info(f"Report {report_id} resolved by '{actor}', released {[a.id for a in released]}")
    return report


def _page_link(page: int, page_size: int, filters: dict) -> str:
    params = {"page": page, "page_size": page_size}
    params.update({k: v for k, v in filters.items() if v is not None})
    return f"{BASE_URL}?{urlencode(params)}"


async def list_reports(
    store: RecordStore,
    status: Optional[ReportStatus] = None,
    type: Optional[ReportType] = None,
    search: Optional[str] = None,
    archived: Optional[bool] = None,
    page: int = 1,
    page_size: int = 10,
) -> dict:
    """Newest first, filtered and paginated"""
    filters = {}
    if status:
        filters["status"] = status.value
    if type:
        filters["type"] = type.value
    if archived is not None:
        filters["archived"] = archived
    records = await store.list_records(COLLECTION, filters or None)
    reports = [r for r in (Report.model_validate(raw) for raw in records) if matches_search(r, search)]
    reports.sort(key=lambda r: r.created_at, reverse=True)

    total = len(reports)
    offset = (page - 1) * page_size
    link_filters = {**filters, "search": search or None}
    next_page = _page_link(page + 1, page_size, link_filters) if page * page_size < total else None
    prev_page = _page_link(page - 1, page_size, link_filters) if page > 1 else None
    logger.info(f"Retrieved {min(page_size, max(total - offset, 0))} reports (total: {total})")
    return {
        "reports": [ReportView.of(r) for r in reports[offset:offset + page_size]],
        "total": total,
        "page": page,
        "page_size": page_size,
        "next_page": next_page,
        "prev_page": prev_page,
    }


async def all_reports(store: RecordStore) -> List[Report]:
    reports = [Report.model_validate(raw) for raw in await store.list_records(COLLECTION)]
    return sorted(reports, key=lambda r: r.created_at)


async def reports_for_period(store: RecordStore, period: str, month: int, year: int,
                             tz: Optional[str] = None) -> List[Report]:
    return [r for r in await all_reports(store) if in_period(r, period, month, year, tz)]


async def get_dashboard_stats(store: RecordStore) -> dict:
    """Counts by status and type, average response time and the five latest open reports"""
    reports = await all_reports(store)
    by_status = {status.value: 0 for status in TRANSITIONS}
    by_type = {t.value: 0 for t in ReportType}
    durations = []
    for report in reports:
        by_status[report.status.value] += 1
        by_type[report.type.value] += 1
        if report.response_time_minutes is not None:
            durations.append(report.response_time_minutes)
    latest_open = [r for r in reversed(reports) if not r.is_resolved][:5]
    return {
        "total": len(reports),
        "by_status": by_status,
        "by_type": by_type,
        "average_response_minutes": round(sum(durations) / len(durations), 1) if durations else None,
        "latest_open": [ReportView.of(r) for r in latest_open],
    }


async def active_locations(store: RecordStore) -> List[dict]:
    """Map markers for unresolved reports that carry coordinates"""
    markers = []
    for report in await all_reports(store):
        if report.is_resolved or report.location is None:
            continue
        markers.append({
            "id": report.id,
            "type": report.type.value,
            "description": report.description,
            "status": report.status.value,
            "lat": report.location.lat,
            "lng": report.location.lng,
        })
    return markers
