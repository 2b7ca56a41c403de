from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import Response

from isagip.access.models import Capability
from isagip.auth.manager import require_capability
from isagip.auth.models import Session
from isagip.shared.media import upload_photo
from isagip.shared.response import success_response
from isagip.shared.store import RecordStore, get_store
from isagip.settings.manager import get_preferences
from isagip.shared.utils import to_local, utcnow
from . import manager
from .models import (
    NoteUpdate, ReportDispatch, ReportStatus, ReportSubmit, ReportType, ReportView, ResolveRequest,
    ResponderUpdate, SeverityUpdate, VehicleUpdate,
)
from .utils import PERIODS, RECEIVED_FILENAME, received_csv, summary_csv, summary_filename

router = APIRouter()

viewer = require_capability(Capability.VIEW_REPORTS, Capability.MANAGE_REPORTS)
editor = require_capability(Capability.MANAGE_REPORTS, write=True)


def _csv_response(text: str, filename: str) -> Response:
    return Response(
        content=text,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/")
async def submit(report: ReportSubmit, session: Session = Depends(editor), store: RecordStore = Depends(get_store)):
    created = await manager.create_report(store, report, session.identity)
    return success_response(ReportView.of(created), "Report submitted successfully")


@router.get("/")
async def get_all_reports(
    search: Optional[str] = Query(None),
    status: Optional[ReportStatus] = Query(None),
    type: Optional[ReportType] = Query(None),
    archived: Optional[bool] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    session: Session = Depends(viewer),
    store: RecordStore = Depends(get_store),
):
    result = await manager.list_reports(store, status=status, type=type, search=search,
                                        archived=archived, page=page, page_size=page_size)
    return success_response(result, "Reports retrieved successfully")


@router.get("/stats/dashboard")
async def get_stats(
    session: Session = Depends(require_capability(Capability.VIEW_DASHBOARD)),
    store: RecordStore = Depends(get_store),
):
    stats = await manager.get_dashboard_stats(store)
    return success_response(stats, "Report stats retrieved successfully")


@router.get("/export/summary.csv")
async def export_summary(
    period: str = Query("month", pattern="^(" + "|".join(PERIODS) + ")$"),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000),
    session: Session = Depends(require_capability(Capability.VIEW_DASHBOARD)),
    store: RecordStore = Depends(get_store),
):
    """Dashboard CSV for a year, a month, the mid-month week or everything.

    Periods and timestamps follow the requester's timezone preference.
    """
    tz = (await get_preferences(store, session.identity)).timezone
    now = to_local(utcnow(), tz)
    month = month or now.month
    year = year or now.year
    reports = await manager.reports_for_period(store, period, month, year, tz)
    return _csv_response(summary_csv(reports, tz), summary_filename(period, month, year))


@router.get("/export/received.csv")
async def export_received(session: Session = Depends(viewer), store: RecordStore = Depends(get_store)):
    tz = (await get_preferences(store, session.identity)).timezone
    reports = await manager.all_reports(store)
    return _csv_response(received_csv(reports, tz), RECEIVED_FILENAME)


@router.get("/{report_id}")
async def get_single_report(report_id: str, session: Session = Depends(viewer), store: RecordStore = Depends(get_store)):
    report = await manager.get_report(store, report_id)
    return success_response(ReportView.of(report), "Report retrieved successfully")


@router.get("/{report_id}/history")
async def get_report_history(report_id: str, session: Session = Depends(viewer), store: RecordStore = Depends(get_store)):
    history = await manager.get_history(store, report_id)
    return success_response(history, "Report history retrieved successfully")


@router.post("/{report_id}/relay")
async def relay(report_id: str, session: Session = Depends(editor), store: RecordStore = Depends(get_store)):
    report = await manager.relay_report(store, session, report_id)
    return success_response(ReportView.of(report), "Report relayed")


@router.post("/{report_id}/dispatch")
async def dispatch(
    report_id: str,
    body: ReportDispatch,
    session: Session = Depends(editor),
    store: RecordStore = Depends(get_store),
):
    report = await manager.dispatch_report(store, session, report_id, body)
    return success_response(ReportView.of(report), "Help dispatched")


@router.post("/{report_id}/respond")
async def respond(report_id: str, session: Session = Depends(editor), store: RecordStore = Depends(get_store)):
    report = await manager.toggle_respond(store, session, report_id)
    return success_response(ReportView.of(report), f"Report marked {report.status.value}")


@router.put("/{report_id}/severity")
async def severity(
    report_id: str,
    body: SeverityUpdate,
    session: Session = Depends(editor),
    store: RecordStore = Depends(get_store),
):
    report = await manager.set_severity(store, session, report_id, body.severity)
    return success_response(ReportView.of(report), "Severity updated")


@router.put("/{report_id}/responder")
async def responder(
    report_id: str,
    body: ResponderUpdate,
    session: Session = Depends(editor),
    store: RecordStore = Depends(get_store),
):
    report = await manager.assign_responder(store, session, report_id, body.responder)
    return success_response(ReportView.of(report), "Responder assigned")


@router.put("/{report_id}/vehicle")
async def vehicle(
    report_id: str,
    body: VehicleUpdate,
    session: Session = Depends(require_capability(Capability.MANAGE_AMBULANCES, write=True)),
    store: RecordStore = Depends(get_store),
):
    report = await manager.assign_vehicle(store, session, report_id, body.ambulance_id)
    return success_response(ReportView.of(report), "Ambulance assigned")


@router.post("/{report_id}/notes")
async def notes(
    report_id: str,
    body: NoteUpdate,
    session: Session = Depends(editor),
    store: RecordStore = Depends(get_store),
):
    report = await manager.add_note(store, session, report_id, body.notes)
    return success_response(ReportView.of(report), "Note added")


@router.post("/{report_id}/photo")
async def photo(
    report_id: str,
    file: UploadFile = File(...),
    session: Session = Depends(editor),
    store: RecordStore = Depends(get_store),
):
    await manager.get_report(store, report_id)
    url = await upload_photo(file, folder=f"reports/{report_id}")
    report = await manager.set_photo(store, session, report_id, url)
    return success_response(ReportView.of(report), "Photo uploaded")


@router.post("/{report_id}/resolve")
async def resolve(
    report_id: str,
    body: ResolveRequest,
    session: Session = Depends(editor),
    store: RecordStore = Depends(get_store),
):
    report = await manager.resolve_report(store, session, report_id, body)
    return success_response(ReportView.of(report), "Report closed")
