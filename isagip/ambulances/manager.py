import logging
from datetime import datetime
from typing import List, Optional, Tuple

from isagip.reports.models import Report
from isagip.reports.utils import add_history, attribute, load_report, save_report
from isagip.shared.errors import NotFoundError, ValidationError
from isagip.shared.store import RecordStore, next_sequence
from isagip.shared.utils import utcnow
from .models import Ambulance, AmbulanceCreate, AmbulanceStatus

logger = logging.getLogger("ambulances.manager")

COLLECTION = "ambulances"


async def get_ambulance(store: RecordStore, ambulance_id: str) -> Ambulance:
    raw = await store.read_record(COLLECTION, ambulance_id)
    if raw is None:
        logger.warning(f"Ambulance {ambulance_id} not found")
        raise NotFoundError(f"Ambulance {ambulance_id} not found.")
    return Ambulance.model_validate(raw)


async def save_ambulance(store: RecordStore, ambulance: Ambulance) -> Ambulance:
    ack = await store.write_record(COLLECTION, ambulance.id, ambulance.model_dump(mode="json"))
    ambulance.version = ack["version"]
    return ambulance


async def list_ambulances(store: RecordStore, status: Optional[AmbulanceStatus] = None) -> List[Ambulance]:
    filters = {"status": status.value} if status else None
    records = await store.list_records(COLLECTION, filters)
    return sorted((Ambulance.model_validate(r) for r in records), key=lambda a: a.name)


async def create_ambulance(store: RecordStore, session, data: AmbulanceCreate) -> Ambulance:
    name = data.name.strip()
    if not name:
        raise ValidationError("Ambulance name is required.", field="name")
    async with store.transaction():
        while True:
            ambulance_id = f"AMB-{await next_sequence(store, 'ambulances')}"
            if await store.read_record(COLLECTION, ambulance_id) is None:
                break
        ambulance = await save_ambulance(store, Ambulance(id=ambulance_id, name=name))
    logger.info(f"Ambulance {ambulance.id} ('{name}') added by '{session.identity}'")
    return ambulance


async def _release(
    store: RecordStore,
    ambulance: Ambulance,
    actor: str,
    at: datetime,
    status: AmbulanceStatus = AmbulanceStatus.AVAILABLE,
    detach_report: bool = True,
) -> Ambulance:
    """Free an ambulance and, unless told otherwise, unlink it from its open report.

    Every path that takes an ambulance out of service goes through here.
    """
    report_id = ambulance.assigned_report_id
    ambulance.status = status
    ambulance.location = ""
    ambulance.assigned_report_id = None
    await save_ambulance(store, ambulance)
    logger.info(f"Ambulance {ambulance.id} set to {status.value} (was on {report_id or 'no report'})")

    if report_id and detach_report:
        raw = await store.read_record("reports", report_id)
        if raw is None:
            logger.warning(f"Ambulance {ambulance.id} was linked to missing report {report_id}")
            return ambulance
        report = Report.model_validate(raw)
        if not report.is_resolved and report.assigned_vehicle_id == ambulance.id:
            report.assigned_vehicle_id = None
            add_history(report, actor, "Ambulance Released", f"{ambulance.name} released", at)
            attribute(report, "assigned_vehicle_id", actor, at)
            await save_report(store, report)
    return ambulance


async def release(store: RecordStore, session, ambulance_id: str) -> Ambulance:
    """Return an ambulance to AVAILABLE; releasing a free ambulance changes nothing"""
    async with store.transaction():
        ambulance = await get_ambulance(store, ambulance_id)
        if ambulance.status == AmbulanceStatus.AVAILABLE:
            logger.info(f"Ambulance {ambulance_id} already available, nothing to release")
            return ambulance
        return await _release(store, ambulance, session.identity, utcnow())


async def set_status(store: RecordStore, session, ambulance_id: str, status: AmbulanceStatus) -> Ambulance:
    """Manual status change from the fleet page; IN-USE only comes from assign()"""
    if status == AmbulanceStatus.IN_USE:
        logger.warning(f"'{session.identity}' tried to set ambulance {ambulance_id} IN-USE directly")
        raise ValidationError("Assign the ambulance to a report to mark it IN-USE.", field="status")
    async with store.transaction():
        ambulance = await get_ambulance(store, ambulance_id)
        if ambulance.status == status:
            return ambulance
        return await _release(store, ambulance, session.identity, utcnow(), status=status)


async def release_for_report(store: RecordStore, report: Report, actor: str, at: datetime) -> List[Ambulance]:
    """Free every ambulance still linked to a report being closed; the report keeps its record"""
    released = []
    for raw in await store.list_records(COLLECTION, {"assigned_report_id": report.id}):
        ambulance = Ambulance.model_validate(raw)
        released.append(await _release(store, ambulance, actor, at, detach_report=False))
    return released


async def _linked_report_open(store: RecordStore, ambulance: Ambulance) -> bool:
    if not ambulance.assigned_report_id:
        return False
    raw = await store.read_record("reports", ambulance.assigned_report_id)
    return raw is not None and not Report.model_validate(raw).is_resolved


async def assign(store: RecordStore, session, ambulance_id: str, report_id: str) -> Tuple[Ambulance, Report]:
    """Put an ambulance on a report, releasing the report's previous ambulance first"""
    logger.info(f"'{session.identity}' assigning ambulance {ambulance_id} to report {report_id}")
    async with store.transaction():
        ambulance = await get_ambulance(store, ambulance_id)
        report = await load_report(store, report_id)

        if ambulance.status == AmbulanceStatus.MAINTENANCE:
            logger.warning(f"Ambulance {ambulance_id} is under maintenance")
            raise ValidationError(f"{ambulance.name} is under maintenance.", field="ambulance_id")
        if report.is_resolved:
            logger.warning(f"Report {report_id} is resolved, cannot assign ambulance")
            raise ValidationError("Resolved reports cannot take an ambulance.", field="report_id")
        if ambulance.assigned_report_id == report.id and report.assigned_vehicle_id == ambulance.id:
            return ambulance, report
        if ambulance.assigned_report_id and ambulance.assigned_report_id != report.id:
            if await _linked_report_open(store, ambulance):
                logger.warning(f"Ambulance {ambulance_id} is in use on {ambulance.assigned_report_id}")
                raise ValidationError(
                    f"{ambulance.name} is in use on report {ambulance.assigned_report_id}. Release it first.",
                    field="ambulance_id",
                )

        now = utcnow()
        actor = session.identity
        previous_id = report.assigned_vehicle_id
        if previous_id and previous_id != ambulance.id:
            raw = await store.read_record(COLLECTION, previous_id)
            if raw is not None:
                previous = Ambulance.model_validate(raw)
                if previous.assigned_report_id == report.id:
                    await _release(store, previous, actor, now, detach_report=False)
                add_history(report, actor, "Ambulance Released", f"{previous.name} released", now)

        ambulance.status = AmbulanceStatus.IN_USE
        ambulance.location = report.street
        ambulance.assigned_report_id = report.id
        await save_ambulance(store, ambulance)

        report.assigned_vehicle_id = ambulance.id
        add_history(report, actor, "Ambulance Assigned", f"{ambulance.name} dispatched to {report.street or report.id}", now)
        attribute(report, "assigned_vehicle_id", actor, now)
        await save_report(store, report)
    logger.info(f"Ambulance {ambulance_id} now IN-USE on report {report_id}")
    return ambulance, report
