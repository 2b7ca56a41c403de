from typing import Optional

from fastapi import APIRouter, Depends, Query

from isagip.access.models import Capability
from isagip.auth.manager import require_capability
from isagip.auth.models import Session
from isagip.reports.models import ReportView
from isagip.shared.response import success_response
from isagip.shared.store import RecordStore, get_store
from . import manager
from .models import AmbulanceAssign, AmbulanceCreate, AmbulanceStatus, AmbulanceStatusUpdate

router = APIRouter()

fleet_viewer = require_capability(Capability.MANAGE_AMBULANCES)
fleet_editor = require_capability(Capability.MANAGE_AMBULANCES, write=True)


@router.get("/")
async def get_all_ambulances(
    status: Optional[AmbulanceStatus] = Query(None),
    session: Session = Depends(fleet_viewer),
    store: RecordStore = Depends(get_store),
):
    ambulances = await manager.list_ambulances(store, status)
    return success_response(ambulances, "Ambulances retrieved successfully")


@router.post("/")
async def add_ambulance(
    body: AmbulanceCreate,
    session: Session = Depends(fleet_editor),
    store: RecordStore = Depends(get_store),
):
    ambulance = await manager.create_ambulance(store, session, body)
    return success_response(ambulance, "Ambulance added")


@router.get("/{ambulance_id}")
async def get_single_ambulance(
    ambulance_id: str,
    session: Session = Depends(fleet_viewer),
    store: RecordStore = Depends(get_store),
):
    ambulance = await manager.get_ambulance(store, ambulance_id)
    return success_response(ambulance, "Ambulance retrieved successfully")


@router.post("/{ambulance_id}/assign")
async def assign_ambulance(
    ambulance_id: str,
    body: AmbulanceAssign,
    session: Session = Depends(fleet_editor),
    store: RecordStore = Depends(get_store),
):
    ambulance, report = await manager.assign(store, session, ambulance_id, body.report_id)
    return success_response({"ambulance": ambulance, "report": ReportView.of(report)}, "Ambulance assigned")


@router.post("/{ambulance_id}/release")
async def release_ambulance(
    ambulance_id: str,
    session: Session = Depends(fleet_editor),
    store: RecordStore = Depends(get_store),
):
    ambulance = await manager.release(store, session, ambulance_id)
    return success_response(ambulance, "Ambulance released")


@router.put("/{ambulance_id}/status")
async def update_status(
    ambulance_id: str,
    body: AmbulanceStatusUpdate,
    session: Session = Depends(fleet_editor),
    store: RecordStore = Depends(get_store),
):
    ambulance = await manager.set_status(store, session, ambulance_id, body.status)
    return success_response(ambulance, f"Ambulance set to {ambulance.status.value}")
