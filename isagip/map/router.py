from fastapi import APIRouter, Depends

from isagip.access.models import Capability
from isagip.auth.manager import require_capability
from isagip.auth.models import Session
from isagip.reports.manager import active_locations
from isagip.shared.response import success_response
from isagip.shared.store import RecordStore, get_store

router = APIRouter()


@router.get("/locations")
async def get_map_locations(
    session: Session = Depends(require_capability(Capability.VIEW_DASHBOARD, Capability.VIEW_REPORTS)),
    store: RecordStore = Depends(get_store),
):
    """Markers for every unresolved report with coordinates"""
    locations = await active_locations(store)
    return success_response(locations, "Map data fetched successfully")
