from fastapi import APIRouter, Depends

from isagip.access.models import Capability
from isagip.auth.manager import change_password, require_capability
from isagip.auth.models import ChangePasswordRequest, Session
from isagip.shared.response import success_response
from isagip.shared.store import RecordStore, get_store
from .manager import get_preferences, update_preferences
from .models import PreferencesUpdate

router = APIRouter()


@router.get("/preferences")
async def read_preferences(
    session: Session = Depends(require_capability(Capability.SETTINGS)),
    store: RecordStore = Depends(get_store),
):
    preferences = await get_preferences(store, session.identity)
    return success_response(preferences, "Preferences retrieved")


@router.put("/preferences")
async def save_preferences(
    changes: PreferencesUpdate,
    session: Session = Depends(require_capability(Capability.SETTINGS)),
    store: RecordStore = Depends(get_store),
):
    preferences = await update_preferences(store, session, changes)
    return success_response(preferences, "Preferences saved")


@router.post("/password")
async def update_password(
    request: ChangePasswordRequest,
    session: Session = Depends(require_capability(Capability.SETTINGS, write=True)),
    store: RecordStore = Depends(get_store),
):
    """Change the signed-in account's password"""
    await change_password(store, session, request)
    return success_response(None, "Password updated successfully.")
