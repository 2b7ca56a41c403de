from fastapi import APIRouter, Depends

from isagip.access import manager as access
from isagip.settings.manager import get_preferences
from isagip.shared.response import success_response
from isagip.shared.store import RecordStore, get_store
from .models import LoginRequest, Session, SessionInfo
from .manager import get_current_session, login_live_viewer, login_user, logout_user

router = APIRouter()


@router.post("/login")
async def login(user: LoginRequest, store: RecordStore = Depends(get_store)):
    """Authenticate staff or administrator"""
    result = await login_user(store, user)
    return success_response(result, "Login successful")


@router.post("/live-viewer")
async def live_viewer(store: RecordStore = Depends(get_store)):
    """Open a read-only live viewer session"""
    result = await login_live_viewer(store)
    return success_response(result, "Live viewer session started")


@router.post("/logout")
async def logout(session: Session = Depends(get_current_session), store: RecordStore = Depends(get_store)):
    await logout_user(store, session)
    return success_response(None, "Logged out")


@router.get("/me")
async def get_me(session: Session = Depends(get_current_session), store: RecordStore = Depends(get_store)):
    """Current session, its menu and landing page"""
    preferences = await get_preferences(store, session.identity)
    info = SessionInfo(
        session=session,
        role_name=access.display_name(session.role),
        menu=access.visible_menu(session.role),
        destination=access.destination_for(session.role, preferences.default_landing),
    )
    return success_response(info, "Session details retrieved")
