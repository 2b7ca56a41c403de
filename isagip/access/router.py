from fastapi import APIRouter, Depends, Query

from isagip.auth.manager import get_current_session
from isagip.auth.models import Session
from isagip.shared.response import success_response
from . import manager as access
from .models import MenuResponse, VisibilityCheck

router = APIRouter()


@router.get("/menu")
async def get_menu(session: Session = Depends(get_current_session)):
    """Menu entries the session's role may see"""
    menu = MenuResponse(
        role=session.role,
        items=access.visible_menu(session.role),
        destination=access.destination_for(session.role),
    )
    return success_response(menu, "Menu retrieved")


@router.get("/check")
async def check_visibility(label: str = Query(...), session: Session = Depends(get_current_session)):
    result = VisibilityCheck(
        role=session.role,
        label=label,
        item=access.resolve_menu_item(label),
        visible=access.is_visible(session.role, label),
    )
    return success_response(result, "Visibility checked")


@router.get("/policy")
async def get_policy(session: Session = Depends(get_current_session)):
    """Routing and permission tables"""
    return success_response(access.policy_tables(), "Policy retrieved")
