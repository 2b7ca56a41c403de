from typing import Optional

from fastapi import APIRouter, Depends, Query

from isagip.access.models import Capability
from isagip.auth.manager import require_capability
from isagip.auth.models import Account, PasswordResetRequest, Session
from isagip.shared.errors import NotFoundError
from isagip.shared.response import success_response
from isagip.shared.store import RecordStore, get_store
from . import manager
from .models import (
    RegistrationRequest, RejectRequest, RequestKind, ResidentRegistration, ResidentUpdate, ResidentView,
    StaffRegistration, UpdateRequestSubmit,
)

router = APIRouter()

registrar = require_capability(Capability.REGISTER_ACCOUNTS, write=True)
resident_viewer = require_capability(Capability.MANAGE_RESIDENTS)
resident_editor = require_capability(Capability.MANAGE_RESIDENTS, write=True)


def _account_view(account: Account) -> dict:
    data = account.model_dump(mode="json", exclude={"password_hash", "fcm_token"})
    data["display_name"] = account.display_name
    return data


def _request_view(request: RegistrationRequest) -> dict:
    return request.model_dump(mode="json", exclude={"password_hash"})


# Staff accounts

@router.post("/staff")
async def register_staff(body: StaffRegistration, session: Session = Depends(registrar),
                         store: RecordStore = Depends(get_store)):
    account = await manager.register_staff(store, session, body)
    return success_response(_account_view(account), "Registration saved.")


@router.get("/accounts")
async def get_accounts(session: Session = Depends(require_capability(Capability.REGISTER_ACCOUNTS)),
                       store: RecordStore = Depends(get_store)):
    accounts = await manager.list_accounts(store)
    return success_response([_account_view(a) for a in accounts], "Accounts retrieved")


@router.post("/accounts/{username}/password")
async def reset_account_password(username: str, body: PasswordResetRequest, session: Session = Depends(registrar),
                                 store: RecordStore = Depends(get_store)):
    await manager.reset_account_password(store, session, username, body)
    return success_response(None, "Password reset successfully.")


@router.get("/responders")
async def get_responders(
    session: Session = Depends(require_capability(Capability.MANAGE_REPORTS, Capability.REGISTER_ACCOUNTS)),
    store: RecordStore = Depends(get_store),
):
    """Names for the responder dropdown"""
    return success_response(await manager.list_responders(store), "Responders retrieved")


# Residents

@router.post("/residents")
async def register_resident(body: ResidentRegistration, session: Session = Depends(registrar),
                            store: RecordStore = Depends(get_store)):
    resident = await manager.register_resident(store, session, body)
    return success_response(ResidentView.of(resident), "Resident saved.")


@router.get("/residents")
async def get_residents(
    q: Optional[str] = Query(None),
    status: str = Query("all", pattern="^(all|active|inactive|pending)$"),
    session: Session = Depends(resident_viewer),
    store: RecordStore = Depends(get_store),
):
    residents = await manager.list_residents(store, q, status)
    return success_response(residents, "Residents retrieved")


@router.get("/residents/{username}")
async def get_resident(username: str, session: Session = Depends(resident_viewer),
                       store: RecordStore = Depends(get_store)):
    return success_response(await manager.get_resident(store, username), "Resident retrieved")


@router.put("/residents/{username}")
async def update_resident(username: str, body: ResidentUpdate, session: Session = Depends(resident_editor),
                          store: RecordStore = Depends(get_store)):
    resident = await manager.update_resident(store, session, username, body)
    return success_response(resident, "Resident updated")


@router.delete("/residents/{username}")
async def delete_resident(username: str, confirm: bool = Query(False), session: Session = Depends(resident_editor),
                          store: RecordStore = Depends(get_store)):
    await manager.delete_resident(store, session, username, confirm)
    return success_response(None, "Resident deleted")


@router.post("/residents/{username}/password")
async def reset_resident_password(username: str, body: PasswordResetRequest,
                                  session: Session = Depends(resident_editor),
                                  store: RecordStore = Depends(get_store)):
    await manager.reset_resident_password(store, session, username, body)
    return success_response(None, "Password reset successfully.")


# Requests from the mobile app

@router.post("/requests")
async def submit_registration_request(body: ResidentRegistration, store: RecordStore = Depends(get_store)):
    """Self-service registration, reviewed by an administrator"""
    request = await manager.submit_registration_request(store, body)
    return success_response(_request_view(request), "Registration submitted for review.")


@router.post("/requests/update")
async def submit_update_request(body: UpdateRequestSubmit, store: RecordStore = Depends(get_store)):
    request = await manager.submit_update_request(store, body)
    return success_response(_request_view(request), "Update submitted for review.")


@router.get("/requests")
async def get_requests(
    kind: Optional[RequestKind] = Query(None),
    session: Session = Depends(resident_viewer),
    store: RecordStore = Depends(get_store),
):
    requests = await manager.list_requests(store, kind)
    return success_response([_request_view(r) for r in requests], "Requests retrieved")


@router.post("/requests/{request_id}/approve")
async def approve_request(request_id: str, session: Session = Depends(resident_editor),
                          store: RecordStore = Depends(get_store)):
    try:
        request = await manager.approve_request(store, session, request_id)
    except NotFoundError:
        return success_response(None, "Request already handled")
    return success_response(_request_view(request), "Request approved")


@router.post("/requests/{request_id}/reject")
async def reject_request(request_id: str, body: RejectRequest, session: Session = Depends(resident_editor),
                         store: RecordStore = Depends(get_store)):
    try:
        request = await manager.reject_request(store, session, request_id, body)
    except NotFoundError:
        return success_response(None, "Request already handled")
    return success_response(_request_view(request), "Request rejected")


@router.get("/feedback/{username}")
async def get_feedback(username: str, store: RecordStore = Depends(get_store)):
    """Review outcome for a requester"""
    return success_response(await manager.get_feedback(store, username), "Feedback retrieved")
