import logging
from typing import List, Optional

from isagip.access.models import Role
from isagip.auth.manager import ACCOUNTS, find_account, save_account
from isagip.auth.models import Account, AccountProfile, PasswordResetRequest
from isagip.auth.utils import hash_password
from isagip.shared.email_service import send_registration_decision_email
from isagip.shared.errors import DuplicateError, NotFoundError, ValidationError
from isagip.shared.store import RecordStore, next_sequence
from isagip.shared.utils import digits_only, is_valid_email, utcnow
from .models import (
    UPDATABLE_FIELDS, Feedback, RegistrationRequest, RejectRequest, RequestKind, RequestStatus,
    Resident, ResidentRegistration, ResidentStatus, ResidentUpdate, ResidentView, StaffRegistration,
    UpdateRequestSubmit,
)

logger = logging.getLogger("registration.manager")

RESIDENTS = "residents"
REQUESTS = "requests"
FEEDBACK = "feedback"

STAFF_ROLES = (Role.BARANGAY_STAFF.value, Role.RESPONDER.value)
DEFAULT_REJECT_REASON = "Registration did not meet requirements."
FALLBACK_RESPONDERS = ["Responder 1", "Responder 2", "Responder 3"]
MIN_PASSWORD_LENGTH = 6


def _check_required(data, fields) -> None:
    for name in fields:
        if not str(getattr(data, name) or "").strip():
            raise ValidationError("Please fill all required fields.", field=name)


def _check_email(email: str) -> None:
    if not is_valid_email(email):
        raise ValidationError("Please enter a valid email address.", field="email")


def _check_contact(contact: str) -> None:
    if len(digits_only(contact)) != 13:
        raise ValidationError("Contact number must be exactly 13 digits.", field="contact")


def _check_passwords(password: str, password2: str) -> None:
    if password != password2:
        raise ValidationError("Passwords do not match.", field="password2")


def _check_confirmed(confirm: bool, what: str) -> None:
    if not confirm:
        raise ValidationError(f"Please confirm to {what}.", field="confirm")


def _check_new_password(request: PasswordResetRequest) -> None:
    _check_confirmed(request.confirm, "reset the password")
    if len(request.new_password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError("New password must be at least 6 characters long.", field="new_password")


def _validate_resident_form(data: ResidentRegistration) -> None:
    _check_required(data, ("username", "email", "password", "password2", "first", "last",
                           "gender", "birth", "address", "contact"))
    _check_email(data.email.strip())
    _check_contact(data.contact)
    _check_passwords(data.password, data.password2)


async def _load_resident(store: RecordStore, username: str) -> Resident:
    raw = await store.read_record(RESIDENTS, (username or "").strip().lower())
    if raw is None:
        logger.warning(f"Resident '{username}' not found")
        raise NotFoundError(f"Resident '{username}' not found.")
    return Resident.model_validate(raw)


async def _save_resident(store: RecordStore, resident: Resident) -> Resident:
    ack = await store.write_record(RESIDENTS, resident.username.lower(), resident.model_dump(mode="json"))
    resident.version = ack["version"]
    return resident


async def _open_requests(store: RecordStore, kind: Optional[RequestKind] = None) -> List[RegistrationRequest]:
    filters = {"status": RequestStatus.PENDING.value}
    if kind:
        filters["kind"] = kind.value
    requests = [RegistrationRequest.model_validate(r) for r in await store.list_records(REQUESTS, filters)]
    return sorted(requests, key=lambda r: r.requested_at)


# Staff accounts

async def register_staff(store: RecordStore, session, data: StaffRegistration) -> Account:
    """Create a staff or responder account from the registration form"""
    logger.info(f"'{session.identity}' registering staff account '{data.username}'")
    _check_required(data, ("username", "email", "password", "password2", "first", "last",
                           "age", "birth", "contact", "address"))
    _check_email(data.email.strip())
    _check_contact(data.contact)
    _check_passwords(data.password, data.password2)
    role = (data.role or Role.BARANGAY_STAFF.value).strip().lower()
    if role not in STAFF_ROLES:
        raise ValidationError("Role must be barangay_staff or responder.", field="role")

    username = data.username.strip()
    password_hash = hash_password(data.password)
    async with store.transaction():
        if await store.read_record(ACCOUNTS, username.lower()) is not None:
            logger.warning(f"Staff registration rejected: username '{username}' exists")
            raise DuplicateError("Username already exists.", field="username")
        account = Account(
            username=username,
            email=data.email.strip(),
            password_hash=password_hash,
            role=role,
            profile=AccountProfile(
                first=data.first.strip(), middle=data.middle.strip(), last=data.last.strip(),
                suffix=data.suffix.strip(), age=data.age.strip(), birth=data.birth.strip(),
                contact=digits_only(data.contact), address=data.address.strip(),
                responder_type=data.responder_type.strip() if role == Role.RESPONDER.value else "",
                photo=data.photo, valid_id=data.valid_id,
            ),
            created_at=utcnow(),
        )
        await save_account(store, account)
    logger.info(f"Staff account '{username}' ({role}) registered")
    return account


async def list_accounts(store: RecordStore) -> List[Account]:
    accounts = [Account.model_validate(r) for r in await store.list_records(ACCOUNTS)]
    return sorted(accounts, key=lambda a: a.username.lower())


async def list_responders(store: RecordStore) -> List[str]:
    """Names for the responder dropdown"""
    names = [
        account.display_name for account in await list_accounts(store)
        if account.role == Role.RESPONDER.value or account.profile.responder_type
    ]
    return names or list(FALLBACK_RESPONDERS)


async def reset_account_password(store: RecordStore, session, username: str, request: PasswordResetRequest) -> None:
    _check_new_password(request)
    password_hash = hash_password(request.new_password)
    async with store.transaction():
        account = await find_account(store, username)
        if account is None:
            raise NotFoundError(f"Account '{username}' not found.")
        account.password_hash = password_hash
        await save_account(store, account)
    logger.info(f"Password for account '{username}' reset by '{session.identity}'")


# Residents

async def register_resident(store: RecordStore, session, data: ResidentRegistration) -> Resident:
    """Direct registration of a resident by an administrator"""
    logger.info(f"'{session.identity}' registering resident '{data.username}'")
    _validate_resident_form(data)
    username = data.username.strip()
    password_hash = hash_password(data.password)
    async with store.transaction():
        if await store.read_record(RESIDENTS, username.lower()) is not None:
            logger.warning(f"Resident registration rejected: username '{username}' exists")
            raise DuplicateError("Username already exists.", field="username")
        resident = await _save_resident(store, Resident(
            username=username,
            first=data.first.strip(), middle=data.middle.strip(), last=data.last.strip(),
            suffix=data.suffix.strip(), email=data.email.strip(), contact=digits_only(data.contact),
            address=data.address.strip(), notes=data.notes, gender=data.gender.strip(),
            birth=data.birth.strip(), photo=data.photo, valid_id=data.valid_id,
            password_hash=password_hash, created_at=utcnow(),
        ))
    logger.info(f"Resident '{username}' registered")
    return resident


async def list_residents(store: RecordStore, q: Optional[str] = None, status: str = "all") -> List[ResidentView]:
    """Search residents by username, full name or email.

    ``status`` is all, active, inactive or pending, where pending means the
    resident has a profile update waiting for review.
    """
    pending = {r.target_username.lower() for r in await _open_requests(store, RequestKind.PROFILE_UPDATE)}
    needle = (q or "").strip().lower()
    views = []
    for raw in await store.list_records(RESIDENTS):
        resident = Resident.model_validate(raw)
        has_update = resident.username.lower() in pending
        if status == "pending" and not has_update:
            continue
        if status in ("active", "inactive") and resident.status.value != status:
            continue
        if needle and not any(needle in text.lower() for text in (resident.username, resident.full_name, resident.email)):
            continue
        views.append(ResidentView.of(resident, pending_update=has_update))
    return sorted(views, key=lambda v: v.username.lower())


async def get_resident(store: RecordStore, username: str) -> ResidentView:
    resident = await _load_resident(store, username)
    pending = await store.list_records(REQUESTS, {
        "status": RequestStatus.PENDING.value,
        "kind": RequestKind.PROFILE_UPDATE.value,
        "target_username": resident.username,
    })
    return ResidentView.of(resident, pending_update=bool(pending))


async def update_resident(store: RecordStore, session, username: str, changes: ResidentUpdate) -> ResidentView:
    updates = changes.model_dump(exclude_none=True)
    if "email" in updates:
        _check_email(updates["email"])
    if "contact" in updates:
        _check_contact(updates["contact"])
        updates["contact"] = digits_only(updates["contact"])
    async with store.transaction():
        resident = await _load_resident(store, username)
        resident = await _save_resident(store, resident.model_copy(update=updates))
    logger.info(f"Resident '{username}' updated by '{session.identity}': {sorted(updates)}")
    return ResidentView.of(resident)


async def delete_resident(store: RecordStore, session, username: str, confirm: bool) -> None:
    """Remove a resident together with their open requests"""
    _check_confirmed(confirm, "delete this resident")
    async with store.transaction():
        resident = await _load_resident(store, username)
        await store.delete_record(RESIDENTS, resident.username.lower())
        for request in await _open_requests(store):
            if request.target_username.lower() == resident.username.lower():
                await store.delete_record(REQUESTS, request.id)
    logger.info(f"Resident '{username}' deleted by '{session.identity}'")


async def reset_resident_password(store: RecordStore, session, username: str, request: PasswordResetRequest) -> None:
    _check_new_password(request)
    password_hash = hash_password(request.new_password)
    async with store.transaction():
        resident = await _load_resident(store, username)
        resident.password_hash = password_hash
        await _save_resident(store, resident)
    logger.info(f"Password for resident '{username}' reset by '{session.identity}'")


# Requests from the mobile app

async def _new_request_id(store: RecordStore) -> str:
    return f"REQ-{await next_sequence(store, 'requests'):04d}"


async def submit_registration_request(store: RecordStore, data: ResidentRegistration,
                                      proofs: Optional[List[str]] = None) -> RegistrationRequest:
    """Self-service registration; waits for an administrator's review"""
    logger.info(f"Registration request submitted for '{data.username}'")
    _validate_resident_form(data)
    username = data.username.strip()
    password_hash = hash_password(data.password)
    async with store.transaction():
        taken = await store.read_record(RESIDENTS, username.lower()) is not None
        if not taken:
            taken = any(r.target_username.lower() == username.lower()
                        for r in await _open_requests(store, RequestKind.REGISTRATION))
        if taken:
            logger.warning(f"Registration request rejected: username '{username}' exists")
            raise DuplicateError("Username already exists.", field="username")
        profile = data.model_dump(exclude={"username", "password", "password2"})
        profile["contact"] = digits_only(data.contact)
        request = RegistrationRequest(
            id=await _new_request_id(store),
            kind=RequestKind.REGISTRATION,
            target_username=username,
            email=data.email.strip(),
            changes={k: str(v).strip() for k, v in profile.items()},
            proofs=proofs or [p for p in (data.photo, data.valid_id) if p],
            password_hash=password_hash,
            requested_at=utcnow(),
        )
        await store.write_record(REQUESTS, request.id, request.model_dump(mode="json"))
    return request


async def submit_update_request(store: RecordStore, data: UpdateRequestSubmit) -> RegistrationRequest:
    """A resident asks for profile changes; applied only once approved"""
    logger.info(f"Profile update request submitted for '{data.username}': {sorted(data.changes)}")
    unknown = sorted(set(data.changes) - set(UPDATABLE_FIELDS))
    if unknown:
        raise ValidationError(f"These fields cannot be changed: {', '.join(unknown)}.", field=unknown[0])
    if not data.changes:
        raise ValidationError("No changes were requested.", field="changes")
    changes = {k: str(v).strip() for k, v in data.changes.items()}
    if "email" in changes:
        _check_email(changes["email"])
    if "contact" in changes:
        _check_contact(changes["contact"])
        changes["contact"] = digits_only(changes["contact"])

    async with store.transaction():
        resident = await _load_resident(store, data.username)
        request = RegistrationRequest(
            id=await _new_request_id(store),
            kind=RequestKind.PROFILE_UPDATE,
            target_username=resident.username,
            email=changes.get("email", resident.email),
            changes=changes,
            proofs=data.proofs,
            requested_at=utcnow(),
        )
        await store.write_record(REQUESTS, request.id, request.model_dump(mode="json"))
    return request


async def list_requests(store: RecordStore, kind: Optional[RequestKind] = None) -> List[RegistrationRequest]:
    return await _open_requests(store, kind)


async def _load_request(store: RecordStore, request_id: str) -> RegistrationRequest:
    raw = await store.read_record(REQUESTS, request_id)
    if raw is None:
        logger.info(f"Request {request_id} no longer exists")
        raise NotFoundError("Request already handled")
    return RegistrationRequest.model_validate(raw)


async def _record_feedback(store: RecordStore, request: RegistrationRequest) -> Feedback:
    feedback = Feedback(
        username=request.target_username,
        kind=request.kind,
        status=request.status,
        reason=request.reason,
        reviewer=request.reviewer,
        reviewed_at=request.reviewed_at,
    )
    await store.write_record(FEEDBACK, request.target_username.lower(), feedback.model_dump(mode="json"))
    return feedback


async def approve_request(store: RecordStore, session, request_id: str) -> RegistrationRequest:
    """Apply a registration or profile update and tell the requester"""
    async with store.transaction():
        request = await _load_request(store, request_id)
        if request.kind == RequestKind.REGISTRATION:
            if await store.read_record(RESIDENTS, request.target_username.lower()) is not None:
                raise DuplicateError("Username already exists.", field="username")
            fields = {k: v for k, v in request.changes.items() if k in Resident.model_fields}
            await _save_resident(store, Resident(
                **fields,
                username=request.target_username,
                status=ResidentStatus.ACTIVE,
                password_hash=request.password_hash,
                created_at=utcnow(),
            ))
        else:
            resident = await _load_resident(store, request.target_username)
            await _save_resident(store, resident.model_copy(update=request.changes))

        request.status = RequestStatus.APPROVED
        request.reviewer = session.identity
        request.reviewed_at = utcnow()
        await store.delete_record(REQUESTS, request.id)
        await _record_feedback(store, request)
    logger.info(f"Request {request_id} ({request.kind.value}) approved by '{session.identity}'")
    await send_registration_decision_email(request.email, request.target_username, True,
                                           update=request.kind == RequestKind.PROFILE_UPDATE)
    return request


async def reject_request(store: RecordStore, session, request_id: str, rejection: RejectRequest) -> RegistrationRequest:
    _check_confirmed(rejection.confirm, "reject this request")
    async with store.transaction():
        request = await _load_request(store, request_id)
        request.status = RequestStatus.REJECTED
        request.reason = rejection.reason.strip() or DEFAULT_REJECT_REASON
        request.reviewer = session.identity
        request.reviewed_at = utcnow()
        await store.delete_record(REQUESTS, request.id)
        await _record_feedback(store, request)
    logger.info(f"Request {request_id} rejected by '{session.identity}': {request.reason}")
    await send_registration_decision_email(request.email, request.target_username, False, request.reason,
                                           update=request.kind == RequestKind.PROFILE_UPDATE)
    return request


async def get_feedback(store: RecordStore, username: str) -> Feedback:
    raw = await store.read_record(FEEDBACK, (username or "").strip().lower())
    if raw is None:
        raise NotFoundError("No review result for this username yet.")
    return Feedback.model_validate(raw)
