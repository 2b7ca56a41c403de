import logging
from datetime import timedelta
from typing import Optional
from uuid import uuid4

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from isagip.access import manager as access
from isagip.access.models import AuthTier, Capability, Role
from isagip.settings.manager import get_preferences
from isagip.shared import config
from isagip.shared.errors import AuthError, PermissionDenied, ValidationError, NotFoundError
from isagip.shared.store import RecordStore, get_store
from isagip.shared.utils import utcnow
from .models import Account, ChangePasswordRequest, LoginRequest, LoginResponse, Session
from .utils import create_access_token, decode_token, hash_password, is_expired, verify_password

logger = logging.getLogger("auth.manager")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

ACCOUNTS = "accounts"
SESSIONS = "sessions"
LIVE_VIEWER_IDENTITY = "live_viewer"


async def find_account(store: RecordStore, username_or_email: str) -> Optional[Account]:
    """Case-insensitive lookup by username, then by email"""
    wanted = (username_or_email or "").strip().lower()
    if not wanted:
        return None
    raw = await store.read_record(ACCOUNTS, wanted)
    if raw is None:
        for record in await store.list_records(ACCOUNTS):
            if (record.get("email") or "").lower() == wanted:
                raw = record
                break
    return Account.model_validate(raw) if raw else None


async def save_account(store: RecordStore, account: Account) -> Account:
    ack = await store.write_record(ACCOUNTS, account.username.lower(), account.model_dump(mode="json"))
    account.version = ack["version"]
    return account


async def authenticate(store: RecordStore, identity: str, secret: str) -> Account:
    """Check a username/email and password against the account list"""
    if not (identity or "").strip() or not (secret or "").strip():
        raise ValidationError("Please enter your username and password.", field="username")
    if not await store.list_records(ACCOUNTS):
        logger.warning("Login attempted with no accounts configured")
        raise AuthError("No accounts found. Please contact your administrator.")
    account = await find_account(store, identity)
    if account is None:
        logger.warning(f"Login failed: account '{identity}' not found.")
        raise AuthError("Account not found.")
    if not verify_password(secret.strip(), account.password_hash):
        logger.warning(f"Login failed: incorrect password for '{identity}'.")
        raise AuthError("Incorrect password.")
    return account


async def _open_session(store: RecordStore, role: Role, identity: str, tier: AuthTier) -> tuple:
    now = utcnow()
    session = Session(
        id=str(uuid4()),
        role=role,
        identity=identity,
        tier=tier,
        created_at=now,
        expires_at=now + timedelta(hours=config.JWT_EXPIRE_HOURS),
    )
    await store.write_record(SESSIONS, session.id, session.model_dump(mode="json"))
    token = create_access_token(
        {"sub": identity, "sid": session.id, "role": role.value, "tier": tier.value},
        expires_delta=session.expires_at - now,
    )
    return session, token


async def login_user(store: RecordStore, user: LoginRequest) -> LoginResponse:
    """Authenticate an account and open a credentialed session"""
    logger.info(f"Attempting login for user: {user.username}")
    account = await authenticate(store, user.username, user.password)
    role = access.normalize_role(account.role)

    async with store.transaction():
        session, token = await _open_session(store, role, account.username, AuthTier.CREDENTIAL)
        account.last_login_at = session.created_at
        await save_account(store, account)

    preferences = await get_preferences(store, account.username)
    destination = access.destination_for(role, preferences.default_landing)
    logger.info(f"User '{account.username}' authenticated as {role.value}, landing on {destination}")
    return LoginResponse(token=token, session=session, destination=destination,
                         role_name=access.display_name(role))


async def login_live_viewer(store: RecordStore) -> LoginResponse:
    """Guest shortcut: a live viewer session without a credential check"""
    logger.info("Opening live viewer guest session")
    session, token = await _open_session(store, Role.LIVE_VIEWER, LIVE_VIEWER_IDENTITY, AuthTier.GUEST)
    return LoginResponse(token=token, session=session,
                         destination=access.destination_for(Role.LIVE_VIEWER),
                         role_name=access.display_name(Role.LIVE_VIEWER))


async def logout_user(store: RecordStore, session: Session) -> None:
    """End a session; its token stops working immediately"""
    deleted = await store.delete_record(SESSIONS, session.id)
    logger.info(f"Session {session.id} for '{session.identity}' ended (record removed: {deleted})")


async def get_session(store: RecordStore, token: Optional[str]) -> Session:
    """Resolve a bearer token to its live session"""
    payload = decode_token(token, verify_exp=False) if token else None
    if not payload or not payload.get("sid"):
        logger.warning("Invalid token provided.")
        raise AuthError("Invalid session. Please log in again.")

    if is_expired(payload):
        await store.delete_record(SESSIONS, payload["sid"])
        logger.info(f"Session {payload['sid']} expired and was removed")
        raise AuthError("Session expired. Please log in again.")

    raw = await store.read_record(SESSIONS, payload["sid"])
    if raw is None:
        logger.warning(f"Session {payload['sid']} no longer exists")
        raise AuthError("Session has ended. Please log in again.")
    return Session.model_validate(raw)


async def get_current_session(
    token: Optional[str] = Depends(oauth2_scheme),
    store: RecordStore = Depends(get_store),
) -> Session:
    """FastAPI dependency: the session behind the request's bearer token"""
    return await get_session(store, token)


def ensure_capability(session: Session, capability: Capability, write: bool = False) -> None:
    if not access.can(session.role, capability):
        logger.warning(f"Role '{session.role.value}' lacks capability '{capability.value}'")
        raise PermissionDenied("You do not have access to this feature.")
    if write and session.is_guest:
        logger.warning(f"Guest session {session.id} attempted a change requiring '{capability.value}'")
        raise PermissionDenied("Live viewer access is read-only.")


def require_capability(*capabilities: Capability, write: bool = False):
    """Dependency factory: the session must hold any one of the capabilities"""
    async def dependency(session: Session = Depends(get_current_session)) -> Session:
        granted = [c for c in capabilities if access.can(session.role, c)]
        ensure_capability(session, granted[0] if granted else capabilities[0], write=write)
        return session
    return dependency


async def change_password(store: RecordStore, session: Session, request: ChangePasswordRequest) -> None:
    """Change the session owner's own password"""
    logger.info(f"Password change requested by '{session.identity}'")
    if session.is_guest:
        raise PermissionDenied("Live viewer access is read-only.")
    if request.new_password != request.confirm_password:
        raise ValidationError("New passwords do not match.", field="confirm_password")
    if len(request.new_password) < 6:
        raise ValidationError("New password must be at least 6 characters long.", field="new_password")

    account = await find_account(store, session.identity)
    if account is None:
        raise NotFoundError("Account not found.")
    if not verify_password(request.current_password, account.password_hash):
        logger.warning(f"Password change for '{session.identity}' rejected: wrong current password")
        raise ValidationError("Current password is incorrect.", field="current_password")
    password_hash = hash_password(request.new_password)

    async with store.transaction():
        account = await find_account(store, session.identity)
        if account is None:
            raise NotFoundError("Account not found.")
        account.password_hash = password_hash
        await save_account(store, account)
    logger.info(f"Password changed for '{session.identity}'")
