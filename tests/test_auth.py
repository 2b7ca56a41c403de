from datetime import timedelta

import pytest

from isagip.access.models import AuthTier, Role
from isagip.auth import manager as auth
from isagip.auth.models import ChangePasswordRequest, LoginRequest
from isagip.auth.utils import create_access_token, decode_token
from isagip.settings.manager import update_preferences
from isagip.settings.models import PreferencesUpdate
from isagip.shared.errors import AuthError, PermissionDenied, ValidationError
from isagip.shared.store import MemoryStore


async def test_login_opens_session(store):
    result = await auth.login_user(store, LoginRequest(username="staff", password="pass"))
    assert result.destination == "dashboard.html"
    assert result.session.tier == AuthTier.CREDENTIAL
    session = await auth.get_session(store, result.token)
    assert session.identity == "staff"
    assert session.role == Role.BARANGAY_STAFF


async def test_login_is_case_insensitive_and_accepts_email(store):
    result = await auth.login_user(store, LoginRequest(username="ADMIN", password="pass"))
    assert result.destination == "register-staff.html"
    result = await auth.login_user(store, LoginRequest(username="tv@isagip.local", password="pass"))
    assert result.session.role == Role.LIVE_VIEWER


async def test_login_failures(store):
    with pytest.raises(AuthError, match="Incorrect password."):
        await auth.authenticate(store, "staff", "wrong")
    with pytest.raises(AuthError, match="Account not found."):
        await auth.authenticate(store, "nobody", "pass")
    with pytest.raises(ValidationError):
        await auth.authenticate(store, "  ", "pass")


async def test_login_without_accounts():
    with pytest.raises(AuthError, match="No accounts found"):
        await auth.authenticate(MemoryStore(), "staff", "pass")


async def test_logout_ends_session(store):
    result = await auth.login_user(store, LoginRequest(username="staff", password="pass"))
    await auth.logout_user(store, result.session)
    with pytest.raises(AuthError, match="Session has ended"):
        await auth.get_session(store, result.token)


async def test_expired_session_is_removed(store):
    result = await auth.login_user(store, LoginRequest(username="staff", password="pass"))
    stale = create_access_token({"sub": "staff", "sid": result.session.id}, expires_delta=timedelta(seconds=-5))
    with pytest.raises(AuthError, match="expired"):
        await auth.get_session(store, stale)
    assert await store.read_record(auth.SESSIONS, result.session.id) is None


async def test_garbage_token_rejected(store):
    assert decode_token("not-a-token") is None
    with pytest.raises(AuthError):
        await auth.get_session(store, "not-a-token")
    with pytest.raises(AuthError):
        await auth.get_session(store, None)


async def test_live_viewer_is_read_only(store):
    result = await auth.login_live_viewer(store)
    assert result.destination == "reportsViewing.html"
    session = result.session
    assert session.is_guest
    from isagip.access.models import Capability
    auth.ensure_capability(session, Capability.VIEW_REPORTS)
    with pytest.raises(PermissionDenied, match="read-only"):
        auth.ensure_capability(session, Capability.VIEW_REPORTS, write=True)
    with pytest.raises(PermissionDenied):
        auth.ensure_capability(session, Capability.MANAGE_REPORTS)


async def test_preferred_landing_used_at_login(store, staff):
    await update_preferences(store, staff, PreferencesUpdate(default_landing="ambulance.html"))
    result = await auth.login_user(store, LoginRequest(username="staff", password="pass"))
    assert result.destination == "ambulance.html"


async def test_forbidden_landing_rejected(store, staff):
    with pytest.raises(ValidationError):
        await update_preferences(store, staff, PreferencesUpdate(default_landing="register-staff.html"))


async def test_change_password(store, staff):
    with pytest.raises(ValidationError, match="New passwords do not match."):
        await auth.change_password(store, staff, ChangePasswordRequest(
            current_password="pass", new_password="secret1", confirm_password="secret2"))
    with pytest.raises(ValidationError, match="at least 6 characters"):
        await auth.change_password(store, staff, ChangePasswordRequest(
            current_password="pass", new_password="abc", confirm_password="abc"))
    with pytest.raises(ValidationError, match="Current password"):
        await auth.change_password(store, staff, ChangePasswordRequest(
            current_password="nope", new_password="secret1", confirm_password="secret1"))

    await auth.change_password(store, staff, ChangePasswordRequest(
        current_password="pass", new_password="secret1", confirm_password="secret1"))
    account = await auth.authenticate(store, "staff", "secret1")
    assert account.username == "staff"
