import pytest

from isagip.auth import manager as auth
from isagip.auth.models import PasswordResetRequest
from isagip.registration import manager as registration
from isagip.registration.models import (
    RejectRequest, RequestKind, ResidentRegistration, ResidentStatus, ResidentUpdate, StaffRegistration,
    UpdateRequestSubmit,
)
from isagip.shared.errors import DuplicateError, NotFoundError, ValidationError

CONTACT = "+63 912 345 6789 0"


def staff_form(**overrides):
    data = dict(username="jdelacruz", email="jdc@example.com", password="secret1", password2="secret1",
                first="Juan", last="Dela Cruz", age="30", birth="1994-01-01", contact=CONTACT,
                address="Block 1, Lot 1")
    data.update(overrides)
    return StaffRegistration(**data)


def resident_form(**overrides):
    data = dict(username="pedro", email="pedro@example.com", password="secret1", password2="secret1",
                first="Pedro", last="Penduko", gender="Male", birth="1990-05-05", contact=CONTACT,
                address="Block 9, Lot 9")
    data.update(overrides)
    return ResidentRegistration(**data)


async def test_register_staff_then_login(store, admin):
    account = await registration.register_staff(store, admin, staff_form())
    assert account.role == "barangay_staff"
    assert account.profile.contact == "6391234567890"
    logged_in = await auth.authenticate(store, "JDELACRUZ", "secret1")
    assert logged_in.username == "jdelacruz"


async def test_register_staff_duplicate_is_case_insensitive(store, admin):
    await registration.register_staff(store, admin, staff_form())
    with pytest.raises(DuplicateError, match="Username already exists."):
        await registration.register_staff(store, admin, staff_form(username="JDelaCruz"))
    with pytest.raises(DuplicateError):
        await registration.register_staff(store, admin, staff_form(username="Admin"))


@pytest.mark.parametrize("overrides, field", [
    ({"first": ""}, "first"),
    ({"email": "no-at-sign"}, "email"),
    ({"contact": "0912345678"}, "contact"),
    ({"password2": "different"}, "password2"),
    ({"role": "system_admin"}, "role"),
])
async def test_register_staff_validation(store, admin, overrides, field):
    with pytest.raises(ValidationError) as err:
        await registration.register_staff(store, admin, staff_form(**overrides))
    assert err.value.field == field


async def test_responder_keeps_responder_type(store, admin):
    account = await registration.register_staff(
        store, admin, staff_form(role="responder", responder_type="EMT"))
    assert account.profile.responder_type == "EMT"
    staff_account = await registration.register_staff(
        store, admin, staff_form(username="other", responder_type="EMT"))
    assert staff_account.profile.responder_type == ""
    assert await registration.list_responders(store) == ["Juan Dela Cruz"]


async def test_responder_fallback(store):
    assert await registration.list_responders(store) == ["Responder 1", "Responder 2", "Responder 3"]


async def test_registration_request_approved(store, admin):
    request = await registration.submit_registration_request(store, resident_form())
    with pytest.raises(DuplicateError):
        await registration.submit_registration_request(store, resident_form(username="PEDRO"))

    approved = await registration.approve_request(store, admin, request.id)
    assert approved.reviewer == "admin"
    residents = await registration.list_residents(store)
    assert [r.username for r in residents] == ["pedro"]
    assert residents[0].status == ResidentStatus.ACTIVE
    feedback = await registration.get_feedback(store, "pedro")
    assert feedback.status.value == "approved"
    assert await registration.list_requests(store) == []


async def test_registration_request_rejected_with_default_reason(store, admin):
    request = await registration.submit_registration_request(store, resident_form())
    with pytest.raises(ValidationError):
        await registration.reject_request(store, admin, request.id, RejectRequest(reason="", confirm=False))

    await registration.reject_request(store, admin, request.id, RejectRequest(reason="  ", confirm=True))
    feedback = await registration.get_feedback(store, "pedro")
    assert feedback.status.value == "rejected"
    assert feedback.reason == "Registration did not meet requirements."
    assert feedback.reviewer == "admin"

    with pytest.raises(NotFoundError, match="Request already handled"):
        await registration.reject_request(store, admin, request.id, RejectRequest(confirm=True))


async def test_registration_request_for_existing_resident_is_duplicate(store, admin):
    await registration.register_resident(store, admin, resident_form(username="jdoe"))
    with pytest.raises(DuplicateError, match="Username already exists."):
        await registration.submit_registration_request(store, resident_form(username="JDoe"))
    assert await registration.list_requests(store) == []
    assert await store.list_records("requests") == []


async def test_registration_request_rejected_with_reason(store, admin):
    request = await registration.submit_registration_request(store, resident_form(username="jdoe"))
    assert [r.id for r in await registration.list_requests(store)] == [request.id]

    await registration.reject_request(store, admin, request.id,
                                      RejectRequest(reason="incomplete ID", confirm=True))
    feedback = await registration.get_feedback(store, "jdoe")
    assert feedback.status.value == "rejected"
    assert feedback.reason == "incomplete ID"
    assert await registration.list_requests(store) == []
    assert await store.read_record("residents", "jdoe") is None


async def test_passwords_hashed_outside_store_lock(store, admin, monkeypatch):
    real_hash = registration.hash_password

    def hash_unlocked(password):
        assert not store._lock.locked()
        return real_hash(password)

    monkeypatch.setattr(registration, "hash_password", hash_unlocked)
    await registration.register_staff(store, admin, staff_form())
    await registration.register_resident(store, admin, resident_form())
    await registration.submit_registration_request(store, resident_form(username="maria"))
    await registration.reset_resident_password(store, admin, "pedro",
                                               PasswordResetRequest(new_password="newpass1", confirm=True))
    await registration.reset_account_password(store, admin, "jdelacruz",
                                              PasswordResetRequest(new_password="newpass1", confirm=True))


async def test_profile_update_flow(store, admin):
    await registration.register_resident(store, admin, resident_form())
    request = await registration.submit_update_request(
        store, UpdateRequestSubmit(username="pedro", changes={"email": "pedro.new@example.com"}))
    assert request.kind == RequestKind.PROFILE_UPDATE

    pending = await registration.list_residents(store, status="pending")
    assert [r.username for r in pending] == ["pedro"]
    assert pending[0].pending_update

    await registration.approve_request(store, admin, request.id)
    resident = await registration.get_resident(store, "pedro")
    assert resident.email == "pedro.new@example.com"
    assert not resident.pending_update


async def test_update_request_validation(store, admin):
    await registration.register_resident(store, admin, resident_form())
    with pytest.raises(ValidationError):
        await registration.submit_update_request(
            store, UpdateRequestSubmit(username="pedro", changes={"password_hash": "x"}))
    with pytest.raises(ValidationError):
        await registration.submit_update_request(
            store, UpdateRequestSubmit(username="pedro", changes={"contact": "123"}))
    with pytest.raises(NotFoundError):
        await registration.submit_update_request(
            store, UpdateRequestSubmit(username="ghost", changes={"address": "Somewhere"}))


async def test_resident_search_and_status(store, admin):
    await registration.register_resident(store, admin, resident_form())
    await registration.register_resident(store, admin, resident_form(
        username="maria", first="Maria", last="Lee", email="maria@example.com"))
    await registration.update_resident(store, admin, "maria", ResidentUpdate(status=ResidentStatus.INACTIVE))

    assert [r.username for r in await registration.list_residents(store, q="penduko")] == ["pedro"]
    assert [r.username for r in await registration.list_residents(store, status="inactive")] == ["maria"]
    assert [r.username for r in await registration.list_residents(store, status="active")] == ["pedro"]


async def test_delete_resident_drops_open_requests(store, admin):
    await registration.register_resident(store, admin, resident_form())
    await registration.submit_update_request(
        store, UpdateRequestSubmit(username="pedro", changes={"address": "Block 2"}))
    with pytest.raises(ValidationError):
        await registration.delete_resident(store, admin, "pedro", confirm=False)

    await registration.delete_resident(store, admin, "pedro", confirm=True)
    assert await registration.list_residents(store) == []
    assert await registration.list_requests(store) == []


async def test_password_resets(store, admin):
    await registration.register_resident(store, admin, resident_form())
    with pytest.raises(ValidationError):
        await registration.reset_resident_password(
            store, admin, "pedro", PasswordResetRequest(new_password="newpass1", confirm=False))
    await registration.reset_resident_password(
        store, admin, "pedro", PasswordResetRequest(new_password="newpass1", confirm=True))

    await registration.reset_account_password(
        store, admin, "staff", PasswordResetRequest(new_password="newpass1", confirm=True))
    assert (await auth.authenticate(store, "staff", "newpass1")).username == "staff"
    with pytest.raises(NotFoundError):
        await registration.reset_account_password(
            store, admin, "ghost", PasswordResetRequest(new_password="newpass1", confirm=True))
