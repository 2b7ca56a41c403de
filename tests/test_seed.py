from isagip.reports import manager as reports
from isagip.registration import manager as registration
from isagip.registration.models import RequestKind
from isagip.shared import config
from isagip.shared.seed import seed_data
from isagip.shared.store import MemoryStore


async def seeded_store(monkeypatch):
    monkeypatch.setattr(config, "SEED_DEMO_DATA", True)
    store = MemoryStore()
    await seed_data(store)
    return store


async def test_demo_update_request_is_open_for_review(monkeypatch):
    store = await seeded_store(monkeypatch)

    requests = await registration.list_requests(store)
    assert [r.id for r in requests] == ["REQ-0001"]
    assert requests[0].kind == RequestKind.PROFILE_UPDATE

    pending = await registration.list_residents(store, status="pending")
    assert [r.username for r in pending] == ["john_doe"]


async def test_demo_reports_listed_as_open(monkeypatch):
    store = await seeded_store(monkeypatch)

    listing = await reports.list_reports(store, archived=False)
    assert listing["total"] == 4
    assert all(not r.archived for r in listing["reports"])


async def test_seeding_twice_keeps_existing_records(monkeypatch):
    store = await seeded_store(monkeypatch)
    await seed_data(store)

    assert len(await store.list_records("accounts")) == 3
    assert len(await store.list_records("ambulances")) == 3
    assert len(await store.list_records("requests")) == 1
