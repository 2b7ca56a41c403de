import pytest

from isagip.ambulances import manager as ambulances
from isagip.ambulances.models import Ambulance, AmbulanceCreate, AmbulanceStatus
from isagip.reports import manager as reports
from isagip.reports.models import ReportSubmit, ReportType, ResolveRequest
from isagip.shared.errors import NotFoundError, ValidationError


async def new_report(store, street="Block 3, Lot 5"):
    return await reports.create_report(
        store, ReportSubmit(type=ReportType.FIRE, description="Kitchen fire", street=street), "Alice"
    )


async def test_seeded_fleet(store):
    fleet = await ambulances.list_ambulances(store)
    assert [a.name for a in fleet] == ["Ambulance 1", "Ambulance 2", "Ambulance 3"]
    assert all(a.status == AmbulanceStatus.AVAILABLE for a in fleet)


async def test_assign_links_both_sides(store, staff):
    report = await new_report(store)
    ambulance, report = await ambulances.assign(store, staff, "AMB-1", report.id)
    assert ambulance.status == AmbulanceStatus.IN_USE
    assert ambulance.location == "Block 3, Lot 5"
    assert ambulance.assigned_report_id == report.id
    assert report.assigned_vehicle_id == "AMB-1"
    assert report.history[-1].action == "Ambulance Assigned"


async def test_assign_same_ambulance_twice_is_noop(store, staff):
    report = await new_report(store)
    await ambulances.assign(store, staff, "AMB-1", report.id)
    _, again = await ambulances.assign(store, staff, "AMB-1", report.id)
    assert [h.action for h in again.history].count("Ambulance Assigned") == 1


async def test_reassign_releases_previous(store, staff):
    report = await new_report(store)
    await ambulances.assign(store, staff, "AMB-1", report.id)
    _, report = await ambulances.assign(store, staff, "AMB-2", report.id)

    first = await ambulances.get_ambulance(store, "AMB-1")
    assert first.status == AmbulanceStatus.AVAILABLE
    assert report.assigned_vehicle_id == "AMB-2"
    in_use = await ambulances.list_ambulances(store, AmbulanceStatus.IN_USE)
    assert [a.id for a in in_use] == ["AMB-2"]


async def test_ambulance_busy_on_other_report(store, staff):
    one = await new_report(store)
    two = await new_report(store, street="Block 4, Lot 7")
    await ambulances.assign(store, staff, "AMB-1", one.id)
    with pytest.raises(ValidationError, match="Release it first"):
        await ambulances.assign(store, staff, "AMB-1", two.id)


async def test_maintenance_cannot_be_assigned(store, staff):
    report = await new_report(store)
    await ambulances.set_status(store, staff, "AMB-3", AmbulanceStatus.MAINTENANCE)
    with pytest.raises(ValidationError, match="maintenance"):
        await ambulances.assign(store, staff, "AMB-3", report.id)


async def test_assign_missing_records(store, staff):
    report = await new_report(store)
    with pytest.raises(NotFoundError):
        await ambulances.assign(store, staff, "AMB-99", report.id)
    with pytest.raises(NotFoundError):
        await ambulances.assign(store, staff, "AMB-1", "REP-1999-001")


async def test_release_unlinks_open_report_and_is_idempotent(store, staff):
    report = await new_report(store)
    await ambulances.assign(store, staff, "AMB-1", report.id)

    released = await ambulances.release(store, staff, "AMB-1")
    assert released.status == AmbulanceStatus.AVAILABLE
    assert released.assigned_report_id is None
    assert released.location == ""
    report = await reports.get_report(store, report.id)
    assert report.assigned_vehicle_id is None
    assert report.history[-1].action == "Ambulance Released"

    version = (await ambulances.get_ambulance(store, "AMB-1")).version
    history_size = len(report.history)
    await ambulances.release(store, staff, "AMB-1")
    assert (await ambulances.get_ambulance(store, "AMB-1")).version == version
    assert len((await reports.get_report(store, report.id)).history) == history_size


async def test_maintenance_releases_assignment(store, staff):
    report = await new_report(store)
    await ambulances.assign(store, staff, "AMB-2", report.id)
    ambulance = await ambulances.set_status(store, staff, "AMB-2", AmbulanceStatus.MAINTENANCE)
    assert ambulance.status == AmbulanceStatus.MAINTENANCE
    assert ambulance.assigned_report_id is None
    assert (await reports.get_report(store, report.id)).assigned_vehicle_id is None


async def test_in_use_only_through_assign(store, staff):
    with pytest.raises(ValidationError):
        await ambulances.set_status(store, staff, "AMB-1", AmbulanceStatus.IN_USE)


async def test_in_use_invariant_checked_on_load():
    with pytest.raises(ValueError):
        Ambulance(id="AMB-9", name="Ambulance 9", status=AmbulanceStatus.IN_USE)
    with pytest.raises(ValueError):
        Ambulance(id="AMB-9", name="Ambulance 9", assigned_report_id="REP-2024-001")


async def test_create_ambulance_skips_seeded_ids(store, staff):
    ambulance = await ambulances.create_ambulance(store, staff, AmbulanceCreate(name="Ambulance 4"))
    assert ambulance.id == "AMB-4"
    with pytest.raises(ValidationError):
        await ambulances.create_ambulance(store, staff, AmbulanceCreate(name=" "))


async def test_no_ambulance_left_in_use_after_resolve(store, staff):
    report = await new_report(store)
    await ambulances.assign(store, staff, "AMB-1", report.id)
    await reports.resolve_report(store, staff, report.id, ResolveRequest(confirm=True))
    for ambulance in await ambulances.list_ambulances(store):
        assert ambulance.assigned_report_id != report.id
        assert ambulance.status == AmbulanceStatus.AVAILABLE
