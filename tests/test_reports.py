import pytest

from isagip.ambulances import manager as ambulances
from isagip.ambulances.models import AmbulanceStatus
from isagip.reports import manager as reports
from isagip.reports.models import (
    Report, ReportDispatch, ReportStatus, ReportSubmit, ReportType, ReportView, ResolveRequest, Severity,
)
from isagip.shared.errors import NotFoundError, ValidationError


async def new_report(store, **overrides):
    data = {"type": ReportType.MEDICAL, "description": "Chest pain", "street": "Block 1, Lot 2"}
    data.update(overrides)
    return await reports.create_report(store, ReportSubmit(**data), "Dan")


async def test_create_report_assigns_sequential_ids(store):
    first = await new_report(store)
    second = await new_report(store, description="Kitchen fire", type=ReportType.FIRE)
    year = first.created_at.year
    assert first.id == f"REP-{year}-001"
    assert second.id == f"REP-{year}-002"
    assert first.status == ReportStatus.PENDING
    assert [h.action for h in first.history] == ["Created"]
    assert first.response_time == "N/A"


async def test_create_report_skips_taken_ids(store):
    first = await new_report(store)
    year = first.created_at.year
    await store.write_record("reports", f"REP-{year}-002", {**first.model_dump(mode="json"), "id": f"REP-{year}-002"})
    third = await new_report(store)
    assert third.id == f"REP-{year}-003"


async def test_blank_description_rejected(store):
    with pytest.raises(ValidationError):
        await new_report(store, description="   ")


async def test_relay_then_dispatch_with_side_channels(store, staff):
    report = await new_report(store)
    report = await reports.relay_report(store, staff, report.id)
    assert report.status == ReportStatus.RELAYED

    report = await reports.dispatch_report(store, staff, report.id, ReportDispatch(
        responder="Responder 1", ambulance_id="AMB-1", severity=Severity.HIGH))
    assert report.status == ReportStatus.ONGOING
    assert report.severity == Severity.HIGH
    assert report.assigned_responder == "Responder 1"
    assert report.assigned_vehicle_id == "AMB-1"
    assert report.field_updates["severity"].by == "staff"
    actions = [h.action for h in report.history]
    assert actions == ["Created", "Relayed", "Dispatched", "Severity Set", "Responder Assigned", "Ambulance Assigned"]


async def test_relay_twice_rejected(store, staff):
    report = await new_report(store)
    await reports.relay_report(store, staff, report.id)
    with pytest.raises(ValidationError):
        await reports.relay_report(store, staff, report.id)


async def test_toggle_respond(store, staff):
    report = await new_report(store)
    report = await reports.toggle_respond(store, staff, report.id)
    assert report.status == ReportStatus.ONGOING
    report = await reports.toggle_respond(store, staff, report.id)
    assert report.status == ReportStatus.RESPONDED
    report = await reports.toggle_respond(store, staff, report.id)
    assert report.status == ReportStatus.ONGOING
    assert [h.action for h in report.history].count("Status Changed") == 3


async def test_severity_and_responder_attribution(store, staff):
    report = await new_report(store)
    report = await reports.set_severity(store, staff, report.id, Severity.CRITICAL)
    report = await reports.assign_responder(store, staff, report.id, "Responder 2")
    assert report.last_updated_by == "staff"
    assert set(report.field_updates) >= {"severity", "assigned_responder"}


async def test_resolve_requires_confirmation(store, staff):
    report = await new_report(store)
    with pytest.raises(ValidationError):
        await reports.resolve_report(store, staff, report.id, ResolveRequest(confirm=False))
    stored = await reports.get_report(store, report.id)
    assert stored.status == ReportStatus.PENDING


async def test_resolved_is_terminal(store, staff):
    report = await new_report(store)
    report = await reports.resolve_report(store, staff, report.id, ResolveRequest(confirm=True, notes="False alarm"))
    assert report.status == ReportStatus.RESOLVED
    assert report.closed_by == "staff"
    assert report.closed_at is not None
    assert report.archived
    assert report.response_time.endswith("minutes")
    assert report.history[-1].action == "Closed"

    with pytest.raises(ValidationError):
        await reports.toggle_respond(store, staff, report.id)
    with pytest.raises(ValidationError):
        await reports.resolve_report(store, staff, report.id, ResolveRequest(confirm=True))
    with pytest.raises(ValidationError):
        await reports.set_severity(store, staff, report.id, Severity.LOW)
    with pytest.raises(ValidationError):
        await ambulances.assign(store, staff, "AMB-1", report.id)

    noted = await reports.add_note(store, staff, report.id, "Family informed")
    assert noted.notes == "False alarm\nFamily informed"
    assert noted.status == ReportStatus.RESOLVED


async def test_resolve_releases_ambulance(store, staff):
    report = await new_report(store)
    await reports.assign_vehicle(store, staff, report.id, "AMB-2")
    resolved = await reports.resolve_report(store, staff, report.id, ResolveRequest(confirm=True))

    ambulance = await ambulances.get_ambulance(store, "AMB-2")
    assert ambulance.status == AmbulanceStatus.AVAILABLE
    assert ambulance.assigned_report_id is None
    assert ambulance.location == ""
    assert resolved.assigned_vehicle_id == "AMB-2"


async def test_failed_resolve_writes_nothing(store, staff, monkeypatch):
    report = await new_report(store)
    await reports.assign_vehicle(store, staff, report.id, "AMB-1")

    async def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(ambulances, "release_for_report", broken)
    with pytest.raises(RuntimeError):
        await reports.resolve_report(store, staff, report.id, ResolveRequest(confirm=True))

    stored = await reports.get_report(store, report.id)
    assert stored.status == ReportStatus.PENDING
    assert (await ambulances.get_ambulance(store, "AMB-1")).status == AmbulanceStatus.IN_USE


async def test_missing_report(store, staff):
    with pytest.raises(NotFoundError):
        await reports.relay_report(store, staff, "REP-1999-001")


async def test_list_reports_filters_and_pages(store, staff):
    for i in range(3):
        await new_report(store, description=f"Medical case {i}")
    fire = await new_report(store, type=ReportType.FIRE, description="Grass fire")
    await reports.relay_report(store, staff, fire.id)

    page = await reports.list_reports(store, page=1, page_size=2)
    assert page["total"] == 4
    assert len(page["reports"]) == 2
    assert page["next_page"].startswith("/api/reports/?page=2")
    assert page["prev_page"] is None

    relayed = await reports.list_reports(store, status=ReportStatus.RELAYED)
    assert [r.id for r in relayed["reports"]] == [fire.id]

    found = await reports.list_reports(store, search="grass")
    assert found["total"] == 1


async def test_dashboard_stats(store, staff):
    a = await new_report(store)
    await new_report(store, type=ReportType.POLICE, description="Suspicious activity")
    await reports.resolve_report(store, staff, a.id, ResolveRequest(confirm=True))

    stats = await reports.get_dashboard_stats(store)
    assert stats["total"] == 2
    assert stats["by_status"]["Resolved"] == 1
    assert stats["by_status"]["Pending"] == 1
    assert stats["by_type"]["Police"] == 1
    assert stats["average_response_minutes"] == 0
    assert len(stats["latest_open"]) == 1


async def test_active_locations(store, staff):
    await new_report(store, location={"lat": 14.7, "lng": 121.0})
    await new_report(store)
    markers = await reports.active_locations(store)
    assert len(markers) == 1
    assert markers[0]["lat"] == 14.7


async def test_report_view_carries_response_time(store, staff):
    assert not issubclass(ReportView, Report)
    report = await new_report(store)
    assert ReportView.of(report).response_time == "N/A"

    report = await reports.resolve_report(store, staff, report.id, ResolveRequest(confirm=True))
    view = ReportView.of(report)
    assert view.response_time == report.response_time
    assert view.response_time_minutes == report.response_time_minutes
    assert view.is_resolved
    assert view.model_dump(mode="json")["response_time"].endswith("minutes")
