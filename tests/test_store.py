from __future__ import annotations

import pytest

from staffplan.errors import EligibilityViolation, NoCapacityAvailable, PositionNotFound, RecordNotFound
from staffplan.schemas import Entity, PositionLine, Project, User
from staffplan.store import AllocationStore


def position(store: AllocationStore, position_id: str):
    return next(p for p in store.positions if p.id == position_id)


def test_loading_recomputes_allocated_from_allocation_records(plan_document):
    plan_document["positions"][0]["allocated"] = 999
    store = AllocationStore.from_document(plan_document)

    assert position(store, "pos-p1-dev-0").allocated == 60
    assert position(store, "pos-p1-dev-1").allocated == 0
    assert [p.id for p in store.get_project("p1").positions] == [p["id"] for p in plan_document["positions"]]


def test_positions_nested_under_projects_are_lifted(plan_document):
    plan_document["projects"][0]["positions"] = plan_document.pop("positions")
    store = AllocationStore.from_document(plan_document)
    assert len(store.positions) == 4


def test_add_allocation_caps_and_persists_once(plan_document, persist):
    store = AllocationStore.from_document(plan_document, persist=persist)

    allocation = store.add_allocation("u2", "p1", 0, "Developer", 60)

    assert allocation.percentage == 40
    assert position(store, "pos-p1-dev-0").allocated == 100
    assert len(persist.calls) == 1
    payload = persist.calls[0]["payload"]
    assert {"allocations", "positions", "projects"} <= set(payload)
    assert persist.calls[0]["allow_deletions"] is False
    assert store.last_modified == "2024-01-01T00:00:01Z"

    with pytest.raises(NoCapacityAvailable):
        store.add_allocation("u1", "p1", 0, "Developer")
    assert len(persist.calls) == 1


def test_failed_operation_leaves_state_untouched(plan_document, persist):
    store = AllocationStore.from_document(plan_document, persist=persist)
    before = store.to_document()

    with pytest.raises(PositionNotFound):
        store.add_allocation("u1", "p1", 0, "Designer")
    with pytest.raises(RecordNotFound):
        store.add_allocation("nobody", "p1", 0, "Developer")

    assert store.to_document() == before
    assert persist.calls == []


def test_add_allocation_checks_employment_dates(plan_document):
    store = AllocationStore.from_document(plan_document)

    with pytest.raises(EligibilityViolation) as ended:
        store.add_allocation("u2", "p1", 3, "Developer")
    assert ended.value.reason == "ended"

    with pytest.raises(EligibilityViolation) as not_started:
        store.add_allocation("u3", "p1", 4, "Developer")
    assert not_started.value.reason == "not started"

    # Bob ends mid-March, so March itself is still allowed.
    assert store.add_allocation("u2", "p1", 2, "Developer").percentage == 60


def test_remove_allocation_releases_capacity(plan_document, persist):
    store = AllocationStore.from_document(plan_document, persist=persist)

    store.remove_allocation("a1")

    assert position(store, "pos-p1-dev-0").allocated == 0
    assert [a.id for a in store.allocations] == ["a2"]
    call = persist.calls[-1]
    assert call["allow_deletions"] is True
    assert call["payload"]["deletions"] == {"allocations": ["a1"]}


def test_edit_allocation_amount_recomputes_without_clamping(plan_document):
    store = AllocationStore.from_document(plan_document)

    edited = store.edit_allocation_amount("a1", 150)

    assert edited.percentage == 150
    assert position(store, "pos-p1-dev-0").allocated == 150
    with pytest.raises(ValueError):
        store.edit_allocation_amount("a1", -1)


def test_delete_project_cascades_positions_and_allocations(persist):
    document = {
        "projects": [{"id": "p9", "name": "Cascade"}, {"id": "p1", "name": "Other"}],
        "users": [{"id": f"u{i}", "name": f"User {i}"} for i in range(7)],
        "positions": [
            {"id": f"pos-p9-{m}", "projectId": "p9", "monthIndex": m, "name": "Dev", "percentage": 100}
            for m in range(3)
        ]
        + [{"id": "pos-p1-0", "projectId": "p1", "monthIndex": 0, "name": "Dev", "percentage": 100}],
        "allocations": [
            {"id": f"a{i}", "userId": f"u{i}", "projectId": "p9", "monthIndex": i % 3, "percentage": 10, "positionName": "Dev"}
            for i in range(7)
        ]
        + [{"id": "keep", "userId": "u0", "projectId": "p1", "monthIndex": 0, "percentage": 25, "positionName": "Dev"}],
    }
    store = AllocationStore.from_document(document, persist=persist)

    store.delete_project("p9")

    assert [p.id for p in store.projects] == ["p1"]
    assert [p.id for p in store.positions] == ["pos-p1-0"]
    assert [a.id for a in store.allocations] == ["keep"]
    assert store.positions[0].allocated == 25
    deletions = persist.calls[-1]["payload"]["deletions"]
    assert deletions["projects"] == ["p9"]
    assert len(deletions["positions"]) == 3
    assert len(deletions["allocations"]) == 7
    assert persist.calls[-1]["allow_deletions"] is True


def test_delete_user_removes_their_allocations(plan_document):
    store = AllocationStore.from_document(plan_document)
    store.delete_user("u1")

    assert [u.id for u in store.users] == ["u2", "u3"]
    assert store.allocations == []
    assert position(store, "pos-p1-dev-0").allocated == 0


def test_delete_position_line_removes_every_month_of_the_line(plan_document, persist):
    store = AllocationStore.from_document(plan_document, persist=persist)

    store.delete_position_line("dev", project_id="p1")

    assert [p.id for p in store.positions] == ["pos-p1-qa-0"]
    assert store.allocations == []
    deletions = persist.calls[-1]["payload"]["deletions"]
    assert deletions["positions"] == ["pos-p1-dev-0", "pos-p1-dev-1", "pos-p1-dev-2"]
    assert deletions["allocations"] == ["a1", "a2"]

    with pytest.raises(RecordNotFound):
        store.delete_position_line("dev", project_id="p1")


def test_save_position_lines_reconciles_allocations(plan_document, persist):
    store = AllocationStore.from_document(plan_document, persist=persist)

    positions = store.save_position_lines(
        "p1",
        [PositionLine(id="dev", name="Developer", budgets={0: 50, 1: 100, 12: 100})],
    )

    # Month 12 is past the project's end and is dropped.
    assert [p.id for p in positions] == ["pos-p1-dev-0", "pos-p1-dev-1"]
    a1 = store.get_allocation("a1")
    assert a1.percentage == 50
    with pytest.raises(RecordNotFound):
        store.get_allocation("a2")
    assert position(store, "pos-p1-dev-0").allocated == 50
    deletions = persist.calls[-1]["payload"]["deletions"]
    assert sorted(deletions["positions"]) == ["pos-p1-dev-2", "pos-p1-qa-0"]
    assert deletions["allocations"] == ["a2"]


def test_days_mode_lines_convert_with_the_mon_fri_calendar(plan_document):
    store = AllocationStore.from_document(plan_document)

    store.save_position_lines(
        "p1",
        [PositionLine(id="dev", name="Developer", budgets={0: 23, 1: 10.5})],
        allocation_mode="days",
    )

    assert store.get_project("p1").allocation_mode == "days"
    assert position(store, "pos-p1-dev-0").percentage == 100.0
    lines = store.position_lines("p1")
    assert [line.id for line in lines] == ["dev"]
    assert lines[0].budgets == {0: 23, 1: 11}


def test_save_with_every_collection_empty_is_skipped_unless_deletions_allowed(persist):
    store = AllocationStore(persist=persist)

    store.save()
    assert persist.calls == []

    store.save(allow_deletions=True)
    assert len(persist.calls) == 1
    assert persist.calls[0]["payload"]["projects"] == []


def test_persist_failure_is_raised_after_local_state_is_kept(plan_document):
    def failing(payload, **kwargs):
        raise RuntimeError("storage down")

    store = AllocationStore.from_document(plan_document, persist=failing)
    with pytest.raises(RuntimeError):
        store.remove_allocation("a1")
    assert [a.id for a in store.allocations] == ["a2"]


def test_upserts_and_start_month(plan_document, persist):
    store = AllocationStore.from_document(plan_document, persist=persist)

    store.upsert_user(User(id="u4", name="Dana", department="Finance"))
    store.upsert_user(User(id="u1", name="Alice Smith", department="Engineering"))
    store.upsert_entity(Entity(id="e2", name="Branch"))
    store.upsert_project(Project(id="p2", name="Gemini"))
    store.set_start(2025, 3)

    assert [u.name for u in store.users] == ["Alice Smith", "Bob", "Chen", "Dana"]
    assert [e.id for e in store.entities] == ["e1", "e2"]
    assert store.get_project("p2").color == "#3B82F6"
    assert persist.calls[-1]["payload"] == {"startMonth": 3, "startYear": 2025}
    with pytest.raises(ValueError):
        store.set_start(2025, 12)


def test_to_document_keeps_unknown_keys_and_drops_days(plan_document):
    plan_document["expenses"] = [{"id": "x1", "amount": 10}]
    plan_document["users"][0]["payrollNote"] = "keep me"
    plan_document["positions"][0]["days"] = 23
    store = AllocationStore.from_document(plan_document)

    document = store.to_document()

    assert document["expenses"] == [{"id": "x1", "amount": 10}]
    assert document["users"][0]["payrollNote"] == "keep me"
    assert "days" not in document["positions"][0]
    assert all("days" not in p for p in document["projects"][0]["positions"])
    assert document["startYear"] == 2024


def test_second_allocation_is_capped_to_what_is_left():
    document = {
        "projects": [{"id": "P", "name": "Platform"}],
        "users": [{"id": "U1", "name": "Uma"}, {"id": "U2", "name": "Umar"}],
        "positions": [{"id": "pos-P-5", "projectId": "P", "monthIndex": 5, "name": "Engineer", "percentage": 100}],
    }
    store = AllocationStore.from_document(document)

    assert store.add_allocation("U1", "P", 5, "Engineer", 60).percentage == 60
    assert store.add_allocation("U2", "P", 5, "Engineer", 60).percentage == 40
    assert store.remaining_capacity(position(store, "pos-P-5")) == 0
