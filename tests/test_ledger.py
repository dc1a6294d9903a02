from __future__ import annotations

import pytest

from staffplan.errors import NoCapacityAvailable, PositionNotFound
from staffplan.ledger import PositionLedger, allocation_status, consumes, remaining_capacity
from staffplan.schemas import Allocation, Position


def make_position(percentage: float = 100.0, **overrides) -> Position:
    fields = {"id": "pos-1", "project_id": "p1", "month_index": 0, "name": "Developer", "percentage": percentage}
    fields.update(overrides)
    return Position(**fields)


def test_second_request_is_capped_to_remaining_capacity():
    position = make_position(100)
    ledger = PositionLedger([position], [])

    first = ledger.allocate(position, "u1", 0, 60)
    second = ledger.allocate(position, "u2", 0, 60)

    assert first.percentage == 60
    assert second.percentage == 40
    assert position.allocated == 100
    assert ledger.remaining(position) == 0
    with pytest.raises(NoCapacityAvailable):
        ledger.allocate(position, "u3", 0, 10)


def test_allocate_without_amount_takes_everything_left():
    position = make_position(75)
    ledger = PositionLedger([position], [])
    ledger.allocate(position, "u1", 0, 25)

    rest = ledger.allocate(position, "u2", 0)

    assert rest.percentage == 50
    assert rest.position_id == position.id
    assert rest.position_name == "Developer"
    assert rest.id.startswith("alloc-")


def test_non_positive_request_is_rejected():
    position = make_position()
    ledger = PositionLedger([position], [])
    with pytest.raises(ValueError):
        ledger.allocate(position, "u1", 0, 0)
    with pytest.raises(ValueError):
        ledger.allocate(position, "u1", 0, -5)


def test_deallocate_never_drives_allocated_negative():
    position = make_position(100)
    allocation = Allocation(id="a1", user_id="u1", project_id="p1", month_index=0, percentage=60, position_id="pos-1")
    ledger = PositionLedger([position], [allocation])
    position.allocated = 10

    ledger.deallocate(allocation)

    assert position.allocated == 0
    assert ledger.allocations == []


def test_remaining_capacity_is_floored_at_zero():
    position = make_position(50)
    over = Allocation(id="a1", user_id="u1", project_id="p1", month_index=0, percentage=80, position_name="Developer")
    assert remaining_capacity(position, [over]) == 0


def test_allocation_links_by_name_when_position_id_is_missing():
    position = make_position()
    by_name = Allocation(id="a1", user_id="u1", project_id="p1", month_index=0, percentage=10, position_name="Developer")
    other_month = Allocation(id="a2", user_id="u1", project_id="p1", month_index=1, percentage=10, position_name="Developer")
    other_name = Allocation(id="a3", user_id="u1", project_id="p1", month_index=0, percentage=10, position_name="QA")
    assert consumes(by_name, position)
    assert not consumes(other_month, position)
    assert not consumes(other_name, position)


def test_find_position_raises_for_unknown_name():
    ledger = PositionLedger([make_position()], [])
    assert ledger.find_position("p1", 0, "Developer").id == "pos-1"
    with pytest.raises(PositionNotFound):
        ledger.find_position("p1", 0, "Designer")


def test_cleanup_orphaned_and_clamp():
    kept = make_position(50, id="pos-keep")
    allocations = [
        Allocation(id="a1", user_id="u1", project_id="p1", month_index=0, percentage=80, position_id="pos-keep"),
        Allocation(id="a2", user_id="u2", project_id="p1", month_index=1, percentage=30, position_id="pos-gone"),
        Allocation(id="a3", user_id="u2", project_id="p2", month_index=1, percentage=30, position_id="pos-other"),
    ]
    ledger = PositionLedger([kept], allocations)

    removed = ledger.cleanup_orphaned("p1", {"pos-keep"})
    changed = ledger.clamp_to_budgets("p1")
    ledger.recompute()

    assert [a.id for a in removed] == ["a2"]
    assert [a.id for a in ledger.allocations] == ["a1", "a3"]
    assert changed == 1
    assert ledger.allocations[0].percentage == 50
    assert kept.allocated == 50


@pytest.mark.parametrize(
    "total, expected",
    [(0, "under"), (89.9, "under"), (90, "balanced"), (100, "balanced"), (110, "balanced"), (110.1, "over")],
)
def test_allocation_status_thresholds(total, expected):
    assert allocation_status(total) == expected


def test_linked_allocation_counts_only_against_its_own_position():
    task_a = make_position(100, id="pos-A", project_task="A")
    task_b = make_position(100, id="pos-B", project_task="B")
    linked = Allocation(id="a1", user_id="u1", project_id="p1", month_index=0, percentage=70,
                        position_id="pos-A", position_name="Developer")
    ledger = PositionLedger([task_a, task_b], [linked])

    ledger.recompute()

    assert task_a.allocated == 70
    assert task_b.allocated == 0
    assert ledger.remaining(task_b) == 100
    assert ledger.slot_allocations(task_b) == []
    assert not consumes(linked, task_b)


def test_link_to_a_missing_position_falls_back_to_the_name():
    position = make_position(100, id="pos-new")
    stale = Allocation(id="a1", user_id="u1", project_id="p1", month_index=0, percentage=30,
                       position_id="pos-old", position_name="Developer")
    ledger = PositionLedger([position], [stale])

    ledger.recompute()

    assert position.allocated == 30
    assert ledger.position_for(stale) is position
    assert not consumes(stale, position)
    assert consumes(stale, position, {"pos-new"})
