from __future__ import annotations

import logging
import uuid
from typing import Collection, Iterable, Literal

from staffplan.errors import NoCapacityAvailable, PositionNotFound
from staffplan.schemas import Allocation, Position

logger = logging.getLogger(__name__)

AllocationStatus = Literal["balanced", "under", "over"]

BALANCED_LOW = 90.0
BALANCED_HIGH = 110.0


def allocation_status(total_percentage: float) -> AllocationStatus:
    if total_percentage < BALANCED_LOW:
        return "under"
    if total_percentage > BALANCED_HIGH:
        return "over"
    return "balanced"


def new_allocation_id() -> str:
    return f"alloc-{uuid.uuid4().hex[:12]}"


def consumes(
    allocation: Allocation,
    position: Position,
    position_ids: Collection[str] | None = None,
) -> bool:
    """Whether an allocation draws on a position's budget.

    A linked ``position_id`` decides on its own. The name only counts for unlinked
    allocations, or for links to an id missing from ``position_ids`` when that is given.
    """
    if allocation.project_id != position.project_id or allocation.month_index != position.month_index:
        return False
    if allocation.position_id is not None and (position_ids is None or allocation.position_id in position_ids):
        return allocation.position_id == position.id
    return allocation.position_name == position.name


def allocated_total(
    position: Position,
    allocations: Iterable[Allocation],
    position_ids: Collection[str] | None = None,
) -> float:
    return sum(a.percentage or 0.0 for a in allocations if consumes(a, position, position_ids))


def remaining_capacity(
    position: Position,
    allocations: Iterable[Allocation],
    position_ids: Collection[str] | None = None,
) -> float:
    return max(0.0, (position.percentage or 0.0) - allocated_total(position, allocations, position_ids))


class PositionLedger:
    """Budget bookkeeping over a positions list and an allocations list, mutated in place.

    ``position.allocated`` is a cache of the allocation records; ``recompute`` rebuilds it
    and every read that matters goes through the allocation records instead.
    """

    def __init__(self, positions: list[Position], allocations: list[Allocation]):
        self.positions = positions
        self.allocations = allocations

    @property
    def position_ids(self) -> set[str]:
        return {p.id for p in self.positions}

    def find_position(self, project_id: str, month_index: int, position_name: str) -> Position:
        for position in self.positions:
            if (
                position.project_id == project_id
                and position.month_index == month_index
                and position.name == position_name
            ):
                return position
        raise PositionNotFound(project_id, month_index, position_name)

    def position_for(self, allocation: Allocation) -> Position | None:
        if allocation.position_id is not None:
            for position in self.positions:
                if position.id == allocation.position_id:
                    return position
        ids = self.position_ids
        for position in self.positions:
            if consumes(allocation, position, ids):
                return position
        return None

    def slot_allocations(self, position: Position) -> list[Allocation]:
        ids = self.position_ids
        return [a for a in self.allocations if consumes(a, position, ids)]

    def remaining(self, position: Position) -> float:
        return remaining_capacity(position, self.allocations, self.position_ids)

    def allocate(
        self,
        position: Position,
        user_id: str,
        month_index: int,
        requested: float | None = None,
        allocation_id: str | None = None,
    ) -> Allocation:
        if requested is not None and requested <= 0:
            raise ValueError("requested allocation must be positive")
        remaining = self.remaining(position)
        if remaining <= 0:
            raise NoCapacityAvailable(position.id, remaining)
        amount = remaining if requested is None else min(requested, remaining)
        allocation = Allocation(
            id=allocation_id or new_allocation_id(),
            user_id=user_id,
            project_id=position.project_id,
            month_index=month_index,
            percentage=amount,
            position_id=position.id,
            position_name=position.name,
        )
        self.allocations.append(allocation)
        position.allocated = (position.allocated or 0.0) + amount
        return allocation

    def deallocate(self, allocation: Allocation) -> None:
        self.allocations[:] = [a for a in self.allocations if a.id != allocation.id]
        position = self.position_for(allocation)
        if position is not None:
            position.allocated = max(0.0, (position.allocated or 0.0) - (allocation.percentage or 0.0))

    def cleanup_orphaned(self, project_id: str, valid_position_ids: Iterable[str]) -> list[Allocation]:
        """Drop allocations of a project whose position no longer exists; return what was dropped."""
        valid = set(valid_position_ids)
        removed = [
            a for a in self.allocations
            if a.project_id == project_id and (a.position_id is None or a.position_id not in valid)
        ]
        if not removed:
            return []
        removed_ids = {a.id for a in removed}
        self.allocations[:] = [a for a in self.allocations if a.id not in removed_ids]
        for position in self.positions:
            if position.project_id != project_id:
                continue
            freed = sum(a.percentage or 0.0 for a in removed if a.position_id == position.id)
            if freed:
                position.allocated = max(0.0, (position.allocated or 0.0) - freed)
        logger.info("Removed %d orphaned allocations from project %s", len(removed), project_id)
        return removed

    def clamp_to_budgets(self, project_id: str) -> int:
        """Reduce allocations that exceed their position's budget down to it. Returns how many changed."""
        changed = 0
        for allocation in self.allocations:
            if allocation.project_id != project_id:
                continue
            position = self.position_for(allocation)
            if position is not None and allocation.percentage > position.percentage:
                allocation.percentage = position.percentage
                changed += 1
        return changed

    def recompute(self, position: Position | None = None) -> None:
        targets = [position] if position is not None else self.positions
        ids = self.position_ids
        for target in targets:
            target.allocated = allocated_total(target, self.allocations, ids)
