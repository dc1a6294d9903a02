from __future__ import annotations

import logging
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from staffplan.eligibility import has_user_ended, has_user_started, is_month_beyond_project_end
from staffplan.errors import EligibilityViolation, RecordNotFound
from staffplan.ledger import PositionLedger, consumes
from staffplan.schemas import (
    COLLECTIONS,
    SCHEMA_VERSION,
    Allocation,
    Entity,
    GlobalData,
    Position,
    PositionLine,
    Project,
    User,
    upgrade_document,
)
from staffplan.units import budget_days, budget_percentage

logger = logging.getLogger(__name__)

# persist(payload, allow_deletions=..., last_modified=...) -> new lastModified
Persist = Callable[..., "str | None"]

SETTINGS = "settings"


@dataclass
class Collections:
    projects: list[Project] = field(default_factory=list)
    users: list[User] = field(default_factory=list)
    allocations: list[Allocation] = field(default_factory=list)
    positions: list[Position] = field(default_factory=list)
    entities: list[Entity] = field(default_factory=list)

    def copy(self) -> Collections:
        clone = Collections(
            projects=[p.model_copy(deep=True) for p in self.projects],
            users=[u.model_copy(deep=True) for u in self.users],
            allocations=[a.model_copy(deep=True) for a in self.allocations],
            positions=[p.model_copy(deep=True) for p in self.positions],
            entities=[e.model_copy(deep=True) for e in self.entities],
        )
        clone.sync_project_positions()
        return clone

    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in COLLECTIONS)

    def counts(self) -> dict[str, int]:
        return {name: len(getattr(self, name)) for name in COLLECTIONS}

    def sync_project_positions(self) -> None:
        by_project: dict[str, list[Position]] = defaultdict(list)
        for position in self.positions:
            by_project[position.project_id].append(position)
        for project in self.projects:
            project.positions = by_project.get(project.id, [])


class AllocationStore:
    """In-memory owner of the planning collections for one session.

    Every mutating operation runs inside ``transaction()``: it works on a copy of the
    collections, swaps it in only when the whole operation succeeded and then issues a
    single persistence call carrying the touched collections and the deleted ids.
    """

    def __init__(self, data: GlobalData | None = None, persist: Persist | None = None):
        data = data or GlobalData()
        self._state = Collections(
            projects=list(data.projects),
            users=list(data.users),
            allocations=list(data.allocations),
            positions=list(data.positions),
            entities=list(data.entities),
        )
        self.start_month = data.start_month
        self.start_year = data.start_year
        self.last_modified = data.last_modified
        self.extras: dict[str, Any] = {}
        if data.expenses is not None:
            self.extras["expenses"] = data.expenses
        if data.scheduled_records is not None:
            self.extras["scheduledRecords"] = data.scheduled_records
        self._persist = persist
        self._working: Collections | None = None
        self._touched: set[str] = set()
        self._deleted: dict[str, set[str]] = defaultdict(set)
        self._allow_deletions = False

        if not self._state.positions:
            # Older documents only kept positions nested under their project.
            self._state.positions = [p for project in self._state.projects for p in project.positions]
        self._state.sync_project_positions()
        PositionLedger(self._state.positions, self._state.allocations).recompute()

    @classmethod
    def from_document(cls, document: dict[str, Any] | None, persist: Persist | None = None) -> AllocationStore:
        return cls(GlobalData.model_validate(upgrade_document(document)), persist=persist)

    def to_document(self) -> dict[str, Any]:
        state = self._state
        document: dict[str, Any] = {
            "schemaVersion": SCHEMA_VERSION,
            "projects": [p.to_json() for p in state.projects],
            "users": [u.to_json() for u in state.users],
            "allocations": [a.to_json() for a in state.allocations],
            "positions": [p.to_json() for p in state.positions],
            "entities": [e.to_json() for e in state.entities],
        }
        if self.start_month is not None:
            document["startMonth"] = self.start_month
        if self.start_year is not None:
            document["startYear"] = self.start_year
        if self.last_modified is not None:
            document["lastModified"] = self.last_modified
        document.update(self.extras)
        return document

    # -- read access -------------------------------------------------------

    @property
    def _view(self) -> Collections:
        return self._working if self._working is not None else self._state

    @property
    def projects(self) -> list[Project]:
        return self._view.projects

    @property
    def users(self) -> list[User]:
        return self._view.users

    @property
    def allocations(self) -> list[Allocation]:
        return self._view.allocations

    @property
    def positions(self) -> list[Position]:
        return self._view.positions

    @property
    def entities(self) -> list[Entity]:
        return self._view.entities

    @property
    def ledger(self) -> PositionLedger:
        return PositionLedger(self._view.positions, self._view.allocations)

    def get_user(self, user_id: str) -> User:
        return _find(self._view.users, user_id, "User")

    def get_project(self, project_id: str) -> Project:
        return _find(self._view.projects, project_id, "Project")

    def get_allocation(self, allocation_id: str) -> Allocation:
        return _find(self._view.allocations, allocation_id, "Allocation")

    def remaining_capacity(self, position: Position) -> float:
        return self.ledger.remaining(position)

    def position_lines(self, project_id: str) -> list[PositionLine]:
        project = self.get_project(project_id)
        lines: dict[str, PositionLine] = {}
        for position in sorted(self._view.positions, key=lambda p: p.month_index):
            if position.project_id != project_id:
                continue
            key = position.line_id or position.name or "unnamed"
            line = lines.get(key)
            if line is None:
                line = PositionLine(id=key, name=position.name, project_task=position.project_task)
                lines[key] = line
            if project.allocation_mode == "days":
                line.budgets[position.month_index] = budget_days(position.month_index, position.percentage)
            else:
                line.budgets[position.month_index] = position.percentage
        return list(lines.values())

    # -- commit boundary ---------------------------------------------------

    @contextmanager
    def transaction(self, allow_deletions: bool = False) -> Iterator[Collections]:
        if self._working is not None:
            self._allow_deletions = self._allow_deletions or allow_deletions
            yield self._working
            return
        working = self._state.copy()
        self._working = working
        self._touched = set()
        self._deleted = defaultdict(set)
        self._allow_deletions = allow_deletions
        try:
            yield working
        finally:
            self._working = None
        working.sync_project_positions()
        self._state = working
        self._flush()

    def _touch(self, *names: str) -> None:
        self._touched.update(names)

    def _mark_deleted(self, collection: str, ids) -> None:
        self._deleted[collection].update(ids)
        self._touched.add(collection)

    def _flush(self) -> None:
        touched, deleted = self._touched, {k: v for k, v in self._deleted.items() if v}
        allow_deletions = self._allow_deletions or bool(deleted)
        self._touched, self._deleted = set(), defaultdict(set)
        if self._persist is None or not touched:
            return
        if self._state.is_empty() and not allow_deletions:
            logger.warning("Skipping save: every collection is empty and deletions were not requested")
            return
        payload = self._payload(touched)
        if deleted:
            payload["deletions"] = {name: sorted(ids) for name, ids in deleted.items()}
        self.last_modified = self._persist(payload, allow_deletions=allow_deletions, last_modified=self.last_modified)

    def _payload(self, names) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for name in names:
            if name == SETTINGS:
                if self.start_month is not None:
                    payload["startMonth"] = self.start_month
                if self.start_year is not None:
                    payload["startYear"] = self.start_year
                continue
            payload[name] = [record.to_json() for record in getattr(self._state, name)]
        return payload

    def save(self, allow_deletions: bool = False) -> None:
        """Push every collection, e.g. after rehydrating from a cached copy."""
        with self.transaction(allow_deletions=allow_deletions):
            self._touch(*COLLECTIONS)

    # -- allocation operations ---------------------------------------------

    def add_allocation(
        self,
        user_id: str,
        project_id: str,
        month_index: int,
        position_name: str,
        amount: float | None = None,
    ) -> Allocation:
        with self.transaction() as state:
            user = _find(state.users, user_id, "User")
            if not has_user_started(user, month_index):
                raise EligibilityViolation(user_id, month_index, "not started")
            if has_user_ended(user, month_index):
                raise EligibilityViolation(user_id, month_index, "ended")
            _find(state.projects, project_id, "Project")
            ledger = PositionLedger(state.positions, state.allocations)
            position = ledger.find_position(project_id, month_index, position_name)
            allocation = ledger.allocate(position, user_id, month_index, amount)
            self._touch("allocations", "positions", "projects")
        logger.info(
            "Allocated %.4g%% of %s/%s month %s to %s",
            allocation.percentage, project_id, position_name, month_index, user_id,
        )
        return allocation

    def remove_allocation(self, allocation_id: str) -> None:
        with self.transaction() as state:
            allocation = _find(state.allocations, allocation_id, "Allocation")
            PositionLedger(state.positions, state.allocations).deallocate(allocation)
            self._mark_deleted("allocations", [allocation_id])
            self._touch("positions", "projects")

    def edit_allocation_amount(self, allocation_id: str, new_percentage: float) -> Allocation:
        # No capacity check against sibling allocations; only the cached total is rebuilt.
        if new_percentage < 0:
            raise ValueError("percentage cannot be negative")
        with self.transaction() as state:
            allocation = _find(state.allocations, allocation_id, "Allocation")
            allocation.percentage = new_percentage
            ledger = PositionLedger(state.positions, state.allocations)
            position = ledger.position_for(allocation)
            if position is not None:
                ledger.recompute(position)
            self._touch("allocations", "positions", "projects")
        return allocation

    # -- cascading deletes -------------------------------------------------

    def delete_project(self, project_id: str) -> None:
        with self.transaction() as state:
            _find(state.projects, project_id, "Project")
            removed_positions = [p.id for p in state.positions if p.project_id == project_id]
            state.positions[:] = [p for p in state.positions if p.project_id != project_id]
            removed_allocations = [a.id for a in state.allocations if a.project_id == project_id]
            state.allocations[:] = [a for a in state.allocations if a.project_id != project_id]
            state.projects[:] = [p for p in state.projects if p.id != project_id]
            self._mark_deleted("positions", removed_positions)
            self._mark_deleted("allocations", removed_allocations)
            self._mark_deleted("projects", [project_id])
        logger.info(
            "Deleted project %s with %d positions and %d allocations",
            project_id, len(removed_positions), len(removed_allocations),
        )

    def delete_user(self, user_id: str) -> None:
        with self.transaction() as state:
            _find(state.users, user_id, "User")
            removed = [a for a in state.allocations if a.user_id == user_id]
            ledger = PositionLedger(state.positions, state.allocations)
            for allocation in removed:
                ledger.deallocate(allocation)
            state.users[:] = [u for u in state.users if u.id != user_id]
            self._mark_deleted("allocations", [a.id for a in removed])
            self._mark_deleted("users", [user_id])
            self._touch("positions", "projects")

    def delete_position_line(self, line_id: str, project_id: str | None = None) -> None:
        with self.transaction() as state:
            doomed = [
                p for p in state.positions
                if (p.line_id or p.name) == line_id and (project_id is None or p.project_id == project_id)
            ]
            if not doomed:
                raise RecordNotFound("Position line", line_id)
            doomed_ids = {p.id for p in doomed}
            known_ids = {p.id for p in state.positions}
            removed_allocations = [
                a for a in state.allocations if any(consumes(a, p, known_ids) for p in doomed)
            ]
            removed_allocation_ids = {a.id for a in removed_allocations}
            state.positions[:] = [p for p in state.positions if p.id not in doomed_ids]
            state.allocations[:] = [a for a in state.allocations if a.id not in removed_allocation_ids]
            PositionLedger(state.positions, state.allocations).recompute()
            self._mark_deleted("positions", doomed_ids)
            self._mark_deleted("allocations", removed_allocation_ids)
            self._touch("projects")

    # -- budgets -----------------------------------------------------------

    def save_position_lines(
        self,
        project_id: str,
        lines: list[PositionLine],
        allocation_mode: str | None = None,
    ) -> list[Position]:
        """Regenerate a project's positions from its budget lines and reconcile allocations."""
        with self.transaction() as state:
            project = _find(state.projects, project_id, "Project")
            if allocation_mode is not None:
                project.allocation_mode = allocation_mode
            new_positions: list[Position] = []
            for line in lines:
                for month_index, value in sorted(line.budgets.items()):
                    if value <= 0 or is_month_beyond_project_end(project, month_index):
                        continue
                    if project.allocation_mode == "days":
                        percentage = budget_percentage(month_index, value)
                    else:
                        percentage = float(value)
                    new_positions.append(
                        Position(
                            id=f"pos-{project_id}-{line.id}-{month_index}",
                            project_id=project_id,
                            month_index=month_index,
                            name=line.name,
                            project_task=line.project_task,
                            percentage=percentage,
                            line_id=line.id,
                        )
                    )
            old_ids = {p.id for p in state.positions if p.project_id == project_id}
            state.positions[:] = [p for p in state.positions if p.project_id != project_id] + new_positions
            new_ids = {p.id for p in new_positions}

            for allocation in state.allocations:
                if allocation.project_id != project_id or allocation.position_id in new_ids:
                    continue
                for position in new_positions:
                    if position.month_index == allocation.month_index and position.name == allocation.position_name:
                        allocation.position_id = position.id
                        break

            ledger = PositionLedger(state.positions, state.allocations)
            removed = ledger.cleanup_orphaned(project_id, new_ids)
            ledger.clamp_to_budgets(project_id)
            ledger.recompute()
            self._mark_deleted("positions", old_ids - new_ids)
            self._mark_deleted("allocations", [a.id for a in removed])
            self._touch("positions", "projects", "allocations")
        return new_positions

    # -- thin CRUD ---------------------------------------------------------

    def upsert_user(self, user: User) -> User:
        with self.transaction() as state:
            _replace_or_append(state.users, user)
            self._touch("users")
        return user

    def upsert_entity(self, entity: Entity) -> Entity:
        with self.transaction() as state:
            _replace_or_append(state.entities, entity)
            self._touch("entities")
        return entity

    def upsert_project(self, project: Project) -> Project:
        """Create or update project metadata. Positions are managed through budget lines."""
        with self.transaction() as state:
            _replace_or_append(state.projects, project)
            self._touch("projects")
        return project

    def set_start(self, year: int, month: int) -> None:
        if not 0 <= month <= 11:
            raise ValueError(f"month must be in 0-11, got {month}")
        with self.transaction():
            self.start_year, self.start_month = year, month
            self._touch(SETTINGS)

    def recompute(self) -> None:
        """Rebuild every cached ``position.allocated`` from the allocation records."""
        with self.transaction() as state:
            PositionLedger(state.positions, state.allocations).recompute()


def _find(records, record_id: str, kind: str):
    for record in records:
        if record.id == record_id:
            return record
    raise RecordNotFound(kind, record_id)


def _replace_or_append(records: list, record) -> None:
    for index, existing in enumerate(records):
        if existing.id == record.id:
            records[index] = record
            return
    records.append(record)
