from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from staffplan.eligibility import (
    is_project_active_in_window,
    is_user_active_in_month,
    is_user_visible_in_window,
    month_from_index,
    to_global_month_index,
)
from staffplan.ledger import AllocationStatus, allocation_status
from staffplan.store import AllocationStore
from staffplan.units import days_for_user
from staffplan.workdays import month_label

WINDOW_MONTHS = 12


class ViewModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MonthColumn(ViewModel):
    month_index: int
    year: int
    month: int
    label: str


class CellAllocation(ViewModel):
    allocation_id: str
    project_id: str
    project_name: str
    project_color: str
    position_name: str
    percentage: float
    days: int


class Cell(ViewModel):
    month_index: int
    eligible: bool
    total_percentage: float
    total_days: int
    status: AllocationStatus | None
    allocations: list[CellAllocation]


class GridRow(ViewModel):
    user_id: str
    name: str
    department: str
    cells: list[Cell]


class DepartmentGroup(ViewModel):
    department: str
    rows: list[GridRow]


class Grid(ViewModel):
    months: list[MonthColumn]
    project_ids: list[str]
    departments: list[DepartmentGroup]


class PositionOption(ViewModel):
    position_id: str
    project_id: str
    project_name: str
    project_color: str
    name: str
    project_task: str | None = None
    available: float
    available_days: int
    allocated: float
    allocated_days: int


def window_months(start_year: int, start_month: int, length: int = WINDOW_MONTHS) -> list[MonthColumn]:
    first = to_global_month_index(start_year, start_month)
    columns = []
    for month_index in range(first, first + length):
        year, month = month_from_index(month_index)
        columns.append(MonthColumn(month_index=month_index, year=year, month=month, label=month_label(year, month)))
    return columns


def build_grid(
    store: AllocationStore,
    start_year: int,
    start_month: int,
    project_id: str | None = None,
) -> Grid:
    months = window_months(start_year, start_month)
    window_start, window_end = months[0].month_index, months[-1].month_index
    projects = {p.id: p for p in store.projects}

    users = [u for u in store.users if is_user_visible_in_window(u, window_start, window_end)]
    if project_id is not None:
        users = [u for u in users if any(a.user_id == u.id and a.project_id == project_id for a in store.allocations)]

    by_department: dict[str, list[GridRow]] = {}
    for user in users:
        cells = []
        for column in months:
            entries = []
            for allocation in store.allocations:
                if allocation.user_id != user.id or allocation.month_index != column.month_index:
                    continue
                if project_id is not None and allocation.project_id != project_id:
                    continue
                project = projects.get(allocation.project_id)
                entries.append(
                    CellAllocation(
                        allocation_id=allocation.id,
                        project_id=allocation.project_id,
                        project_name=project.name if project else "",
                        project_color=project.color if project else "",
                        position_name=allocation.position_name,
                        percentage=allocation.percentage,
                        days=days_for_user(user, column.month_index, allocation.percentage),
                    )
                )
            total = sum(e.percentage for e in entries)
            cells.append(
                Cell(
                    month_index=column.month_index,
                    eligible=is_user_active_in_month(user, column.month_index),
                    total_percentage=total,
                    total_days=days_for_user(user, column.month_index, total),
                    status=allocation_status(round(total)) if entries else None,
                    allocations=entries,
                )
            )
        row = GridRow(user_id=user.id, name=user.name, department=user.department, cells=cells)
        by_department.setdefault(user.department, []).append(row)

    departments = [
        DepartmentGroup(department=name, rows=sorted(rows, key=lambda r: r.name.lower()))
        for name, rows in sorted(by_department.items())
    ]
    project_ids = [p.id for p in store.projects if is_project_active_in_window(p, window_start, window_end)]
    return Grid(months=months, project_ids=project_ids, departments=departments)


def available_positions(
    store: AllocationStore,
    user_id: str,
    month_index: int,
    project_id: str | None = None,
) -> list[PositionOption]:
    """Positions with capacity left in a month, as offered when a grid cell is opened."""
    user = store.get_user(user_id)
    ledger = store.ledger
    options = []
    for project in store.projects:
        if project_id is not None and project.id != project_id:
            continue
        for position in project.positions:
            if position.month_index != month_index or (position.percentage or 0) <= 0:
                continue
            allocated = sum(a.percentage for a in ledger.slot_allocations(position))
            available = max(0.0, position.percentage - allocated)
            if available <= 0:
                continue
            options.append(
                PositionOption(
                    position_id=position.id,
                    project_id=project.id,
                    project_name=project.name,
                    project_color=project.color,
                    name=position.name,
                    project_task=position.project_task,
                    available=available,
                    available_days=days_for_user(user, month_index, available),
                    allocated=allocated,
                    allocated_days=days_for_user(user, month_index, allocated),
                )
            )
    return options


class NoModal(ViewModel):
    kind: Literal["none"] = "none"


class PositionPickerModal(ViewModel):
    kind: Literal["position-picker"] = "position-picker"
    user_id: str
    month_index: int
    options: list[PositionOption] = Field(default_factory=list)
    custom_position_id: str | None = None


class ProjectEditorModal(ViewModel):
    kind: Literal["project-editor"] = "project-editor"
    project_id: str | None = None
    page: int = 0


class UserEditorModal(ViewModel):
    kind: Literal["user-editor"] = "user-editor"
    user_id: str | None = None


class MonthDetailModal(ViewModel):
    kind: Literal["month-detail"] = "month-detail"
    month_index: int


Modal = Annotated[
    Union[NoModal, PositionPickerModal, ProjectEditorModal, UserEditorModal, MonthDetailModal],
    Field(discriminator="kind"),
]


class UIState(ViewModel):
    """State of the allocation grid view. At most one modal is open at a time."""

    start_year: int
    start_month: int
    selected_project_id: str | None = None
    modal: Modal = Field(default_factory=NoModal)

    def close_modal(self) -> UIState:
        return self.model_copy(update={"modal": NoModal()})

    def shift(self, months: int) -> UIState:
        year, month = month_from_index(to_global_month_index(self.start_year, self.start_month) + months)
        return self.model_copy(update={"start_year": year, "start_month": month})


def open_cell(state: UIState, store: AllocationStore, user_id: str, month_index: int) -> UIState:
    """Open the position picker for a grid cell; cells of inactive users stay closed."""
    user = store.get_user(user_id)
    if not is_user_active_in_month(user, month_index):
        return state
    options = available_positions(store, user_id, month_index, state.selected_project_id)
    return state.model_copy(
        update={"modal": PositionPickerModal(user_id=user_id, month_index=month_index, options=options)}
    )


def open_month_detail(state: UIState, month_index: int) -> UIState:
    return state.model_copy(update={"modal": MonthDetailModal(month_index=month_index)})


def open_project_editor(state: UIState, project_id: str | None = None) -> UIState:
    return state.model_copy(update={"modal": ProjectEditorModal(project_id=project_id)})


def open_user_editor(state: UIState, user_id: str | None = None) -> UIState:
    return state.model_copy(update={"modal": UserEditorModal(user_id=user_id)})
