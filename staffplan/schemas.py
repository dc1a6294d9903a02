from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from staffplan.workdays import WorkWeek

SCHEMA_VERSION = 1
COLLECTIONS = ("projects", "users", "allocations", "positions", "entities")

AllocationMode = Literal["percentage", "days"]


class Record(BaseModel):
    """Persisted record. Unknown keys are kept so a round trip never drops data."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class Entity(Record):
    id: str
    name: str = ""
    currency_code: str = ""
    tax_account: str = ""
    ss_account: str = ""


class User(Record):
    id: str
    name: str = ""
    department: str = ""
    entity: str | None = None
    vendor_ac: str | None = Field(default=None, alias="vendorAC")
    start_date: str | None = None
    end_date: str | None = None
    work_days: WorkWeek = "mon-fri"


class Position(Record):
    id: str
    project_id: str
    month_index: int
    name: str = ""
    project_task: str | None = None
    percentage: float = 0.0
    days: float | None = None
    allocated: float = 0.0
    line_id: str | None = None

    def to_json(self) -> dict[str, Any]:
        # days is derived from percentage on read and never persisted.
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"days"}, mode="json")


class Project(Record):
    id: str
    name: str = ""
    color: str = "#3B82F6"
    start_month: int | None = None
    start_year: int | None = None
    end_month: int | None = None
    end_year: int | None = None
    allocation_mode: AllocationMode = "percentage"
    positions: list[Position] = Field(default_factory=list)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(
            by_alias=True, exclude_none=True, exclude={"positions": {"__all__": {"days"}}}, mode="json"
        )


class Allocation(Record):
    id: str
    user_id: str
    project_id: str
    month_index: int
    percentage: float = 0.0
    position_id: str | None = None
    position_name: str = ""


class GlobalData(Record):
    schema_version: int = SCHEMA_VERSION
    last_modified: str | None = None
    projects: list[Project] = Field(default_factory=list)
    users: list[User] = Field(default_factory=list)
    allocations: list[Allocation] = Field(default_factory=list)
    positions: list[Position] = Field(default_factory=list)
    entities: list[Entity] = Field(default_factory=list)
    start_month: int | None = None
    start_year: int | None = None
    expenses: list[dict[str, Any]] | None = None
    scheduled_records: list[dict[str, Any]] | None = None


def empty_document() -> dict[str, Any]:
    return {
        "schemaVersion": SCHEMA_VERSION,
        "projects": [],
        "users": [],
        "allocations": [],
        "positions": [],
        "entities": [],
        "expenses": [],
        "scheduledRecords": [],
    }


def upgrade_document(raw: dict[str, Any] | None) -> dict[str, Any]:
    """Bring a stored document up to the current schema version."""
    document = empty_document()
    if raw:
        document.update(raw)
    version = document.get("schemaVersion") or 1
    # Version 1 is the first versioned layout; older blobs are read as version 1.
    document["schemaVersion"] = max(int(version), 1)
    for name in COLLECTIONS:
        if not isinstance(document.get(name), list):
            document[name] = []
    return document


class MonthlyAllocationItem(Record):
    id: str
    name: str = ""
    code: str = ""
    description: str = ""
    currency: str = ""
    amount: float = 0.0
    project: str = ""
    project_task: str = ""
    account: str = ""


class LockState(Record):
    is_locked: bool = False
    locked_by: str | None = None
    locked_at: str | None = None


class PositionLine(Record):
    """Authoring view of one named budget row spanning several months of a project."""

    id: str
    name: str = ""
    project_task: str | None = None
    budgets: dict[int, float] = Field(default_factory=dict)
