from __future__ import annotations


class StaffPlanError(Exception):
    """Base class for planning errors."""


class AllocationError(StaffPlanError):
    pass


class NoCapacityAvailable(AllocationError):
    def __init__(self, position_id: str, remaining: float = 0.0):
        super().__init__(f"No capacity left on position {position_id} (remaining {remaining:g}%)")
        self.position_id = position_id
        self.remaining = remaining


class PositionNotFound(AllocationError):
    def __init__(self, project_id: str, month_index: int, position_name: str):
        super().__init__(f"No position {position_name!r} in project {project_id} for month {month_index}")
        self.project_id = project_id
        self.month_index = month_index
        self.position_name = position_name


class EligibilityViolation(AllocationError):
    def __init__(self, user_id: str, month_index: int, reason: str):
        super().__init__(f"User {user_id} is {reason} in month {month_index}")
        self.user_id = user_id
        self.month_index = month_index
        self.reason = reason


class RecordNotFound(AllocationError):
    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} {record_id} not found")
        self.kind = kind
        self.record_id = record_id


class PersistenceUnavailable(StaffPlanError):
    pass


class StaleMergeDataLoss(StaffPlanError):
    def __init__(self, collection: str, existing_count: int):
        super().__init__(
            f"Refusing to replace {existing_count} persisted {collection} with an empty list without allow-deletions"
        )
        self.collection = collection
        self.existing_count = existing_count


class StaleWriteConflict(StaffPlanError):
    def __init__(self, client_last_modified: str, current_last_modified: str | None):
        super().__init__(
            f"Document changed since {client_last_modified} (now {current_last_modified}); reload before saving"
        )
        self.client_last_modified = client_last_modified
        self.current_last_modified = current_last_modified
