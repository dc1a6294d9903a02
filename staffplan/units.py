from __future__ import annotations

import math

from staffplan.workdays import DEFAULT_WORK_WEEK, working_days_in_month
from staffplan.eligibility import month_from_index


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percentage_to_days(percentage: float, year: int, month: int, week: str = DEFAULT_WORK_WEEK) -> int:
    return _round_half_up((percentage / 100) * working_days_in_month(year, month, week))


def days_to_percentage(days: float, year: int, month: int, week: str = DEFAULT_WORK_WEEK) -> float:
    # Unrounded; callers round for display.
    return (days / working_days_in_month(year, month, week)) * 100


def days_for_user(user, month_index: int, percentage: float) -> int:
    """Day-equivalent of a percentage for one user, using that user's work week."""
    if user is None:
        return 0
    year, month = month_from_index(month_index)
    return percentage_to_days(percentage, year, month, user.work_days or DEFAULT_WORK_WEEK)


def budget_days(month_index: int, percentage: float) -> int:
    # Position budgets are not user specific and always use the mon-fri calendar.
    year, month = month_from_index(month_index)
    return percentage_to_days(percentage, year, month, DEFAULT_WORK_WEEK)


def budget_percentage(month_index: int, days: float) -> float:
    year, month = month_from_index(month_index)
    return days_to_percentage(days, year, month, DEFAULT_WORK_WEEK)
