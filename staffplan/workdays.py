from __future__ import annotations

import calendar
import re
from datetime import date
from typing import Literal

WorkWeek = Literal["mon-fri", "sun-thu"]

# date.weekday(): Monday is 0, Sunday is 6.
WORKING_WEEKDAYS: dict[str, frozenset[int]] = {
    "mon-fri": frozenset({0, 1, 2, 3, 4}),
    "sun-thu": frozenset({6, 0, 1, 2, 3}),
}
DEFAULT_WORK_WEEK: WorkWeek = "mon-fri"
MONTH_ABBREVIATIONS = ("JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC")

_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{1,2})$")


def _check_month(month: int) -> None:
    if not 0 <= month <= 11:
        raise ValueError(f"month must be in 0-11, got {month}")


def days_in_month(year: int, month: int) -> int:
    _check_month(month)
    return calendar.monthrange(year, month + 1)[1]


def working_days_in_month(year: int, month: int, week: str = DEFAULT_WORK_WEEK) -> int:
    """Count working days of a month (0-based) for a work-week variant. Holidays are not modelled."""
    try:
        weekdays = WORKING_WEEKDAYS[week]
    except KeyError:
        raise ValueError(f"unknown work week {week!r}") from None
    total = days_in_month(year, month)
    return sum(1 for day in range(1, total + 1) if date(year, month + 1, day).weekday() in weekdays)


def month_key(year: int, month: int) -> str:
    _check_month(month)
    return f"{year}-{month}"


def parse_month_key(key: str) -> tuple[int, int]:
    match = _MONTH_KEY_RE.match(key.strip()) if key else None
    if match is None:
        raise ValueError(f"month key must look like YYYY-M, got {key!r}")
    year, month = int(match.group(1)), int(match.group(2))
    _check_month(month)
    return year, month


def month_label(year: int, month: int) -> str:
    _check_month(month)
    return f"{MONTH_ABBREVIATIONS[month]} {str(year)[-2:]}"
