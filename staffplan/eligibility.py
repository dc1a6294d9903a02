from __future__ import annotations

from datetime import date, datetime

EPOCH_YEAR = 2024


def to_global_month_index(year: int, month: int) -> int:
    return (year - EPOCH_YEAR) * 12 + month


def month_from_index(month_index: int) -> tuple[int, int]:
    return EPOCH_YEAR + month_index // 12, month_index % 12


def parse_date(value) -> date | None:
    """Lenient date parsing. Anything unparseable is treated as absent."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def date_month_index(value) -> int | None:
    parsed = parse_date(value)
    if parsed is None:
        return None
    return to_global_month_index(parsed.year, parsed.month - 1)


def has_user_ended(user, month_index: int) -> bool:
    end_index = date_month_index(user.end_date)
    return end_index is not None and month_index > end_index


def has_user_started(user, month_index: int) -> bool:
    start_index = date_month_index(user.start_date)
    return start_index is None or month_index >= start_index


def is_user_active_in_month(user, month_index: int) -> bool:
    return has_user_started(user, month_index) and not has_user_ended(user, month_index)


def is_user_visible_in_window(user, window_start: int, window_end: int) -> bool:
    """A user shows in a grid window unless they ended before it or start after it."""
    end_index = date_month_index(user.end_date)
    if end_index is not None and end_index < window_start:
        return False
    start_index = date_month_index(user.start_date)
    if start_index is not None and start_index > window_end:
        return False
    return True


def project_start_index(project) -> int | None:
    if project.start_year is None and project.start_month is None:
        return None
    return to_global_month_index(project.start_year or EPOCH_YEAR, project.start_month or 0)


def project_end_index(project) -> int | None:
    if project.end_year is None or project.end_month is None:
        return None
    return to_global_month_index(project.end_year, project.end_month)


def is_project_active_in_window(project, window_start: int, window_end: int) -> bool:
    start_index = project_start_index(project)
    if start_index is not None and start_index > window_end:
        return False
    end_index = project_end_index(project)
    return end_index is None or end_index >= window_start


def is_month_beyond_project_end(project, month_index: int) -> bool:
    end_index = project_end_index(project)
    return end_index is not None and month_index > end_index


def project_month_indices(project) -> list[int]:
    start_index = project_start_index(project)
    end_index = project_end_index(project)
    if start_index is None or end_index is None or end_index < start_index:
        return []
    return list(range(start_index, end_index + 1))
