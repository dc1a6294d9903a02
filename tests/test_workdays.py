from __future__ import annotations

import pytest

from staffplan.workdays import (
    days_in_month,
    month_key,
    month_label,
    parse_month_key,
    working_days_in_month,
)


def test_january_2024_has_23_working_days():
    assert working_days_in_month(2024, 0) == 23
    assert working_days_in_month(2024, 0, "mon-fri") == 23


def test_sun_thu_week_counts_differently_when_month_starts_on_saturday():
    # June 2024 starts on a Saturday: five Sundays, four Fridays.
    assert working_days_in_month(2024, 5, "mon-fri") == 20
    assert working_days_in_month(2024, 5, "sun-thu") == 21


def test_leap_february():
    assert days_in_month(2024, 1) == 29
    assert days_in_month(2023, 1) == 28
    assert working_days_in_month(2024, 1) == 21


def test_invalid_month_or_week_is_rejected():
    with pytest.raises(ValueError):
        working_days_in_month(2024, 12)
    with pytest.raises(ValueError):
        working_days_in_month(2024, -1)
    with pytest.raises(ValueError):
        working_days_in_month(2024, 0, "sat-wed")


def test_month_keys_use_zero_based_months():
    assert month_key(2024, 0) == "2024-0"
    assert parse_month_key("2024-11") == (2024, 11)
    assert parse_month_key(" 2025-3 ") == (2025, 3)


@pytest.mark.parametrize("key", ["2024-12", "24-1", "2024/1", "", "2024-"])
def test_malformed_month_keys(key):
    with pytest.raises(ValueError):
        parse_month_key(key)


def test_month_label():
    assert month_label(2024, 0) == "JAN 24"
    assert month_label(2025, 11) == "DEC 25"
