from __future__ import annotations

from staffplan.schemas import User
from staffplan.units import (
    budget_days,
    budget_percentage,
    days_for_user,
    days_to_percentage,
    percentage_to_days,
)
from staffplan.workdays import working_days_in_month


def test_percentage_to_days_rounds_half_up():
    # 50% of 23 working days is 11.5.
    assert percentage_to_days(50, 2024, 0) == 12
    assert percentage_to_days(100, 2024, 0) == 23
    assert percentage_to_days(0, 2024, 0) == 0


def test_days_to_percentage_is_unrounded():
    assert days_to_percentage(23, 2024, 0) == 100.0
    assert abs(days_to_percentage(10, 2024, 0) - 43.478260869565) < 1e-9


def test_round_trip_error_is_bounded_by_half_a_day():
    for month in (0, 1, 5):
        working = working_days_in_month(2024, month)
        for percentage in (0.0, 12.5, 33.3, 50.0, 87.0, 100.0):
            days = percentage_to_days(percentage, 2024, month)
            assert abs(days_to_percentage(days, 2024, month) - percentage) <= 100 / (2 * working) + 1e-9


def test_days_for_user_uses_their_work_week():
    mon_fri = User(id="u1")
    sun_thu = User(id="u3", work_days="sun-thu")
    # June 2024 is month index 5.
    assert days_for_user(mon_fri, 5, 100) == 20
    assert days_for_user(sun_thu, 5, 100) == 21
    assert days_for_user(None, 5, 100) == 0


def test_budgets_always_use_mon_fri():
    assert budget_days(0, 50) == 12
    assert budget_percentage(0, 23) == 100.0
    assert budget_days(5, 100) == 20
