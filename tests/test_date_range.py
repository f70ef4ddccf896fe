from datetime import datetime

import pytz

from shipping_dashboard.services.date_range import exclusive_bounds, get_range_params, reference_today


def test_range_key_is_stable_within_a_day():
    morning = datetime(2024, 3, 10, 13, 0, tzinfo=pytz.utc)
    evening = datetime(2024, 3, 11, 4, 59, tzinfo=pytz.utc)

    first = get_range_params(30, "America/Chicago", morning)
    second = get_range_params(30, "America/Chicago", evening)

    assert first == second
    assert first.key == "2024-02-10_2024-03-10"


def test_single_day_range():
    now = datetime(2024, 1, 1, 12, 0, tzinfo=pytz.utc)

    assert get_range_params(1, "America/Chicago", now).key == "2024-01-01_2024-01-01"
    assert get_range_params(0, "America/Chicago", now).key == "2024-01-01_2024-01-01"


def test_naive_now_is_treated_as_utc():
    assert reference_today("America/Chicago", datetime(2024, 1, 2, 3, 0)).isoformat() == "2024-01-01"


def test_exclusive_bounds_cross_year_and_month():
    assert exclusive_bounds("2024-01-01", "2024-02-29") == ("2023-12-31", "2024-03-01")
