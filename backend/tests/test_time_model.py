from datetime import date

import pytest

from classgrid.core.exceptions import SchedulingValidationError
from classgrid.services.time_model import (
    DayOfWeek,
    TimeSlotWindow,
    dates_overlap,
    ensure_weekday_matches,
    next_weekday_on_or_after,
    parse_time_to_minutes,
)
from classgrid.services.workload import constrained_max_hours, designation_workload_cap, workload_ratio


def _window(slot_id, start, end):
    return TimeSlotWindow.from_strings(id=slot_id, name=slot_id, start_time=start, end_time=end)


def test_parse_time_rejects_malformed_values():
    assert parse_time_to_minutes("09:30") == 570
    for value in ("9:30", "24:00", "12:60", "noon"):
        with pytest.raises(ValueError):
            parse_time_to_minutes(value)


def test_window_must_end_after_it_starts():
    with pytest.raises(SchedulingValidationError):
        _window("bad", "10:00", "09:00")
    with pytest.raises(SchedulingValidationError):
        _window("bad", "25:00", "26:00")


def test_overlap_and_adjacency():
    morning = _window("a", "09:00", "10:00")
    next_hour = _window("b", "10:00", "11:00")
    inside = _window("c", "09:30", "09:45")
    later = _window("d", "11:00", "12:00")

    assert not morning.overlaps(next_hour)
    assert morning.touches(next_hour)
    assert morning.overlaps_or_adjacent(next_hour)
    assert morning.overlaps(inside)
    assert not morning.overlaps_or_adjacent(later)
    assert next_hour.hours == 1.0
    assert inside.start_time == "09:30"


def test_weekday_helpers():
    assert DayOfWeek.from_date(date(2025, 1, 6)) == DayOfWeek.MONDAY
    assert DayOfWeek.SATURDAY.shifted(2) == DayOfWeek.MONDAY
    assert DayOfWeek.MONDAY.shifted(-1) == DayOfWeek.SUNDAY
    assert DayOfWeek.SUNDAY.is_weekend
    assert next_weekday_on_or_after(date(2025, 1, 1), DayOfWeek.MONDAY) == date(2025, 1, 6)
    assert next_weekday_on_or_after(date(2025, 1, 6), DayOfWeek.MONDAY) == date(2025, 1, 6)

    ensure_weekday_matches(date(2025, 1, 6), DayOfWeek.MONDAY)
    with pytest.raises(SchedulingValidationError):
        ensure_weekday_matches(date(2025, 1, 7), DayOfWeek.MONDAY)


def test_undated_entries_overlap_every_date():
    assert dates_overlap(None, date(2025, 1, 6))
    assert dates_overlap(date(2025, 1, 6), date(2025, 1, 6))
    assert not dates_overlap(date(2025, 1, 6), date(2025, 1, 13))


@pytest.mark.parametrize(
    ("designation", "requested", "expected"),
    [
        ("Assistant Professor", 20, 16),
        ("Associate Professor", None, 14),
        ("Professor", 10, 10),
        ("Lecturer", 0, 1),
    ],
)
def test_workload_caps_follow_designation(designation, requested, expected):
    assert constrained_max_hours(designation, requested) == expected


def test_workload_ratio_is_clamped():
    assert designation_workload_cap(None) == 20
    assert workload_ratio(7, 14) == 0.5
    assert workload_ratio(30, 14) == 1.0
    assert workload_ratio(1, 0) == 1.0
