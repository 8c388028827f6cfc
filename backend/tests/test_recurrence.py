from datetime import date

import pytest
from pydantic import ValidationError

from classgrid.core.exceptions import SchedulingValidationError
from classgrid.schemas.recurrence import RecurrencePattern, RecurrenceRule
from classgrid.services.recurrence import expand_recurrence, expand_to_list
from classgrid.services.time_model import DayOfWeek

START = date(2025, 1, 6)


def _dates(occurrences):
    return [item.date for item in occurrences]


def test_weekly_series_with_occurrence_count():
    rule = RecurrenceRule(pattern=RecurrencePattern.WEEKLY, end_after_occurrences=4)

    occurrences = expand_to_list(rule, START, DayOfWeek.MONDAY)

    assert _dates(occurrences) == [date(2025, 1, 6), date(2025, 1, 13), date(2025, 1, 20), date(2025, 1, 27)]
    assert {item.day_of_week for item in occurrences} == {DayOfWeek.MONDAY}


def test_end_date_is_inclusive():
    rule = RecurrenceRule(pattern=RecurrencePattern.DAILY, end_date=date(2025, 1, 8))

    assert _dates(expand_to_list(rule, START, DayOfWeek.MONDAY)) == [
        date(2025, 1, 6),
        date(2025, 1, 7),
        date(2025, 1, 8),
    ]


def test_monthly_steps_clamp_to_month_end_without_drifting():
    rule = RecurrenceRule(pattern=RecurrencePattern.MONTHLY, end_after_occurrences=3)

    occurrences = expand_to_list(rule, date(2025, 1, 31), DayOfWeek.FRIDAY)

    assert _dates(occurrences) == [date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31)]
    assert occurrences[1].day_of_week == DayOfWeek.FRIDAY
    assert occurrences[2].day_of_week == DayOfWeek.MONDAY


def test_hours_target_stops_once_reached():
    rule = RecurrenceRule(pattern=RecurrencePattern.WEEKLY, end_after_hours=4)

    occurrences = expand_to_list(rule, START, DayOfWeek.MONDAY, session_hours=1.5)

    assert len(occurrences) == 3


def test_until_term_end_uses_resolved_term_end_date():
    rule = RecurrenceRule(until_term_end=True, term_end_date=date(2025, 1, 27))

    assert len(expand_to_list(rule, START, DayOfWeek.MONDAY)) == 4


def test_start_on_the_wrong_weekday_is_rejected_unless_aligned():
    rule = RecurrenceRule(end_after_occurrences=2)
    wednesday = date(2025, 1, 1)

    with pytest.raises(SchedulingValidationError):
        expand_recurrence(rule, wednesday, DayOfWeek.MONDAY)

    aligned = expand_to_list(rule, wednesday, DayOfWeek.MONDAY, align_start=True)
    assert _dates(aligned) == [date(2025, 1, 6), date(2025, 1, 13)]


def test_runaway_series_is_rejected_before_iteration():
    rule = RecurrenceRule(pattern=RecurrencePattern.DAILY, end_date=date(2026, 1, 6))

    with pytest.raises(SchedulingValidationError) as exc:
        expand_recurrence(rule, START, DayOfWeek.MONDAY, safety_ceiling=100)
    assert exc.value.details["estimated"] == 366


def test_end_before_start_is_rejected():
    rule = RecurrenceRule(end_date=date(2025, 1, 1))

    with pytest.raises(SchedulingValidationError):
        expand_recurrence(rule, START, DayOfWeek.MONDAY)


def test_hours_rule_needs_a_session_length():
    rule = RecurrenceRule(end_after_hours=10)

    with pytest.raises(SchedulingValidationError):
        expand_recurrence(rule, START, DayOfWeek.MONDAY)


def test_expansion_is_single_pass():
    iterator = expand_recurrence(RecurrenceRule(end_after_occurrences=2), START, DayOfWeek.MONDAY)

    assert len(list(iterator)) == 2
    assert list(iterator) == []


@pytest.mark.parametrize(
    "payload",
    [
        {"pattern": "WEEKLY"},
        {"end_date": "2025-02-01", "end_after_occurrences": 3},
        {"until_term_end": True},
        {"end_after_occurrences": 0},
    ],
)
def test_rule_validation(payload):
    with pytest.raises(ValidationError):
        RecurrenceRule.model_validate(payload)
