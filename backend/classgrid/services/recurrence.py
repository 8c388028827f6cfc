"""
Recurrence expansion for class series.

A rule is consumed once per commit attempt: `expand_recurrence` validates the
rule eagerly and hands back a forward-only generator of dated occurrences.
Callers that need more than one pass (conflict check, then commit) should
materialise it with `expand_to_list` instead of expanding twice.
"""

from __future__ import annotations

import math
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, timedelta
from itertools import count

from dateutil.relativedelta import relativedelta

from classgrid.core.exceptions import SchedulingValidationError
from classgrid.schemas.recurrence import RecurrencePattern, RecurrenceRule
from classgrid.services.time_model import DayOfWeek, next_weekday_on_or_after

DEFAULT_SAFETY_CEILING = 500
_HOURS_EPSILON = 1e-9


@dataclass(frozen=True)
class Occurrence:
    date: date
    day_of_week: DayOfWeek


def step_date(start: date, pattern: RecurrencePattern, step: int) -> date:
    if pattern == RecurrencePattern.DAILY:
        return start + timedelta(days=step)
    if pattern == RecurrencePattern.WEEKLY:
        return start + timedelta(days=7 * step)
    # Offset from the start rather than the previous date so the 31st does not drift to the 28th.
    return start + relativedelta(months=step)


def _steps_until(start: date, end: date, pattern: RecurrencePattern) -> int:
    if end < start:
        return 0
    if pattern == RecurrencePattern.DAILY:
        return (end - start).days + 1
    if pattern == RecurrencePattern.WEEKLY:
        return (end - start).days // 7 + 1
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if step_date(start, pattern, months) > end:
        months -= 1
    return months + 1


def _estimate_occurrences(
    rule: RecurrenceRule,
    start: date,
    session_hours: float | None,
    term_end: date | None,
) -> int:
    if rule.end_date is not None:
        return _steps_until(start, rule.end_date, rule.pattern)
    if rule.end_after_occurrences is not None:
        return rule.end_after_occurrences
    if rule.end_after_hours is not None:
        return math.ceil(rule.end_after_hours / session_hours - _HOURS_EPSILON)
    return _steps_until(start, term_end, rule.pattern)


def expand_recurrence(
    rule: RecurrenceRule,
    start_date: date,
    day_of_week: DayOfWeek,
    *,
    session_hours: float | None = None,
    safety_ceiling: int = DEFAULT_SAFETY_CEILING,
    align_start: bool = False,
) -> Iterator[Occurrence]:
    start = start_date
    if DayOfWeek.from_date(start) != day_of_week:
        if not align_start:
            raise SchedulingValidationError(
                f"Series start {start.isoformat()} is not a {day_of_week.value}",
                details={"start_date": start.isoformat(), "day_of_week": day_of_week.value},
            )
        start = next_weekday_on_or_after(start, day_of_week)

    end_conditions = (
        rule.end_date is not None,
        rule.end_after_occurrences is not None,
        rule.end_after_hours is not None,
        rule.until_term_end,
    )
    if not any(end_conditions):
        raise SchedulingValidationError("Recurrence rule has no end condition and would never terminate")

    term_end = rule.term_end_date if rule.until_term_end else None
    if rule.until_term_end and term_end is None:
        raise SchedulingValidationError("Recurrence rule runs until term end but no term end date was resolved")
    if rule.end_after_hours is not None and (session_hours is None or session_hours <= 0):
        raise SchedulingValidationError(
            "An hours-based end condition needs the session length of the time slot",
            details={"end_after_hours": rule.end_after_hours},
        )

    estimated = _estimate_occurrences(rule, start, session_hours, term_end)
    if estimated <= 0:
        raise SchedulingValidationError(
            "Recurrence rule ends before the series starts",
            details={"start_date": start.isoformat()},
        )
    if estimated > safety_ceiling:
        raise SchedulingValidationError(
            f"Recurrence would produce {estimated} occurrences, above the limit of {safety_ceiling}",
            details={"estimated": estimated, "safety_ceiling": safety_ceiling},
        )

    return _generate(rule, start, session_hours or 0.0, term_end, safety_ceiling)


def _generate(
    rule: RecurrenceRule,
    start: date,
    session_hours: float,
    term_end: date | None,
    safety_ceiling: int,
) -> Iterator[Occurrence]:
    emitted = 0
    accumulated_hours = 0.0
    for step in count():
        if step >= safety_ceiling:
            raise SchedulingValidationError(
                f"Recurrence did not terminate within {safety_ceiling} occurrences",
                details={"safety_ceiling": safety_ceiling},
            )
        current = step_date(start, rule.pattern, step)

        if rule.end_date is not None and current > rule.end_date:
            return
        if term_end is not None and current > term_end:
            return

        yield Occurrence(date=current, day_of_week=DayOfWeek.from_date(current))
        emitted += 1
        accumulated_hours += session_hours

        if rule.end_after_occurrences is not None and emitted >= rule.end_after_occurrences:
            return
        if rule.end_after_hours is not None and accumulated_hours + _HOURS_EPSILON >= rule.end_after_hours:
            return


def expand_to_list(
    rule: RecurrenceRule,
    start_date: date,
    day_of_week: DayOfWeek,
    **kwargs,
) -> list[Occurrence]:
    return list(expand_recurrence(rule, start_date, day_of_week, **kwargs))
