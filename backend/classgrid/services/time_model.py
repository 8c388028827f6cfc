"""Time-of-day, weekday and calendar-date primitives shared by every scheduling service."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum

from classgrid.core.exceptions import SchedulingValidationError

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
MINUTES_PER_DAY = 24 * 60


class DayOfWeek(str, Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"

    @property
    def index(self) -> int:
        return WEEKDAY_ORDER.index(self)

    @property
    def is_weekend(self) -> bool:
        return self in (DayOfWeek.SATURDAY, DayOfWeek.SUNDAY)

    @classmethod
    def from_date(cls, value: date) -> "DayOfWeek":
        return WEEKDAY_ORDER[value.weekday()]

    def shifted(self, days: int) -> "DayOfWeek":
        return WEEKDAY_ORDER[(self.index + days) % 7]


WEEKDAY_ORDER: tuple[DayOfWeek, ...] = tuple(DayOfWeek)


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(value: int) -> str:
    hours, minutes = divmod(value, 60)
    return f"{hours:02d}:{minutes:02d}"


@dataclass(frozen=True)
class TimeSlotWindow:
    """A named daily interval, independent of any date."""

    id: str
    name: str
    start_minutes: int
    end_minutes: int
    sort_order: int = 0
    is_active: bool = True

    def __post_init__(self) -> None:
        if not 0 <= self.start_minutes < self.end_minutes <= MINUTES_PER_DAY:
            raise SchedulingValidationError(
                f"Time slot {self.id} must end after it starts within one day",
                details={"time_slot_id": self.id},
            )

    @classmethod
    def from_strings(
        cls,
        *,
        id: str,
        name: str,
        start_time: str,
        end_time: str,
        sort_order: int = 0,
        is_active: bool = True,
    ) -> "TimeSlotWindow":
        try:
            start = parse_time_to_minutes(start_time)
            end = parse_time_to_minutes(end_time)
        except ValueError as exc:
            raise SchedulingValidationError(str(exc), details={"time_slot_id": id}) from exc
        return cls(
            id=id,
            name=name,
            start_minutes=start,
            end_minutes=end,
            sort_order=sort_order,
            is_active=is_active,
        )

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    @property
    def hours(self) -> float:
        return self.duration_minutes / 60

    @property
    def start_time(self) -> str:
        return minutes_to_time(self.start_minutes)

    @property
    def end_time(self) -> str:
        return minutes_to_time(self.end_minutes)

    def overlaps(self, other: "TimeSlotWindow") -> bool:
        return max(self.start_minutes, other.start_minutes) < min(self.end_minutes, other.end_minutes)

    def touches(self, other: "TimeSlotWindow") -> bool:
        return self.end_minutes == other.start_minutes or other.end_minutes == self.start_minutes

    def overlaps_or_adjacent(self, other: "TimeSlotWindow") -> bool:
        return self.overlaps(other) or self.touches(other)


def ensure_weekday_matches(value: date, day_of_week: DayOfWeek) -> None:
    actual = DayOfWeek.from_date(value)
    if actual != day_of_week:
        raise SchedulingValidationError(
            f"{value.isoformat()} falls on {actual.value}, not {day_of_week.value}",
            details={"date": value.isoformat(), "day_of_week": day_of_week.value},
        )


def next_weekday_on_or_after(value: date, day_of_week: DayOfWeek) -> date:
    return value + timedelta(days=(day_of_week.index - value.weekday()) % 7)


def dates_overlap(first: date | None, second: date | None) -> bool:
    """A missing date means every occurrence of the weekday, so it overlaps anything."""
    if first is None or second is None:
        return True
    return first == second
