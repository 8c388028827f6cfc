import datetime as dt
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from classgrid.services.time_model import DayOfWeek


class RecurrencePattern(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class RecurrenceRule(BaseModel):
    pattern: RecurrencePattern = RecurrencePattern.WEEKLY
    end_date: dt.date | None = None
    end_after_hours: float | None = Field(default=None, gt=0, le=10_000)
    end_after_occurrences: int | None = Field(default=None, ge=1)
    until_term_end: bool = False
    term_end_date: dt.date | None = None
    term_id: str | None = Field(default=None, max_length=36)

    @model_validator(mode="after")
    def validate_single_end_condition(self) -> "RecurrenceRule":
        active = [
            name
            for name, enabled in (
                ("end_date", self.end_date is not None),
                ("end_after_hours", self.end_after_hours is not None),
                ("end_after_occurrences", self.end_after_occurrences is not None),
                ("until_term_end", self.until_term_end),
            )
            if enabled
        ]
        if not active:
            raise ValueError("Recurrence rule needs an end condition")
        if len(active) > 1:
            raise ValueError(f"Recurrence rule must have exactly one end condition, got {', '.join(active)}")
        if self.until_term_end and self.term_end_date is None and self.term_id is None:
            raise ValueError("until_term_end requires term_end_date or term_id")
        return self


class OccurrenceOut(BaseModel):
    date: dt.date
    day_of_week: DayOfWeek


class ExpandRecurrenceRequest(BaseModel):
    rule: RecurrenceRule
    start_date: dt.date
    day_of_week: DayOfWeek
    time_slot_id: str | None = Field(default=None, max_length=36)
    align_start: bool = False


class ExpandRecurrenceResponse(BaseModel):
    count: int
    total_hours: float | None = None
    occurrences: list[OccurrenceOut]
