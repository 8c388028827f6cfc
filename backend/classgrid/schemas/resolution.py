import datetime as dt
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from classgrid.schemas.conflict import ConflictDetail
from classgrid.schemas.timetable import TimetableEntryCandidate
from classgrid.services.time_model import DayOfWeek


class StrategyKind(str, Enum):
    next_slot = "next_slot"
    next_day = "next_day"
    alternative_faculty = "alternative_faculty"
    split_session = "split_session"
    reschedule_conflict = "reschedule_conflict"


class StrategyBase(BaseModel):
    model_config = {"extra": "forbid"}

    priority: int = Field(ge=1, le=100)
    enabled: bool = True


class NextSlotStrategy(StrategyBase):
    kind: Literal["next_slot"] = "next_slot"
    priority: int = Field(default=1, ge=1, le=100)
    same_day: bool = True
    max_hours_ahead: float | None = Field(default=4, gt=0, le=24)
    prefer_morning: bool = False


class NextDayStrategy(StrategyBase):
    kind: Literal["next_day"] = "next_day"
    priority: int = Field(default=2, ge=1, le=100)
    max_days_ahead: int = Field(default=7, ge=1, le=60)
    skip_weekends: bool = False
    skip_holidays: bool = True


class AlternativeFacultyStrategy(StrategyBase):
    kind: Literal["alternative_faculty"] = "alternative_faculty"
    priority: int = Field(default=3, ge=1, le=100)
    enabled: bool = False
    same_department: bool = True
    check_workload: bool = True


class SplitSessionStrategy(StrategyBase):
    kind: Literal["split_session"] = "split_session"
    priority: int = Field(default=4, ge=1, le=100)
    enabled: bool = False
    max_sessions: int = Field(default=2, ge=2, le=4)
    minimum_duration: int = Field(default=30, ge=5, le=480)
    prefer_consecutive: bool = True


class RescheduleConflictStrategy(StrategyBase):
    kind: Literal["reschedule_conflict"] = "reschedule_conflict"
    priority: int = Field(default=5, ge=1, le=100)
    enabled: bool = False
    only_lower_priority: bool = True
    # Moving someone else's class is never applied automatically.
    require_approval: Literal[True] = True


StrategyConfig = Annotated[
    Union[
        NextSlotStrategy,
        NextDayStrategy,
        AlternativeFacultyStrategy,
        SplitSessionStrategy,
        RescheduleConflictStrategy,
    ],
    Field(discriminator="kind"),
]


def default_strategies() -> list[StrategyBase]:
    return [
        NextSlotStrategy(),
        NextDayStrategy(),
        AlternativeFacultyStrategy(),
        SplitSessionStrategy(),
        RescheduleConflictStrategy(),
    ]


class EntryMove(BaseModel):
    entry_id: str
    from_time_slot_id: str
    from_day_of_week: DayOfWeek
    from_date: dt.date | None = None
    time_slot_id: str
    day_of_week: DayOfWeek
    date: dt.date | None = None


class Solution(BaseModel):
    id: str
    strategy: StrategyKind
    priority: int
    score: int = Field(ge=0, le=100)
    description: str
    entries: list[TimetableEntryCandidate]
    moves: list[EntryMove] = Field(default_factory=list)
    changed_fields: list[str] = Field(default_factory=list)
    conflicts_resolved: int = 0
    requires_approval: bool = False


class AutoResolveRequest(BaseModel):
    candidate: TimetableEntryCandidate
    conflicts: list[ConflictDetail] = Field(default_factory=list)
    strategies: list[StrategyConfig] | None = None
    max_solutions: int | None = Field(default=None, ge=1, le=10)
    exclude_id: str | None = Field(default=None, max_length=36)


class AutoResolveResponse(BaseModel):
    resolved: bool
    message: str
    solutions: list[Solution]
    strategies_considered: list[StrategyKind] = Field(default_factory=list)
