import datetime as dt
from enum import Enum

from pydantic import BaseModel, Field

from classgrid.models.timetable_entry import EntryType
from classgrid.services.time_model import DayOfWeek


class ConflictType(str, Enum):
    BATCH_DOUBLE_BOOKING = "BATCH_DOUBLE_BOOKING"
    FACULTY_CONFLICT = "FACULTY_CONFLICT"
    MODULE_OVERLAP = "MODULE_OVERLAP"
    HOLIDAY_SCHEDULING = "HOLIDAY_SCHEDULING"
    EXAM_PERIOD_CONFLICT = "EXAM_PERIOD_CONFLICT"


class ConflictSeverity(str, Enum):
    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"


SEVERITY_BY_TYPE: dict[ConflictType, ConflictSeverity] = {
    ConflictType.BATCH_DOUBLE_BOOKING: ConflictSeverity.critical,
    ConflictType.FACULTY_CONFLICT: ConflictSeverity.critical,
    ConflictType.MODULE_OVERLAP: ConflictSeverity.high,
    ConflictType.HOLIDAY_SCHEDULING: ConflictSeverity.medium,
    ConflictType.EXAM_PERIOD_CONFLICT: ConflictSeverity.low,
}

SEVERITY_RANK: dict[ConflictSeverity, int] = {
    ConflictSeverity.critical: 0,
    ConflictSeverity.high: 1,
    ConflictSeverity.medium: 2,
    ConflictSeverity.low: 3,
}


class ConflictingEntrySummary(BaseModel):
    entry_id: str | None = None
    # Set when the colliding entry is an earlier item of the same request.
    request_index: int | None = None
    batch_id: str
    batch_name: str | None = None
    subject_id: str | None = None
    subject_name: str | None = None
    faculty_id: str | None = None
    faculty_name: str | None = None
    time_slot_id: str
    time_slot_name: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    day_of_week: DayOfWeek
    date: dt.date | None = None
    entry_type: EntryType = EntryType.REGULAR


class CalendarReference(BaseModel):
    id: str
    name: str
    kind: str


class ConflictDetail(BaseModel):
    id: str
    conflict_type: ConflictType
    severity: ConflictSeverity
    message: str
    conflicting_entry: ConflictingEntrySummary | None = None
    calendar_refs: list[CalendarReference] = Field(default_factory=list)


class ConflictSummary(BaseModel):
    total: int = 0
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0

    @classmethod
    def from_conflicts(cls, conflicts: list[ConflictDetail]) -> "ConflictSummary":
        counts = {severity.value: 0 for severity in ConflictSeverity}
        for conflict in conflicts:
            counts[conflict.severity.value] += 1
        return cls(total=len(conflicts), **counts)


class ConflictCheckResponse(BaseModel):
    has_conflicts: bool
    conflicts: list[ConflictDetail]
    summary: ConflictSummary
