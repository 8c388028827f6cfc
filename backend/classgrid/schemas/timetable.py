import datetime as dt

from pydantic import BaseModel, Field, model_validator

from classgrid.models.timetable_entry import EntryType
from classgrid.schemas.conflict import ConflictDetail
from classgrid.schemas.recurrence import RecurrenceRule
from classgrid.services.conflict_service import EntryPlacement
from classgrid.services.time_model import DayOfWeek

MAX_ENTRIES_PER_COMMIT = 100


class TimetableEntryCandidate(BaseModel):
    batch_id: str = Field(min_length=1, max_length=36)
    subject_id: str | None = Field(default=None, min_length=1, max_length=36)
    faculty_id: str | None = Field(default=None, min_length=1, max_length=36)
    time_slot_id: str = Field(min_length=1, max_length=36)
    day_of_week: DayOfWeek
    date: dt.date | None = None
    entry_type: EntryType = EntryType.REGULAR
    notes: str | None = Field(default=None, max_length=2000)
    custom_event_title: str | None = Field(default=None, max_length=200)
    allow_unassigned: bool = False

    @model_validator(mode="after")
    def validate_assignment(self) -> "TimetableEntryCandidate":
        if not self.allow_unassigned and (self.subject_id is None or self.faculty_id is None):
            raise ValueError("subject_id and faculty_id are required unless allow_unassigned is set")
        return self

    def to_placement(self, *, entry_id: str | None = None) -> EntryPlacement:
        return EntryPlacement(
            id=entry_id,
            batch_id=self.batch_id,
            subject_id=self.subject_id,
            faculty_id=self.faculty_id,
            time_slot_id=self.time_slot_id,
            day_of_week=self.day_of_week,
            date=self.date,
            entry_type=self.entry_type,
            allow_unassigned=self.allow_unassigned,
            notes=self.notes,
            custom_event_title=self.custom_event_title,
        )

    @classmethod
    def from_placement(cls, placement: EntryPlacement) -> "TimetableEntryCandidate":
        return cls(
            batch_id=placement.batch_id,
            subject_id=placement.subject_id,
            faculty_id=placement.faculty_id,
            time_slot_id=placement.time_slot_id,
            day_of_week=placement.day_of_week,
            date=placement.date,
            entry_type=placement.entry_type,
            notes=placement.notes,
            custom_event_title=placement.custom_event_title,
            allow_unassigned=placement.allow_unassigned,
        )


class TimetableEntryOut(BaseModel):
    id: str
    batch_id: str
    subject_id: str | None
    faculty_id: str | None
    time_slot_id: str
    day_of_week: DayOfWeek
    date: dt.date | None
    entry_type: EntryType
    notes: str | None
    custom_event_title: str | None
    is_active: bool
    created_at: dt.datetime | None = None
    updated_at: dt.datetime | None = None

    model_config = {"from_attributes": True}


class TimetableEntryUpdate(BaseModel):
    subject_id: str | None = Field(default=None, min_length=1, max_length=36)
    faculty_id: str | None = Field(default=None, min_length=1, max_length=36)
    time_slot_id: str | None = Field(default=None, min_length=1, max_length=36)
    day_of_week: DayOfWeek | None = None
    date: dt.date | None = None
    entry_type: EntryType | None = None
    notes: str | None = Field(default=None, max_length=2000)
    custom_event_title: str | None = Field(default=None, max_length=200)
    force_ignore_conflicts: bool = False
    undo_timeout_seconds: float | None = Field(default=None, gt=0)


class ConflictCheckRequest(BaseModel):
    candidate: TimetableEntryCandidate
    exclude_id: str | None = Field(default=None, max_length=36)


class CommitRequest(BaseModel):
    entries: list[TimetableEntryCandidate] = Field(min_length=1, max_length=MAX_ENTRIES_PER_COMMIT)
    recurrence: RecurrenceRule | None = None
    start_date: dt.date | None = None
    align_start: bool = False
    force_ignore_conflicts: bool = False
    skip_conflicting: bool = False
    undo_timeout_seconds: float | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def validate_mode(self) -> "CommitRequest":
        if self.force_ignore_conflicts and self.skip_conflicting:
            raise ValueError("force_ignore_conflicts and skip_conflicting cannot both be set")
        if self.recurrence is not None:
            if len(self.entries) != 1:
                raise ValueError("A recurring commit takes exactly one template entry")
            if self.start_date is None and self.entries[0].date is None:
                raise ValueError("A recurring commit needs start_date or a dated template entry")
        return self


class EntryConflicts(BaseModel):
    request_index: int
    candidate: TimetableEntryCandidate
    conflicts: list[ConflictDetail]


class CommitResponse(BaseModel):
    committed: bool
    message: str
    created: list[TimetableEntryOut] = Field(default_factory=list)
    conflicts: list[EntryConflicts] = Field(default_factory=list)
    skipped: list[EntryConflicts] = Field(default_factory=list)
    undo_operation_id: str | None = None
    undo_expires_at: dt.datetime | None = None


class EntryMutationResponse(BaseModel):
    message: str
    entry: TimetableEntryOut
    conflicts: list[ConflictDetail] = Field(default_factory=list)
    undo_operation_id: str | None = None
    undo_expires_at: dt.datetime | None = None
