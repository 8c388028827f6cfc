import datetime as dt
from enum import Enum

from pydantic import BaseModel, Field


class UndoEntityType(str, Enum):
    TIMETABLE_ENTRY = "TIMETABLE_ENTRY"
    HOLIDAY = "HOLIDAY"
    FACULTY = "FACULTY"
    SUBJECT = "SUBJECT"
    BATCH = "BATCH"
    TIMESLOT = "TIMESLOT"


class UndoOperationKind(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class UndoStatus(str, Enum):
    EXECUTED = "executed"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"


class UndoResult(BaseModel):
    success: bool
    status: UndoStatus
    message: str
    operation_id: str
    entity_type: UndoEntityType | None = None
    affected_ids: list[str] = Field(default_factory=list)


class UndoOperationOut(BaseModel):
    id: str
    entity_type: UndoEntityType
    entity_id: str
    operation: UndoOperationKind
    description: str
    created_at: dt.datetime
    expires_at: dt.datetime
    remaining_seconds: int
    can_undo: bool
