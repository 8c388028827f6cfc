from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from classgrid.api.deps import get_db, get_undo_manager
from classgrid.core.config import Settings, get_settings
from classgrid.models.timetable_entry import TimetableEntry
from classgrid.schemas.timetable import (
    CommitRequest,
    CommitResponse,
    EntryMutationResponse,
    TimetableEntryOut,
    TimetableEntryUpdate,
)
from classgrid.services import scheduling
from classgrid.services.time_model import DayOfWeek
from classgrid.services.undo_manager import UndoManager

router = APIRouter()


def _mutation_response(outcome: scheduling.EntryMutation, undo_manager: UndoManager) -> EntryMutationResponse:
    record = undo_manager.get(outcome.undo_operation_id) if outcome.undo_operation_id else None
    return EntryMutationResponse(
        message=outcome.message,
        entry=TimetableEntryOut.model_validate(outcome.entry),
        conflicts=outcome.conflicts,
        undo_operation_id=outcome.undo_operation_id,
        undo_expires_at=record.expires_at if record else None,
    )


@router.post("/commit", response_model=CommitResponse)
def commit_entries(
    payload: CommitRequest,
    db: Session = Depends(get_db),
    undo_manager: UndoManager = Depends(get_undo_manager),
    settings: Settings = Depends(get_settings),
) -> CommitResponse:
    return scheduling.commit_entries(db, undo_manager, payload, settings)


@router.get("/entries", response_model=list[TimetableEntryOut])
def list_entries(
    batch_id: str | None = None,
    faculty_id: str | None = None,
    day_of_week: DayOfWeek | None = None,
    include_inactive: bool = False,
    limit: int = Query(default=500, ge=1, le=5000),
    db: Session = Depends(get_db),
) -> list[TimetableEntryOut]:
    query = select(TimetableEntry).order_by(TimetableEntry.day_of_week, TimetableEntry.time_slot_id, TimetableEntry.id)
    if not include_inactive:
        query = query.where(TimetableEntry.is_active.is_(True))
    if batch_id:
        query = query.where(TimetableEntry.batch_id == batch_id)
    if faculty_id:
        query = query.where(TimetableEntry.faculty_id == faculty_id)
    if day_of_week:
        query = query.where(TimetableEntry.day_of_week == day_of_week)
    return list(db.execute(query.limit(limit)).scalars())


@router.get("/entries/{entry_id}", response_model=TimetableEntryOut)
def get_entry(entry_id: str, db: Session = Depends(get_db)) -> TimetableEntryOut:
    return scheduling.get_active_entry(db, entry_id)


@router.put("/entries/{entry_id}", response_model=EntryMutationResponse)
def update_entry(
    entry_id: str,
    payload: TimetableEntryUpdate,
    db: Session = Depends(get_db),
    undo_manager: UndoManager = Depends(get_undo_manager),
) -> EntryMutationResponse:
    outcome = scheduling.update_entry(db, undo_manager, entry_id, payload)
    return _mutation_response(outcome, undo_manager)


@router.delete("/entries/{entry_id}", response_model=EntryMutationResponse)
def delete_entry(
    entry_id: str,
    undo_timeout_seconds: float | None = Query(default=None, gt=0),
    db: Session = Depends(get_db),
    undo_manager: UndoManager = Depends(get_undo_manager),
) -> EntryMutationResponse:
    outcome = scheduling.delete_entry(db, undo_manager, entry_id, undo_timeout_seconds)
    return _mutation_response(outcome, undo_manager)
