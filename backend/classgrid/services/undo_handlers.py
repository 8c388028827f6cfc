"""Inverse mutations applied when a pending undo operation is executed."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classgrid.core.exceptions import (
    AppError,
    CollaboratorUnavailableError,
    ResourceNotFoundError,
    SchedulingConflictError,
    UndoFailedError,
)
from classgrid.models.calendar import Holiday
from classgrid.models.timetable_entry import EntryType, TimetableEntry
from classgrid.schemas.undo import UndoEntityType, UndoOperationKind
from classgrid.services.calendar import load_calendar
from classgrid.services.catalog import load_catalog
from classgrid.services.conflict_service import ConflictDetector, EntryPlacement, entry_to_placement
from classgrid.services.time_model import DayOfWeek
from classgrid.services.undo_manager import UndoOperation

logger = logging.getLogger(__name__)

ENTRY_FIELDS = (
    "batch_id",
    "subject_id",
    "faculty_id",
    "time_slot_id",
    "day_of_week",
    "date",
    "entry_type",
    "notes",
    "custom_event_title",
    "is_active",
)


def entry_snapshot(entry: TimetableEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "batch_id": entry.batch_id,
        "subject_id": entry.subject_id,
        "faculty_id": entry.faculty_id,
        "time_slot_id": entry.time_slot_id,
        "day_of_week": entry.day_of_week.value,
        "date": entry.date.isoformat() if entry.date else None,
        "entry_type": entry.entry_type.value,
        "notes": entry.notes,
        "custom_event_title": entry.custom_event_title,
        "is_active": entry.is_active,
    }


def holiday_snapshot(holiday: Holiday) -> dict[str, Any]:
    return {
        "id": holiday.id,
        "name": holiday.name,
        "date": holiday.date.isoformat(),
        "department": holiday.department,
        "description": holiday.description,
    }


def _entry_values(snapshot: dict[str, Any]) -> dict[str, Any]:
    values = {name: snapshot.get(name) for name in ENTRY_FIELDS}
    values["day_of_week"] = DayOfWeek(values["day_of_week"])
    values["entry_type"] = EntryType(values["entry_type"])
    values["date"] = dt.date.fromisoformat(values["date"]) if values["date"] else None
    return values


def _undo_entry_create(db: Session, operation: UndoOperation) -> list[str]:
    entry_ids = list(operation.inverse_data.get("entry_ids") or [operation.entity_id])
    db.execute(update(TimetableEntry).where(TimetableEntry.id.in_(entry_ids)).values(is_active=False))
    return entry_ids


def _ensure_restorable(db: Session, entry_id: str, values: dict[str, Any]) -> None:
    """Reject an inverse that would reintroduce a clash with entries committed since."""
    if not values["is_active"]:
        return
    detector = ConflictDetector(load_catalog(db), load_calendar(db))
    active = db.execute(select(TimetableEntry).where(TimetableEntry.is_active.is_(True))).scalars().all()
    restored = EntryPlacement(
        id=entry_id,
        batch_id=values["batch_id"],
        subject_id=values["subject_id"],
        faculty_id=values["faculty_id"],
        time_slot_id=values["time_slot_id"],
        day_of_week=values["day_of_week"],
        date=values["date"],
        entry_type=values["entry_type"],
        allow_unassigned=values["subject_id"] is None or values["faculty_id"] is None,
        custom_event_title=values["custom_event_title"],
    )
    conflicts = detector.detect(restored, [entry_to_placement(item) for item in active])
    if conflicts:
        raise SchedulingConflictError(
            f"Undo would conflict with {len(conflicts)} scheduled item(s); the entry was left as it is",
            conflicts=[item.model_dump(mode="json") for item in conflicts],
        )


def _undo_entry_update(db: Session, operation: UndoOperation) -> list[str]:
    before = operation.inverse_data["before"]
    entry = db.get(TimetableEntry, before["id"])
    if entry is None:
        raise ResourceNotFoundError("Timetable entry", before["id"])
    values = _entry_values(before)
    _ensure_restorable(db, entry.id, values)
    for name, value in values.items():
        setattr(entry, name, value)
    return [entry.id]


def _undo_entry_delete(db: Session, operation: UndoOperation) -> list[str]:
    before = operation.inverse_data["before"]
    values = _entry_values(before)
    values["is_active"] = True
    _ensure_restorable(db, before["id"], values)
    entry = db.get(TimetableEntry, before["id"])
    if entry is None:
        # Hard-deleted rows come back under their original id.
        db.add(TimetableEntry(id=before["id"], **values))
    else:
        for name, value in values.items():
            setattr(entry, name, value)
    return [before["id"]]


def _undo_holiday_create(db: Session, operation: UndoOperation) -> list[str]:
    holiday = db.get(Holiday, operation.entity_id)
    if holiday is not None:
        db.delete(holiday)
    return [operation.entity_id]


def _undo_holiday_delete(db: Session, operation: UndoOperation) -> list[str]:
    before = operation.inverse_data["before"]
    existing = db.scalar(select(Holiday.id).where(Holiday.id == before["id"]))
    if existing is None:
        db.add(
            Holiday(
                id=before["id"],
                name=before["name"],
                date=dt.date.fromisoformat(before["date"]),
                department=before.get("department"),
                description=before.get("description"),
            )
        )
    return [before["id"]]


_HANDLERS = {
    (UndoEntityType.TIMETABLE_ENTRY, UndoOperationKind.CREATE): _undo_entry_create,
    (UndoEntityType.TIMETABLE_ENTRY, UndoOperationKind.UPDATE): _undo_entry_update,
    (UndoEntityType.TIMETABLE_ENTRY, UndoOperationKind.DELETE): _undo_entry_delete,
    (UndoEntityType.HOLIDAY, UndoOperationKind.CREATE): _undo_holiday_create,
    (UndoEntityType.HOLIDAY, UndoOperationKind.DELETE): _undo_holiday_delete,
}


def supports(entity_type: UndoEntityType, operation: UndoOperationKind) -> bool:
    return (entity_type, operation) in _HANDLERS


def apply_inverse(db: Session, operation: UndoOperation) -> list[str]:
    handler = _HANDLERS.get((operation.entity_type, operation.operation))
    if handler is None:
        raise UndoFailedError(
            operation.id,
            f"Undo of {operation.operation.value} on {operation.entity_type.value} is not supported",
        )
    try:
        affected = handler(db, operation)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Inverse mutation for undo %s failed", operation.id)
        raise CollaboratorUnavailableError("persistence store") from exc
    except AppError:
        db.rollback()
        raise
    return affected
