"""Read-only lookup snapshot of the reference data scheduling decisions depend on.

The snapshot is loaded once per request and then shared by the conflict
detector and the auto-resolve engine, so both run without touching the
database session (which is not safe to share across worker threads).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classgrid.core.exceptions import CollaboratorUnavailableError, SchedulingValidationError
from classgrid.models.batch import Batch
from classgrid.models.faculty import Faculty
from classgrid.models.subject import Subject
from classgrid.models.time_slot import TimeSlot
from classgrid.services.time_model import TimeSlotWindow
from classgrid.services.workload import constrained_max_hours

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubjectInfo:
    id: str
    name: str
    code: str = ""
    department: str | None = None
    is_module: bool = False


@dataclass(frozen=True)
class FacultyInfo:
    id: str
    name: str
    department: str | None = None
    designation: str = "Faculty"
    max_hours: int = 20
    is_active: bool = True


@dataclass(frozen=True)
class BatchInfo:
    id: str
    name: str
    department: str | None = None


@dataclass
class ScheduleCatalog:
    time_slots: dict[str, TimeSlotWindow] = field(default_factory=dict)
    subjects: dict[str, SubjectInfo] = field(default_factory=dict)
    faculty: dict[str, FacultyInfo] = field(default_factory=dict)
    batches: dict[str, BatchInfo] = field(default_factory=dict)

    def slot(self, slot_id: str) -> TimeSlotWindow:
        window = self.time_slots.get(slot_id)
        if window is None:
            raise SchedulingValidationError(
                f"Unknown time slot {slot_id}",
                details={"time_slot_id": slot_id},
            )
        return window

    def ordered_slots(self, *, active_only: bool = True) -> list[TimeSlotWindow]:
        slots = [item for item in self.time_slots.values() if item.is_active or not active_only]
        return sorted(slots, key=lambda item: (item.sort_order, item.start_minutes, item.id))

    def is_module(self, subject_id: str | None) -> bool:
        if subject_id is None:
            return False
        subject = self.subjects.get(subject_id)
        return bool(subject and subject.is_module)

    def batch_department(self, batch_id: str) -> str | None:
        batch = self.batches.get(batch_id)
        return batch.department if batch else None

    def subject_name(self, subject_id: str | None) -> str | None:
        subject = self.subjects.get(subject_id) if subject_id else None
        return subject.name if subject else subject_id

    def faculty_name(self, faculty_id: str | None) -> str | None:
        faculty = self.faculty.get(faculty_id) if faculty_id else None
        return faculty.name if faculty else faculty_id

    def batch_name(self, batch_id: str | None) -> str | None:
        batch = self.batches.get(batch_id) if batch_id else None
        return batch.name if batch else batch_id


def load_catalog(db: Session) -> ScheduleCatalog:
    try:
        slots = db.execute(select(TimeSlot)).scalars().all()
        subjects = db.execute(select(Subject)).scalars().all()
        faculty = db.execute(select(Faculty)).scalars().all()
        batches = db.execute(select(Batch)).scalars().all()
    except SQLAlchemyError as exc:
        logger.exception("Failed to load schedule catalog")
        raise CollaboratorUnavailableError("persistence store") from exc

    return ScheduleCatalog(
        time_slots={
            item.id: TimeSlotWindow.from_strings(
                id=item.id,
                name=item.name,
                start_time=item.start_time,
                end_time=item.end_time,
                sort_order=item.sort_order,
                is_active=item.is_active,
            )
            for item in slots
        },
        subjects={
            item.id: SubjectInfo(
                id=item.id,
                name=item.name,
                code=item.code,
                department=item.department,
                is_module=item.is_module,
            )
            for item in subjects
        },
        faculty={
            item.id: FacultyInfo(
                id=item.id,
                name=item.name,
                department=item.department,
                designation=item.designation,
                max_hours=constrained_max_hours(item.designation, item.max_hours),
                is_active=item.is_active,
            )
            for item in faculty
        },
        batches={item.id: BatchInfo(id=item.id, name=item.name, department=item.department) for item in batches},
    )
