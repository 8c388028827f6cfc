from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from classgrid.api.deps import get_db
from classgrid.models.batch import Batch
from classgrid.models.faculty import Faculty
from classgrid.models.subject import Subject
from classgrid.models.time_slot import TimeSlot
from classgrid.schemas.reference import (
    BatchCreate,
    BatchOut,
    FacultyCreate,
    FacultyOut,
    FacultyUpdate,
    SubjectCreate,
    SubjectOut,
    TimeSlotCreate,
    TimeSlotOut,
)
from classgrid.services.catalog import load_catalog
from classgrid.services.scheduling import load_active_placements
from classgrid.services.time_model import parse_time_to_minutes
from classgrid.services.workload import constrained_max_hours, weekly_teaching_hours

router = APIRouter()


def _commit_or_conflict(db: Session, instance, detail: str) -> None:
    db.add(instance)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail) from exc
    db.refresh(instance)


@router.get("/time-slots", response_model=list[TimeSlotOut])
def list_time_slots(db: Session = Depends(get_db)) -> list[TimeSlotOut]:
    query = select(TimeSlot).order_by(TimeSlot.sort_order, TimeSlot.start_time)
    return list(db.execute(query).scalars())


@router.post("/time-slots", response_model=TimeSlotOut, status_code=status.HTTP_201_CREATED)
def create_time_slot(payload: TimeSlotCreate, db: Session = Depends(get_db)) -> TimeSlotOut:
    slot = TimeSlot(
        **payload.model_dump(),
        duration_minutes=parse_time_to_minutes(payload.end_time) - parse_time_to_minutes(payload.start_time),
    )
    _commit_or_conflict(db, slot, "A time slot with this name already exists")
    return slot


@router.get("/batches", response_model=list[BatchOut])
def list_batches(db: Session = Depends(get_db)) -> list[BatchOut]:
    return list(db.execute(select(Batch).order_by(Batch.name)).scalars())


@router.post("/batches", response_model=BatchOut, status_code=status.HTTP_201_CREATED)
def create_batch(payload: BatchCreate, db: Session = Depends(get_db)) -> BatchOut:
    batch = Batch(**payload.model_dump())
    _commit_or_conflict(db, batch, "Batch could not be created")
    return batch


@router.get("/subjects", response_model=list[SubjectOut])
def list_subjects(db: Session = Depends(get_db)) -> list[SubjectOut]:
    return list(db.execute(select(Subject).order_by(Subject.code)).scalars())


@router.post("/subjects", response_model=SubjectOut, status_code=status.HTTP_201_CREATED)
def create_subject(payload: SubjectCreate, db: Session = Depends(get_db)) -> SubjectOut:
    subject = Subject(**payload.model_dump())
    _commit_or_conflict(db, subject, "A subject with this code already exists")
    return subject


def _faculty_out(item: Faculty, weekly_hours: float) -> FacultyOut:
    out = FacultyOut.model_validate(item)
    return out.model_copy(update={"weekly_hours": weekly_hours})


@router.get("/faculty", response_model=list[FacultyOut])
def list_faculty(db: Session = Depends(get_db)) -> list[FacultyOut]:
    catalog = load_catalog(db)
    placements = load_active_placements(db)
    items = db.execute(select(Faculty).order_by(Faculty.name)).scalars()
    return [_faculty_out(item, weekly_teaching_hours(item.id, placements, catalog.time_slots)) for item in items]


@router.post("/faculty", response_model=FacultyOut, status_code=status.HTTP_201_CREATED)
def create_faculty(payload: FacultyCreate, db: Session = Depends(get_db)) -> FacultyOut:
    data = payload.model_dump()
    data["max_hours"] = constrained_max_hours(payload.designation, payload.max_hours)
    faculty = Faculty(**data)
    _commit_or_conflict(db, faculty, "A faculty member with this email already exists")
    return _faculty_out(faculty, 0.0)


@router.put("/faculty/{faculty_id}", response_model=FacultyOut)
def update_faculty(faculty_id: str, payload: FacultyUpdate, db: Session = Depends(get_db)) -> FacultyOut:
    faculty = db.get(Faculty, faculty_id)
    if faculty is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Faculty not found")

    data = payload.model_dump(exclude_unset=True)
    for key, value in data.items():
        setattr(faculty, key, value)
    faculty.max_hours = constrained_max_hours(faculty.designation, faculty.max_hours)
    _commit_or_conflict(db, faculty, "A faculty member with this email already exists")

    catalog = load_catalog(db)
    hours = weekly_teaching_hours(faculty.id, load_active_placements(db), catalog.time_slots)
    return _faculty_out(faculty, hours)
