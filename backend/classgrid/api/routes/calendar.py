import datetime as dt
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classgrid.api.deps import get_db, get_undo_manager
from classgrid.core.exceptions import CollaboratorUnavailableError
from classgrid.models.calendar import AcademicTerm, ExamPeriod, Holiday
from classgrid.schemas.calendar import (
    AcademicTermCreate,
    AcademicTermOut,
    ExamPeriodCreate,
    ExamPeriodOut,
    HolidayCreate,
    HolidayMutationResponse,
    HolidayOut,
)
from classgrid.schemas.undo import UndoEntityType, UndoOperationKind
from classgrid.services.events import publish_timetable_event
from classgrid.services.undo_handlers import holiday_snapshot
from classgrid.services.undo_manager import UndoManager

logger = logging.getLogger(__name__)

router = APIRouter()


def _save(db: Session, instance, *, delete: bool = False) -> None:
    try:
        if delete:
            db.delete(instance)
        else:
            db.add(instance)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Calendar write failed")
        raise CollaboratorUnavailableError("calendar provider") from exc
    if not delete:
        db.refresh(instance)


def _holiday_response(
    message: str,
    holiday: HolidayOut,
    undo_id: str,
    undo_manager: UndoManager,
) -> HolidayMutationResponse:
    record = undo_manager.get(undo_id)
    return HolidayMutationResponse(
        message=message,
        holiday=holiday,
        undo_operation_id=undo_id,
        undo_expires_at=record.expires_at if record else None,
    )


@router.get("/holidays", response_model=list[HolidayOut])
def list_holidays(
    date_from: dt.date | None = Query(default=None, alias="from"),
    date_to: dt.date | None = Query(default=None, alias="to"),
    db: Session = Depends(get_db),
) -> list[HolidayOut]:
    query = select(Holiday).order_by(Holiday.date, Holiday.name)
    if date_from:
        query = query.where(Holiday.date >= date_from)
    if date_to:
        query = query.where(Holiday.date <= date_to)
    return list(db.execute(query).scalars())


@router.post("/holidays", response_model=HolidayMutationResponse, status_code=status.HTTP_201_CREATED)
def create_holiday(
    payload: HolidayCreate,
    db: Session = Depends(get_db),
    undo_manager: UndoManager = Depends(get_undo_manager),
) -> HolidayMutationResponse:
    undo_manager.check_timeout(payload.undo_timeout_seconds)
    holiday = Holiday(**payload.model_dump(exclude={"undo_timeout_seconds"}))
    _save(db, holiday)
    undo_id = undo_manager.register(
        UndoEntityType.HOLIDAY,
        holiday.id,
        UndoOperationKind.CREATE,
        {"holiday_id": holiday.id},
        timeout_seconds=payload.undo_timeout_seconds,
        entity_name=holiday.name,
    )
    publish_timetable_event("holiday", "created", [holiday.id], undo_operation_id=undo_id)
    return _holiday_response("Holiday created", HolidayOut.model_validate(holiday), undo_id, undo_manager)


@router.delete("/holidays/{holiday_id}", response_model=HolidayMutationResponse)
def delete_holiday(
    holiday_id: str,
    undo_timeout_seconds: float | None = Query(default=None, gt=0),
    db: Session = Depends(get_db),
    undo_manager: UndoManager = Depends(get_undo_manager),
) -> HolidayMutationResponse:
    undo_manager.check_timeout(undo_timeout_seconds)
    holiday = db.get(Holiday, holiday_id)
    if holiday is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Holiday not found")

    snapshot = holiday_snapshot(holiday)
    out = HolidayOut.model_validate(holiday)
    _save(db, holiday, delete=True)
    undo_id = undo_manager.register(
        UndoEntityType.HOLIDAY,
        holiday_id,
        UndoOperationKind.DELETE,
        {"before": snapshot},
        timeout_seconds=undo_timeout_seconds,
        entity_name=snapshot["name"],
    )
    publish_timetable_event("holiday", "deleted", [holiday_id], undo_operation_id=undo_id)
    return _holiday_response("Holiday deleted", out, undo_id, undo_manager)


@router.get("/exam-periods", response_model=list[ExamPeriodOut])
def list_exam_periods(db: Session = Depends(get_db)) -> list[ExamPeriodOut]:
    return list(db.execute(select(ExamPeriod).order_by(ExamPeriod.start_date)).scalars())


@router.post("/exam-periods", response_model=ExamPeriodOut, status_code=status.HTTP_201_CREATED)
def create_exam_period(payload: ExamPeriodCreate, db: Session = Depends(get_db)) -> ExamPeriodOut:
    period = ExamPeriod(**payload.model_dump())
    _save(db, period)
    return period


@router.delete("/exam-periods/{period_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_exam_period(period_id: str, db: Session = Depends(get_db)) -> None:
    period = db.get(ExamPeriod, period_id)
    if period is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Exam period not found")
    _save(db, period, delete=True)


@router.get("/terms", response_model=list[AcademicTermOut])
def list_terms(db: Session = Depends(get_db)) -> list[AcademicTermOut]:
    return list(db.execute(select(AcademicTerm).order_by(AcademicTerm.start_date)).scalars())


@router.post("/terms", response_model=AcademicTermOut, status_code=status.HTTP_201_CREATED)
def create_term(payload: AcademicTermCreate, db: Session = Depends(get_db)) -> AcademicTermOut:
    term = AcademicTerm(**payload.model_dump())
    _save(db, term)
    return term
