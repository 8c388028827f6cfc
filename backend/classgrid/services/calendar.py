"""Holiday and exam-period lookups consumed by the conflict detector."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classgrid.core.exceptions import CollaboratorUnavailableError
from classgrid.models.calendar import AcademicTerm, ExamPeriod, Holiday

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HolidayInfo:
    id: str
    name: str
    date: date
    department: str | None = None


@dataclass(frozen=True)
class ExamPeriodInfo:
    id: str
    name: str
    start_date: date
    end_date: date
    department: str | None = None
    block_regular_classes: bool = True

    def covers(self, value: date) -> bool:
        return self.start_date <= value <= self.end_date


class CalendarProvider(Protocol):
    def holidays_on(self, value: date, department: str | None) -> list[HolidayInfo]: ...

    def exam_periods_on(self, value: date, department: str | None) -> list[ExamPeriodInfo]: ...


def _applies_to(scope: str | None, department: str | None) -> bool:
    return scope is None or (department is not None and scope == department)


@dataclass
class CalendarSnapshot:
    """In-memory calendar; safe to query from several threads at once."""

    holidays: list[HolidayInfo] = field(default_factory=list)
    exam_periods: list[ExamPeriodInfo] = field(default_factory=list)

    def holidays_on(self, value: date, department: str | None) -> list[HolidayInfo]:
        return [item for item in self.holidays if item.date == value and _applies_to(item.department, department)]

    def exam_periods_on(self, value: date, department: str | None) -> list[ExamPeriodInfo]:
        return [
            item
            for item in self.exam_periods
            if item.covers(value) and _applies_to(item.department, department)
        ]

    def is_holiday(self, value: date, department: str | None) -> bool:
        return bool(self.holidays_on(value, department))


def load_calendar(db: Session) -> CalendarSnapshot:
    try:
        holidays = db.execute(select(Holiday)).scalars().all()
        exam_periods = db.execute(select(ExamPeriod)).scalars().all()
    except SQLAlchemyError as exc:
        logger.exception("Failed to load holiday/exam calendar")
        raise CollaboratorUnavailableError("calendar provider") from exc

    return CalendarSnapshot(
        holidays=[
            HolidayInfo(id=item.id, name=item.name, date=item.date, department=item.department)
            for item in holidays
        ],
        exam_periods=[
            ExamPeriodInfo(
                id=item.id,
                name=item.name,
                start_date=item.start_date,
                end_date=item.end_date,
                department=item.department,
                block_regular_classes=item.block_regular_classes,
            )
            for item in exam_periods
        ],
    )


def term_end_date(db: Session, term_id: str) -> date | None:
    try:
        term = db.get(AcademicTerm, term_id)
    except SQLAlchemyError as exc:
        logger.exception("Failed to load academic term %s", term_id)
        raise CollaboratorUnavailableError("calendar provider") from exc
    return term.end_date if term else None
