import uuid
import datetime as dt
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, Enum as SAEnum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from classgrid.db.base import Base
from classgrid.services.time_model import DayOfWeek


class EntryType(str, Enum):
    REGULAR = "REGULAR"
    MAKEUP = "MAKEUP"
    EXTRA = "EXTRA"
    EXAM = "EXAM"


class TimetableEntry(Base):
    __tablename__ = "timetable_entries"
    __table_args__ = (
        Index("ix_timetable_entries_slot_day_active", "time_slot_id", "day_of_week", "is_active"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    batch_id: Mapped[str] = mapped_column(ForeignKey("batches.id"), nullable=False, index=True)
    subject_id: Mapped[str | None] = mapped_column(ForeignKey("subjects.id"), nullable=True)
    faculty_id: Mapped[str | None] = mapped_column(ForeignKey("faculty.id"), nullable=True, index=True)
    time_slot_id: Mapped[str] = mapped_column(ForeignKey("time_slots.id"), nullable=False)
    day_of_week: Mapped[DayOfWeek] = mapped_column(SAEnum(DayOfWeek, name="day_of_week"), nullable=False)
    date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    entry_type: Mapped[EntryType] = mapped_column(
        SAEnum(EntryType, name="entry_type"),
        nullable=False,
        default=EntryType.REGULAR,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    custom_event_title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
