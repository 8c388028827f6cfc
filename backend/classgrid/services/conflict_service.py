from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date

from classgrid.core.exceptions import SchedulingValidationError
from classgrid.models.timetable_entry import EntryType, TimetableEntry
from classgrid.schemas.conflict import (
    SEVERITY_BY_TYPE,
    SEVERITY_RANK,
    CalendarReference,
    ConflictDetail,
    ConflictingEntrySummary,
    ConflictType,
)
from classgrid.services.calendar import CalendarProvider
from classgrid.services.catalog import ScheduleCatalog
from classgrid.services.time_model import DayOfWeek, TimeSlotWindow, dates_overlap, ensure_weekday_matches


@dataclass(frozen=True)
class EntryPlacement:
    """One concrete (or hypothetical) placement of a class on the weekly grid."""

    batch_id: str
    time_slot_id: str
    day_of_week: DayOfWeek
    subject_id: str | None = None
    faculty_id: str | None = None
    date: date | None = None
    entry_type: EntryType = EntryType.REGULAR
    id: str | None = None
    is_active: bool = True
    allow_unassigned: bool = False
    notes: str | None = None
    custom_event_title: str | None = None
    request_index: int | None = None

    def moved(self, **changes) -> "EntryPlacement":
        return dataclasses.replace(self, **changes)

    @property
    def identity(self) -> str:
        if self.id is not None:
            return self.id
        return f"request:{self.request_index}"


def entry_to_placement(entry: TimetableEntry) -> EntryPlacement:
    return EntryPlacement(
        id=entry.id,
        batch_id=entry.batch_id,
        subject_id=entry.subject_id,
        faculty_id=entry.faculty_id,
        time_slot_id=entry.time_slot_id,
        day_of_week=entry.day_of_week,
        date=entry.date,
        entry_type=entry.entry_type,
        is_active=entry.is_active,
        allow_unassigned=entry.subject_id is None or entry.faculty_id is None,
        notes=entry.notes,
        custom_event_title=entry.custom_event_title,
    )


class ConflictDetector:
    def __init__(self, catalog: ScheduleCatalog, calendar: CalendarProvider | None = None):
        self.catalog = catalog
        self.calendar = calendar

    def validate(self, candidate: EntryPlacement) -> TimeSlotWindow:
        missing = [
            name
            for name, value in (
                ("batch_id", candidate.batch_id),
                ("time_slot_id", candidate.time_slot_id),
                ("day_of_week", candidate.day_of_week),
            )
            if not value
        ]
        if not candidate.allow_unassigned:
            if not candidate.subject_id:
                missing.append("subject_id")
            if not candidate.faculty_id:
                missing.append("faculty_id")
        if missing:
            raise SchedulingValidationError(
                f"Candidate entry is missing required field(s): {', '.join(missing)}",
                details={"missing": missing},
            )
        if candidate.date is not None:
            ensure_weekday_matches(candidate.date, candidate.day_of_week)
        return self.catalog.slot(candidate.time_slot_id)

    def detect(
        self,
        candidate: EntryPlacement,
        existing: Iterable[EntryPlacement],
        *,
        exclude_ids: Iterable[str] = (),
    ) -> list[ConflictDetail]:
        window = self.validate(candidate)
        excluded = set(exclude_ids)
        if candidate.id is not None:
            excluded.add(candidate.id)
        candidate_is_module = self.catalog.is_module(candidate.subject_id)

        conflicts: dict[tuple[str, ConflictType], ConflictDetail] = {}

        for other in existing:
            if not other.is_active or other.identity in excluded:
                continue
            if other.day_of_week != candidate.day_of_week:
                continue
            if not dates_overlap(candidate.date, other.date):
                continue

            if other.time_slot_id == candidate.time_slot_id:
                if other.batch_id == candidate.batch_id:
                    self._add(conflicts, ConflictType.BATCH_DOUBLE_BOOKING, candidate, other)
                if candidate.faculty_id and other.faculty_id == candidate.faculty_id:
                    self._add(conflicts, ConflictType.FACULTY_CONFLICT, candidate, other)

            if (
                candidate_is_module
                and other.subject_id == candidate.subject_id
                and other.batch_id == candidate.batch_id
            ):
                other_window = self.catalog.time_slots.get(other.time_slot_id)
                if other_window is not None and window.overlaps_or_adjacent(other_window):
                    self._add(conflicts, ConflictType.MODULE_OVERLAP, candidate, other)

        if candidate.date is not None and self.calendar is not None:
            self._add_calendar_conflicts(conflicts, candidate)

        return sorted(
            conflicts.values(),
            key=lambda item: (SEVERITY_RANK[item.severity], item.conflict_type.value, item.id),
        )

    def detect_many(
        self,
        candidates: Sequence[EntryPlacement],
        existing: Iterable[EntryPlacement],
    ) -> list[list[ConflictDetail]]:
        """Check a request as one unit: every candidate also sees the candidates before it."""
        snapshot = list(existing)
        results: list[list[ConflictDetail]] = []
        for index, candidate in enumerate(candidates):
            results.append(self.detect(candidate, snapshot))
            snapshot.append(candidate.moved(request_index=index) if candidate.id is None else candidate)
        return results

    def is_clear(self, candidate: EntryPlacement, existing: Iterable[EntryPlacement], **kwargs) -> bool:
        return not self.detect(candidate, existing, **kwargs)

    def _add(
        self,
        conflicts: dict[tuple[str, ConflictType], ConflictDetail],
        conflict_type: ConflictType,
        candidate: EntryPlacement,
        other: EntryPlacement,
    ) -> None:
        key = (other.identity, conflict_type)
        if key in conflicts:
            return
        summary = self.summarize(other)
        conflicts[key] = ConflictDetail(
            id=f"{conflict_type.value.lower()}:{other.identity}",
            conflict_type=conflict_type,
            severity=SEVERITY_BY_TYPE[conflict_type],
            message=self._message(conflict_type, candidate, summary),
            conflicting_entry=summary,
        )

    def _add_calendar_conflicts(
        self,
        conflicts: dict[tuple[str, ConflictType], ConflictDetail],
        candidate: EntryPlacement,
    ) -> None:
        department = self.catalog.batch_department(candidate.batch_id)
        holidays = self.calendar.holidays_on(candidate.date, department)
        if holidays:
            names = ", ".join(item.name for item in holidays)
            conflicts[(f"holiday:{candidate.date.isoformat()}", ConflictType.HOLIDAY_SCHEDULING)] = ConflictDetail(
                id=f"holiday_scheduling:{candidate.date.isoformat()}",
                conflict_type=ConflictType.HOLIDAY_SCHEDULING,
                severity=SEVERITY_BY_TYPE[ConflictType.HOLIDAY_SCHEDULING],
                message=f"This date is a holiday: {names}",
                calendar_refs=[CalendarReference(id=item.id, name=item.name, kind="holiday") for item in holidays],
            )

        if candidate.entry_type != EntryType.REGULAR:
            return
        periods = [
            item for item in self.calendar.exam_periods_on(candidate.date, department) if item.block_regular_classes
        ]
        if periods:
            names = ", ".join(item.name for item in periods)
            conflicts[(f"exam:{candidate.date.isoformat()}", ConflictType.EXAM_PERIOD_CONFLICT)] = ConflictDetail(
                id=f"exam_period_conflict:{candidate.date.isoformat()}",
                conflict_type=ConflictType.EXAM_PERIOD_CONFLICT,
                severity=SEVERITY_BY_TYPE[ConflictType.EXAM_PERIOD_CONFLICT],
                message=f"Regular classes are blocked during exam period: {names}",
                calendar_refs=[CalendarReference(id=item.id, name=item.name, kind="exam_period") for item in periods],
            )

    def summarize(self, entry: EntryPlacement) -> ConflictingEntrySummary:
        window = self.catalog.time_slots.get(entry.time_slot_id)
        return ConflictingEntrySummary(
            entry_id=entry.id,
            request_index=entry.request_index if entry.id is None else None,
            batch_id=entry.batch_id,
            batch_name=self.catalog.batch_name(entry.batch_id),
            subject_id=entry.subject_id,
            subject_name=entry.custom_event_title or self.catalog.subject_name(entry.subject_id),
            faculty_id=entry.faculty_id,
            faculty_name=self.catalog.faculty_name(entry.faculty_id),
            time_slot_id=entry.time_slot_id,
            time_slot_name=window.name if window else None,
            start_time=window.start_time if window else None,
            end_time=window.end_time if window else None,
            day_of_week=entry.day_of_week,
            date=entry.date,
            entry_type=entry.entry_type,
        )

    def _message(
        self,
        conflict_type: ConflictType,
        candidate: EntryPlacement,
        other: ConflictingEntrySummary,
    ) -> str:
        when = other.date.isoformat() if other.date else f"every {other.day_of_week.value.title()}"
        slot = other.time_slot_name or other.time_slot_id
        subject = other.subject_name or "another class"
        if conflict_type == ConflictType.BATCH_DOUBLE_BOOKING:
            return f"Batch {other.batch_name} already has {subject} in {slot} ({when})"
        if conflict_type == ConflictType.FACULTY_CONFLICT:
            return (
                f"Faculty {other.faculty_name} is already teaching {subject} "
                f"to {other.batch_name} in {slot} ({when})"
            )
        return (
            f"Module {self.catalog.subject_name(candidate.subject_id)} is already scheduled for "
            f"{other.batch_name} in neighbouring slot {slot} ({when})"
        )
