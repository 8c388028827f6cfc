"""
Mutation paths for the timetable.

Every mutation follows the same order: snapshot the active entries, check the
whole request as one unit, write the rows in a single transaction, then
register one undo operation and publish one event. A failure anywhere before
`db.commit()` leaves nothing behind.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from classgrid.core.config import Settings
from classgrid.core.exceptions import (
    CollaboratorUnavailableError,
    ResourceNotFoundError,
    SchedulingConflictError,
    SchedulingValidationError,
)
from classgrid.models.timetable_entry import TimetableEntry
from classgrid.schemas.conflict import ConflictCheckResponse, ConflictDetail, ConflictSummary
from classgrid.schemas.recurrence import (
    ExpandRecurrenceRequest,
    ExpandRecurrenceResponse,
    OccurrenceOut,
    RecurrenceRule,
)
from classgrid.schemas.resolution import AutoResolveRequest, AutoResolveResponse, StrategyKind, default_strategies
from classgrid.schemas.timetable import (
    CommitRequest,
    CommitResponse,
    EntryConflicts,
    TimetableEntryCandidate,
    TimetableEntryOut,
    TimetableEntryUpdate,
)
from classgrid.schemas.undo import UndoEntityType, UndoOperationKind
from classgrid.services.auto_resolve import AutoResolveEngine
from classgrid.services.calendar import load_calendar, term_end_date
from classgrid.services.catalog import ScheduleCatalog, load_catalog
from classgrid.services.conflict_service import ConflictDetector, EntryPlacement, entry_to_placement
from classgrid.services.events import publish_timetable_event
from classgrid.services.recurrence import expand_to_list
from classgrid.services.undo_handlers import entry_snapshot
from classgrid.services.undo_manager import UndoManager, describe

logger = logging.getLogger(__name__)


@dataclass
class EntryMutation:
    entry: TimetableEntry
    conflicts: list[ConflictDetail]
    undo_operation_id: str | None
    message: str


def load_active_placements(db: Session) -> list[EntryPlacement]:
    try:
        rows = db.execute(select(TimetableEntry).where(TimetableEntry.is_active.is_(True))).scalars().all()
    except SQLAlchemyError as exc:
        logger.exception("Failed to load active timetable entries")
        raise CollaboratorUnavailableError("persistence store") from exc
    return [entry_to_placement(item) for item in rows]


def build_detector(db: Session) -> ConflictDetector:
    return ConflictDetector(load_catalog(db), load_calendar(db))


def ensure_references(catalog: ScheduleCatalog, candidate: EntryPlacement) -> None:
    unknown = [
        name
        for name, value, known in (
            ("batch_id", candidate.batch_id, catalog.batches),
            ("subject_id", candidate.subject_id, catalog.subjects),
            ("faculty_id", candidate.faculty_id, catalog.faculty),
        )
        if value is not None and value not in known
    ]
    if unknown:
        raise SchedulingValidationError(
            f"Candidate entry references unknown {', '.join(unknown)}",
            details={"unknown": unknown},
        )


def check_conflicts(
    db: Session,
    candidate: TimetableEntryCandidate,
    exclude_id: str | None = None,
) -> ConflictCheckResponse:
    detector = build_detector(db)
    placement = candidate.to_placement()
    ensure_references(detector.catalog, placement)
    conflicts = detector.detect(
        placement,
        load_active_placements(db),
        exclude_ids=[exclude_id] if exclude_id else (),
    )
    return ConflictCheckResponse(
        has_conflicts=bool(conflicts),
        conflicts=conflicts,
        summary=ConflictSummary.from_conflicts(conflicts),
    )


def resolve_rule(db: Session, rule: RecurrenceRule) -> RecurrenceRule:
    if not rule.until_term_end or rule.term_end_date is not None:
        return rule
    resolved = term_end_date(db, rule.term_id)
    if resolved is None:
        raise ResourceNotFoundError("Academic term", rule.term_id)
    return rule.model_copy(update={"term_end_date": resolved})


def preview_recurrence(db: Session, payload: ExpandRecurrenceRequest, settings: Settings) -> ExpandRecurrenceResponse:
    session_hours = None
    if payload.time_slot_id is not None:
        session_hours = load_catalog(db).slot(payload.time_slot_id).hours
    occurrences = expand_to_list(
        resolve_rule(db, payload.rule),
        payload.start_date,
        payload.day_of_week,
        session_hours=session_hours,
        safety_ceiling=settings.recurrence_safety_ceiling,
        align_start=payload.align_start,
    )
    return ExpandRecurrenceResponse(
        count=len(occurrences),
        total_hours=round(session_hours * len(occurrences), 2) if session_hours is not None else None,
        occurrences=[OccurrenceOut(date=item.date, day_of_week=item.day_of_week) for item in occurrences],
    )


def expand_request(
    db: Session,
    request: CommitRequest,
    catalog: ScheduleCatalog,
    settings: Settings,
) -> list[EntryPlacement]:
    if request.recurrence is None:
        return [item.to_placement() for item in request.entries]

    template = request.entries[0]
    occurrences = expand_to_list(
        resolve_rule(db, request.recurrence),
        request.start_date or template.date,
        template.day_of_week,
        session_hours=catalog.slot(template.time_slot_id).hours,
        safety_ceiling=settings.recurrence_safety_ceiling,
        align_start=request.align_start,
    )
    base = template.to_placement()
    return [base.moved(date=item.date, day_of_week=item.day_of_week) for item in occurrences]


def _conflict_payload(flagged: list[EntryConflicts]) -> list[dict]:
    return [item.model_dump(mode="json") for item in flagged]


def commit_entries(
    db: Session,
    undo_manager: UndoManager,
    request: CommitRequest,
    settings: Settings,
) -> CommitResponse:
    undo_manager.check_timeout(request.undo_timeout_seconds)
    detector = build_detector(db)
    catalog = detector.catalog
    candidates = expand_request(db, request, catalog, settings)
    for candidate in candidates:
        ensure_references(catalog, candidate)

    snapshot = load_active_placements(db)
    accepted: list[EntryPlacement] = []
    flagged: list[EntryConflicts] = []
    for index, candidate in enumerate(candidates):
        candidate = candidate.moved(request_index=index)
        conflicts = detector.detect(candidate, snapshot)
        if conflicts:
            flagged.append(
                EntryConflicts(
                    request_index=index,
                    candidate=TimetableEntryCandidate.from_placement(candidate),
                    conflicts=conflicts,
                )
            )
            if request.skip_conflicting:
                continue
        accepted.append(candidate)
        snapshot.append(candidate)

    if flagged and not (request.force_ignore_conflicts or request.skip_conflicting):
        raise SchedulingConflictError(
            f"{len(flagged)} of {len(candidates)} entries conflict with the existing timetable",
            conflicts=_conflict_payload(flagged),
        )
    if not accepted:
        return CommitResponse(
            committed=False,
            message="Every entry conflicted with the existing timetable; nothing was committed",
            skipped=flagged,
        )

    rows = [
        TimetableEntry(
            batch_id=item.batch_id,
            subject_id=item.subject_id,
            faculty_id=item.faculty_id,
            time_slot_id=item.time_slot_id,
            day_of_week=item.day_of_week,
            date=item.date,
            entry_type=item.entry_type,
            notes=item.notes,
            custom_event_title=item.custom_event_title,
            is_active=True,
        )
        for item in accepted
    ]
    try:
        db.add_all(rows)
        db.commit()
        for row in rows:
            db.refresh(row)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to commit %d timetable entries", len(rows))
        raise CollaboratorUnavailableError("persistence store") from exc

    created_ids = [row.id for row in rows]
    name = rows[0].custom_event_title or catalog.subject_name(rows[0].subject_id)
    description = describe(UndoEntityType.TIMETABLE_ENTRY, name)
    if len(rows) > 1:
        description = f"{len(rows)} occurrences of {description}"
    undo_id = undo_manager.register(
        UndoEntityType.TIMETABLE_ENTRY,
        created_ids[0],
        UndoOperationKind.CREATE,
        {"entry_ids": created_ids},
        timeout_seconds=request.undo_timeout_seconds,
        description=description,
    )
    record = undo_manager.get(undo_id)
    publish_timetable_event("entry", "created", created_ids, undo_operation_id=undo_id)

    if flagged and request.force_ignore_conflicts:
        message = f"Committed {len(rows)} entries, {len(flagged)} despite conflicts"
    elif flagged:
        message = f"Committed {len(rows)} entries, skipped {len(flagged)} conflicting"
    else:
        message = f"Committed {len(rows)} entries"
    logger.info("%s (undo %s)", message, undo_id)

    return CommitResponse(
        committed=True,
        message=message,
        created=[TimetableEntryOut.model_validate(row) for row in rows],
        conflicts=flagged if request.force_ignore_conflicts else [],
        skipped=flagged if request.skip_conflicting else [],
        undo_operation_id=undo_id,
        undo_expires_at=record.expires_at if record else None,
    )


def get_active_entry(db: Session, entry_id: str) -> TimetableEntry:
    try:
        entry = db.get(TimetableEntry, entry_id)
    except SQLAlchemyError as exc:
        logger.exception("Failed to load timetable entry %s", entry_id)
        raise CollaboratorUnavailableError("persistence store") from exc
    if entry is None or not entry.is_active:
        raise ResourceNotFoundError("Timetable entry", entry_id)
    return entry


def update_entry(
    db: Session,
    undo_manager: UndoManager,
    entry_id: str,
    payload: TimetableEntryUpdate,
) -> EntryMutation:
    undo_manager.check_timeout(payload.undo_timeout_seconds)
    entry = get_active_entry(db, entry_id)
    before = entry_snapshot(entry)
    changes = payload.model_dump(exclude_unset=True, exclude={"force_ignore_conflicts", "undo_timeout_seconds"})
    if not changes:
        raise SchedulingValidationError("Update does not change any field")

    detector = build_detector(db)
    placement = entry_to_placement(entry).moved(**changes)
    ensure_references(detector.catalog, placement)
    conflicts = detector.detect(placement, load_active_placements(db))
    if conflicts and not payload.force_ignore_conflicts:
        raise SchedulingConflictError(
            f"Updated entry would conflict with {len(conflicts)} scheduled item(s)",
            conflicts=[item.model_dump(mode="json") for item in conflicts],
        )

    for name, value in changes.items():
        setattr(entry, name, value)
    try:
        db.commit()
        db.refresh(entry)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to update timetable entry %s", entry_id)
        raise CollaboratorUnavailableError("persistence store") from exc

    undo_id = undo_manager.register(
        UndoEntityType.TIMETABLE_ENTRY,
        entry.id,
        UndoOperationKind.UPDATE,
        {"before": before},
        timeout_seconds=payload.undo_timeout_seconds,
        entity_name=entry.custom_event_title or detector.catalog.subject_name(entry.subject_id),
    )
    publish_timetable_event("entry", "updated", [entry.id], undo_operation_id=undo_id)
    return EntryMutation(
        entry=entry,
        conflicts=conflicts,
        undo_operation_id=undo_id,
        message="Timetable entry updated" + (" despite conflicts" if conflicts else ""),
    )


def delete_entry(
    db: Session,
    undo_manager: UndoManager,
    entry_id: str,
    undo_timeout_seconds: float | None = None,
) -> EntryMutation:
    undo_manager.check_timeout(undo_timeout_seconds)
    entry = get_active_entry(db, entry_id)
    before = entry_snapshot(entry)
    entry.is_active = False
    try:
        db.commit()
        db.refresh(entry)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to delete timetable entry %s", entry_id)
        raise CollaboratorUnavailableError("persistence store") from exc

    catalog = load_catalog(db)
    undo_id = undo_manager.register(
        UndoEntityType.TIMETABLE_ENTRY,
        entry.id,
        UndoOperationKind.DELETE,
        {"before": before},
        timeout_seconds=undo_timeout_seconds,
        entity_name=entry.custom_event_title or catalog.subject_name(entry.subject_id),
    )
    publish_timetable_event("entry", "deleted", [entry.id], undo_operation_id=undo_id)
    return EntryMutation(entry=entry, conflicts=[], undo_operation_id=undo_id, message="Timetable entry deleted")


def auto_resolve(db: Session, request: AutoResolveRequest, settings: Settings) -> AutoResolveResponse:
    detector = build_detector(db)
    candidate = request.candidate.to_placement()
    ensure_references(detector.catalog, candidate)
    strategies = request.strategies if request.strategies is not None else default_strategies()
    existing = load_active_placements(db)
    exclude_ids = [request.exclude_id] if request.exclude_id else []
    if not request.conflicts and detector.is_clear(candidate, existing, exclude_ids=exclude_ids):
        return AutoResolveResponse(resolved=True, message="Candidate has no conflicts", solutions=[])

    engine = AutoResolveEngine(detector, max_workers=settings.resolve_max_workers)
    solutions = engine.resolve(
        candidate,
        request.conflicts,
        strategies,
        existing,
        max_solutions=request.max_solutions or settings.resolve_max_solutions,
        exclude_ids=exclude_ids,
    )
    considered = [StrategyKind(item.kind) for item in sorted(strategies, key=lambda s: s.priority) if item.enabled]
    if solutions:
        message = f"Found {len(solutions)} solution(s)"
    elif not considered:
        message = "No auto-resolve strategy is enabled"
    else:
        message = "No conflict-free alternative found with the enabled strategies"
    return AutoResolveResponse(
        resolved=bool(solutions),
        message=message,
        solutions=solutions,
        strategies_considered=considered,
    )
