"""
Auto-resolve strategy engine.

Every strategy works on hypothetical placements only and asks the conflict
detector whether they are clear; nothing here touches the database. Checks
belonging to one strategy run on a thread pool, and ranking starts only after
every strategy dispatched by a `resolve()` call has finished.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import timedelta
from itertools import combinations

from pydantic import TypeAdapter, ValidationError

from classgrid.core.exceptions import SchedulingValidationError
from classgrid.models.timetable_entry import EntryType
from classgrid.schemas.conflict import ConflictDetail, ConflictType
from classgrid.schemas.resolution import (
    AlternativeFacultyStrategy,
    EntryMove,
    NextDayStrategy,
    NextSlotStrategy,
    RescheduleConflictStrategy,
    Solution,
    SplitSessionStrategy,
    StrategyBase,
    StrategyConfig,
    StrategyKind,
)
from classgrid.schemas.timetable import TimetableEntryCandidate
from classgrid.services.catalog import ScheduleCatalog
from classgrid.services.conflict_service import ConflictDetector, EntryPlacement
from classgrid.services.time_model import DayOfWeek, TimeSlotWindow
from classgrid.services.workload import weekly_teaching_hours, workload_ratio

logger = logging.getLogger(__name__)

ENTRY_PRIORITY: dict[EntryType, int] = {
    EntryType.EXAM: 4,
    EntryType.REGULAR: 3,
    EntryType.MAKEUP: 2,
    EntryType.EXTRA: 1,
}

ENTRY_CONFLICT_TYPES = {
    ConflictType.BATCH_DOUBLE_BOOKING,
    ConflictType.FACULTY_CONFLICT,
    ConflictType.MODULE_OVERLAP,
}

SCORE_ELIMINATED_WEIGHT = 50
SCORE_DEVIATION_WEIGHT = 30
SCORE_QUALITY_WEIGHT = 20
HALF_DAY_MINUTES = 12 * 60

_strategy_list_adapter = TypeAdapter(list[StrategyConfig])


def parse_strategies(raw: Iterable[dict | StrategyBase]) -> list[StrategyBase]:
    items = [item.model_dump() if isinstance(item, StrategyBase) else item for item in raw]
    try:
        return _strategy_list_adapter.validate_python(items)
    except ValidationError as exc:
        raise SchedulingValidationError(
            "Invalid auto-resolve strategy configuration",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


@dataclass
class Proposal:
    entries: list[EntryPlacement]
    description: str
    changed_fields: list[str]
    deviation: float
    quality: float
    moves: list[tuple[EntryPlacement, EntryPlacement]] = field(default_factory=list)
    requires_approval: bool = False


@dataclass
class _SearchContext:
    candidate: EntryPlacement
    window: TimeSlotWindow
    existing: list[EntryPlacement]
    baseline: list[ConflictDetail]
    pool: Executor | None


class AutoResolveEngine:
    def __init__(self, detector: ConflictDetector, catalog: ScheduleCatalog | None = None, *, max_workers: int = 4):
        self.detector = detector
        self.catalog = catalog or detector.catalog
        self.max_workers = max(1, max_workers)
        self._handlers: dict[StrategyKind, Callable[[StrategyBase, _SearchContext], Proposal | None]] = {
            StrategyKind.next_slot: self._next_slot,
            StrategyKind.next_day: self._next_day,
            StrategyKind.alternative_faculty: self._alternative_faculty,
            StrategyKind.split_session: self._split_session,
            StrategyKind.reschedule_conflict: self._reschedule_conflict,
        }

    def resolve(
        self,
        candidate: EntryPlacement,
        conflicts: Sequence[ConflictDetail],
        strategies: Sequence[StrategyBase],
        existing: Iterable[EntryPlacement],
        *,
        max_solutions: int = 3,
        exclude_ids: Iterable[str] = (),
    ) -> list[Solution]:
        excluded = set(exclude_ids)
        snapshot = [item for item in existing if item.is_active and item.identity not in excluded]
        window = self.detector.validate(candidate)
        baseline = list(conflicts) or self.detector.detect(candidate, snapshot)
        if not baseline:
            return []

        enabled = sorted((item for item in strategies if item.enabled), key=lambda item: item.priority)
        solutions: list[Solution] = []

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            context = _SearchContext(
                candidate=candidate,
                window=window,
                existing=snapshot,
                baseline=baseline,
                pool=pool if self.max_workers > 1 else None,
            )
            for strategy in enabled:
                if len(solutions) >= max_solutions:
                    break
                kind = StrategyKind(strategy.kind)
                proposal = self._handlers[kind](strategy, context)
                if proposal is None:
                    logger.debug("Strategy %s found no clear placement", kind.value)
                    continue
                solutions.append(self._to_solution(strategy, kind, proposal, len(baseline), len(solutions)))

        solutions.sort(key=lambda item: (-item.score, item.priority))
        logger.info(
            "Auto-resolve produced %d solution(s) for batch %s in slot %s",
            len(solutions),
            candidate.batch_id,
            candidate.time_slot_id,
        )
        return solutions

    # -- evaluation helpers -------------------------------------------------

    def _evaluate(self, context: _SearchContext, func: Callable, items: Sequence) -> list:
        if context.pool is None or len(items) <= 1:
            return [func(item) for item in items]
        return list(context.pool.map(func, items))

    def _first_clear(
        self,
        context: _SearchContext,
        placements: Sequence[EntryPlacement],
        existing: Sequence[EntryPlacement] | None = None,
    ) -> EntryPlacement | None:
        world = context.existing if existing is None else existing
        verdicts = self._evaluate(context, lambda item: self.detector.is_clear(item, world), placements)
        for placement, clear in zip(placements, verdicts):
            if clear:
                return placement
        return None

    def _slots_by_closeness(self, origin: TimeSlotWindow, *, prefer_morning: bool = False) -> list[TimeSlotWindow]:
        slots = [item for item in self.catalog.ordered_slots() if item.id != origin.id]
        if prefer_morning:
            return sorted(slots, key=lambda item: (item.start_minutes, item.sort_order))
        later = [item for item in slots if item.start_minutes >= origin.start_minutes]
        earlier = [item for item in slots if item.start_minutes < origin.start_minutes]
        return later + sorted(earlier, key=lambda item: -item.start_minutes)

    def _shift_day(self, placement: EntryPlacement, offset: int) -> EntryPlacement:
        if placement.date is not None:
            moved_date = placement.date + timedelta(days=offset)
            return placement.moved(date=moved_date, day_of_week=DayOfWeek.from_date(moved_date))
        return placement.moved(day_of_week=placement.day_of_week.shifted(offset))

    # -- strategies ---------------------------------------------------------

    def _next_slot(self, strategy: NextSlotStrategy, context: _SearchContext) -> Proposal | None:
        origin = context.window
        slots = self._slots_by_closeness(origin, prefer_morning=strategy.prefer_morning)
        if strategy.max_hours_ahead is not None:
            # Bounds later slots only; earlier ones on the same day stay eligible.
            limit = strategy.max_hours_ahead * 60
            slots = [item for item in slots if item.start_minutes - origin.start_minutes <= limit]

        options: list[tuple[int, TimeSlotWindow]] = [(0, item) for item in slots]
        if not strategy.same_day:
            all_slots = self._slots_by_closeness(origin, prefer_morning=strategy.prefer_morning)
            for offset in range(1, 7):
                options.append((offset, origin))
                options.extend((offset, item) for item in all_slots)

        placements = [
            self._shift_day(context.candidate, offset).moved(time_slot_id=slot.id) for offset, slot in options
        ]
        chosen = self._first_clear(context, placements)
        if chosen is None:
            return None

        slot = self.catalog.slot(chosen.time_slot_id)
        offset = options[placements.index(chosen)][0]
        changed = ["time_slot_id"] if slot.id != origin.id else []
        if offset:
            changed.extend(["day_of_week"] + (["date"] if chosen.date is not None else []))
        deviation = min(1.0, abs(slot.start_minutes - origin.start_minutes) / HALF_DAY_MINUTES + offset / 7)
        return Proposal(
            entries=[chosen],
            description=(
                f"Move to {slot.name} ({slot.start_time}-{slot.end_time}) on {chosen.day_of_week.value.title()}"
            ),
            changed_fields=changed,
            deviation=deviation,
            quality=1.0,
        )

    def _next_day(self, strategy: NextDayStrategy, context: _SearchContext) -> Proposal | None:
        candidate = context.candidate
        department = self.catalog.batch_department(candidate.batch_id)
        calendar = self.detector.calendar
        placements: list[EntryPlacement] = []
        offsets: list[int] = []
        for offset in range(1, strategy.max_days_ahead + 1):
            if candidate.date is None and offset > 6:
                break
            moved = self._shift_day(candidate, offset)
            if strategy.skip_weekends and moved.day_of_week.is_weekend:
                continue
            if (
                strategy.skip_holidays
                and moved.date is not None
                and calendar is not None
                and calendar.holidays_on(moved.date, department)
            ):
                continue
            placements.append(moved)
            offsets.append(offset)

        chosen = self._first_clear(context, placements)
        if chosen is None:
            return None
        offset = offsets[placements.index(chosen)]
        when = chosen.date.isoformat() if chosen.date else chosen.day_of_week.value.title()
        return Proposal(
            entries=[chosen],
            description=f"Keep {context.window.name} but move to {when}",
            changed_fields=["day_of_week"] + (["date"] if chosen.date is not None else []),
            deviation=min(1.0, offset / max(7, strategy.max_days_ahead)),
            quality=0.8,
        )

    def _alternative_faculty(self, strategy: AlternativeFacultyStrategy, context: _SearchContext) -> Proposal | None:
        candidate = context.candidate
        current = self.catalog.faculty.get(candidate.faculty_id) if candidate.faculty_id else None
        department = current.department if current else None
        if department is None and candidate.subject_id in self.catalog.subjects:
            department = self.catalog.subjects[candidate.subject_id].department

        pool = [
            item
            for item in self.catalog.faculty.values()
            if item.is_active and item.id != candidate.faculty_id
        ]
        if strategy.same_department and department is not None:
            pool = [item for item in pool if item.department == department]

        added_hours = context.window.hours if candidate.date is None else 0.0
        loads = {
            item.id: weekly_teaching_hours(item.id, context.existing, self.catalog.time_slots) for item in pool
        }
        if strategy.check_workload:
            pool = [item for item in pool if loads[item.id] + added_hours <= item.max_hours]
        pool.sort(key=lambda item: (workload_ratio(loads[item.id], item.max_hours), item.name, item.id))

        chosen = self._first_clear(context, [candidate.moved(faculty_id=item.id) for item in pool])
        if chosen is None:
            return None
        faculty = self.catalog.faculty[chosen.faculty_id]
        return Proposal(
            entries=[chosen],
            description=f"Assign {faculty.name} instead",
            changed_fields=["faculty_id"],
            deviation=0.3,
            quality=1.0 - workload_ratio(loads[faculty.id] + added_hours, faculty.max_hours),
        )

    def _split_session(self, strategy: SplitSessionStrategy, context: _SearchContext) -> Proposal | None:
        origin = context.window
        pieces = [
            item
            for item in self._slots_by_closeness(origin)
            if strategy.minimum_duration <= item.duration_minutes < origin.duration_minutes
        ]
        placements = [context.candidate.moved(time_slot_id=item.id) for item in pieces]
        verdicts = self._evaluate(context, lambda item: self.detector.is_clear(item, context.existing), placements)
        clear = sorted(
            (slot for slot, ok in zip(pieces, verdicts) if ok),
            key=lambda item: (item.start_minutes, item.sort_order),
        )

        def consecutive(group: tuple[TimeSlotWindow, ...]) -> bool:
            return all(first.end_minutes == second.start_minutes for first, second in zip(group, group[1:]))

        for size in range(2, strategy.max_sessions + 1):
            groups = [
                group
                for group in combinations(clear, size)
                if sum(item.duration_minutes for item in group) >= origin.duration_minutes
                and not any(first.overlaps(second) for first, second in combinations(group, 2))
            ]
            groups.sort(
                key=lambda group: (
                    strategy.prefer_consecutive and not consecutive(group),
                    abs(group[0].start_minutes - origin.start_minutes),
                    sum(item.duration_minutes for item in group),
                )
            )
            for group in groups:
                entries = [context.candidate.moved(time_slot_id=item.id) for item in group]
                # Pieces must also be clear of each other (module spacing applies between them).
                if any(self.detector.detect_many(entries, context.existing)):
                    continue
                is_consecutive = consecutive(group)
                names = ", ".join(item.name for item in group)
                return Proposal(
                    entries=entries,
                    description=f"Split into {size} sessions: {names}",
                    changed_fields=["time_slot_id", "session_count"],
                    deviation=min(1.0, 0.4 + 0.1 * (size - 2)),
                    quality=0.6 if is_consecutive else 0.4,
                )
        return None

    def _reschedule_conflict(self, strategy: RescheduleConflictStrategy, context: _SearchContext) -> Proposal | None:
        candidate = context.candidate
        current = self.detector.detect(candidate, context.existing)
        if any(item.conflict_type not in ENTRY_CONFLICT_TYPES for item in current):
            return None
        blocking_ids = {
            item.conflicting_entry.entry_id
            for item in current
            if item.conflicting_entry is not None and item.conflicting_entry.entry_id is not None
        }
        if not blocking_ids:
            return None
        blocking = [item for item in context.existing if item.identity in blocking_ids]
        if strategy.only_lower_priority and any(
            ENTRY_PRIORITY[item.entry_type] >= ENTRY_PRIORITY[candidate.entry_type] for item in blocking
        ):
            return None

        world = [item for item in context.existing if item.identity not in blocking_ids] + [candidate]
        moves: list[tuple[EntryPlacement, EntryPlacement]] = []
        for entry in blocking:
            origin = self.catalog.slot(entry.time_slot_id)
            options = [entry.moved(time_slot_id=item.id) for item in self._slots_by_closeness(origin)]
            chosen = self._first_clear(context, options, existing=world)
            if chosen is None:
                return None
            moves.append((entry, chosen))
            world.append(chosen)

        if not self.detector.is_clear(candidate, [item for item in world if item is not candidate]):
            return None
        described = "; ".join(
            f"{self.catalog.subject_name(old.subject_id)} to {self.catalog.slot(new.time_slot_id).name}"
            for old, new in moves
        )
        return Proposal(
            entries=[candidate],
            description=f"Keep requested slot and move lower-priority class(es): {described}",
            changed_fields=["existing_entries"],
            deviation=0.5,
            quality=0.3,
            moves=moves,
            requires_approval=True,
        )

    # -- ranking ------------------------------------------------------------

    def _to_solution(
        self,
        strategy: StrategyBase,
        kind: StrategyKind,
        proposal: Proposal,
        baseline_count: int,
        index: int,
    ) -> Solution:
        resolved = baseline_count
        score = (
            SCORE_ELIMINATED_WEIGHT * (resolved / baseline_count)
            + SCORE_DEVIATION_WEIGHT * (1.0 - proposal.deviation)
            + SCORE_QUALITY_WEIGHT * max(0.0, min(1.0, proposal.quality))
        )
        return Solution(
            id=f"{kind.value}:{index}",
            strategy=kind,
            priority=strategy.priority,
            score=max(0, min(100, round(score))),
            description=proposal.description,
            entries=[TimetableEntryCandidate.from_placement(item) for item in proposal.entries],
            moves=[
                EntryMove(
                    entry_id=old.identity,
                    from_time_slot_id=old.time_slot_id,
                    from_day_of_week=old.day_of_week,
                    from_date=old.date,
                    time_slot_id=new.time_slot_id,
                    day_of_week=new.day_of_week,
                    date=new.date,
                )
                for old, new in proposal.moves
            ],
            changed_fields=proposal.changed_fields,
            conflicts_resolved=resolved,
            requires_approval=proposal.requires_approval,
        )
