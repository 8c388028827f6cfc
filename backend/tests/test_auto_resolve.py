from datetime import date

import pytest

from classgrid.core.exceptions import SchedulingValidationError
from classgrid.models.timetable_entry import EntryType
from classgrid.schemas.resolution import (
    AlternativeFacultyStrategy,
    NextDayStrategy,
    NextSlotStrategy,
    RescheduleConflictStrategy,
    SplitSessionStrategy,
    StrategyKind,
    default_strategies,
)
from classgrid.services.auto_resolve import AutoResolveEngine, parse_strategies
from classgrid.services.calendar import CalendarSnapshot, HolidayInfo
from classgrid.services.conflict_service import ConflictDetector
from classgrid.services.time_model import DayOfWeek, TimeSlotWindow


def _resolve(detector, candidate, existing, strategies, **kwargs):
    engine = AutoResolveEngine(detector, max_workers=kwargs.pop("max_workers", 4))
    return engine.resolve(candidate, [], strategies, existing, **kwargs)


def _assert_clear(detector, solutions, existing):
    for solution in solutions:
        if solution.requires_approval:
            continue
        for entry in solution.entries:
            assert detector.detect(entry.to_placement(), existing) == []


def test_alternative_faculty_only_changes_the_faculty(catalog, placement):
    detector = ConflictDetector(catalog)
    existing = [placement(id="a", batch_id="b2")]
    candidate = placement()

    solutions = _resolve(detector, candidate, existing, [AlternativeFacultyStrategy(enabled=True)])

    assert len(solutions) == 1
    solution = solutions[0]
    assert solution.strategy == StrategyKind.alternative_faculty
    assert solution.changed_fields == ["faculty_id"]
    for entry in solution.entries:
        assert entry.faculty_id == "f2"
        assert (entry.batch_id, entry.time_slot_id, entry.day_of_week, entry.date, entry.subject_id) == (
            candidate.batch_id,
            candidate.time_slot_id,
            candidate.day_of_week,
            candidate.date,
            candidate.subject_id,
        )
    _assert_clear(detector, solutions, existing)


def test_alternative_faculty_respects_department_scope(catalog, placement):
    detector = ConflictDetector(catalog)
    existing = [placement(id="a", batch_id="b2"), placement(id="b", batch_id="b3", faculty_id="f2")]

    scoped = _resolve(detector, placement(), existing, [AlternativeFacultyStrategy(enabled=True)])
    assert scoped == []

    open_pool = _resolve(
        detector,
        placement(),
        existing,
        [AlternativeFacultyStrategy(enabled=True, same_department=False)],
    )
    assert [item.entries[0].faculty_id for item in open_pool] == ["f3"]


def test_next_slot_moves_to_the_closest_clear_slot(catalog, placement):
    detector = ConflictDetector(catalog)
    existing = [placement(id="a", faculty_id="f2")]

    solutions = _resolve(detector, placement(), existing, [NextSlotStrategy()])

    assert len(solutions) == 1
    assert solutions[0].entries[0].time_slot_id == "s2"
    assert solutions[0].changed_fields == ["time_slot_id"]
    assert 80 <= solutions[0].score <= 100
    _assert_clear(detector, solutions, existing)


def test_next_slot_honours_max_hours_ahead(catalog, placement):
    detector = ConflictDetector(catalog)
    existing = [
        placement(id="a", faculty_id="f2"),
        placement(id="b", faculty_id="f2", time_slot_id="s2"),
        placement(id="c", faculty_id="f2", time_slot_id="s3"),
    ]

    assert _resolve(detector, placement(), existing, [NextSlotStrategy(max_hours_ahead=2)]) == []
    widened = _resolve(detector, placement(), existing, [NextSlotStrategy(max_hours_ahead=6)])
    assert widened[0].entries[0].time_slot_id == "s4"


def test_max_hours_ahead_does_not_bound_earlier_slots(catalog, placement):
    detector = ConflictDetector(catalog)
    existing = [placement(id="a", faculty_id="f2", time_slot_id="s4")]

    solutions = _resolve(detector, placement(time_slot_id="s4"), existing, [NextSlotStrategy(max_hours_ahead=1)])

    assert solutions[0].entries[0].time_slot_id == "s3"
    _assert_clear(detector, solutions, existing)


def test_next_day_skips_holidays_for_pinned_entries(catalog, placement):
    calendar = CalendarSnapshot(holidays=[HolidayInfo(id="h1", name="Pongal", date=date(2025, 1, 7))])
    detector = ConflictDetector(catalog, calendar)
    existing = [placement(id="a", faculty_id="f2")]
    candidate = placement(date=date(2025, 1, 6))

    solutions = _resolve(detector, candidate, existing, [NextDayStrategy()])

    entry = solutions[0].entries[0]
    assert entry.date == date(2025, 1, 8)
    assert entry.day_of_week == DayOfWeek.WEDNESDAY
    assert entry.time_slot_id == "s1"
    _assert_clear(detector, solutions, existing)


def test_next_day_for_weekly_templates_changes_the_weekday(catalog, placement):
    detector = ConflictDetector(catalog)
    existing = [placement(id="a", faculty_id="f2"), placement(id="b", faculty_id="f2", day_of_week=DayOfWeek.TUESDAY)]

    solutions = _resolve(detector, placement(), existing, [NextDayStrategy()])

    assert solutions[0].entries[0].day_of_week == DayOfWeek.WEDNESDAY
    assert solutions[0].entries[0].date is None


def test_split_session_prefers_consecutive_pieces(catalog, placement):
    catalog.time_slots["long"] = TimeSlotWindow.from_strings(
        id="long", name="Double", start_time="09:00", end_time="11:00", sort_order=0
    )
    detector = ConflictDetector(catalog)
    existing = [placement(id="a", batch_id="b2", time_slot_id="long")]
    candidate = placement(time_slot_id="long")

    solutions = _resolve(detector, candidate, existing, [SplitSessionStrategy(enabled=True)])

    assert len(solutions) == 1
    assert [item.time_slot_id for item in solutions[0].entries] == ["s1", "s2"]
    _assert_clear(detector, solutions, existing)


def test_reschedule_conflict_proposes_moving_lower_priority_entries(catalog, placement):
    detector = ConflictDetector(catalog)
    existing = [placement(id="a", faculty_id="f2")]
    exam = placement(entry_type=EntryType.EXAM)

    solutions = _resolve(detector, exam, existing, [RescheduleConflictStrategy(enabled=True)])

    assert len(solutions) == 1
    solution = solutions[0]
    assert solution.requires_approval is True
    assert solution.entries[0].time_slot_id == "s1"
    assert [(move.entry_id, move.time_slot_id) for move in solution.moves] == [("a", "s2")]

    regular = _resolve(detector, placement(), existing, [RescheduleConflictStrategy(enabled=True)])
    assert regular == []


def test_solutions_are_ranked_and_capped(catalog, placement):
    detector = ConflictDetector(catalog)
    existing = [placement(id="a", batch_id="b2")]
    strategies = [item.model_copy(update={"enabled": True}) for item in default_strategies()]

    solutions = _resolve(detector, placement(), existing, strategies, max_solutions=2)

    assert len(solutions) == 2
    keys = [(-item.score, item.priority) for item in solutions]
    assert keys == sorted(keys)
    _assert_clear(detector, solutions, existing)


def test_sequential_and_parallel_runs_agree(catalog, placement):
    detector = ConflictDetector(catalog)
    existing = [placement(id="a", faculty_id="f2")]
    strategies = default_strategies()

    serial = _resolve(detector, placement(), existing, strategies, max_workers=1)
    parallel = _resolve(detector, placement(), existing, strategies, max_workers=8)

    assert serial == parallel


def test_nothing_to_do_without_conflicts_or_enabled_strategies(catalog, placement):
    detector = ConflictDetector(catalog)
    existing = [placement(id="a", faculty_id="f2")]

    assert _resolve(detector, placement(batch_id="b2", faculty_id="f1"), existing, default_strategies()) == []
    disabled = [NextSlotStrategy(enabled=False)]
    assert _resolve(detector, placement(), existing, disabled) == []


@pytest.mark.parametrize(
    "raw",
    [
        [{"kind": "next_slot", "bogus": True}],
        [{"kind": "teleport"}],
        [{"kind": "reschedule_conflict", "require_approval": False}],
        [{"kind": "split_session", "max_sessions": 9}],
    ],
)
def test_invalid_strategy_configs_are_rejected(raw):
    with pytest.raises(SchedulingValidationError):
        parse_strategies(raw)


def test_parse_strategies_builds_tagged_variants():
    parsed = parse_strategies([{"kind": "next_day", "max_days_ahead": 3}, NextSlotStrategy(prefer_morning=True)])

    assert isinstance(parsed[0], NextDayStrategy)
    assert parsed[0].max_days_ahead == 3
    assert isinstance(parsed[1], NextSlotStrategy)
    assert parsed[1].prefer_morning is True
