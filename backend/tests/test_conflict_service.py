from datetime import date

import pytest

from classgrid.core.exceptions import SchedulingValidationError
from classgrid.models.timetable_entry import EntryType
from classgrid.schemas.conflict import ConflictSeverity, ConflictType
from classgrid.services.calendar import CalendarSnapshot, ExamPeriodInfo, HolidayInfo
from classgrid.services.conflict_service import ConflictDetector
from classgrid.services.time_model import DayOfWeek

MONDAY = date(2025, 1, 6)


def test_same_batch_same_slot_is_a_single_batch_double_booking(catalog, placement):
    existing = [placement(id="a")]
    candidate = placement(faculty_id="f2")

    conflicts = ConflictDetector(catalog).detect(candidate, existing)

    assert len(conflicts) == 1
    assert conflicts[0].conflict_type == ConflictType.BATCH_DOUBLE_BOOKING
    assert conflicts[0].severity == ConflictSeverity.critical
    assert conflicts[0].conflicting_entry.entry_id == "a"
    assert "CSE-A" in conflicts[0].message


def test_same_faculty_in_another_batch_is_a_faculty_conflict(catalog, placement):
    conflicts = ConflictDetector(catalog).detect(placement(batch_id="b2"), [placement(id="a")])

    assert [item.conflict_type for item in conflicts] == [ConflictType.FACULTY_CONFLICT]
    assert "Dr. Rao" in conflicts[0].message


def test_batch_and_faculty_conflicts_are_both_reported(catalog, placement):
    conflicts = ConflictDetector(catalog).detect(placement(), [placement(id="a")])

    assert [item.conflict_type for item in conflicts] == [
        ConflictType.BATCH_DOUBLE_BOOKING,
        ConflictType.FACULTY_CONFLICT,
    ]


@pytest.mark.parametrize(
    "other",
    [
        {"day_of_week": DayOfWeek.TUESDAY},
        {"time_slot_id": "s2"},
        {"is_active": False},
        {"batch_id": "b2", "faculty_id": "f2"},
    ],
)
def test_non_colliding_entries_are_ignored(catalog, placement, other):
    existing = [placement(id="a", **other)]
    assert ConflictDetector(catalog).detect(placement(), existing) == []


def test_excluded_entry_and_the_candidate_itself_are_ignored(catalog, placement):
    existing = [placement(id="a"), placement(id="self")]
    detector = ConflictDetector(catalog)

    assert detector.detect(placement(), existing, exclude_ids=["a", "self"]) == []
    assert len(detector.detect(placement(id="self"), existing)) == 2


def test_pinned_dates_only_collide_on_the_same_day(catalog, placement):
    detector = ConflictDetector(catalog)
    pinned = placement(date=MONDAY)

    assert detector.detect(pinned, [placement(id="a", date=date(2025, 1, 13))]) == []
    assert len(detector.detect(pinned, [placement(id="a", date=MONDAY)])) == 2
    # A weekly template occupies every Monday.
    assert len(detector.detect(pinned, [placement(id="a")])) == 2
    assert len(detector.detect(placement(), [placement(id="a", date=MONDAY)])) == 2


def test_module_in_adjacent_slot_for_same_batch_overlaps(catalog, placement):
    existing = [placement(id="a", subject_id="mod", time_slot_id="s1")]
    detector = ConflictDetector(catalog)

    adjacent = detector.detect(placement(subject_id="mod", faculty_id="f2", time_slot_id="s2"), existing)
    assert [item.conflict_type for item in adjacent] == [ConflictType.MODULE_OVERLAP]
    assert adjacent[0].severity == ConflictSeverity.high

    assert detector.detect(placement(subject_id="mod", faculty_id="f2", time_slot_id="s3"), existing) == []
    assert detector.detect(placement(subject_id="math", faculty_id="f2", time_slot_id="s2"), existing) == []


def test_holidays_block_dated_entries_within_scope(catalog, placement):
    calendar = CalendarSnapshot(
        holidays=[
            HolidayInfo(id="h1", name="Pongal", date=MONDAY),
            HolidayInfo(id="h2", name="ECE Fest", date=date(2025, 1, 13), department="ECE"),
        ]
    )
    detector = ConflictDetector(catalog, calendar)

    conflicts = detector.detect(placement(date=MONDAY), [])
    assert [item.conflict_type for item in conflicts] == [ConflictType.HOLIDAY_SCHEDULING]
    assert conflicts[0].severity == ConflictSeverity.medium
    assert conflicts[0].calendar_refs[0].id == "h1"

    assert detector.detect(placement(date=date(2025, 1, 13)), []) == []
    assert detector.detect(placement(), []) == []


def test_exam_periods_block_only_regular_entries(catalog, placement):
    calendar = CalendarSnapshot(
        exam_periods=[
            ExamPeriodInfo(id="e1", name="Midterms", start_date=date(2025, 1, 6), end_date=date(2025, 1, 10)),
        ]
    )
    detector = ConflictDetector(catalog, calendar)

    regular = detector.detect(placement(date=MONDAY), [])
    assert [item.conflict_type for item in regular] == [ConflictType.EXAM_PERIOD_CONFLICT]
    assert regular[0].severity == ConflictSeverity.low
    assert detector.detect(placement(date=MONDAY, entry_type=EntryType.MAKEUP), []) == []

    open_calendar = CalendarSnapshot(
        exam_periods=[
            ExamPeriodInfo(
                id="e2",
                name="Internal assessment",
                start_date=date(2025, 1, 6),
                end_date=date(2025, 1, 10),
                block_regular_classes=False,
            )
        ]
    )
    assert ConflictDetector(catalog, open_calendar).detect(placement(date=MONDAY), []) == []


def test_validation_failures(catalog, placement):
    detector = ConflictDetector(catalog)

    with pytest.raises(SchedulingValidationError) as missing:
        detector.detect(placement(faculty_id=None), [])
    assert missing.value.details["missing"] == ["faculty_id"]

    assert detector.detect(placement(faculty_id=None, allow_unassigned=True), []) == []

    with pytest.raises(SchedulingValidationError):
        detector.detect(placement(date=date(2025, 1, 7)), [])

    with pytest.raises(SchedulingValidationError):
        detector.detect(placement(time_slot_id="missing"), [])


def test_detect_many_checks_a_request_as_one_unit(catalog, placement):
    results = ConflictDetector(catalog).detect_many(
        [placement(), placement(faculty_id="f2"), placement(batch_id="b2", faculty_id="f3", time_slot_id="s2")],
        [],
    )

    assert results[0] == []
    assert [item.conflict_type for item in results[1]] == [ConflictType.BATCH_DOUBLE_BOOKING]
    assert results[1][0].conflicting_entry.request_index == 0
    assert results[2] == []


def test_detection_is_deterministic(catalog, placement):
    existing = [
        placement(id="a"),
        placement(id="b", batch_id="b2"),
        placement(id="c", subject_id="mod", time_slot_id="s2", faculty_id="f3"),
    ]
    detector = ConflictDetector(catalog)
    candidate = placement(subject_id="mod")

    first = detector.detect(candidate, existing)
    assert first == detector.detect(candidate, list(reversed(existing)))
    assert [item.conflict_type for item in first] == [
        ConflictType.BATCH_DOUBLE_BOOKING,
        ConflictType.FACULTY_CONFLICT,
        ConflictType.FACULTY_CONFLICT,
        ConflictType.MODULE_OVERLAP,
    ]
