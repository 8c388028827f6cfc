from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from classgrid.services.conflict_service import EntryPlacement
    from classgrid.services.time_model import TimeSlotWindow


def designation_workload_cap(designation: str | None) -> int:
    normalized = (designation or "").strip().lower()
    if "assistant professor" in normalized:
        return 16
    if "associate professor" in normalized or "professor" in normalized:
        return 14
    return 20


def constrained_max_hours(designation: str | None, requested_max_hours: int | None) -> int:
    cap = designation_workload_cap(designation)
    if requested_max_hours is None:
        return cap
    if requested_max_hours < 1:
        return 1
    return min(requested_max_hours, cap)


def weekly_teaching_hours(
    faculty_id: str,
    entries: Iterable["EntryPlacement"],
    time_slots: Mapping[str, "TimeSlotWindow"],
) -> float:
    """Hours per week carried by recurring templates; pinned one-off entries are not weekly load."""
    total = 0.0
    for entry in entries:
        if not entry.is_active or entry.faculty_id != faculty_id or entry.date is not None:
            continue
        window = time_slots.get(entry.time_slot_id)
        if window is not None:
            total += window.hours
    return total


def workload_ratio(current_hours: float, max_hours: int) -> float:
    if max_hours <= 0:
        return 1.0
    return min(1.0, current_hours / max_hours)
