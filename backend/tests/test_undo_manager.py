import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from classgrid.core.exceptions import (
    CollaboratorUnavailableError,
    ConfigurationError,
    ResourceNotFoundError,
    SchedulingValidationError,
    UndoFailedError,
)
from classgrid.schemas.undo import UndoEntityType, UndoOperationKind, UndoStatus
from classgrid.services.undo_manager import UndoManager, describe


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def manager(clock):
    undo_manager = UndoManager(clock=clock)
    yield undo_manager
    undo_manager.clear()


def _register(manager, **kwargs):
    return manager.register(
        UndoEntityType.TIMETABLE_ENTRY,
        "entry-1",
        UndoOperationKind.DELETE,
        {"before": {"id": "entry-1"}},
        entity_name="Mathematics",
        **kwargs,
    )


def test_register_tracks_a_pending_operation(manager):
    operation_id = _register(manager)

    record = manager.get(operation_id)
    assert record is not None
    assert record.description == 'class "Mathematics"'
    assert (record.expires_at - record.created_at).total_seconds() == 30
    assert manager.can_undo(operation_id)
    assert manager.remaining_time(operation_id) == 30
    assert [item.id for item in manager.pending()] == [operation_id]


def test_execute_applies_the_inverse_exactly_once(manager):
    applied = []
    operation_id = _register(manager)

    first = manager.execute(operation_id, lambda op: applied.append(op.id) or [op.entity_id])
    second = manager.execute(operation_id, lambda op: applied.append(op.id) or [op.entity_id])

    assert first.success is True
    assert first.status == UndoStatus.EXECUTED
    assert first.message == 'Restored class "Mathematics"'
    assert first.affected_ids == ["entry-1"]
    assert second.success is False
    assert second.status == UndoStatus.NOT_FOUND
    assert applied == [operation_id]


def test_timer_expiry_makes_the_operation_unavailable():
    manager = UndoManager()
    applied = []
    operation_id = _register(manager, timeout_seconds=0.05)

    time.sleep(0.3)
    result = manager.execute(operation_id, lambda op: applied.append(op.id))

    assert result.status == UndoStatus.NOT_FOUND
    assert applied == []
    assert manager.get(operation_id) is None


def test_execute_after_deadline_reports_expired_without_applying(manager, clock):
    applied = []
    operation_id = _register(manager, timeout_seconds=60)

    clock.advance(61)
    assert manager.remaining_time(operation_id) == 0
    assert not manager.can_undo(operation_id)

    result = manager.execute(operation_id, lambda op: applied.append(op.id))

    assert result.status == UndoStatus.EXPIRED
    assert applied == []
    assert manager.execute(operation_id, lambda op: applied.append(op.id)).status == UndoStatus.NOT_FOUND


def test_expire_is_idempotent(manager):
    operation_id = _register(manager)

    manager.expire(operation_id)
    manager.expire(operation_id)

    assert manager.get(operation_id) is None
    assert manager.remaining_time(operation_id) == 0


def test_concurrent_execute_applies_once(manager):
    operation_id = _register(manager)
    applied = []
    results = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        results.append(manager.execute(operation_id, lambda op: applied.append(op.id)))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(applied) == 1
    assert sum(1 for item in results if item.success) == 1
    assert {item.status for item in results if not item.success} == {UndoStatus.NOT_FOUND}


def test_failed_inverse_raises_and_is_not_requeued(manager):
    operation_id = _register(manager)

    def broken(op):
        raise ResourceNotFoundError("Timetable entry", op.entity_id)

    with pytest.raises(UndoFailedError) as exc:
        manager.execute(operation_id, broken)

    assert exc.value.details["operation_id"] == operation_id
    assert manager.get(operation_id) is None


def test_timeout_bounds(manager):
    with pytest.raises(SchedulingValidationError):
        _register(manager, timeout_seconds=301)
    with pytest.raises(SchedulingValidationError):
        _register(manager, timeout_seconds=0)
    with pytest.raises(ConfigurationError):
        UndoManager(default_timeout_seconds=600, max_timeout_seconds=300)


def test_clear_drops_everything(manager):
    for _ in range(3):
        _register(manager)

    manager.clear()

    assert manager.pending() == []


def test_descriptions_per_entity_type():
    assert describe(UndoEntityType.HOLIDAY, "Pongal") == 'holiday "Pongal"'
    assert describe(UndoEntityType.TIMESLOT, "Period 1") == 'time slot "Period 1"'
    assert describe(UndoEntityType.BATCH) == 'batch "item"'


def test_store_outage_keeps_its_status_and_the_operation(manager):
    operation_id = _register(manager)

    def store_down(op):
        raise CollaboratorUnavailableError("persistence store")

    with pytest.raises(CollaboratorUnavailableError) as exc:
        manager.execute(operation_id, store_down)

    assert exc.value.status_code == 503
    assert exc.value.details["retryable"] is True
    assert manager.get(operation_id) is not None

    retried = manager.execute(operation_id, lambda op: [op.entity_id])
    assert retried.success is True


def test_outage_after_the_deadline_is_not_requeued(manager, clock):
    operation_id = _register(manager, timeout_seconds=60)

    def store_down(op):
        clock.advance(120)
        raise CollaboratorUnavailableError("persistence store")

    with pytest.raises(CollaboratorUnavailableError):
        manager.execute(operation_id, store_down)

    assert manager.get(operation_id) is None
