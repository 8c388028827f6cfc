"""
Time-bounded undo registry.

Each registered operation is PENDING until it is either executed or expires;
both transitions are terminal. The expiry timer and an explicit `execute()`
race on the same id, and whichever pops the record from the registry first
wins. `dict.pop` is atomic under the interpreter, so no lock is shared across
operation ids.

An inverse that could not be applied because the store was unavailable or
because it would reintroduce a clash is put back with its original deadline.
Any other failure consumes the operation.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from classgrid.core.exceptions import (
    AppError,
    CollaboratorUnavailableError,
    ConfigurationError,
    SchedulingConflictError,
    SchedulingValidationError,
    UndoFailedError,
)
from classgrid.schemas.undo import (
    UndoEntityType,
    UndoOperationKind,
    UndoOperationOut,
    UndoResult,
    UndoStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
MAX_TIMEOUT_SECONDS = 300.0

_ENTITY_LABELS = {
    UndoEntityType.TIMETABLE_ENTRY: "class",
    UndoEntityType.HOLIDAY: "holiday",
    UndoEntityType.FACULTY: "faculty",
    UndoEntityType.SUBJECT: "subject",
    UndoEntityType.BATCH: "batch",
    UndoEntityType.TIMESLOT: "time slot",
}

_RESULT_VERBS = {
    UndoOperationKind.CREATE: "Removed",
    UndoOperationKind.UPDATE: "Reverted",
    UndoOperationKind.DELETE: "Restored",
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def describe(entity_type: UndoEntityType, entity_name: str | None = None) -> str:
    label = _ENTITY_LABELS.get(entity_type, entity_type.value.lower())
    return f'{label} "{entity_name or "item"}"'


@dataclass
class UndoOperation:
    id: str
    entity_type: UndoEntityType
    entity_id: str
    operation: UndoOperationKind
    inverse_data: dict[str, Any]
    description: str
    created_at: datetime
    expires_at: datetime
    timer: threading.Timer | None = field(default=None, repr=False, compare=False)


InverseApplier = Callable[[UndoOperation], list[str] | None]


class UndoManager:
    def __init__(
        self,
        default_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_timeout_seconds: float = MAX_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        if default_timeout_seconds <= 0 or default_timeout_seconds > max_timeout_seconds:
            raise ConfigurationError(
                f"Undo default timeout {default_timeout_seconds}s must be positive and at most {max_timeout_seconds}s"
            )
        self.default_timeout_seconds = default_timeout_seconds
        self.max_timeout_seconds = max_timeout_seconds
        self._clock = clock
        self._pending: dict[str, UndoOperation] = {}

    def check_timeout(self, timeout_seconds: float | None) -> float:
        """Resolve a requested undo window; mutation paths call this before writing anything."""
        timeout = self.default_timeout_seconds if timeout_seconds is None else timeout_seconds
        if timeout <= 0 or timeout > self.max_timeout_seconds:
            raise SchedulingValidationError(
                f"Undo timeout must be between 0 and {self.max_timeout_seconds:g} seconds",
                details={"timeout_seconds": timeout},
            )
        return timeout

    def register(
        self,
        entity_type: UndoEntityType,
        entity_id: str,
        operation: UndoOperationKind,
        inverse_data: dict[str, Any],
        *,
        timeout_seconds: float | None = None,
        description: str | None = None,
        entity_name: str | None = None,
    ) -> str:
        timeout = self.check_timeout(timeout_seconds)
        now = self._clock()
        record = UndoOperation(
            id=str(uuid.uuid4()),
            entity_type=entity_type,
            entity_id=entity_id,
            operation=operation,
            inverse_data=inverse_data,
            description=description or describe(entity_type, entity_name),
            created_at=now,
            expires_at=now + timedelta(seconds=timeout),
        )
        timer = threading.Timer(timeout, self.expire, args=(record.id,))
        timer.daemon = True
        record.timer = timer
        self._pending[record.id] = record
        timer.start()
        logger.debug("Registered undo %s for %s %s (%.1fs)", record.id, entity_type.value, entity_id, timeout)
        return record.id

    def execute(self, operation_id: str, apply_inverse: InverseApplier) -> UndoResult:
        record = self._pending.pop(operation_id, None)
        if record is None:
            return UndoResult(
                success=False,
                status=UndoStatus.NOT_FOUND,
                message="Undo operation not found or expired",
                operation_id=operation_id,
            )
        if record.timer is not None:
            record.timer.cancel()

        if self._clock() >= record.expires_at:
            return UndoResult(
                success=False,
                status=UndoStatus.EXPIRED,
                message="Undo operation has expired",
                operation_id=operation_id,
                entity_type=record.entity_type,
            )

        try:
            affected = apply_inverse(record)
        except (CollaboratorUnavailableError, SchedulingConflictError):
            # Nothing was applied; the caller may retry inside the original window.
            logger.warning("Undo %s not applied for %s %s", operation_id, record.entity_type.value, record.entity_id)
            self._requeue(record)
            raise
        except AppError as exc:
            logger.exception("Undo %s failed for %s %s", operation_id, record.entity_type.value, record.entity_id)
            if isinstance(exc, UndoFailedError):
                raise
            raise UndoFailedError(operation_id, f"Failed to undo {record.description}: {exc.message}") from exc

        logger.info("Executed undo %s (%s %s)", operation_id, record.operation.value, record.description)
        return UndoResult(
            success=True,
            status=UndoStatus.EXECUTED,
            message=f"{_RESULT_VERBS[record.operation]} {record.description}",
            operation_id=operation_id,
            entity_type=record.entity_type,
            affected_ids=list(affected or [record.entity_id]),
        )

    def _requeue(self, record: UndoOperation) -> None:
        remaining = (record.expires_at - self._clock()).total_seconds()
        if remaining <= 0:
            return
        timer = threading.Timer(remaining, self.expire, args=(record.id,))
        timer.daemon = True
        record.timer = timer
        self._pending[record.id] = record
        timer.start()

    def expire(self, operation_id: str) -> None:
        record = self._pending.pop(operation_id, None)
        if record is None:
            return
        if record.timer is not None:
            record.timer.cancel()
        logger.debug("Undo %s expired", operation_id)

    def get(self, operation_id: str) -> UndoOperation | None:
        return self._pending.get(operation_id)

    def pending(self) -> list[UndoOperation]:
        return sorted(self._pending.values(), key=lambda item: item.created_at, reverse=True)

    def can_undo(self, operation_id: str) -> bool:
        record = self._pending.get(operation_id)
        return record is not None and self._clock() < record.expires_at

    def remaining_time(self, operation_id: str) -> int:
        record = self._pending.get(operation_id)
        if record is None:
            return 0
        remaining = (record.expires_at - self._clock()).total_seconds()
        return max(0, int(remaining))

    def clear(self) -> None:
        for operation_id in list(self._pending):
            self.expire(operation_id)

    def to_out(self, record: UndoOperation) -> UndoOperationOut:
        return UndoOperationOut(
            id=record.id,
            entity_type=record.entity_type,
            entity_id=record.entity_id,
            operation=record.operation,
            description=record.description,
            created_at=record.created_at,
            expires_at=record.expires_at,
            remaining_seconds=self.remaining_time(record.id),
            can_undo=self.can_undo(record.id),
        )
