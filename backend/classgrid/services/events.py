"""Fire-and-forget change events for timetable watchers."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from anyio import from_thread

from classgrid.services.notification_hub import TIMETABLE_CHANNEL, notification_hub

logger = logging.getLogger(__name__)


def build_event(entity: str, operation: str, affected_ids: Iterable[str], **extra) -> dict:
    return {
        "event": f"timetable.{entity}.{operation}",
        "entity": entity,
        "operation": operation,
        "affected_ids": list(affected_ids),
        "emitted_at": datetime.now(timezone.utc).isoformat(),
        **extra,
    }


def publish_timetable_event(entity: str, operation: str, affected_ids: Iterable[str], **extra) -> dict:
    """Broadcast from a sync route handler running in the worker thread pool.

    Delivery is not awaited for acknowledgement; a caller outside an anyio
    worker thread (scripts, direct service calls) simply has nobody to notify.
    """
    payload = build_event(entity, operation, affected_ids, **extra)
    if notification_hub.subscriber_count(TIMETABLE_CHANNEL) == 0:
        return payload
    try:
        from_thread.run(notification_hub.publish, TIMETABLE_CHANNEL, payload)
    except RuntimeError:
        logger.debug("No event loop available for %s; event not broadcast", payload["event"])
    return payload
