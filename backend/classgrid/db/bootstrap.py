from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from classgrid.core.config import get_settings
from classgrid.db.base import Base
from classgrid.db.session import engine
import classgrid.models  # noqa: F401

logger = logging.getLogger(__name__)

REQUIRED_TABLES: set[str] = {
    "time_slots",
    "batches",
    "subjects",
    "faculty",
    "timetable_entries",
    "holidays",
    "exam_periods",
    "academic_terms",
}


def missing_tables() -> list[str]:
    with engine.connect() as connection:
        existing = set(inspect(connection).get_table_names())
    return sorted(REQUIRED_TABLES - existing)


def ensure_schema() -> None:
    settings = get_settings()
    if not settings.auto_create_schema:
        return
    try:
        missing = missing_tables()
        if not missing:
            return
        logger.info("Creating missing tables: %s", ", ".join(missing))
        Base.metadata.create_all(bind=engine)
        still_missing = missing_tables()
        if still_missing:
            raise RuntimeError(f"Tables still missing after bootstrap: {', '.join(still_missing)}")
    except (SQLAlchemyError, RuntimeError) as exc:
        logger.exception("Schema bootstrap failed")
        raise RuntimeError("Schema bootstrap failed") from exc
