import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from classgrid.api.routes import (
    calendar,
    conflicts,
    events,
    health,
    recurrence,
    reference,
    timetable,
    undo,
)
from classgrid.core.config import get_settings
from classgrid.core.exceptions import AppError
from classgrid.core.middleware import RequestSizeLimitMiddleware
from classgrid.db.bootstrap import ensure_schema
from classgrid.services.undo_manager import UndoManager

settings = get_settings()

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_schema()
    app.state.undo_manager = UndoManager(
        default_timeout_seconds=settings.undo_default_timeout_seconds,
        max_timeout_seconds=settings.undo_max_timeout_seconds,
    )
    logger.info("%s started", settings.project_name)
    yield
    # Pending undo timers die with the process; nothing is persisted.
    app.state.undo_manager.clear()


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_size_bytes)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(conflicts.router, prefix=f"{settings.api_prefix}/conflicts", tags=["conflicts"])
app.include_router(recurrence.router, prefix=f"{settings.api_prefix}/recurrence", tags=["recurrence"])
app.include_router(timetable.router, prefix=f"{settings.api_prefix}/timetable", tags=["timetable"])
app.include_router(undo.router, prefix=f"{settings.api_prefix}/undo", tags=["undo"])
app.include_router(reference.router, prefix=settings.api_prefix, tags=["reference"])
app.include_router(calendar.router, prefix=settings.api_prefix, tags=["calendar"])
app.include_router(events.router, prefix=f"{settings.api_prefix}/events", tags=["events"])
