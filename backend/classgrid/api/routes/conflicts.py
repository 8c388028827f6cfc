from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from classgrid.api.deps import get_db
from classgrid.core.config import Settings, get_settings
from classgrid.schemas.conflict import ConflictCheckResponse
from classgrid.schemas.resolution import AutoResolveRequest, AutoResolveResponse
from classgrid.schemas.timetable import ConflictCheckRequest
from classgrid.services import scheduling

router = APIRouter()


@router.post("/check", response_model=ConflictCheckResponse)
def check_conflicts(payload: ConflictCheckRequest, db: Session = Depends(get_db)) -> ConflictCheckResponse:
    return scheduling.check_conflicts(db, payload.candidate, payload.exclude_id)


@router.post("/auto-resolve", response_model=AutoResolveResponse)
def auto_resolve(
    payload: AutoResolveRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> AutoResolveResponse:
    return scheduling.auto_resolve(db, payload, settings)
