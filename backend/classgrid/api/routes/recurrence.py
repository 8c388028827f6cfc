from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from classgrid.api.deps import get_db
from classgrid.core.config import Settings, get_settings
from classgrid.schemas.recurrence import ExpandRecurrenceRequest, ExpandRecurrenceResponse
from classgrid.services import scheduling

router = APIRouter()


@router.post("/expand", response_model=ExpandRecurrenceResponse)
def expand_recurrence(
    payload: ExpandRecurrenceRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> ExpandRecurrenceResponse:
    return scheduling.preview_recurrence(db, payload, settings)
