from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from classgrid.api.deps import get_db, get_undo_manager
from classgrid.schemas.undo import UndoEntityType, UndoOperationOut, UndoResult
from classgrid.services.events import publish_timetable_event
from classgrid.services.undo_handlers import apply_inverse
from classgrid.services.undo_manager import UndoManager

router = APIRouter()


@router.get("", response_model=list[UndoOperationOut])
def list_pending(
    entity_type: UndoEntityType | None = None,
    undo_manager: UndoManager = Depends(get_undo_manager),
) -> list[UndoOperationOut]:
    records = undo_manager.pending()
    if entity_type is not None:
        records = [item for item in records if item.entity_type == entity_type]
    return [undo_manager.to_out(item) for item in records]


@router.get("/{operation_id}", response_model=UndoOperationOut)
def get_operation(operation_id: str, undo_manager: UndoManager = Depends(get_undo_manager)) -> UndoOperationOut:
    record = undo_manager.get(operation_id)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Undo operation not found or expired")
    return undo_manager.to_out(record)


@router.post("/{operation_id}", response_model=UndoResult)
def execute_undo(
    operation_id: str,
    db: Session = Depends(get_db),
    undo_manager: UndoManager = Depends(get_undo_manager),
) -> UndoResult:
    result = undo_manager.execute(operation_id, lambda operation: apply_inverse(db, operation))
    if result.success:
        entity = "holiday" if result.entity_type == UndoEntityType.HOLIDAY else "entry"
        publish_timetable_event(entity, "undone", result.affected_ids, undo_operation_id=operation_id)
    return result
