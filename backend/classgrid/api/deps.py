from collections.abc import Generator

from fastapi import Request
from sqlalchemy.orm import Session

from classgrid.db.session import SessionLocal
from classgrid.services.undo_manager import UndoManager


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_undo_manager(request: Request) -> UndoManager:
    return request.app.state.undo_manager
