"""
Persistence of generated drawings.

Each generated drawing is stored as one ``DrawingRecord`` row holding a
few summary columns (unit, views, dimension count, timestamps) and the
full response payload as JSON text.  The payload is written and read by
the API layer; this module only moves it in and out of the database.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from sqlmodel import Field, SQLModel, select

from .db import create_db_and_tables, get_session


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DrawingRecord(SQLModel, table=True):
    """A stored drawing."""

    drawing_id: str = Field(primary_key=True)
    name: Optional[str] = None
    unit: str = Field(default="mm")
    # Comma separated view names in generation order.
    views: str = Field(default="")
    dimension_count: int = 0
    payload: str
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


def init_db() -> None:
    """Initialise the database and create tables if they do not exist."""
    create_db_and_tables()


def insert_drawing(record: DrawingRecord) -> DrawingRecord:
    with get_session() as session:
        session.add(record)
        session.commit()
        session.refresh(record)
        return record


def get_drawing(drawing_id: str) -> Optional[DrawingRecord]:
    """Retrieve a drawing by its identifier, or ``None``."""
    with get_session() as session:
        return session.get(DrawingRecord, drawing_id)


def list_drawings() -> List[DrawingRecord]:
    """Return all stored drawings, newest first."""
    with get_session() as session:
        statement = select(DrawingRecord).order_by(DrawingRecord.created_at.desc())
        return list(session.exec(statement))


def update_drawing_payload(drawing_id: str, payload: str, dimension_count: int) -> Optional[DrawingRecord]:
    """Replace the stored payload of a drawing.

    Returns:
        The updated record, or ``None`` if the drawing does not exist.
    """
    with get_session() as session:
        record = session.get(DrawingRecord, drawing_id)
        if record is None:
            return None
        record.payload = payload
        record.dimension_count = dimension_count
        record.updated_at = _utcnow()
        session.add(record)
        session.commit()
        session.refresh(record)
        return record


def delete_drawing(drawing_id: str) -> bool:
    """Delete a drawing.  Returns ``False`` if it did not exist."""
    with get_session() as session:
        record = session.get(DrawingRecord, drawing_id)
        if record is None:
            return False
        session.delete(record)
        session.commit()
        return True


__all__ = [
    "DrawingRecord",
    "init_db",
    "insert_drawing",
    "get_drawing",
    "list_drawings",
    "update_drawing_payload",
    "delete_drawing",
]
