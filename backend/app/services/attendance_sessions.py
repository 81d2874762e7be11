from __future__ import annotations

from datetime import date, datetime, timezone
import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.upsert import upsert
from app.models.attendance import AttendanceSession
from app.models.user import User

logger = logging.getLogger(__name__)

SESSION_KEY_COLUMNS = ("batch_id", "subject_id", "date")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def find_session(db: Session, *, batch_id: str, subject_id: str, on_date: date) -> AttendanceSession | None:
    return db.execute(
        select(AttendanceSession)
        .where(
            AttendanceSession.batch_id == batch_id,
            AttendanceSession.subject_id == subject_id,
            AttendanceSession.date == on_date,
        )
    ).scalar_one_or_none()


def get_or_create_session(
    db: Session,
    *,
    batch_id: str,
    subject_id: str,
    on_date: date,
    actor: User | None,
) -> tuple[AttendanceSession, bool]:
    """Return the one session for (batch, subject, date), creating it if needed.

    Creation is an insert-or-ignore on the unique key, so racing first marks
    converge on a single row.
    """
    session_id, created = upsert(
        db,
        AttendanceSession,
        {
            "batch_id": batch_id,
            "subject_id": subject_id,
            "date": on_date,
            "is_completed": False,
            "created_by_id": actor.id if actor else None,
            "marked_by_id": actor.id if actor else None,
        },
        conflict_columns=SESSION_KEY_COLUMNS,
    )
    session = db.get(AttendanceSession, session_id)
    if created:
        logger.info("Opened attendance session %s for batch %s subject %s on %s", session_id, batch_id, subject_id, on_date)
    return session, created


def append_note(session: AttendanceSession, message: str, *, actor: User | None) -> None:
    stamp = utc_now().isoformat(timespec="seconds")
    line = f"[{stamp}] {actor.id if actor else 'system'}: {message}"
    session.notes = f"{session.notes}\n{line}" if session.notes else line


def complete_session(session: AttendanceSession, *, actor: User | None, message: str) -> None:
    session.is_completed = True
    if actor is not None:
        session.marked_by_id = actor.id
    append_note(session, message, actor=actor)


def reopen_session(session: AttendanceSession, *, actor: User | None, message: str) -> None:
    session.is_completed = False
    append_note(session, message, actor=actor)
