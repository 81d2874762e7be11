"""Per-slot attendance writes: bulk marking, per-student marking, reset and finalize.

Every student is written inside its own savepoint. A failing student is
rolled back, logged and reported in the result while the others continue.
Losing the database connection is not a per-student failure and aborts the
whole call.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime
import logging

from sqlalchemy import delete, select, update
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, ValidationError
from app.db.upsert import upsert
from app.models.attendance import AttendanceRecord, AttendanceSession, AttendanceSlotMark, AttendanceStatus, FullDayStatus
from app.models.user import User
from app.schemas.attendance import (
    BulkMarkRequest,
    FinalizeResult,
    MarkResult,
    MarkStudentsRequest,
    ResetRequest,
    ResetResult,
    SessionKey,
    StudentWriteError,
)
from app.services.attendance_sessions import (
    append_note,
    complete_session,
    find_session,
    get_or_create_session,
    reopen_session,
    utc_now,
)
from app.services.attendance_status import count_full_day_statuses, resolve_full_day
from app.services.attendance_view import load_slot_maps
from app.services.audit import log_activity
from app.services.lookups import active_students, get_subject_for_batch
from app.services.timetable_store import scheduled_entry_for_slot, subject_time_slot_ids

logger = logging.getLogger(__name__)


def _require_slot(scope: str, time_slot_id: str | None) -> None:
    if scope == "slot" and not time_slot_id:
        raise ValidationError("time_slot_id is required when scope is 'slot'")


def _require_scheduled_slot(db: Session, *, batch_id: str, subject_id: str, time_slot_id: str, on_date: date) -> None:
    entry = scheduled_entry_for_slot(
        db,
        batch_id=batch_id,
        subject_id=subject_id,
        time_slot_id=time_slot_id,
        on_date=on_date,
    )
    if entry is None:
        raise NotFoundError(
            "No class found for the specified time slot",
            details={"batch_id": batch_id, "subject_id": subject_id, "time_slot_id": time_slot_id, "date": on_date.isoformat()},
        )


def _resolve_slot_ids(db: Session, payload: BulkMarkRequest) -> list[str]:
    if payload.scope == "slot":
        _require_scheduled_slot(
            db,
            batch_id=payload.batch_id,
            subject_id=payload.subject_id,
            time_slot_id=payload.time_slot_id,
            on_date=payload.date,
        )
        return [payload.time_slot_id]

    slot_ids = subject_time_slot_ids(db, batch_id=payload.batch_id, subject_id=payload.subject_id)
    if not slot_ids:
        raise NotFoundError(
            "No time slots are scheduled for this subject",
            details={"batch_id": payload.batch_id, "subject_id": payload.subject_id},
        )
    return slot_ids


def _require_students(db: Session, batch_id: str):
    students = active_students(db, batch_id)
    if not students:
        raise NotFoundError("No active students found in batch", details={"batch_id": batch_id})
    return students


def _write_student_slots(
    db: Session,
    *,
    session: AttendanceSession,
    student_id: str,
    slot_ids: Iterable[str],
    status: AttendanceStatus,
    actor: User | None,
    marked_at: datetime,
) -> None:
    with db.begin_nested():
        record_id, _ = upsert(
            db,
            AttendanceRecord,
            {
                "session_id": session.id,
                "student_id": student_id,
                "status": status,
                "marked_at": marked_at,
                "last_modified_by_id": actor.id if actor else None,
            },
            conflict_columns=("session_id", "student_id"),
            update_columns=("status", "marked_at", "last_modified_by_id"),
        )
        for time_slot_id in slot_ids:
            upsert(
                db,
                AttendanceSlotMark,
                {
                    "record_id": record_id,
                    "time_slot_id": time_slot_id,
                    "status": status,
                    "marked_at": marked_at,
                },
                conflict_columns=("record_id", "time_slot_id"),
                update_columns=("status", "marked_at"),
            )


def _record_failure(result, student_id: str, exc: Exception) -> None:
    result.failed += 1
    result.errors.append(StudentWriteError(student_id=student_id, error=str(getattr(exc, "orig", None) or exc)))


def mark_bulk(db: Session, payload: BulkMarkRequest, *, actor: User | None) -> MarkResult:
    _require_slot(payload.scope, payload.time_slot_id)
    get_subject_for_batch(db, subject_id=payload.subject_id, batch_id=payload.batch_id)
    slot_ids = _resolve_slot_ids(db, payload)
    students = _require_students(db, payload.batch_id)

    session, _ = get_or_create_session(
        db,
        batch_id=payload.batch_id,
        subject_id=payload.subject_id,
        on_date=payload.date,
        actor=actor,
    )
    result = MarkResult(session_id=session.id, scope=payload.scope, status=payload.status, time_slot_ids=slot_ids)
    marked_at = utc_now()

    for student in students:
        result.processed += 1
        try:
            _write_student_slots(
                db,
                session=session,
                student_id=student.id,
                slot_ids=slot_ids,
                status=payload.status,
                actor=actor,
                marked_at=marked_at,
            )
        except OperationalError:
            raise
        except SQLAlchemyError as exc:
            logger.exception("Failed to mark attendance for student %s in session %s", student.id, session.id)
            _record_failure(result, student.id, exc)
        else:
            result.succeeded += 1

    if payload.scope == "fullday":
        complete_session(
            session,
            actor=actor,
            message=f"Full-day bulk mark as {payload.status.value} ({result.succeeded}/{result.processed} students)",
        )
    else:
        if actor is not None:
            session.marked_by_id = actor.id
        append_note(
            session,
            f"Partial update: slot {payload.time_slot_id} marked {payload.status.value} "
            f"({result.succeeded}/{result.processed} students)",
            actor=actor,
        )
    result.is_completed = session.is_completed

    logger.info(
        "Bulk %s mark for session %s: processed=%d succeeded=%d failed=%d",
        payload.scope,
        session.id,
        result.processed,
        result.succeeded,
        result.failed,
    )
    log_activity(
        db,
        user=actor,
        action="attendance.mark_bulk",
        entity_type="attendance_session",
        entity_id=session.id,
        details={
            "scope": payload.scope,
            "status": payload.status.value,
            "time_slot_ids": slot_ids,
            "succeeded": result.succeeded,
            "failed": result.failed,
        },
    )
    return result


def mark_students(db: Session, payload: MarkStudentsRequest, *, actor: User | None) -> MarkResult:
    get_subject_for_batch(db, subject_id=payload.subject_id, batch_id=payload.batch_id)
    _require_scheduled_slot(
        db,
        batch_id=payload.batch_id,
        subject_id=payload.subject_id,
        time_slot_id=payload.time_slot_id,
        on_date=payload.date,
    )
    roster = {student.id for student in _require_students(db, payload.batch_id)}

    session, _ = get_or_create_session(
        db,
        batch_id=payload.batch_id,
        subject_id=payload.subject_id,
        on_date=payload.date,
        actor=actor,
    )
    result = MarkResult(session_id=session.id, scope="slot", time_slot_ids=[payload.time_slot_id])
    marked_at = utc_now()

    for student_id, status in payload.marks.items():
        result.processed += 1
        if student_id not in roster:
            result.failed += 1
            result.errors.append(StudentWriteError(student_id=student_id, error="Student not found or inactive in batch"))
            continue
        try:
            _write_student_slots(
                db,
                session=session,
                student_id=student_id,
                slot_ids=[payload.time_slot_id],
                status=status,
                actor=actor,
                marked_at=marked_at,
            )
        except OperationalError:
            raise
        except SQLAlchemyError as exc:
            logger.exception("Failed to mark attendance for student %s in session %s", student_id, session.id)
            _record_failure(result, student_id, exc)
        else:
            result.succeeded += 1

    if actor is not None:
        session.marked_by_id = actor.id
    append_note(
        session,
        f"Partial update: slot {payload.time_slot_id} marked for {result.succeeded}/{result.processed} students",
        actor=actor,
    )
    result.is_completed = session.is_completed
    log_activity(
        db,
        user=actor,
        action="attendance.mark_students",
        entity_type="attendance_session",
        entity_id=session.id,
        details={"time_slot_id": payload.time_slot_id, "succeeded": result.succeeded, "failed": result.failed},
    )
    return result


def _session_records(db: Session, session_id: str) -> list[tuple[str, str]]:
    return list(
        db.execute(
            select(AttendanceRecord.id, AttendanceRecord.student_id)
            .where(AttendanceRecord.session_id == session_id)
            .order_by(AttendanceRecord.student_id)
        ).all()
    )


def _delete_record(db: Session, record_id: str) -> None:
    db.execute(delete(AttendanceSlotMark).where(AttendanceSlotMark.record_id == record_id))
    db.execute(delete(AttendanceRecord).where(AttendanceRecord.id == record_id))


def _remove_slot(db: Session, record_id: str, time_slot_id: str) -> bool:
    """Drop one slot mark from a record. Returns False when the slot was never marked."""
    removed = db.execute(
        delete(AttendanceSlotMark).where(
            AttendanceSlotMark.record_id == record_id,
            AttendanceSlotMark.time_slot_id == time_slot_id,
        )
    ).rowcount
    if not removed:
        return False

    remaining = {
        slot_id: AttendanceStatus(status)
        for slot_id, status in db.execute(
            select(AttendanceSlotMark.time_slot_id, AttendanceSlotMark.status).where(
                AttendanceSlotMark.record_id == record_id
            )
        ).all()
    }
    if not remaining:
        db.execute(delete(AttendanceRecord).where(AttendanceRecord.id == record_id))
        return True

    resolved = resolve_full_day(remaining)
    if resolved != FullDayStatus.mixed:
        db.execute(
            update(AttendanceRecord)
            .where(AttendanceRecord.id == record_id)
            .values(status=AttendanceStatus(resolved.value))
        )
    return True


def reset(db: Session, payload: ResetRequest, *, actor: User | None) -> ResetResult:
    _require_slot(payload.scope, payload.time_slot_id)
    get_subject_for_batch(db, subject_id=payload.subject_id, batch_id=payload.batch_id)

    result = ResetResult(scope=payload.scope, time_slot_id=payload.time_slot_id)
    session = find_session(db, batch_id=payload.batch_id, subject_id=payload.subject_id, on_date=payload.date)
    if session is None:
        return result
    result.session_id = session.id

    for record_id, student_id in _session_records(db, session.id):
        result.processed += 1
        try:
            with db.begin_nested():
                if payload.scope == "fullday":
                    _delete_record(db, record_id)
                    changed = True
                else:
                    changed = _remove_slot(db, record_id, payload.time_slot_id)
        except OperationalError:
            raise
        except SQLAlchemyError as exc:
            logger.exception("Failed to reset attendance for student %s in session %s", student_id, session.id)
            _record_failure(result, student_id, exc)
            continue
        if changed:
            result.reset += 1

    if payload.scope == "fullday":
        reopen_session(session, actor=actor, message=f"Full-day reset ({result.reset} records removed)")
    else:
        append_note(
            session,
            f"Slot {payload.time_slot_id} reset for {result.reset} students",
            actor=actor,
        )

    logger.info(
        "Reset %s for session %s: processed=%d reset=%d failed=%d",
        payload.scope,
        session.id,
        result.processed,
        result.reset,
        result.failed,
    )
    log_activity(
        db,
        user=actor,
        action="attendance.reset",
        entity_type="attendance_session",
        entity_id=session.id,
        details={"scope": payload.scope, "time_slot_id": payload.time_slot_id, "reset": result.reset},
    )
    return result


def finalize_session(db: Session, payload: SessionKey, *, actor: User | None) -> FinalizeResult:
    get_subject_for_batch(db, subject_id=payload.subject_id, batch_id=payload.batch_id)
    session = find_session(db, batch_id=payload.batch_id, subject_id=payload.subject_id, on_date=payload.date)
    if session is None:
        raise NotFoundError(
            "Attendance session not found",
            details={"batch_id": payload.batch_id, "subject_id": payload.subject_id, "date": payload.date.isoformat()},
        )

    students = active_students(db, payload.batch_id)
    slot_maps = load_slot_maps(db, session.id)
    record_count = len(_session_records(db, session.id))
    counts = count_full_day_statuses(resolve_full_day(slot_maps.get(student.id, {})) for student in students)
    roster_marked = sum(1 for student in students if slot_maps.get(student.id))

    complete_session(session, actor=actor, message=f"Finalized with {record_count} records")
    log_activity(
        db,
        user=actor,
        action="attendance.finalize",
        entity_type="attendance_session",
        entity_id=session.id,
        details={"record_count": record_count, "total_students": len(students)},
    )
    return FinalizeResult(
        session_id=session.id,
        is_completed=session.is_completed,
        record_count=record_count,
        total_students_in_batch=len(students),
        is_complete_roster=bool(students) and roster_marked == len(students),
        status_counts=counts,
    )
