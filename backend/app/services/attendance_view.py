from __future__ import annotations

from collections import defaultdict
from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.attendance import AttendanceRecord, AttendanceSlotMark, AttendanceStatus, FullDayStatus
from app.schemas.attendance import AttendanceSummary, AttendanceViewOut, StudentAttendanceOut
from app.services.attendance_sessions import find_session
from app.services.attendance_status import attendance_percentage, count_full_day_statuses, resolve_full_day
from app.services.lookups import active_students, get_subject_for_batch
from app.services.timetable_store import subject_time_slot_ids


def load_slot_maps(db: Session, session_id: str) -> dict[str, dict[str, AttendanceStatus]]:
    """Per-student slot maps for a session, read straight from the ledger rows."""
    rows = db.execute(
        select(AttendanceRecord.student_id, AttendanceSlotMark.time_slot_id, AttendanceSlotMark.status)
        .join(AttendanceSlotMark, AttendanceSlotMark.record_id == AttendanceRecord.id)
        .where(AttendanceRecord.session_id == session_id)
    ).all()
    slot_maps: dict[str, dict[str, AttendanceStatus]] = defaultdict(dict)
    for student_id, time_slot_id, status in rows:
        slot_maps[student_id][time_slot_id] = AttendanceStatus(status)
    return dict(slot_maps)


def get_attendance_view(db: Session, *, batch_id: str, subject_id: str, on_date: date) -> AttendanceViewOut:
    get_subject_for_batch(db, subject_id=subject_id, batch_id=batch_id)
    students = active_students(db, batch_id)
    session = find_session(db, batch_id=batch_id, subject_id=subject_id, on_date=on_date)
    slot_maps = load_slot_maps(db, session.id) if session is not None else {}

    rows: list[StudentAttendanceOut] = []
    for student in students:
        per_slot = slot_maps.get(student.id, {})
        rows.append(
            StudentAttendanceOut(
                student_id=student.id,
                name=student.name,
                roll_number=student.roll_number,
                per_slot_statuses=per_slot,
                full_day_status=resolve_full_day(per_slot),
            )
        )

    counts = count_full_day_statuses(row.full_day_status for row in rows)
    return AttendanceViewOut(
        batch_id=batch_id,
        subject_id=subject_id,
        date=on_date,
        session_id=session.id if session else None,
        is_completed=bool(session and session.is_completed),
        time_slot_ids=subject_time_slot_ids(db, batch_id=batch_id, subject_id=subject_id),
        students=rows,
        summary=AttendanceSummary(
            total_students=len(students),
            marked_students=sum(1 for row in rows if row.per_slot_statuses),
            is_marked=bool(slot_maps),
            status_counts=counts,
            attendance_percentage=attendance_percentage(counts[FullDayStatus.present], len(students)),
        ),
    )
