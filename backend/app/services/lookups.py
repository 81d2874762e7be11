from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.models.department import Batch
from app.models.faculty import Faculty
from app.models.student import Student
from app.models.subject import Subject
from app.models.time_slot import TimeSlot


def get_batch(db: Session, batch_id: str) -> Batch:
    batch = db.get(Batch, batch_id)
    if batch is None:
        raise NotFoundError.for_resource("Batch", batch_id)
    return batch


def get_faculty(db: Session, faculty_id: str) -> Faculty:
    faculty = db.get(Faculty, faculty_id)
    if faculty is None or not faculty.is_active:
        raise NotFoundError("Faculty not found or is inactive", details={"faculty_id": faculty_id})
    return faculty


def get_active_time_slot(db: Session, time_slot_id: str) -> TimeSlot:
    time_slot = db.get(TimeSlot, time_slot_id)
    if time_slot is None or not time_slot.is_active:
        raise NotFoundError("Time slot not found or is inactive", details={"time_slot_id": time_slot_id})
    return time_slot


def get_subject_for_batch(db: Session, *, subject_id: str, batch_id: str) -> tuple[Subject, Batch]:
    """Resolve an active subject and its batch, rejecting mismatched pairs."""
    subject = db.get(Subject, subject_id)
    batch = db.get(Batch, batch_id)
    if (
        subject is None
        or not subject.is_active
        or batch is None
        or not batch.is_active
        or subject.batch_id != batch_id
    ):
        raise NotFoundError(
            "Subject or batch not found",
            details={"subject_id": subject_id, "batch_id": batch_id},
        )
    return subject, batch


def active_students(db: Session, batch_id: str) -> list[Student]:
    return list(
        db.execute(
            select(Student)
            .where(Student.batch_id == batch_id, Student.is_active.is_(True))
            .order_by(Student.roll_number.asc())
        ).scalars()
    )


def active_time_slots(db: Session) -> list[TimeSlot]:
    return list(
        db.execute(
            select(TimeSlot)
            .where(TimeSlot.is_active.is_(True))
            .order_by(TimeSlot.sort_order.asc(), TimeSlot.start_time.asc())
        ).scalars()
    )
