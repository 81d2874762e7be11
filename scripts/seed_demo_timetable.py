"""Seed a demo department, batch, time slots, subjects, faculty, students and a weekly timetable.

Run:
  PYTHONPATH=backend python scripts/seed_demo_timetable.py

Safe to re-run: existing rows are matched on their natural keys and weekly
placements that would collide are skipped.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from app.core.exceptions import ConflictError
from app.core.security import create_access_token
from app.db.session import SessionLocal
from app.models.department import Batch, Department
from app.models.faculty import Faculty
from app.models.student import Student
from app.models.subject import Subject
from app.models.time_slot import TimeSlot
from app.models.timetable_entry import DayOfWeek
from app.models.user import User, UserRole
from app.schemas.timetable import TimetableEntryCreate
from app.services.timetable_store import create_entry

logger = logging.getLogger("seed_demo_timetable")

TIME_SLOTS = [
    ("Period 1", "08:30", "09:30"),
    ("Period 2", "09:30", "10:30"),
    ("Period 3", "10:45", "11:45"),
    ("Period 4", "11:45", "12:45"),
    ("Period 5", "13:30", "14:30"),
]

FACULTY = [
    ("Dr. Meera Nair", "meera.nair@campus.demo", "Associate Professor"),
    ("Dr. Arjun Rao", "arjun.rao@campus.demo", "Assistant Professor"),
]

SUBJECTS = [
    ("CS301", "Data Structures", 4, 0),
    ("CS302", "Database Systems", 4, 1),
    ("MA301", "Probability and Statistics", 3, 0),
]

# (day, slot index, subject index)
WEEKLY_PLAN = [
    (DayOfWeek.monday, 0, 0),
    (DayOfWeek.monday, 1, 1),
    (DayOfWeek.tuesday, 0, 2),
    (DayOfWeek.wednesday, 2, 0),
    (DayOfWeek.thursday, 1, 1),
    (DayOfWeek.friday, 3, 2),
]

STUDENT_COUNT = 12


def _get_or_add(session, model, lookup: dict, **values):
    existing = session.execute(select(model).filter_by(**lookup)).scalar_one_or_none()
    if existing is not None:
        return existing
    created = model(**lookup, **values)
    session.add(created)
    session.flush()
    return created


def seed(session) -> dict[str, User]:
    department = _get_or_add(session, Department, {"name": "Computer Science and Engineering"}, short_name="CSE")
    batch = _get_or_add(
        session,
        Batch,
        {"department_id": department.id, "name": "CSE-A", "semester": 5},
        start_year=2023,
    )

    slots = [
        _get_or_add(session, TimeSlot, {"name": name}, start_time=start, end_time=end, sort_order=index + 1)
        for index, (name, start, end) in enumerate(TIME_SLOTS)
    ]

    users = {
        "admin": _get_or_add(session, User, {"email": "admin@campus.demo"}, name="Demo Admin", role=UserRole.admin),
    }
    faculty_rows = []
    for name, email, designation in FACULTY:
        user = _get_or_add(session, User, {"email": email}, name=name, role=UserRole.faculty, department_id=department.id)
        users.setdefault("faculty", user)
        faculty_rows.append(
            _get_or_add(
                session,
                Faculty,
                {"email": email},
                name=name,
                designation=designation,
                department_id=department.id,
                user_id=user.id,
            )
        )

    subjects = [
        _get_or_add(
            session,
            Subject,
            {"code": code},
            batch_id=batch.id,
            name=name,
            credits=credits,
            primary_faculty_id=faculty_rows[faculty_index].id,
        )
        for code, name, credits, faculty_index in SUBJECTS
    ]

    for number in range(1, STUDENT_COUNT + 1):
        _get_or_add(
            session,
            Student,
            {"roll_number": f"CSE23A{number:03d}"},
            batch_id=batch.id,
            name=f"Demo Student {number:02d}",
        )
    users["student"] = _get_or_add(
        session, User, {"email": "student01@campus.demo"}, name="Demo Student 01", role=UserRole.student
    )

    placed = 0
    for day, slot_index, subject_index in WEEKLY_PLAN:
        subject = subjects[subject_index]
        try:
            create_entry(
                session,
                TimetableEntryCreate(
                    batch_id=batch.id,
                    subject_id=subject.id,
                    faculty_id=subject.primary_faculty_id,
                    time_slot_id=slots[slot_index].id,
                    day_of_week=day,
                ),
                actor=users["admin"],
            )
            placed += 1
        except ConflictError as exc:
            logger.info("Skipping %s %s on %s: %s", subject.code, TIME_SLOTS[slot_index][0], day.value, exc.message)
    logger.info("Placed %d weekly timetable entries for batch %s", placed, batch.name)
    return users


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    with SessionLocal() as session:
        users = seed(session)
        session.commit()
        tokens = {label: create_access_token(user.id) for label, user in users.items()}

    print("\nDemo bearer tokens:")
    for label, token in tokens.items():
        print(f"  - {label}: {token}")


if __name__ == "__main__":
    main()
