from datetime import date
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.deps import get_db
from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import enable_sqlite_savepoints
from app.main import app
from app.models.academic_calendar import AcademicCalendar
from app.models.department import Batch, Department
from app.models.faculty import Faculty
from app.models.student import Student
from app.models.subject import Subject
from app.models.time_slot import TimeSlot
from app.models.timetable_entry import DayOfWeek, EntryType, TimetableEntry, occurrence_key_for
from app.models.user import User, UserRole


@pytest.fixture()
def engine():
    # One shared in-memory connection; savepoints need SQLAlchemy to own BEGIN.
    test_engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _build_campus(session) -> SimpleNamespace:
    cse = Department(name="Computer Science and Engineering", short_name="CSE")
    session.add(cse)
    session.flush()

    batch_a = Batch(department_id=cse.id, name="CSE-A", semester=3, start_year=2024)
    batch_b = Batch(department_id=cse.id, name="CSE-B", semester=3, start_year=2024)
    session.add_all([batch_a, batch_b])
    session.flush()

    slot_0830 = TimeSlot(name="Period 1", start_time="08:30", end_time="09:30", duration_minutes=60, sort_order=1)
    slot_0930 = TimeSlot(name="Period 2", start_time="09:30", end_time="10:30", duration_minutes=60, sort_order=2)
    slot_1030 = TimeSlot(name="Period 3", start_time="10:30", end_time="11:30", duration_minutes=60, sort_order=3)
    session.add_all([slot_0830, slot_0930, slot_1030])

    faculty_one = Faculty(name="Dr. Meera Nair", email="meera.nair@campus.test", department_id=cse.id)
    faculty_two = Faculty(name="Dr. Arjun Rao", email="arjun.rao@campus.test", department_id=cse.id)
    session.add_all([faculty_one, faculty_two])
    session.flush()

    maths = Subject(batch_id=batch_a.id, code="MA201", name="Discrete Mathematics", credits=4)
    physics = Subject(batch_id=batch_a.id, code="PH201", name="Engineering Physics", credits=3)
    maths_b = Subject(batch_id=batch_b.id, code="MA202", name="Discrete Mathematics (B)", credits=4)
    session.add_all([maths, physics, maths_b])

    students = [
        Student(batch_id=batch_a.id, roll_number="CSE24A001", name="Aditi Sharma"),
        Student(batch_id=batch_a.id, roll_number="CSE24A002", name="Bharath Kumar"),
        Student(batch_id=batch_a.id, roll_number="CSE24A003", name="Chitra Iyer"),
    ]
    dropped = Student(batch_id=batch_a.id, roll_number="CSE24A099", name="Dev Patel", is_active=False)
    student_b = Student(batch_id=batch_b.id, roll_number="CSE24B001", name="Farah Khan")
    session.add_all([*students, dropped, student_b])

    admin = User(name="Admin", email="admin@campus.test", role=UserRole.admin)
    faculty_user = User(name="Meera Nair", email="meera@campus.test", role=UserRole.faculty)
    student_user = User(name="Aditi Sharma", email="aditi@campus.test", role=UserRole.student)
    session.add_all([admin, faculty_user, student_user])

    calendar = AcademicCalendar(
        department_id=cse.id,
        semester_name="Odd Semester",
        academic_year="2025-2026",
        semester_start=date(2025, 7, 1),
        semester_end=date(2025, 12, 15),
    )
    session.add(calendar)
    session.flush()

    return SimpleNamespace(
        department=cse,
        batch_a=batch_a,
        batch_b=batch_b,
        slot_0830=slot_0830,
        slot_0930=slot_0930,
        slot_1030=slot_1030,
        faculty_one=faculty_one,
        faculty_two=faculty_two,
        maths=maths,
        physics=physics,
        maths_b=maths_b,
        students=students,
        dropped_student=dropped,
        student_b=student_b,
        admin=admin,
        faculty_user=faculty_user,
        student_user=student_user,
        calendar=calendar,
    )


@pytest.fixture()
def campus(session_factory) -> SimpleNamespace:
    session = session_factory(expire_on_commit=False)
    try:
        data = _build_campus(session)
        session.commit()
    finally:
        session.close()
    return data


@pytest.fixture()
def add_entry(session_factory):
    """Insert a timetable entry directly, bypassing the conflict gate."""

    def _add_entry(
        *,
        batch,
        time_slot,
        day_of_week: DayOfWeek | None = None,
        on_date: date | None = None,
        subject=None,
        faculty=None,
        entry_type: EntryType = EntryType.regular,
        **extra,
    ) -> TimetableEntry:
        session = session_factory(expire_on_commit=False)
        try:
            entry = TimetableEntry(
                batch_id=batch.id,
                subject_id=subject.id if subject else None,
                faculty_id=faculty.id if faculty else None,
                time_slot_id=time_slot.id,
                day_of_week=day_of_week or DayOfWeek.from_date(on_date),
                date=on_date,
                occurrence_key=occurrence_key_for(on_date),
                entry_type=entry_type,
                **extra,
            )
            session.add(entry)
            session.commit()
            return entry
        finally:
            session.close()

    return _add_entry


@pytest.fixture()
def auth_headers():
    def _auth_headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _auth_headers
