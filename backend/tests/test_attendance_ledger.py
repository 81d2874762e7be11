from datetime import date
import threading

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.core.exceptions import NotFoundError, ValidationError
from app.db.base import Base
from app.db.session import build_engine
from app.models.attendance import AttendanceRecord, AttendanceSession, AttendanceSlotMark, AttendanceStatus, FullDayStatus
from app.models.department import Batch, Department
from app.models.student import Student
from app.models.subject import Subject
from app.models.timetable_entry import DayOfWeek, EntryType
from app.schemas.attendance import BulkMarkRequest, MarkStudentsRequest, ResetRequest, SessionKey
from app.services import attendance_ledger
from app.services.attendance_sessions import get_or_create_session
from app.services.attendance_view import get_attendance_view, load_slot_maps

# 2025-08-07 is a Thursday.
CLASS_DAY = date(2025, 8, 7)


@pytest.fixture()
def thursday_timetable(campus, add_entry):
    """Maths at 08:30 on Mondays and 09:30 on Thursdays for CSE-A; nothing at 10:30."""
    add_entry(
        batch=campus.batch_a,
        time_slot=campus.slot_0830,
        day_of_week=DayOfWeek.monday,
        subject=campus.maths,
        faculty=campus.faculty_one,
    )
    add_entry(
        batch=campus.batch_a,
        time_slot=campus.slot_0930,
        day_of_week=DayOfWeek.thursday,
        subject=campus.maths,
        faculty=campus.faculty_one,
    )
    return campus


def _bulk(campus, **overrides) -> BulkMarkRequest:
    values = {
        "batch_id": campus.batch_a.id,
        "subject_id": campus.maths.id,
        "date": CLASS_DAY,
        "status": AttendanceStatus.present,
        "scope": "slot",
        "time_slot_id": campus.slot_0930.id,
    }
    values.update(overrides)
    return BulkMarkRequest(**values)


def _reset(campus, **overrides) -> ResetRequest:
    values = {
        "batch_id": campus.batch_a.id,
        "subject_id": campus.maths.id,
        "date": CLASS_DAY,
        "scope": "slot",
        "time_slot_id": campus.slot_0930.id,
    }
    values.update(overrides)
    return ResetRequest(**values)


def _slot_maps(db, campus):
    session = db.execute(select(AttendanceSession).where(AttendanceSession.subject_id == campus.maths.id)).scalar_one()
    return load_slot_maps(db, session.id)


def test_slot_mark_requires_a_scheduled_class(db, thursday_timetable):
    campus = thursday_timetable

    result = attendance_ledger.mark_bulk(db, _bulk(campus), actor=campus.faculty_user)

    assert (result.processed, result.succeeded, result.failed) == (3, 3, 0)
    assert result.time_slot_ids == [campus.slot_0930.id]
    assert not result.is_completed
    with pytest.raises(NotFoundError):
        attendance_ledger.mark_bulk(db, _bulk(campus, time_slot_id=campus.slot_1030.id), actor=campus.faculty_user)


def test_events_never_become_attendance_slots(db, thursday_timetable, add_entry):
    campus = thursday_timetable
    add_entry(
        batch=campus.batch_a,
        time_slot=campus.slot_1030,
        day_of_week=DayOfWeek.thursday,
        subject=campus.maths,
        entry_type=EntryType.event,
        custom_event_title="Maths club showcase",
    )

    with pytest.raises(NotFoundError):
        attendance_ledger.mark_bulk(db, _bulk(campus, time_slot_id=campus.slot_1030.id), actor=None)
    result = attendance_ledger.mark_bulk(db, _bulk(campus, scope="fullday", time_slot_id=None), actor=None)

    assert result.time_slot_ids == [campus.slot_0830.id, campus.slot_0930.id]


def test_slot_scope_without_time_slot_is_a_validation_error(db, thursday_timetable):
    with pytest.raises(ValidationError):
        attendance_ledger.mark_bulk(db, _bulk(thursday_timetable, time_slot_id=None), actor=None)
    assert db.execute(select(func.count()).select_from(AttendanceSession)).scalar_one() == 0


def test_subject_must_belong_to_batch(db, thursday_timetable):
    campus = thursday_timetable
    with pytest.raises(NotFoundError):
        attendance_ledger.mark_bulk(db, _bulk(campus, subject_id=campus.maths_b.id), actor=None)


def test_batch_without_active_students_is_rejected(db, thursday_timetable):
    campus = thursday_timetable
    for student in db.execute(select(Student).where(Student.batch_id == campus.batch_a.id)).scalars():
        student.is_active = False
    db.flush()

    with pytest.raises(NotFoundError) as excinfo:
        attendance_ledger.mark_bulk(db, _bulk(campus), actor=None)
    assert excinfo.value.message == "No active students found in batch"


def test_mark_students_on_an_empty_roster_writes_nothing(db, thursday_timetable):
    campus = thursday_timetable
    for student in db.execute(select(Student).where(Student.batch_id == campus.batch_a.id)).scalars():
        student.is_active = False
    db.flush()

    with pytest.raises(NotFoundError) as excinfo:
        attendance_ledger.mark_students(
            db,
            MarkStudentsRequest(
                batch_id=campus.batch_a.id,
                subject_id=campus.maths.id,
                date=CLASS_DAY,
                time_slot_id=campus.slot_0930.id,
                marks={campus.students[0].id: AttendanceStatus.present},
            ),
            actor=campus.faculty_user,
        )

    assert excinfo.value.message == "No active students found in batch"
    assert db.execute(select(func.count()).select_from(AttendanceSession)).scalar_one() == 0


def test_fullday_marks_every_known_slot_and_completes_the_session(db, thursday_timetable):
    campus = thursday_timetable

    result = attendance_ledger.mark_bulk(db, _bulk(campus, scope="fullday", time_slot_id=None), actor=campus.admin)

    assert result.time_slot_ids == [campus.slot_0830.id, campus.slot_0930.id]
    assert result.is_completed
    view = get_attendance_view(db, batch_id=campus.batch_a.id, subject_id=campus.maths.id, on_date=CLASS_DAY)
    assert view.is_completed
    assert all(row.full_day_status == FullDayStatus.present for row in view.students)
    assert all(set(row.per_slot_statuses) == {campus.slot_0830.id, campus.slot_0930.id} for row in view.students)
    assert view.summary.attendance_percentage == 100


def test_partial_marks_resolve_to_mixed_or_medical(db, thursday_timetable):
    campus = thursday_timetable
    attendance_ledger.mark_bulk(db, _bulk(campus, scope="fullday", time_slot_id=None), actor=None)
    first, second, _ = campus.students
    attendance_ledger.mark_students(
        db,
        MarkStudentsRequest(
            batch_id=campus.batch_a.id,
            subject_id=campus.maths.id,
            date=CLASS_DAY,
            time_slot_id=campus.slot_0930.id,
            marks={first.id: AttendanceStatus.absent, second.id: AttendanceStatus.medical},
        ),
        actor=None,
    )

    view = get_attendance_view(db, batch_id=campus.batch_a.id, subject_id=campus.maths.id, on_date=CLASS_DAY)
    by_student = {row.student_id: row.full_day_status for row in view.students}

    assert by_student[first.id] == FullDayStatus.mixed
    assert by_student[second.id] == FullDayStatus.medical
    assert view.summary.status_counts[FullDayStatus.present] == 1
    assert view.summary.attendance_percentage == 33
    # Slot-level marking never reopens or closes the day.
    assert view.is_completed


def test_session_notes_are_appended_with_caller(db, thursday_timetable):
    campus = thursday_timetable
    attendance_ledger.mark_bulk(db, _bulk(campus), actor=campus.faculty_user)
    attendance_ledger.mark_bulk(db, _bulk(campus, status=AttendanceStatus.late), actor=campus.admin)

    session = db.execute(select(AttendanceSession)).scalar_one()
    lines = session.notes.splitlines()

    assert len(lines) == 2
    assert f"{campus.faculty_user.id}: Partial update" in lines[0]
    assert f"{campus.admin.id}: Partial update" in lines[1]
    assert session.marked_by_id == campus.admin.id


def test_remarking_is_idempotent_per_slot(db, thursday_timetable):
    campus = thursday_timetable
    attendance_ledger.mark_bulk(db, _bulk(campus), actor=None)
    attendance_ledger.mark_bulk(db, _bulk(campus), actor=None)

    assert db.execute(select(func.count()).select_from(AttendanceRecord)).scalar_one() == 3
    assert db.execute(select(func.count()).select_from(AttendanceSlotMark)).scalar_one() == 3


def test_reset_then_remark_matches_a_fresh_mark(db, thursday_timetable):
    campus = thursday_timetable
    attendance_ledger.mark_bulk(db, _bulk(campus, scope="fullday", time_slot_id=None, status=AttendanceStatus.absent), actor=None)
    attendance_ledger.mark_bulk(db, _bulk(campus), actor=None)

    reset = attendance_ledger.reset(db, _reset(campus), actor=None)
    attendance_ledger.mark_bulk(db, _bulk(campus, status=AttendanceStatus.late), actor=None)

    assert reset.reset == 3
    for slot_map in _slot_maps(db, campus).values():
        assert slot_map == {
            campus.slot_0830.id: AttendanceStatus.absent,
            campus.slot_0930.id: AttendanceStatus.late,
        }


def test_slot_reset_drops_records_left_without_marks(db, thursday_timetable):
    campus = thursday_timetable
    attendance_ledger.mark_bulk(db, _bulk(campus), actor=None)

    result = attendance_ledger.reset(db, _reset(campus), actor=None)
    skipped = attendance_ledger.reset(db, _reset(campus, time_slot_id=campus.slot_0830.id), actor=None)

    assert (result.processed, result.reset, result.failed) == (3, 3, 0)
    assert db.execute(select(func.count()).select_from(AttendanceRecord)).scalar_one() == 0
    assert (skipped.processed, skipped.reset, skipped.failed) == (0, 0, 0)


def test_slot_reset_skips_students_without_that_slot(db, thursday_timetable):
    campus = thursday_timetable
    attendance_ledger.mark_bulk(db, _bulk(campus), actor=None)

    result = attendance_ledger.reset(db, _reset(campus, time_slot_id=campus.slot_0830.id), actor=None)

    assert (result.processed, result.reset, result.failed) == (3, 0, 0)
    assert db.execute(select(func.count()).select_from(AttendanceRecord)).scalar_one() == 3


def test_fullday_reset_reopens_the_session(db, thursday_timetable):
    campus = thursday_timetable
    attendance_ledger.mark_bulk(db, _bulk(campus, scope="fullday", time_slot_id=None), actor=None)

    result = attendance_ledger.reset(db, _reset(campus, scope="fullday", time_slot_id=None), actor=None)

    assert result.reset == 3
    assert db.execute(select(func.count()).select_from(AttendanceRecord)).scalar_one() == 0
    assert db.execute(select(func.count()).select_from(AttendanceSlotMark)).scalar_one() == 0
    assert not db.execute(select(AttendanceSession)).scalar_one().is_completed


def test_reset_without_session_is_a_no_op(db, thursday_timetable):
    result = attendance_ledger.reset(db, _reset(thursday_timetable), actor=None)

    assert result.session_id is None
    assert (result.processed, result.reset) == (0, 0)


def test_one_session_per_batch_subject_and_date(db, thursday_timetable):
    campus = thursday_timetable
    first, created = get_or_create_session(
        db, batch_id=campus.batch_a.id, subject_id=campus.maths.id, on_date=CLASS_DAY, actor=None
    )
    second, created_again = get_or_create_session(
        db, batch_id=campus.batch_a.id, subject_id=campus.maths.id, on_date=CLASS_DAY, actor=campus.admin
    )
    attendance_ledger.mark_bulk(db, _bulk(campus), actor=None)

    assert created and not created_again
    assert first.id == second.id
    assert db.execute(select(func.count()).select_from(AttendanceSession)).scalar_one() == 1


def test_racing_first_marks_share_one_session(tmp_path):
    # Separate connections on a file database, so the writers genuinely contend.
    file_engine = build_engine(
        f"sqlite+pysqlite:///{tmp_path / 'attendance.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=file_engine)
    race_sessions = sessionmaker(autocommit=False, autoflush=False, bind=file_engine)

    with race_sessions() as setup:
        department = Department(name="Electronics", short_name="ECE")
        setup.add(department)
        setup.flush()
        batch = Batch(department_id=department.id, name="ECE-A", semester=3)
        setup.add(batch)
        setup.flush()
        subject = Subject(batch_id=batch.id, code="EC201", name="Signals and Systems", credits=4)
        setup.add(subject)
        setup.commit()
        batch_id, subject_id = batch.id, subject.id

    writers = 4
    start = threading.Barrier(writers)
    outcomes: list[tuple[str, bool]] = []
    errors: list[Exception] = []

    def first_mark() -> None:
        start.wait()
        with race_sessions() as session:
            try:
                found, created = get_or_create_session(
                    session, batch_id=batch_id, subject_id=subject_id, on_date=CLASS_DAY, actor=None
                )
                session_id = found.id
                session.commit()
                outcomes.append((session_id, created))
            except SQLAlchemyError as exc:
                errors.append(exc)

    threads = [threading.Thread(target=first_mark) for _ in range(writers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    try:
        assert errors == []
        assert len({session_id for session_id, _ in outcomes}) == 1
        assert sum(1 for _, created in outcomes if created) == 1
        with race_sessions() as check:
            assert check.execute(select(func.count()).select_from(AttendanceSession)).scalar_one() == 1
    finally:
        file_engine.dispose()


def test_failed_student_is_isolated_from_the_rest(db, thursday_timetable, monkeypatch):
    campus = thursday_timetable
    broken = campus.students[1]
    real_upsert = attendance_ledger.upsert

    def flaky_upsert(session, model, values, **kwargs):
        if values.get("student_id") == broken.id:
            raise IntegrityError("INSERT INTO attendance_records", {}, Exception("simulated constraint failure"))
        return real_upsert(session, model, values, **kwargs)

    monkeypatch.setattr(attendance_ledger, "upsert", flaky_upsert)

    result = attendance_ledger.mark_bulk(db, _bulk(campus), actor=None)

    assert (result.processed, result.succeeded, result.failed) == (3, 2, 1)
    assert result.errors[0].student_id == broken.id
    assert "simulated constraint failure" in result.errors[0].error
    assert set(_slot_maps(db, campus)) == {campus.students[0].id, campus.students[2].id}


def test_lost_connection_aborts_the_whole_call(db, thursday_timetable, monkeypatch):
    campus = thursday_timetable

    def unavailable(*args, **kwargs):
        raise OperationalError("INSERT INTO attendance_records", {}, Exception("server closed the connection"))

    monkeypatch.setattr(attendance_ledger, "upsert", unavailable)

    with pytest.raises(OperationalError):
        attendance_ledger.mark_bulk(db, _bulk(campus), actor=None)


def test_mark_students_reports_unknown_students(db, thursday_timetable):
    campus = thursday_timetable
    first, second, _ = campus.students

    result = attendance_ledger.mark_students(
        db,
        MarkStudentsRequest(
            batch_id=campus.batch_a.id,
            subject_id=campus.maths.id,
            date=CLASS_DAY,
            time_slot_id=campus.slot_0930.id,
            marks={
                first.id: AttendanceStatus.present,
                second.id: AttendanceStatus.late,
                campus.dropped_student.id: AttendanceStatus.present,
            },
        ),
        actor=campus.faculty_user,
    )

    assert (result.processed, result.succeeded, result.failed) == (3, 2, 1)
    assert result.errors[0].student_id == campus.dropped_student.id
    assert _slot_maps(db, campus)[second.id] == {campus.slot_0930.id: AttendanceStatus.late}


def test_finalize_reports_roster_completion(db, thursday_timetable):
    campus = thursday_timetable
    key = SessionKey(batch_id=campus.batch_a.id, subject_id=campus.maths.id, date=CLASS_DAY)
    with pytest.raises(NotFoundError):
        attendance_ledger.finalize_session(db, key, actor=campus.admin)

    first, second, _ = campus.students
    attendance_ledger.mark_students(
        db,
        MarkStudentsRequest(
            batch_id=campus.batch_a.id,
            subject_id=campus.maths.id,
            date=CLASS_DAY,
            time_slot_id=campus.slot_0930.id,
            marks={first.id: AttendanceStatus.present, second.id: AttendanceStatus.absent},
        ),
        actor=campus.faculty_user,
    )
    result = attendance_ledger.finalize_session(db, key, actor=campus.admin)

    assert result.is_completed
    assert result.record_count == 2
    assert result.total_students_in_batch == 3
    assert not result.is_complete_roster
    # The unmarked student rolls up as absent.
    assert result.status_counts[FullDayStatus.absent] == 2
    assert result.status_counts[FullDayStatus.present] == 1
