"""create campus timetable and attendance ledger

Revision ID: 20261018_0001
Revises: None
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


user_role_enum = sa.Enum("admin", "faculty", "student", name="user_role")
day_of_week_enum = sa.Enum(
    "MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY", name="day_of_week"
)
entry_type_enum = sa.Enum("REGULAR", "MAKEUP", "EXTRA", "SPECIAL", "EVENT", name="entry_type")
holiday_type_enum = sa.Enum("NATIONAL", "UNIVERSITY", "DEPARTMENT", "LOCAL", name="holiday_type")
attendance_status_enum = sa.Enum("present", "absent", "late", "medical", name="attendance_status")
# Second table reuses the type created with attendance_records.
slot_mark_status_enum = postgresql.ENUM(
    "present", "absent", "late", "medical", name="attendance_status", create_type=False
)


def _id_column() -> sa.Column:
    return sa.Column("id", sa.String(length=36), primary_key=True, nullable=False)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True)


def upgrade() -> None:
    op.create_table(
        "users",
        _id_column(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column("department_id", sa.String(length=36), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "departments",
        _id_column(),
        sa.Column("name", sa.String(length=200), nullable=False, unique=True),
        sa.Column("short_name", sa.String(length=20), nullable=False),
        _created_at(),
    )

    op.create_table(
        "batches",
        _id_column(),
        sa.Column("department_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("semester", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("start_year", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        sa.UniqueConstraint("department_id", "name", "semester", name="uq_batches_department_name_semester"),
    )
    op.create_index("ix_batches_department_id", "batches", ["department_id"])

    op.create_table(
        "subjects",
        _id_column(),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("primary_faculty_id", sa.String(length=36), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_subjects_batch_id", "subjects", ["batch_id"])
    op.create_index("ix_subjects_code", "subjects", ["code"], unique=True)

    op.create_table(
        "time_slots",
        _id_column(),
        sa.Column("name", sa.String(length=50), nullable=False, unique=True),
        sa.Column("start_time", sa.String(length=5), nullable=False),
        sa.Column("end_time", sa.String(length=5), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
    )

    op.create_table(
        "students",
        _id_column(),
        sa.Column("user_id", sa.String(length=36), nullable=True, unique=True),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("roll_number", sa.String(length=50), nullable=False, unique=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
    )
    op.create_index("ix_students_batch_id", "students", ["batch_id"])

    op.create_table(
        "faculty",
        _id_column(),
        sa.Column("user_id", sa.String(length=36), nullable=True, unique=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("designation", sa.String(length=200), nullable=False, server_default="Faculty"),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("department_id", sa.String(length=36), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_faculty_email", "faculty", ["email"], unique=True)
    op.create_index("ix_faculty_department_id", "faculty", ["department_id"])

    op.create_table(
        "timetable_entries",
        _id_column(),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("subject_id", sa.String(length=36), nullable=True),
        sa.Column("faculty_id", sa.String(length=36), nullable=True),
        sa.Column("time_slot_id", sa.String(length=36), nullable=False),
        sa.Column("day_of_week", day_of_week_enum, nullable=False),
        sa.Column("date", sa.Date(), nullable=True),
        sa.Column("occurrence_key", sa.String(length=10), nullable=False, server_default="weekly"),
        sa.Column("entry_type", entry_type_enum, nullable=False, server_default="REGULAR"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("custom_event_title", sa.String(length=200), nullable=True),
        sa.Column("requires_attendance", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_by_id", sa.String(length=36), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_timetable_entries_batch_id", "timetable_entries", ["batch_id"])
    op.create_index("ix_timetable_entries_faculty_id", "timetable_entries", ["faculty_id"])
    op.create_index("ix_timetable_entries_subject_active", "timetable_entries", ["subject_id", "is_active"])
    op.create_index(
        "uq_timetable_entries_active_batch_cell",
        "timetable_entries",
        ["batch_id", "time_slot_id", "day_of_week", "occurrence_key"],
        unique=True,
        postgresql_where=sa.text("is_active"),
        sqlite_where=sa.text("is_active = 1"),
    )
    op.create_index(
        "uq_timetable_entries_active_faculty_cell",
        "timetable_entries",
        ["faculty_id", "time_slot_id", "day_of_week", "occurrence_key"],
        unique=True,
        postgresql_where=sa.text("is_active AND faculty_id IS NOT NULL"),
        sqlite_where=sa.text("is_active = 1 AND faculty_id IS NOT NULL"),
    )

    op.create_table(
        "academic_calendars",
        _id_column(),
        sa.Column("department_id", sa.String(length=36), nullable=False),
        sa.Column("semester_name", sa.String(length=100), nullable=False),
        sa.Column("academic_year", sa.String(length=20), nullable=False),
        sa.Column("semester_start", sa.Date(), nullable=False),
        sa.Column("semester_end", sa.Date(), nullable=False),
        _created_at(),
        sa.UniqueConstraint(
            "department_id",
            "semester_name",
            "academic_year",
            name="uq_academic_calendars_department_semester_year",
        ),
    )
    op.create_index("ix_academic_calendars_department_id", "academic_calendars", ["department_id"])

    op.create_table(
        "holidays",
        _id_column(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("holiday_type", holiday_type_enum, nullable=False, server_default="UNIVERSITY"),
        sa.Column("department_id", sa.String(length=36), nullable=True),
        sa.Column("batch_id", sa.String(length=36), nullable=True),
        sa.Column("academic_calendar_id", sa.String(length=36), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_holidays_date", "holidays", ["date"])

    op.create_table(
        "exam_periods",
        _id_column(),
        sa.Column("academic_calendar_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("exam_type", sa.String(length=50), nullable=False, server_default="INTERNAL"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("block_regular_classes", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("allow_review_classes", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("description", sa.Text(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("academic_calendar_id", "name", name="uq_exam_periods_calendar_name"),
    )
    op.create_index("ix_exam_periods_academic_calendar_id", "exam_periods", ["academic_calendar_id"])

    op.create_table(
        "attendance_sessions",
        _id_column(),
        sa.Column("batch_id", sa.String(length=36), nullable=False),
        sa.Column("subject_id", sa.String(length=36), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_by_id", sa.String(length=36), nullable=True),
        sa.Column("marked_by_id", sa.String(length=36), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("batch_id", "subject_id", "date", name="uq_attendance_sessions_batch_subject_date"),
    )
    op.create_index("ix_attendance_sessions_subject_id", "attendance_sessions", ["subject_id"])

    op.create_table(
        "attendance_records",
        _id_column(),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("student_id", sa.String(length=36), nullable=False),
        sa.Column("status", attendance_status_enum, nullable=False, server_default="absent"),
        sa.Column("marked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_modified_by_id", sa.String(length=36), nullable=True),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("session_id", "student_id", name="uq_attendance_records_session_student"),
    )
    op.create_index("ix_attendance_records_session_id", "attendance_records", ["session_id"])
    op.create_index("ix_attendance_records_student_id", "attendance_records", ["student_id"])

    op.create_table(
        "attendance_slot_marks",
        _id_column(),
        sa.Column("record_id", sa.String(length=36), nullable=False),
        sa.Column("time_slot_id", sa.String(length=36), nullable=False),
        sa.Column("status", slot_mark_status_enum, nullable=False),
        sa.Column("marked_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("record_id", "time_slot_id", name="uq_attendance_slot_marks_record_slot"),
    )
    op.create_index("ix_attendance_slot_marks_record_id", "attendance_slot_marks", ["record_id"])

    op.create_table(
        "activity_logs",
        _id_column(),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_type", sa.String(length=100), nullable=True),
        sa.Column("entity_id", sa.String(length=100), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_activity_logs_entity", "activity_logs", ["entity_type", "entity_id"])
    op.create_index("ix_activity_logs_user_created", "activity_logs", ["user_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_activity_logs_user_created", table_name="activity_logs")
    op.drop_index("ix_activity_logs_entity", table_name="activity_logs")
    op.drop_table("activity_logs")
    op.drop_index("ix_attendance_slot_marks_record_id", table_name="attendance_slot_marks")
    op.drop_table("attendance_slot_marks")
    op.drop_index("ix_attendance_records_student_id", table_name="attendance_records")
    op.drop_index("ix_attendance_records_session_id", table_name="attendance_records")
    op.drop_table("attendance_records")
    op.drop_index("ix_attendance_sessions_subject_id", table_name="attendance_sessions")
    op.drop_table("attendance_sessions")
    op.drop_index("ix_exam_periods_academic_calendar_id", table_name="exam_periods")
    op.drop_table("exam_periods")
    op.drop_index("ix_holidays_date", table_name="holidays")
    op.drop_table("holidays")
    op.drop_index("ix_academic_calendars_department_id", table_name="academic_calendars")
    op.drop_table("academic_calendars")
    op.drop_index("uq_timetable_entries_active_faculty_cell", table_name="timetable_entries")
    op.drop_index("uq_timetable_entries_active_batch_cell", table_name="timetable_entries")
    op.drop_index("ix_timetable_entries_subject_active", table_name="timetable_entries")
    op.drop_index("ix_timetable_entries_faculty_id", table_name="timetable_entries")
    op.drop_index("ix_timetable_entries_batch_id", table_name="timetable_entries")
    op.drop_table("timetable_entries")
    op.drop_index("ix_faculty_department_id", table_name="faculty")
    op.drop_index("ix_faculty_email", table_name="faculty")
    op.drop_table("faculty")
    op.drop_index("ix_students_batch_id", table_name="students")
    op.drop_table("students")
    op.drop_table("time_slots")
    op.drop_index("ix_subjects_code", table_name="subjects")
    op.drop_index("ix_subjects_batch_id", table_name="subjects")
    op.drop_table("subjects")
    op.drop_index("ix_batches_department_id", table_name="batches")
    op.drop_table("batches")
    op.drop_table("departments")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in (attendance_status_enum, holiday_type_enum, entry_type_enum, day_of_week_enum, user_role_enum):
        enum.drop(bind, checkfirst=True)
