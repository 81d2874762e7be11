import uuid
from datetime import date as date_type, datetime
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, Enum as SAEnum, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base

WEEKLY_OCCURRENCE = "weekly"


class DayOfWeek(str, Enum):
    monday = "MONDAY"
    tuesday = "TUESDAY"
    wednesday = "WEDNESDAY"
    thursday = "THURSDAY"
    friday = "FRIDAY"
    saturday = "SATURDAY"
    sunday = "SUNDAY"

    @classmethod
    def from_date(cls, value: date_type) -> "DayOfWeek":
        return DAY_ORDER[value.weekday()]


# Canonical iteration order; matches date.weekday().
DAY_ORDER = [
    DayOfWeek.monday,
    DayOfWeek.tuesday,
    DayOfWeek.wednesday,
    DayOfWeek.thursday,
    DayOfWeek.friday,
    DayOfWeek.saturday,
    DayOfWeek.sunday,
]


class EntryType(str, Enum):
    regular = "REGULAR"
    makeup = "MAKEUP"
    extra = "EXTRA"
    special = "SPECIAL"
    event = "EVENT"


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


def occurrence_key_for(value: date_type | None) -> str:
    return value.isoformat() if value is not None else WEEKLY_OCCURRENCE


class TimetableEntry(Base):
    __tablename__ = "timetable_entries"
    __table_args__ = (
        # Backstop for the check-then-write gap: at most one active entry per cell.
        Index(
            "uq_timetable_entries_active_batch_cell",
            "batch_id",
            "time_slot_id",
            "day_of_week",
            "occurrence_key",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
        Index(
            "uq_timetable_entries_active_faculty_cell",
            "faculty_id",
            "time_slot_id",
            "day_of_week",
            "occurrence_key",
            unique=True,
            sqlite_where=text("is_active = 1 AND faculty_id IS NOT NULL"),
            postgresql_where=text("is_active AND faculty_id IS NOT NULL"),
        ),
        Index("ix_timetable_entries_subject_active", "subject_id", "is_active"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    batch_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    subject_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    faculty_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    time_slot_id: Mapped[str] = mapped_column(String(36), nullable=False)
    day_of_week: Mapped[DayOfWeek] = mapped_column(
        SAEnum(DayOfWeek, name="day_of_week", values_callable=_enum_values),
        nullable=False,
    )
    date: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    occurrence_key: Mapped[str] = mapped_column(String(10), nullable=False, default=WEEKLY_OCCURRENCE)
    entry_type: Mapped[EntryType] = mapped_column(
        SAEnum(EntryType, name="entry_type", values_callable=_enum_values),
        nullable=False,
        default=EntryType.regular,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    custom_event_title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    requires_attendance: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
