import uuid
from datetime import date as date_type, datetime
from enum import Enum

from sqlalchemy import Boolean, Date, DateTime, Enum as SAEnum, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class AcademicCalendar(Base):
    __tablename__ = "academic_calendars"
    __table_args__ = (
        UniqueConstraint(
            "department_id",
            "semester_name",
            "academic_year",
            name="uq_academic_calendars_department_semester_year",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    department_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    semester_name: Mapped[str] = mapped_column(String(100), nullable=False)
    academic_year: Mapped[str] = mapped_column(String(20), nullable=False)
    semester_start: Mapped[date_type] = mapped_column(Date, nullable=False)
    semester_end: Mapped[date_type] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class HolidayType(str, Enum):
    national = "NATIONAL"
    university = "UNIVERSITY"
    department = "DEPARTMENT"
    local = "LOCAL"


class Holiday(Base):
    """A non-teaching date. No department and no batch means university-wide."""

    __tablename__ = "holidays"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    date: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)
    holiday_type: Mapped[HolidayType] = mapped_column(
        SAEnum(HolidayType, name="holiday_type", values_callable=lambda enum_cls: [item.value for item in enum_cls]),
        nullable=False,
        default=HolidayType.university,
    )
    department_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    batch_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    academic_calendar_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ExamPeriod(Base):
    __tablename__ = "exam_periods"
    __table_args__ = (
        UniqueConstraint("academic_calendar_id", "name", name="uq_exam_periods_calendar_name"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    academic_calendar_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    exam_type: Mapped[str] = mapped_column(String(50), nullable=False, default="INTERNAL")
    start_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    end_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    block_regular_classes: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    allow_review_classes: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
