from __future__ import annotations

from datetime import date
import logging

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.academic_calendar import AcademicCalendar, ExamPeriod, Holiday
from app.models.department import Batch, Department
from app.models.user import User
from app.schemas.calendar import ExamPeriodCreate, ExamPeriodOut, HolidayCreate
from app.services.audit import log_activity

logger = logging.getLogger(__name__)


def holidays_on(db: Session, *, on_date: date, batch: Batch) -> list[Holiday]:
    """Holidays on a date that apply to a batch: university-wide, its department, or the batch itself."""
    statement = select(Holiday).where(
        Holiday.date == on_date,
        or_(Holiday.department_id.is_(None), Holiday.department_id == batch.department_id),
        or_(Holiday.batch_id.is_(None), Holiday.batch_id == batch.id),
    )
    return list(db.execute(statement.order_by(Holiday.name.asc())).scalars())


def blocking_exam_periods(db: Session, *, on_date: date, batch: Batch) -> list[ExamPeriod]:
    statement = (
        select(ExamPeriod)
        .join(AcademicCalendar, AcademicCalendar.id == ExamPeriod.academic_calendar_id)
        .where(
            AcademicCalendar.department_id == batch.department_id,
            ExamPeriod.start_date <= on_date,
            ExamPeriod.end_date >= on_date,
            ExamPeriod.block_regular_classes.is_(True),
        )
        .order_by(ExamPeriod.start_date.asc())
    )
    return list(db.execute(statement).scalars())


def add_holiday(db: Session, payload: HolidayCreate, *, actor: User | None, today: date | None = None) -> Holiday:
    today = today or date.today()
    if payload.date < today:
        raise ValidationError("Holidays cannot be created in the past")
    if payload.department_id and db.get(Department, payload.department_id) is None:
        raise NotFoundError.for_resource("Department", payload.department_id)
    if payload.batch_id:
        batch = db.get(Batch, payload.batch_id)
        if batch is None:
            raise NotFoundError.for_resource("Batch", payload.batch_id)
        if payload.department_id and batch.department_id != payload.department_id:
            raise ValidationError("Batch does not belong to the given department")
    if payload.academic_calendar_id and db.get(AcademicCalendar, payload.academic_calendar_id) is None:
        raise NotFoundError.for_resource("Academic calendar", payload.academic_calendar_id)

    holiday = Holiday(**payload.model_dump())
    db.add(holiday)
    db.flush()
    log_activity(
        db,
        user=actor,
        action="holiday.create",
        entity_type="holiday",
        entity_id=holiday.id,
        details={"date": payload.date.isoformat(), "name": payload.name},
    )
    return holiday


def remove_holiday(db: Session, holiday_id: str, *, actor: User | None, today: date | None = None) -> None:
    holiday = db.get(Holiday, holiday_id)
    if holiday is None:
        raise NotFoundError.for_resource("Holiday", holiday_id)
    if holiday.date < (today or date.today()):
        raise ValidationError("Past holidays are immutable")
    log_activity(
        db,
        user=actor,
        action="holiday.delete",
        entity_type="holiday",
        entity_id=holiday.id,
        details={"date": holiday.date.isoformat(), "name": holiday.name},
    )
    db.delete(holiday)


def _periods_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    return start_a <= end_b and start_b <= end_a


def add_exam_period(db: Session, payload: ExamPeriodCreate, *, actor: User | None) -> ExamPeriod:
    calendar = db.get(AcademicCalendar, payload.academic_calendar_id)
    if calendar is None:
        raise NotFoundError.for_resource("Academic calendar", payload.academic_calendar_id)
    if payload.start_date < calendar.semester_start or payload.end_date > calendar.semester_end:
        raise ValidationError(
            "Exam period must fall within the academic calendar period",
            details={
                "semester_start": calendar.semester_start.isoformat(),
                "semester_end": calendar.semester_end.isoformat(),
            },
        )

    siblings = list(
        db.execute(select(ExamPeriod).where(ExamPeriod.academic_calendar_id == calendar.id)).scalars()
    )
    overlapping = [
        item
        for item in siblings
        if _periods_overlap(payload.start_date, payload.end_date, item.start_date, item.end_date)
    ]
    if overlapping:
        raise ConflictError(
            "Exam period overlaps with existing exam periods",
            details={
                "overlapping_periods": [
                    {
                        "id": item.id,
                        "name": item.name,
                        "start_date": item.start_date.isoformat(),
                        "end_date": item.end_date.isoformat(),
                    }
                    for item in overlapping
                ]
            },
        )
    if any(item.name == payload.name for item in siblings):
        raise ConflictError("An exam period with this name already exists in this academic calendar")

    period = ExamPeriod(**payload.model_dump())
    db.add(period)
    db.flush()
    log_activity(
        db,
        user=actor,
        action="exam_period.create",
        entity_type="exam_period",
        entity_id=period.id,
        details={"start_date": payload.start_date.isoformat(), "end_date": payload.end_date.isoformat()},
    )
    logger.info("Created exam period %s (%s to %s)", period.name, period.start_date, period.end_date)
    return period


def _period_status(period: ExamPeriod, today: date) -> str:
    if today < period.start_date:
        return "upcoming"
    if today > period.end_date:
        return "completed"
    return "ongoing"


def exam_period_out(period: ExamPeriod, *, today: date | None = None) -> ExamPeriodOut:
    return ExamPeriodOut(
        id=period.id,
        academic_calendar_id=period.academic_calendar_id,
        name=period.name,
        exam_type=period.exam_type,
        start_date=period.start_date,
        end_date=period.end_date,
        block_regular_classes=period.block_regular_classes,
        allow_review_classes=period.allow_review_classes,
        description=period.description,
        status=_period_status(period, today or date.today()),
        duration_days=(period.end_date - period.start_date).days,
    )


def list_exam_periods(
    db: Session,
    *,
    academic_calendar_id: str | None = None,
    department_id: str | None = None,
    today: date | None = None,
) -> list[ExamPeriodOut]:
    today = today or date.today()
    statement = select(ExamPeriod)
    if academic_calendar_id:
        statement = statement.where(ExamPeriod.academic_calendar_id == academic_calendar_id)
    elif department_id:
        statement = statement.join(
            AcademicCalendar,
            and_(
                AcademicCalendar.id == ExamPeriod.academic_calendar_id,
                AcademicCalendar.department_id == department_id,
            ),
        )
    periods = db.execute(statement.order_by(ExamPeriod.start_date.asc())).scalars()
    return [exam_period_out(item, today=today) for item in periods]
