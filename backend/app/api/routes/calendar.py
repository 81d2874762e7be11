from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_admin
from app.models.user import User
from app.schemas.calendar import ExamPeriodCreate, ExamPeriodOut, HolidayCreate, HolidayOut
from app.services import calendar as calendar_service

router = APIRouter()


@router.post("/holidays", response_model=HolidayOut, status_code=status.HTTP_201_CREATED)
def add_holiday(
    payload: HolidayCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> HolidayOut:
    holiday = calendar_service.add_holiday(db, payload, actor=current_user)
    db.commit()
    db.refresh(holiday)
    return holiday


@router.delete("/holidays/{holiday_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_holiday(
    holiday_id: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> None:
    calendar_service.remove_holiday(db, holiday_id, actor=current_user)
    db.commit()


@router.post("/exam-periods", response_model=ExamPeriodOut, status_code=status.HTTP_201_CREATED)
def add_exam_period(
    payload: ExamPeriodCreate,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> ExamPeriodOut:
    period = calendar_service.add_exam_period(db, payload, actor=current_user)
    db.commit()
    db.refresh(period)
    return calendar_service.exam_period_out(period)


@router.get("/exam-periods", response_model=list[ExamPeriodOut])
def list_exam_periods(
    academic_calendar_id: str | None = Query(default=None),
    department_id: str | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[ExamPeriodOut]:
    return calendar_service.list_exam_periods(
        db,
        academic_calendar_id=academic_calendar_id,
        department_id=department_id,
    )
