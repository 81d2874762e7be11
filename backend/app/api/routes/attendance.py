from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_staff
from app.models.user import User
from app.schemas.attendance import (
    AttendanceViewOut,
    BulkMarkRequest,
    FinalizeResult,
    MarkResult,
    MarkStudentsRequest,
    ResetRequest,
    ResetResult,
    SessionKey,
)
from app.services import attendance_ledger
from app.services.attendance_view import get_attendance_view

router = APIRouter()


@router.post("/bulk", response_model=MarkResult)
def mark_bulk(
    payload: BulkMarkRequest,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> MarkResult:
    result = attendance_ledger.mark_bulk(db, payload, actor=current_user)
    db.commit()
    return result


@router.post("/students", response_model=MarkResult)
def mark_students(
    payload: MarkStudentsRequest,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> MarkResult:
    result = attendance_ledger.mark_students(db, payload, actor=current_user)
    db.commit()
    return result


@router.post("/reset", response_model=ResetResult)
def reset_attendance(
    payload: ResetRequest,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> ResetResult:
    result = attendance_ledger.reset(db, payload, actor=current_user)
    db.commit()
    return result


@router.post("/finalize", response_model=FinalizeResult)
def finalize_session(
    payload: SessionKey,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> FinalizeResult:
    result = attendance_ledger.finalize_session(db, payload, actor=current_user)
    db.commit()
    return result


@router.get("/view", response_model=AttendanceViewOut)
def attendance_view(
    batch_id: str = Query(min_length=1),
    subject_id: str = Query(min_length=1),
    on_date: date = Query(alias="date"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AttendanceViewOut:
    return get_attendance_view(db, batch_id=batch_id, subject_id=subject_id, on_date=on_date)
