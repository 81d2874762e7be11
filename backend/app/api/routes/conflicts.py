from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_staff
from app.models.timetable_entry import DayOfWeek
from app.models.user import User
from app.schemas.conflict import ConflictCheckRequest, ConflictReport, FacultySlotProbe
from app.services.conflict_service import ConflictService

router = APIRouter()


@router.post("/check", response_model=ConflictReport)
def check_conflicts(
    payload: ConflictCheckRequest,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> ConflictReport:
    return ConflictService(db).check(payload)


@router.get("/faculty-slot", response_model=FacultySlotProbe)
def check_faculty_slot(
    faculty_id: str = Query(min_length=1),
    day_of_week: DayOfWeek = Query(),
    time_slot_id: str = Query(min_length=1),
    exclude_entry_id: str | None = Query(default=None),
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> FacultySlotProbe:
    return ConflictService(db).check_faculty_slot(
        faculty_id=faculty_id,
        day_of_week=day_of_week,
        time_slot_id=time_slot_id,
        exclude_entry_id=exclude_entry_id,
    )
