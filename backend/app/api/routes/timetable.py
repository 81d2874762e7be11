from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_db, require_staff
from app.models.timetable_entry import DayOfWeek, EntryType
from app.models.user import User
from app.schemas.timetable import (
    TimetableEntryCreate,
    TimetableEntryOut,
    TimetableEntryUpdate,
    TimetableEntryWriteOut,
)
from app.services import timetable_store

router = APIRouter()


@router.get("/entries", response_model=list[TimetableEntryOut])
def list_entries(
    batch_id: str | None = Query(default=None),
    faculty_id: str | None = Query(default=None),
    subject_id: str | None = Query(default=None),
    day_of_week: DayOfWeek | None = Query(default=None),
    entry_type: EntryType | None = Query(default=None),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    include_inactive: bool = Query(default=False),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[TimetableEntryOut]:
    return timetable_store.list_entries(
        db,
        batch_id=batch_id,
        faculty_id=faculty_id,
        subject_id=subject_id,
        day_of_week=day_of_week,
        entry_type=entry_type,
        date_from=date_from,
        date_to=date_to,
        include_inactive=include_inactive,
    )


@router.get("/effective", response_model=list[TimetableEntryOut])
def effective_entries(
    batch_id: str = Query(min_length=1),
    on_date: date = Query(alias="date"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[TimetableEntryOut]:
    return timetable_store.effective_entries(db, batch_id=batch_id, on_date=on_date)


@router.get("/entries/{entry_id}", response_model=TimetableEntryOut)
def get_entry(
    entry_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TimetableEntryOut:
    return timetable_store.get_entry(db, entry_id)


@router.post("/entries", response_model=TimetableEntryWriteOut, status_code=status.HTTP_201_CREATED)
def create_entry(
    payload: TimetableEntryCreate,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> TimetableEntryWriteOut:
    entry, warnings = timetable_store.create_entry(db, payload, actor=current_user)
    db.commit()
    db.refresh(entry)
    return TimetableEntryWriteOut(entry=TimetableEntryOut.model_validate(entry), warnings=warnings)


@router.put("/entries/{entry_id}", response_model=TimetableEntryWriteOut)
def update_entry(
    entry_id: str,
    payload: TimetableEntryUpdate,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> TimetableEntryWriteOut:
    entry, warnings = timetable_store.update_entry(db, entry_id, payload, actor=current_user)
    db.commit()
    db.refresh(entry)
    return TimetableEntryWriteOut(entry=TimetableEntryOut.model_validate(entry), warnings=warnings)


@router.delete("/entries/{entry_id}", response_model=TimetableEntryOut)
def deactivate_entry(
    entry_id: str,
    current_user: User = Depends(require_staff),
    db: Session = Depends(get_db),
) -> TimetableEntryOut:
    entry = timetable_store.deactivate_entry(db, entry_id, actor=current_user)
    db.commit()
    db.refresh(entry)
    return entry
