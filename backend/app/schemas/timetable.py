from datetime import date as date_type, datetime

from pydantic import BaseModel, Field, model_validator

from app.models.timetable_entry import DayOfWeek, EntryType
from app.schemas.conflict import ConflictDetail


class TimetableEntryBase(BaseModel):
    batch_id: str = Field(min_length=1)
    subject_id: str | None = None
    faculty_id: str | None = None
    time_slot_id: str = Field(min_length=1)
    day_of_week: DayOfWeek | None = None
    date: date_type | None = None
    entry_type: EntryType = EntryType.regular
    notes: str | None = Field(default=None, max_length=2000)
    custom_event_title: str | None = Field(default=None, max_length=200)
    requires_attendance: bool = True

    @model_validator(mode="after")
    def validate_day_and_date(self) -> "TimetableEntryBase":
        if self.day_of_week is None and self.date is None:
            raise ValueError("Either day_of_week or date is required")
        if self.date is not None:
            derived = DayOfWeek.from_date(self.date)
            if self.day_of_week is not None and self.day_of_week != derived:
                raise ValueError(f"day_of_week {self.day_of_week.value} does not match date {self.date.isoformat()}")
            self.day_of_week = derived
        return self


class TimetableEntryCreate(TimetableEntryBase):
    pass


class TimetableEntryUpdate(TimetableEntryBase):
    pass


class TimetableEntryOut(BaseModel):
    id: str
    batch_id: str
    subject_id: str | None = None
    faculty_id: str | None = None
    time_slot_id: str
    day_of_week: DayOfWeek
    date: date_type | None = None
    entry_type: EntryType
    is_active: bool
    notes: str | None = None
    custom_event_title: str | None = None
    requires_attendance: bool
    created_by_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class TimetableEntryWriteOut(BaseModel):
    entry: TimetableEntryOut
    warnings: list[ConflictDetail] = Field(default_factory=list)
