from datetime import date as date_type
from typing import Literal

from pydantic import BaseModel, Field

from app.models.timetable_entry import DayOfWeek, EntryType

ConflictType = Literal[
    "BATCH_DOUBLE_BOOKING",
    "FACULTY_CONFLICT",
    "HOLIDAY_SCHEDULING",
    "EXAM_PERIOD_CONFLICT",
]
Severity = Literal["error", "warning"]


class ConflictCheckRequest(BaseModel):
    batch_id: str = Field(min_length=1)
    faculty_id: str | None = None
    time_slot_id: str = Field(min_length=1)
    day_of_week: DayOfWeek
    date: date_type | None = None
    entry_type: EntryType = EntryType.regular
    exclude_entry_id: str | None = None


class ConflictingEntry(BaseModel):
    id: str
    batch_id: str
    subject_id: str | None = None
    faculty_id: str | None = None
    time_slot_id: str
    day_of_week: DayOfWeek
    date: date_type | None = None
    entry_type: EntryType

    model_config = {"from_attributes": True}


class ConflictingHoliday(BaseModel):
    id: str
    name: str
    date: date_type

    model_config = {"from_attributes": True}


class ConflictingExamPeriod(BaseModel):
    id: str
    name: str
    start_date: date_type
    end_date: date_type

    model_config = {"from_attributes": True}


class ConflictDetail(BaseModel):
    type: ConflictType
    severity: Severity
    message: str
    entries: list[ConflictingEntry] = Field(default_factory=list)
    holidays: list[ConflictingHoliday] = Field(default_factory=list)
    exam_periods: list[ConflictingExamPeriod] = Field(default_factory=list)


class AlternativeTimeSlot(BaseModel):
    id: str
    name: str
    start_time: str
    end_time: str
    duration_minutes: int

    model_config = {"from_attributes": True}


class Alternative(BaseModel):
    day_of_week: DayOfWeek
    time_slot: AlternativeTimeSlot
    same_day: bool
    available: bool = True


class ConflictSummary(BaseModel):
    error_count: int
    warning_count: int
    alternative_count: int


class ConflictReport(BaseModel):
    has_conflicts: bool
    conflicts: list[ConflictDetail]
    alternatives: list[Alternative]
    summary: ConflictSummary

    @property
    def is_blocking(self) -> bool:
        return self.summary.error_count > 0


class FacultySlotProbe(BaseModel):
    has_conflict: bool
    conflict_type: ConflictType | None = None
    entry: ConflictingEntry | None = None
