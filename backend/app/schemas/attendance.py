from datetime import date
from typing import Literal

from pydantic import BaseModel, Field

from app.models.attendance import AttendanceStatus, FullDayStatus

MarkScope = Literal["slot", "fullday"]


class BulkMarkRequest(BaseModel):
    batch_id: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)
    date: date
    status: AttendanceStatus
    scope: MarkScope
    time_slot_id: str | None = None


class ResetRequest(BaseModel):
    batch_id: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)
    date: date
    scope: MarkScope
    time_slot_id: str | None = None


class MarkStudentsRequest(BaseModel):
    batch_id: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)
    date: date
    time_slot_id: str = Field(min_length=1)
    marks: dict[str, AttendanceStatus] = Field(min_length=1)


class SessionKey(BaseModel):
    batch_id: str = Field(min_length=1)
    subject_id: str = Field(min_length=1)
    date: date


class StudentWriteError(BaseModel):
    student_id: str
    error: str


class MarkResult(BaseModel):
    session_id: str
    scope: MarkScope
    status: AttendanceStatus | None = None
    time_slot_ids: list[str]
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: list[StudentWriteError] = Field(default_factory=list)
    is_completed: bool = False


class ResetResult(BaseModel):
    session_id: str | None = None
    scope: MarkScope
    time_slot_id: str | None = None
    processed: int = 0
    reset: int = 0
    failed: int = 0
    errors: list[StudentWriteError] = Field(default_factory=list)


class StudentAttendanceOut(BaseModel):
    student_id: str
    name: str
    roll_number: str
    per_slot_statuses: dict[str, AttendanceStatus]
    full_day_status: FullDayStatus


class AttendanceSummary(BaseModel):
    total_students: int
    marked_students: int
    is_marked: bool
    status_counts: dict[FullDayStatus, int]
    attendance_percentage: int


class AttendanceViewOut(BaseModel):
    batch_id: str
    subject_id: str
    date: date
    session_id: str | None = None
    is_completed: bool = False
    time_slot_ids: list[str]
    students: list[StudentAttendanceOut]
    summary: AttendanceSummary


class FinalizeResult(BaseModel):
    session_id: str
    is_completed: bool
    record_count: int
    total_students_in_batch: int
    is_complete_roster: bool
    status_counts: dict[FullDayStatus, int]
