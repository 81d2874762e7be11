from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from app.models.academic_calendar import HolidayType


class HolidayCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    date: date
    holiday_type: HolidayType = HolidayType.university
    department_id: str | None = None
    batch_id: str | None = None
    academic_calendar_id: str | None = None
    description: str | None = Field(default=None, max_length=2000)


class HolidayOut(HolidayCreate):
    id: str
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ExamPeriodCreate(BaseModel):
    academic_calendar_id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=200)
    exam_type: str = Field(default="INTERNAL", min_length=1, max_length=50)
    start_date: date
    end_date: date
    block_regular_classes: bool = True
    allow_review_classes: bool = True
    description: str | None = Field(default=None, max_length=2000)

    @model_validator(mode="after")
    def validate_range(self) -> "ExamPeriodCreate":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class ExamPeriodOut(BaseModel):
    id: str
    academic_calendar_id: str
    name: str
    exam_type: str
    start_date: date
    end_date: date
    block_regular_classes: bool
    allow_review_classes: bool
    description: str | None = None
    status: Literal["upcoming", "ongoing", "completed"]
    duration_days: int
