from app.models.academic_calendar import AcademicCalendar, ExamPeriod, Holiday, HolidayType  # noqa: F401
from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.attendance import (  # noqa: F401
    AttendanceRecord,
    AttendanceSession,
    AttendanceSlotMark,
    AttendanceStatus,
    FullDayStatus,
)
from app.models.department import Batch, Department  # noqa: F401
from app.models.faculty import Faculty  # noqa: F401
from app.models.student import Student  # noqa: F401
from app.models.subject import Subject  # noqa: F401
from app.models.time_slot import TimeSlot  # noqa: F401
from app.models.timetable_entry import DayOfWeek, EntryType, TimetableEntry  # noqa: F401
from app.models.user import User, UserRole  # noqa: F401
