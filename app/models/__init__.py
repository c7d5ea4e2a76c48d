"""Beanie document models and Pydantic schemas."""
from app.models.role import Role
from app.models.staff import Staff, AdminAccount
from app.models.intern import Intern, InternProfile, CourseStatus
from app.models.schedule import Timing, Batch, WeeklySchedule, TimeSlotEntry, WeekdayGroupEntry, WeekdayGroup
from app.models.attendance import (
    AttendanceRecord,
    AttendanceDraft,
    AttendanceCreate,
    AttendanceUpdate,
    SingleAttendanceUpdate,
    record_to_dict,
)

__all__ = [
    "Role",
    "Staff",
    "AdminAccount",
    "Intern",
    "InternProfile",
    "CourseStatus",
    "Timing",
    "Batch",
    "WeeklySchedule",
    "TimeSlotEntry",
    "WeekdayGroupEntry",
    "WeekdayGroup",
    "AttendanceRecord",
    "AttendanceDraft",
    "AttendanceCreate",
    "AttendanceUpdate",
    "SingleAttendanceUpdate",
    "record_to_dict",
]
