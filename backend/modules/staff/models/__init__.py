from .staff_models import StaffMember, Staff
from .attendance_models import WorkSession, MinuteStat
from .time_request_models import TimeRequest

__all__ = [
    "StaffMember",
    "Staff",
    "WorkSession",
    "MinuteStat",
    "TimeRequest",
]
