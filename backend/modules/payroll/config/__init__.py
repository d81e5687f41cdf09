from .attendance_rules import AttendanceRules, attendance_rules

__all__ = ["AttendanceRules", "attendance_rules"]
