from .payroll_configuration import EmployeeCompConfig, Holiday
from .payroll_models import (
    AttendanceMonthFact,
    BonusCandidate,
    PayrollPeriod,
    PayrollLine,
)
from .payroll_audit import PayrollAuditLog

__all__ = [
    "EmployeeCompConfig",
    "Holiday",
    "AttendanceMonthFact",
    "BonusCandidate",
    "PayrollPeriod",
    "PayrollLine",
    "PayrollAuditLog",
]
