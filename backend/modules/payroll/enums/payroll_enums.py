from enum import Enum


class BonusType(str, Enum):
    MONTHLY_ATTENDANCE = "monthly_attendance"
    QUARTERLY_ATTENDANCE = "quarterly_attendance"
    KPI = "kpi"


class BonusStatus(str, Enum):
    EARNED = "earned"
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"

    @property
    def is_overwritable_by_automation(self) -> bool:
        """Manual decisions (approved/denied) survive recomputation."""
        return self in (BonusStatus.EARNED, BonusStatus.PENDING)


class PayrollPeriodStatus(str, Enum):
    DRAFT = "draft"
    APPROVED = "approved"
    PAID = "paid"


class AttendanceReviewStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class AuditScope(str, Enum):
    """Scopes recorded in the payroll audit log."""
    EMPLOYEE_CONFIG = "employee_config"
    HOLIDAY = "holiday"
    ATTENDANCE = "attendance"
    BONUS = "bonus"
    PAYROLL = "payroll"
