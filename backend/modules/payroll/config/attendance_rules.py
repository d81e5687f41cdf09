"""Business rules for attendance reconciliation"""
from dataclasses import dataclass, field
from decimal import Decimal
from zoneinfo import ZoneInfo

from core.config import settings


@dataclass
class AttendanceRules:
    """Thresholds and defaults applied when building attendance facts"""

    # Organization time zone for day and month boundaries
    TIME_ZONE: str = field(default_factory=lambda: settings.payroll_time_zone)

    # Make-up matching
    MAKE_UP_WINDOW_DAYS: int = 14
    MAKE_UP_CAP_HOURS: Decimal = Decimal("8")

    # Perfect attendance
    MAX_TARDY_MINUTES: int = 90
    PERFECT_TOLERANCE_HOURS: Decimal = Decimal("0.01")

    # Schedule defaults
    DEFAULT_START: str = "09:00"
    DEFAULT_END: str = "17:00"
    DEFAULT_BREAK_MINUTES: int = 0
    DEFAULT_EXPECTED_HOURS: Decimal = Decimal("8")

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.TIME_ZONE)


# Default rule set
attendance_rules = AttendanceRules()
