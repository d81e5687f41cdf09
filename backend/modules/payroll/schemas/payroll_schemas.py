# backend/modules/payroll/schemas/payroll_schemas.py

"""
Pydantic schemas for the attendance and payroll pipeline.

Provides models for:
- Weekly schedule templates and compensation config input
- Attendance fact snapshots and review output
- Bonus candidate and payroll line snapshots
- Payroll period totals and KPI decisions
"""

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from typing import Optional, List, Dict, Any
from datetime import date, datetime
from decimal import Decimal
from ..enums.payroll_enums import (
    BonusType,
    BonusStatus,
    PayrollPeriodStatus,
    AttendanceReviewStatus,
)


# Schedule Schemas


class WeekdaySchedule(BaseModel):
    """One weekday of a weekly schedule template"""

    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = False
    start: str = "09:00"
    end: str = "17:00"
    break_minutes: int = Field(0, ge=0, alias="breakMinutes")
    expected_hours: Decimal = Field(Decimal("8"), alias="expectedHours")

    @field_serializer("expected_hours")
    def serialize_expected_hours(self, value: Decimal) -> float:
        return float(value)


class EmployeeSchedule(BaseModel):
    """Weekly schedule keyed by weekday ``"0"`` (Sunday) through ``"6"``"""

    model_config = ConfigDict(populate_by_name=True)

    version: int = 2
    time_zone: str = Field(..., alias="timeZone")
    days: Dict[str, WeekdaySchedule]

    def for_weekday(self, weekday: int) -> Optional[WeekdaySchedule]:
        return self.days.get(str(weekday))


# Compensation Config Schemas


class EmployeeCompInput(BaseModel):
    """Request model for creating an effective-dated compensation config"""

    staff_id: int
    effective_on: date
    base_semi_monthly_salary: Decimal = Field(Decimal("0"), ge=0)
    monthly_attendance_bonus: Decimal = Field(Decimal("0"), ge=0)
    quarterly_attendance_bonus: Decimal = Field(Decimal("0"), ge=0)
    kpi_eligible: bool = False
    default_kpi_bonus: Optional[Decimal] = Field(None, ge=0)
    schedule: Optional[Dict[str, Any]] = None
    accrual_enabled: bool = False
    accrual_method: Optional[str] = Field(None, max_length=50)
    pto_starting_balance: Decimal = Field(Decimal("0"), ge=0)
    uto_starting_balance: Decimal = Field(Decimal("0"), ge=0)


class EmployeeCompConfigResponse(BaseModel):
    """Response model for a stored compensation config"""

    id: int
    staff_id: int
    effective_on: date
    base_semi_monthly_salary: Decimal
    monthly_attendance_bonus: Decimal
    quarterly_attendance_bonus: Decimal
    kpi_eligible: bool
    default_kpi_bonus: Optional[Decimal] = None
    schedule: Dict[str, Any]
    accrual_enabled: bool
    accrual_method: Optional[str] = None
    pto_starting_balance: Decimal
    uto_starting_balance: Decimal
    submitted_by_id: Optional[int] = None
    submitted_at: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


# Attendance Schemas


class AttendanceDayDetail(BaseModel):
    """Per-day breakdown stored in an attendance fact snapshot"""

    day: date
    expected_hours: Decimal = Decimal("0")
    worked_hours: Decimal = Decimal("0")
    pto_hours: Decimal = Decimal("0")
    uto_hours: Decimal = Decimal("0")
    make_up_hours: Decimal = Decimal("0")
    tardy_minutes: int = 0
    holiday: bool = False
    notes: List[str] = Field(default_factory=list)


class MakeUpRequestSummary(BaseModel):
    id: int
    start: date
    end: date
    hours: Decimal


class MakeUpMatch(BaseModel):
    """Hours from one make-up request applied to one absence day"""

    request_id: int
    absence_date: date
    hours: Decimal


class AttendanceFactSnapshot(BaseModel):
    month_key: str
    time_zone: str
    range_start: date
    range_end: date
    days: List[AttendanceDayDetail]
    holiday_count: int = 0
    make_up_requests: List[MakeUpRequestSummary] = Field(default_factory=list)
    make_up_matches: List[MakeUpMatch] = Field(default_factory=list)


class AttendanceReason(BaseModel):
    day: date
    notes: List[str]


class AttendanceFactResponse(BaseModel):
    """Response model for an attendance month fact"""

    id: int
    staff_id: int
    month_key: str
    range_start: date
    range_end: date
    assigned_hours: Decimal
    worked_hours: Decimal
    pto_hours: Decimal
    uto_absence_hours: Decimal
    tardy_minutes: int
    matched_make_up_hours: Decimal
    is_perfect: bool
    reasons: Optional[List[Dict[str, Any]]] = None
    review_status: AttendanceReviewStatus
    review_notes: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by_id: Optional[int] = None
    computed_at: datetime
    model_config = ConfigDict(from_attributes=True)


class AttendanceMonthFacts(BaseModel):
    month_key: str
    range_start: date
    range_end: date
    facts: List[AttendanceFactResponse]


# Bonus Schemas


class BonusCandidateSnapshot(BaseModel):
    """Inputs that produced a bonus candidate"""

    source_month_keys: List[str]
    fact_ids: List[int] = Field(default_factory=list)
    config_id: Optional[int] = None
    config_effective_on: Optional[date] = None
    computed_on: date


class KpiDecision(BaseModel):
    """Manual KPI review outcome"""

    status: BonusStatus
    final_amount: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: BonusStatus) -> BonusStatus:
        if v not in (BonusStatus.APPROVED, BonusStatus.DENIED):
            raise ValueError("KPI decision must be approved or denied")
        return v


class BonusCandidateResponse(BaseModel):
    id: int
    staff_id: int
    bonus_type: BonusType
    period_key: str
    amount: Decimal
    final_amount: Optional[Decimal] = None
    status: BonusStatus
    eligible_pay_date: date
    notes: Optional[str] = None
    approved_at: Optional[datetime] = None
    approved_by_id: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)


# Payroll Schemas


class ConfigSegment(BaseModel):
    """Portion of a pay period covered by one compensation config"""

    config_id: int
    effective_on: date
    base_semi_monthly_salary: Decimal
    days: int
    amount: Decimal


class PayrollLineSnapshot(BaseModel):
    period_key: str
    total_days: int
    segments: List[ConfigSegment]
    bonus_candidate_ids: List[int] = Field(default_factory=list)
    deferred_month_keys: List[str] = Field(default_factory=list)


class PayrollTotals(BaseModel):
    base_amount: Decimal = Decimal("0.00")
    monthly_attendance: Decimal = Decimal("0.00")
    monthly_deferred: Decimal = Decimal("0.00")
    quarterly_attendance: Decimal = Decimal("0.00")
    kpi_bonus: Decimal = Decimal("0.00")
    final_amount: Decimal = Decimal("0.00")
    line_count: int = 0


class PayrollLineResponse(BaseModel):
    id: int
    staff_id: int
    base_amount: Decimal
    monthly_attendance: Decimal
    monthly_deferred: Decimal
    quarterly_attendance: Decimal
    kpi_bonus: Decimal
    final_amount: Decimal
    model_config = ConfigDict(from_attributes=True)


class PayrollPeriodResponse(BaseModel):
    id: int
    period_key: str
    period_start: date
    period_end: date
    pay_date: date
    status: PayrollPeriodStatus
    totals: Optional[Dict[str, Any]] = None
    computed_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by_id: Optional[int] = None
    paid_at: Optional[datetime] = None
    paid_by_id: Optional[int] = None
    lines: List[PayrollLineResponse] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)
