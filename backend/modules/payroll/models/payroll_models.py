from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, Date, DateTime,
    ForeignKey, Text, JSON, Enum, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from core.database import Base
from core.mixins import TimestampMixin
from decimal import Decimal
from ..enums.payroll_enums import (
    BonusType,
    BonusStatus,
    PayrollPeriodStatus,
    AttendanceReviewStatus,
)


class AttendanceMonthFact(Base, TimestampMixin):
    """Derived attendance summary for one staff member and month.

    Rebuilt on every recalculation; never edited once the month is locked.
    """
    __tablename__ = "attendance_month_facts"

    id = Column(Integer, primary_key=True, index=True)
    staff_id = Column(Integer, ForeignKey("staff_members.id"), nullable=False, index=True)
    month_key = Column(String(7), nullable=False, index=True)
    range_start = Column(Date, nullable=False)
    range_end = Column(Date, nullable=False)

    assigned_hours = Column(Numeric(7, 2), default=Decimal('0.00'), nullable=False)
    worked_hours = Column(Numeric(7, 2), default=Decimal('0.00'), nullable=False)
    pto_hours = Column(Numeric(7, 2), default=Decimal('0.00'), nullable=False)
    uto_absence_hours = Column(Numeric(7, 2), default=Decimal('0.00'), nullable=False)
    tardy_minutes = Column(Integer, default=0, nullable=False)
    matched_make_up_hours = Column(Numeric(7, 2), default=Decimal('0.00'), nullable=False)
    is_perfect = Column(Boolean, default=False, nullable=False)

    reasons = Column(JSON, nullable=True)
    snapshot = Column(JSON, nullable=True)
    computed_at = Column(DateTime, nullable=False)

    # Review workflow
    review_status = Column(
        Enum(
            AttendanceReviewStatus,
            values_callable=lambda obj: [e.value for e in obj],
            create_type=False,
        ),
        default=AttendanceReviewStatus.PENDING,
        nullable=False,
    )
    review_notes = Column(Text, nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    reviewed_by_id = Column(Integer, ForeignKey("staff_members.id"), nullable=True)

    staff_member = relationship("StaffMember", foreign_keys=[staff_id])

    __table_args__ = (
        UniqueConstraint("staff_id", "month_key", name="uq_attendance_fact_staff_month"),
    )


class BonusCandidate(Base, TimestampMixin):
    __tablename__ = "bonus_candidates"

    id = Column(Integer, primary_key=True, index=True)
    staff_id = Column(Integer, ForeignKey("staff_members.id"), nullable=False, index=True)
    bonus_type = Column(
        Enum(
            BonusType,
            values_callable=lambda obj: [e.value for e in obj],
            create_type=False,
        ),
        nullable=False,
    )
    period_key = Column(String(7), nullable=False, index=True)
    amount = Column(Numeric(12, 2), default=Decimal('0.00'), nullable=False)
    final_amount = Column(Numeric(12, 2), nullable=True)
    status = Column(
        Enum(
            BonusStatus,
            values_callable=lambda obj: [e.value for e in obj],
            create_type=False,
        ),
        nullable=False,
    )
    eligible_pay_date = Column(Date, nullable=False, index=True)
    snapshot = Column(JSON, nullable=True)
    notes = Column(Text, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    approved_by_id = Column(Integer, ForeignKey("staff_members.id"), nullable=True)
    computed_at = Column(DateTime, nullable=False)

    staff_member = relationship("StaffMember", foreign_keys=[staff_id])

    __table_args__ = (
        UniqueConstraint(
            "staff_id", "bonus_type", "period_key", name="uq_bonus_candidate_staff_type_period"
        ),
        Index("ix_bonus_candidates_pay_date_status", "eligible_pay_date", "status"),
    )

    @property
    def payable_amount(self) -> Decimal:
        if self.final_amount is not None:
            return Decimal(self.final_amount)
        return Decimal(self.amount)


class PayrollPeriod(Base, TimestampMixin):
    """Semi-monthly pay period, keyed ``YYYY-MM-A`` or ``YYYY-MM-B``."""
    __tablename__ = "payroll_periods"

    id = Column(Integer, primary_key=True, index=True)
    period_key = Column(String(9), nullable=False, unique=True, index=True)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    pay_date = Column(Date, nullable=False, index=True)
    status = Column(
        Enum(
            PayrollPeriodStatus,
            values_callable=lambda obj: [e.value for e in obj],
            create_type=False,
        ),
        default=PayrollPeriodStatus.DRAFT,
        nullable=False,
    )
    totals = Column(JSON, nullable=True)
    computed_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    approved_by_id = Column(Integer, ForeignKey("staff_members.id"), nullable=True)
    paid_at = Column(DateTime, nullable=True)
    paid_by_id = Column(Integer, ForeignKey("staff_members.id"), nullable=True)

    lines = relationship(
        "PayrollLine",
        back_populates="period",
        cascade="all, delete-orphan",
        order_by="PayrollLine.staff_id",
    )


class PayrollLine(Base, TimestampMixin):
    __tablename__ = "payroll_lines"

    id = Column(Integer, primary_key=True, index=True)
    period_id = Column(Integer, ForeignKey("payroll_periods.id"), nullable=False, index=True)
    staff_id = Column(Integer, ForeignKey("staff_members.id"), nullable=False, index=True)

    base_amount = Column(Numeric(12, 2), default=Decimal('0.00'), nullable=False)
    monthly_attendance = Column(Numeric(12, 2), default=Decimal('0.00'), nullable=False)
    monthly_deferred = Column(Numeric(12, 2), default=Decimal('0.00'), nullable=False)
    quarterly_attendance = Column(Numeric(12, 2), default=Decimal('0.00'), nullable=False)
    kpi_bonus = Column(Numeric(12, 2), default=Decimal('0.00'), nullable=False)
    final_amount = Column(Numeric(12, 2), default=Decimal('0.00'), nullable=False)
    snapshot = Column(JSON, nullable=True)

    period = relationship("PayrollPeriod", back_populates="lines")
    staff_member = relationship("StaffMember", foreign_keys=[staff_id])

    __table_args__ = (
        UniqueConstraint("period_id", "staff_id", name="uq_payroll_line_period_staff"),
    )
