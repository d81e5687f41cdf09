"""
Effective-dated compensation and holiday models.

A staff member may hold many compensation configs; the one in force on a
given day is the config with the greatest ``effective_on`` not after it.
"""

from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, Date, DateTime,
    ForeignKey, JSON, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from core.database import Base
from core.mixins import TimestampMixin
from decimal import Decimal


class EmployeeCompConfig(Base, TimestampMixin):
    """
    Compensation, bonus and weekly schedule settings for one staff member.

    ``schedule`` holds the normalized weekly template:
    ``{"timeZone": ..., "days": {"0": {...}, ..., "6": {...}}}`` with
    0 = Sunday.
    """
    __tablename__ = "employee_comp_configs"

    id = Column(Integer, primary_key=True, index=True)
    staff_id = Column(
        Integer,
        ForeignKey("staff_members.id"),
        nullable=False,
        index=True
    )
    effective_on = Column(Date, nullable=False, index=True)

    # Pay
    base_semi_monthly_salary = Column(Numeric(12, 2), default=Decimal('0.00'), nullable=False)
    monthly_attendance_bonus = Column(Numeric(12, 2), default=Decimal('0.00'), nullable=False)
    quarterly_attendance_bonus = Column(Numeric(12, 2), default=Decimal('0.00'), nullable=False)
    kpi_eligible = Column(Boolean, default=False, nullable=False)
    default_kpi_bonus = Column(Numeric(12, 2), nullable=True)

    # Weekly schedule template
    schedule = Column(JSON, nullable=False)

    # Accruals
    accrual_enabled = Column(Boolean, default=False, nullable=False)
    accrual_method = Column(String(50), nullable=True)
    pto_starting_balance = Column(Numeric(7, 2), default=Decimal('0.00'), nullable=False)
    uto_starting_balance = Column(Numeric(7, 2), default=Decimal('0.00'), nullable=False)

    # Metadata
    submitted_by_id = Column(Integer, ForeignKey("staff_members.id"), nullable=True)
    submitted_at = Column(DateTime, nullable=True)

    staff_member = relationship(
        "StaffMember", back_populates="comp_configs", foreign_keys=[staff_id]
    )

    __table_args__ = (
        UniqueConstraint("staff_id", "effective_on", name="uq_comp_config_staff_effective"),
        Index("ix_comp_config_staff_effective", "staff_id", "effective_on"),
    )


class Holiday(Base, TimestampMixin):
    """Company holiday observed on a local calendar date."""
    __tablename__ = "holidays"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    observed_on = Column(Date, nullable=False, unique=True, index=True)
    created_by_id = Column(Integer, ForeignKey("staff_members.id"), nullable=True)
