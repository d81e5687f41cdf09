# backend/modules/payroll/tests/conftest.py

"""
Pytest fixtures and factories for payroll module tests.

Every test gets its own in-memory SQLite database. Factories create real
ORM rows; timestamps are built from local organization times and stored as
naive UTC, the way the clock-in client records them.
"""

import pytest
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, Iterable, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import Base
from ...staff.enums.attendance_enums import TimeRequestStatus, TimeRequestType
from ...staff.models.attendance_models import MinuteStat, WorkSession
from ...staff.models.staff_models import StaffMember
from ...staff.models.time_request_models import TimeRequest
from ..config.attendance_rules import attendance_rules
from ..enums.payroll_enums import AttendanceReviewStatus, PayrollPeriodStatus
from ..models.payroll_configuration import EmployeeCompConfig, Holiday
from ..models.payroll_models import AttendanceMonthFact, PayrollPeriod
from ..utils.payroll_calendar import iter_days, month_range, resolve_pay_period
from ..utils.schedule_utils import ensure_schedule, serialize_schedule

WEEKDAYS = (1, 2, 3, 4, 5)


def local_to_utc(day: date, hhmm: str) -> datetime:
    """Naive UTC timestamp for a local wall-clock time on ``day``."""
    hours, minutes = (int(part) for part in hhmm.split(":"))
    local = datetime.combine(day, time(hours, minutes), tzinfo=attendance_rules.zone)
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def weekly_schedule(
    start: str = "09:00",
    end: str = "17:00",
    break_minutes: int = 0,
    days: Iterable[int] = WEEKDAYS,
) -> Dict:
    enabled = set(days)
    return {
        "days": {
            str(weekday): {
                "enabled": weekday in enabled,
                "start": start,
                "end": end,
                "breakMinutes": break_minutes,
            }
            for weekday in range(7)
        }
    }


def scheduled_days(start: date, end: date, days: Iterable[int] = WEEKDAYS):
    enabled = set(days)
    return [d for d in iter_days(start, end) if d.isoweekday() % 7 in enabled]


@pytest.fixture
def test_db():
    """Create test database"""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = SessionLocal()

    yield db

    db.close()
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def staff_factory(test_db):
    """Factory for creating staff members."""
    def create_staff(name: Optional[str] = None, email: Optional[str] = None, is_active: bool = True):
        member = StaffMember(name=name or "Test Employee", email=email, is_active=is_active)
        test_db.add(member)
        test_db.commit()
        test_db.refresh(member)
        if email is None:
            member.email = f"employee{member.id}@example.com"
            test_db.commit()
        return member

    return create_staff


@pytest.fixture
def config_factory(test_db):
    """Factory for compensation configs, stored with a normalized schedule."""
    def create_config(
        staff: StaffMember,
        effective_on: date,
        base_semi_monthly_salary: Decimal = Decimal("2000.00"),
        monthly_attendance_bonus: Decimal = Decimal("100.00"),
        quarterly_attendance_bonus: Decimal = Decimal("300.00"),
        kpi_eligible: bool = False,
        default_kpi_bonus: Optional[Decimal] = None,
        schedule: Optional[Dict] = None,
    ) -> EmployeeCompConfig:
        config = EmployeeCompConfig(
            staff_id=staff.id,
            effective_on=effective_on,
            base_semi_monthly_salary=base_semi_monthly_salary,
            monthly_attendance_bonus=monthly_attendance_bonus,
            quarterly_attendance_bonus=quarterly_attendance_bonus,
            kpi_eligible=kpi_eligible,
            default_kpi_bonus=default_kpi_bonus,
            schedule=serialize_schedule(ensure_schedule(schedule or weekly_schedule())),
        )
        test_db.add(config)
        test_db.commit()
        test_db.refresh(config)
        return config

    return create_config


@pytest.fixture
def work_factory(test_db):
    """Factory for a work session with one active minute per worked minute."""
    def create_workday(
        staff: StaffMember,
        day: date,
        start: str = "09:00",
        minutes: int = 480,
        idle_minutes: int = 0,
    ) -> WorkSession:
        started_at = local_to_utc(day, start)
        session = WorkSession(
            staff_id=staff.id,
            started_at=started_at,
            ended_at=started_at + timedelta(minutes=minutes),
        )
        test_db.add(session)
        test_db.flush()
        rows = [
            {
                "session_id": session.id,
                "minute_start": started_at + timedelta(minutes=offset),
                "active": offset >= idle_minutes,
                "idle": offset < idle_minutes,
            }
            for offset in range(minutes)
        ]
        if rows:
            test_db.execute(MinuteStat.__table__.insert(), rows)
        test_db.commit()
        return session

    return create_workday


@pytest.fixture
def work_month_factory(work_factory):
    """Full days of work on each given day, except those in ``skip``."""
    def create_month(staff: StaffMember, days, start: str = "09:00", minutes: int = 480, skip=()):
        for day in days:
            if day not in skip:
                work_factory(staff, day, start=start, minutes=minutes)

    return create_month


@pytest.fixture
def request_factory(test_db):
    """Factory for time requests (approved by default)."""
    def create_request(
        staff: StaffMember,
        request_type: TimeRequestType,
        start_date: date,
        end_date: Optional[date] = None,
        hours: Decimal = Decimal("8"),
        status: TimeRequestStatus = TimeRequestStatus.APPROVED,
    ) -> TimeRequest:
        request = TimeRequest(
            staff_id=staff.id,
            request_type=request_type,
            status=status,
            start_date=start_date,
            end_date=end_date or start_date,
            hours=hours,
        )
        test_db.add(request)
        test_db.commit()
        test_db.refresh(request)
        return request

    return create_request


@pytest.fixture
def holiday_factory(test_db):
    def create_holiday(observed_on: date, name: str = "Company Holiday") -> Holiday:
        holiday = Holiday(name=name, observed_on=observed_on)
        test_db.add(holiday)
        test_db.commit()
        return holiday

    return create_holiday


@pytest.fixture
def paid_period_factory(test_db):
    """Create a paid payroll period directly, locking its month."""
    def create_paid(pay_date: date) -> PayrollPeriod:
        info = resolve_pay_period(pay_date)
        period = PayrollPeriod(
            period_key=info.period_key,
            period_start=info.period_start,
            period_end=info.period_end,
            pay_date=pay_date,
            status=PayrollPeriodStatus.PAID,
            totals={},
        )
        test_db.add(period)
        test_db.commit()
        return period

    return create_paid


@pytest.fixture
def fact_factory(test_db):
    """Attendance facts written directly, for bonus and payroll tests."""
    def create_fact(staff: StaffMember, month_key: str, is_perfect: bool = True) -> AttendanceMonthFact:
        month_start, month_end = month_range(month_key)
        fact = AttendanceMonthFact(
            staff_id=staff.id,
            month_key=month_key,
            range_start=month_start,
            range_end=month_end,
            assigned_hours=Decimal("160.00"),
            worked_hours=Decimal("160.00") if is_perfect else Decimal("150.00"),
            is_perfect=is_perfect,
            review_status=(
                AttendanceReviewStatus.RESOLVED if is_perfect else AttendanceReviewStatus.PENDING
            ),
            computed_at=datetime.utcnow(),
        )
        test_db.add(fact)
        test_db.commit()
        test_db.refresh(fact)
        return fact

    return create_fact
