# backend/modules/payroll/tests/test_attendance_fact_service.py

"""
Tests for the attendance fact builder.

April 2025 is used throughout: 30 days, 22 weekdays, all in PDT.
"""

import pytest
from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace

from ...staff.enums.attendance_enums import TimeRequestStatus, TimeRequestType
from ..config.attendance_rules import attendance_rules
from ..enums.payroll_enums import AttendanceReviewStatus
from ..exceptions import InvalidMonthKeyError, PayrollNotFoundError
from ..models.payroll_audit import PayrollAuditLog
from ..models.payroll_models import AttendanceMonthFact
from ..services.attendance_fact_service import (
    AbsenceEntry,
    AttendanceFactService,
    compute_tardy_minutes,
    distribute_request_hours,
    match_make_up_hours,
)
from .conftest import local_to_utc, scheduled_days

APRIL = "2025-04"
APRIL_DAYS = scheduled_days(date(2025, 4, 1), date(2025, 4, 30))


def day_detail(fact: AttendanceMonthFact, day: date) -> dict:
    return next(d for d in fact.snapshot["days"] if d["day"] == day.isoformat())


def assert_perfect_law(fact: AttendanceMonthFact):
    uncovered = fact.assigned_hours - (fact.worked_hours + fact.pto_hours + fact.matched_make_up_hours)
    expected = fact.tardy_minutes <= 90 and uncovered < Decimal("0.01")
    assert fact.is_perfect == expected


class TestAttendanceFactBuilder:
    """Month recalculation against real rows"""

    @pytest.fixture
    def employee(self, staff_factory, config_factory):
        staff = staff_factory(name="Avery Quinn")
        config_factory(staff, date(2025, 1, 1))
        return staff

    @pytest.mark.asyncio
    async def test_full_month_is_perfect(self, test_db, employee, work_month_factory):
        work_month_factory(employee, APRIL_DAYS)

        facts = await AttendanceFactService(test_db).recalc_month(APRIL)

        assert len(facts) == 1
        fact = facts[0]
        assert len(APRIL_DAYS) == 22
        assert fact.assigned_hours == Decimal("176.00")
        assert fact.worked_hours == Decimal("176.00")
        assert fact.tardy_minutes == 0
        assert fact.uto_absence_hours == Decimal("0.00")
        assert fact.is_perfect is True
        assert fact.review_status == AttendanceReviewStatus.RESOLVED
        assert fact.range_start == date(2025, 4, 1)
        assert fact.range_end == date(2025, 4, 30)
        assert fact.reasons == []
        assert_perfect_law(fact)

    @pytest.mark.asyncio
    async def test_small_tardiness_keeps_perfect(self, test_db, employee, work_month_factory, work_factory):
        late_day = date(2025, 4, 8)
        work_month_factory(employee, APRIL_DAYS, skip={late_day})
        work_factory(employee, late_day, start="09:15")

        fact = (await AttendanceFactService(test_db).recalc_month(APRIL))[0]

        assert day_detail(fact, late_day)["tardy_minutes"] == 15
        assert fact.tardy_minutes == 15
        assert fact.is_perfect is True

    @pytest.mark.asyncio
    async def test_tardiness_over_limit_breaks_perfect(self, test_db, employee, work_month_factory, work_factory):
        late_days = APRIL_DAYS[:7]
        work_month_factory(employee, APRIL_DAYS, skip=set(late_days))
        for day in late_days:
            work_factory(employee, day, start="09:15")

        fact = (await AttendanceFactService(test_db).recalc_month(APRIL))[0]

        assert fact.tardy_minutes == 105
        assert fact.worked_hours == fact.assigned_hours
        assert fact.is_perfect is False
        assert fact.review_status == AttendanceReviewStatus.PENDING
        assert_perfect_law(fact)

    @pytest.mark.asyncio
    async def test_make_up_within_window_covers_absence(
        self, test_db, employee, work_month_factory, request_factory
    ):
        absent = date(2025, 4, 8)
        work_month_factory(employee, APRIL_DAYS, skip={absent})
        request_factory(employee, TimeRequestType.MAKE_UP, date(2025, 4, 11), hours=Decimal("8"))

        fact = (await AttendanceFactService(test_db).recalc_month(APRIL))[0]

        assert fact.matched_make_up_hours == Decimal("8.00")
        assert fact.uto_absence_hours == Decimal("0.00")
        assert fact.is_perfect is True
        assert "Absence" in day_detail(fact, absent)["notes"]
        assert "Make-up" in day_detail(fact, date(2025, 4, 11))["notes"]
        assert fact.snapshot["make_up_matches"][0]["absence_date"] == absent.isoformat()
        assert_perfect_law(fact)

    @pytest.mark.asyncio
    async def test_make_up_outside_window_does_not_match(
        self, test_db, employee, work_month_factory, request_factory
    ):
        absent = date(2025, 4, 1)
        work_month_factory(employee, APRIL_DAYS, skip={absent})
        request_factory(employee, TimeRequestType.MAKE_UP, date(2025, 4, 21), hours=Decimal("8"))

        fact = (await AttendanceFactService(test_db).recalc_month(APRIL))[0]

        assert fact.matched_make_up_hours == Decimal("0.00")
        assert fact.uto_absence_hours == Decimal("8.00")
        assert fact.is_perfect is False
        assert_perfect_law(fact)

    @pytest.mark.asyncio
    async def test_make_up_matching_stops_at_monthly_cap(
        self, test_db, employee, work_month_factory, work_factory, request_factory
    ):
        short_day, absent = date(2025, 4, 1), date(2025, 4, 2)
        work_month_factory(employee, APRIL_DAYS, skip={short_day, absent})
        work_factory(employee, short_day, minutes=240)
        request_factory(employee, TimeRequestType.MAKE_UP, date(2025, 4, 5), hours=Decimal("16"))

        fact = (await AttendanceFactService(test_db).recalc_month(APRIL))[0]

        # 4h then 8h are consumed from the ledger; only 8h are credited
        assert fact.matched_make_up_hours == attendance_rules.MAKE_UP_CAP_HOURS
        assert fact.uto_absence_hours == Decimal("0.00")
        assert fact.is_perfect is False

    @pytest.mark.asyncio
    async def test_uto_does_not_count_toward_perfect(
        self, test_db, employee, work_month_factory, request_factory
    ):
        absent = date(2025, 4, 8)
        work_month_factory(employee, APRIL_DAYS, skip={absent})
        request_factory(employee, TimeRequestType.UTO, absent, hours=Decimal("8"))

        fact = (await AttendanceFactService(test_db).recalc_month(APRIL))[0]

        detail = day_detail(fact, absent)
        assert "UTO Request" in detail["notes"]
        assert "Absence" not in detail["notes"]
        assert fact.uto_absence_hours == Decimal("0.00")
        assert fact.is_perfect is False
        assert_perfect_law(fact)

    @pytest.mark.asyncio
    async def test_pto_day_excuses_tardiness(
        self, test_db, employee, work_month_factory, work_factory, request_factory
    ):
        day = date(2025, 4, 8)
        work_month_factory(employee, APRIL_DAYS, skip={day})
        work_factory(employee, day, start="13:00", minutes=240)
        request_factory(employee, TimeRequestType.PTO, day, hours=Decimal("4"))

        fact = (await AttendanceFactService(test_db).recalc_month(APRIL))[0]

        detail = day_detail(fact, day)
        assert detail["tardy_minutes"] == 0
        assert Decimal(detail["pto_hours"]) == Decimal("4.00")
        assert fact.tardy_minutes == 0
        assert fact.pto_hours == Decimal("4.00")
        assert fact.is_perfect is True

    @pytest.mark.asyncio
    async def test_holiday_excuses_tardiness_and_is_not_assigned(
        self, test_db, employee, work_month_factory, work_factory, holiday_factory
    ):
        holiday = date(2025, 4, 9)
        holiday_factory(holiday)
        work_month_factory(employee, APRIL_DAYS, skip={holiday})
        work_factory(employee, holiday, start="11:00", minutes=60)

        fact = (await AttendanceFactService(test_db).recalc_month(APRIL))[0]

        detail = day_detail(fact, holiday)
        assert detail["holiday"] is True
        assert detail["tardy_minutes"] == 0
        assert Decimal(detail["expected_hours"]) == Decimal("0")
        assert fact.assigned_hours == Decimal("168.00")
        assert fact.snapshot["holiday_count"] == 1
        assert fact.is_perfect is True

    @pytest.mark.asyncio
    async def test_multi_day_pto_is_spread_evenly(
        self, test_db, employee, work_month_factory, request_factory
    ):
        off = {date(2025, 4, 7), date(2025, 4, 8), date(2025, 4, 9), date(2025, 4, 10)}
        work_month_factory(employee, APRIL_DAYS, skip=off)
        request_factory(employee, TimeRequestType.PTO, date(2025, 4, 7), date(2025, 4, 10), hours=Decimal("32"))

        fact = (await AttendanceFactService(test_db).recalc_month(APRIL))[0]

        assert fact.pto_hours == Decimal("32.00")
        assert all(Decimal(day_detail(fact, d)["pto_hours"]) == Decimal("8.00") for d in off)
        assert fact.is_perfect is True

    @pytest.mark.asyncio
    async def test_pending_requests_are_ignored(
        self, test_db, employee, work_month_factory, request_factory
    ):
        absent = date(2025, 4, 8)
        work_month_factory(employee, APRIL_DAYS, skip={absent})
        request_factory(
            employee, TimeRequestType.PTO, absent, hours=Decimal("8"), status=TimeRequestStatus.PENDING
        )

        fact = (await AttendanceFactService(test_db).recalc_month(APRIL))[0]

        assert fact.pto_hours == Decimal("0.00")
        assert fact.uto_absence_hours == Decimal("8.00")

    @pytest.mark.asyncio
    async def test_idle_minutes_count_as_worked(self, test_db, employee, work_factory):
        work_factory(employee, date(2025, 4, 1), minutes=120, idle_minutes=30)

        fact = (await AttendanceFactService(test_db).recalc_month(APRIL))[0]

        assert day_detail(fact, date(2025, 4, 1))["worked_hours"] == "2.00"

    @pytest.mark.asyncio
    async def test_recalculation_is_idempotent(self, test_db, employee, work_month_factory, request_factory):
        work_month_factory(employee, APRIL_DAYS, skip={date(2025, 4, 8)})
        request_factory(employee, TimeRequestType.MAKE_UP, date(2025, 4, 12), hours=Decimal("4"))
        service = AttendanceFactService(test_db)

        first = (await service.recalc_month(APRIL))[0]
        first_values = (
            first.assigned_hours, first.worked_hours, first.uto_absence_hours,
            first.matched_make_up_hours, first.is_perfect, first.snapshot,
        )
        second = (await service.recalc_month(APRIL))[0]

        assert first.id == second.id
        assert test_db.query(AttendanceMonthFact).count() == 1
        assert first_values == (
            second.assigned_hours, second.worked_hours, second.uto_absence_hours,
            second.matched_make_up_hours, second.is_perfect, second.snapshot,
        )

    @pytest.mark.asyncio
    async def test_missing_config_gives_zero_assigned(self, test_db, staff_factory, work_factory):
        staff = staff_factory()
        work_factory(staff, date(2025, 4, 1), start="11:00")

        fact = (await AttendanceFactService(test_db).recalc_month(APRIL))[0]

        assert fact.assigned_hours == Decimal("0.00")
        assert fact.tardy_minutes == 0
        assert fact.worked_hours == Decimal("8.00")
        assert_perfect_law(fact)

    @pytest.mark.asyncio
    async def test_locked_month_is_skipped(self, test_db, employee, work_month_factory, paid_period_factory):
        work_month_factory(employee, APRIL_DAYS[:2])
        paid_period_factory(date(2025, 4, 30))
        service = AttendanceFactService(test_db)

        assert await service.is_month_locked(APRIL) is True
        assert await service.recalc_month(APRIL) == []
        assert test_db.query(AttendanceMonthFact).count() == 0

    @pytest.mark.asyncio
    async def test_second_half_paid_period_locks_month(self, test_db, paid_period_factory):
        paid_period_factory(date(2025, 5, 15))

        service = AttendanceFactService(test_db)

        assert await service.is_month_locked(APRIL) is True
        assert await service.is_month_locked("2025-05") is False

    @pytest.mark.asyncio
    async def test_inactive_staff_are_skipped(self, test_db, staff_factory, config_factory):
        staff = staff_factory(is_active=False)
        config_factory(staff, date(2025, 1, 1))

        assert await AttendanceFactService(test_db).recalc_month(APRIL) == []

    @pytest.mark.asyncio
    async def test_staff_subset(self, test_db, staff_factory, config_factory):
        first, second = staff_factory(), staff_factory()
        config_factory(first, date(2025, 1, 1))
        config_factory(second, date(2025, 1, 1))

        facts = await AttendanceFactService(test_db).recalc_month(APRIL, staff_ids=[second.id])

        assert [fact.staff_id for fact in facts] == [second.id]

    @pytest.mark.asyncio
    async def test_invalid_month_key(self, test_db):
        with pytest.raises(InvalidMonthKeyError):
            await AttendanceFactService(test_db).recalc_month("2025-13")

    @pytest.mark.asyncio
    async def test_actor_recalculation_is_audited(self, test_db, employee):
        await AttendanceFactService(test_db).recalc_month(APRIL, actor_id=employee.id)

        entry = test_db.query(PayrollAuditLog).one()
        assert entry.target == f"{employee.id}:{APRIL}"
        assert entry.action == "recalc"
        assert entry.details["is_perfect"] is False


class TestReviewWorkflow:

    @pytest.fixture
    def imperfect_fact(self, staff_factory, config_factory):
        staff = staff_factory()
        config_factory(staff, date(2025, 1, 1))
        return staff

    @pytest.mark.asyncio
    async def test_resolve_then_recalculate(self, test_db, imperfect_fact, staff_factory):
        reviewer = staff_factory(name="Reviewer")
        service = AttendanceFactService(test_db)
        await service.recalc_month(APRIL)
        assert await service.count_pending_reviews(APRIL) == 1

        fact = await service.update_review_status(
            APRIL, imperfect_fact.id, AttendanceReviewStatus.RESOLVED, "Excused by manager", reviewer.id
        )
        assert fact.review_status == AttendanceReviewStatus.RESOLVED
        assert fact.reviewed_by_id == reviewer.id
        assert isinstance(fact.reviewed_at, datetime)
        assert await service.count_pending_reviews(APRIL) == 0

        fact = (await service.recalc_month(APRIL))[0]
        assert fact.review_status == AttendanceReviewStatus.PENDING
        assert fact.review_notes == "Excused by manager"
        assert fact.reviewed_by_id is None
        assert fact.reviewed_at is None

    @pytest.mark.asyncio
    async def test_reopen_clears_reviewer(self, test_db, imperfect_fact, staff_factory):
        reviewer = staff_factory(name="Reviewer")
        service = AttendanceFactService(test_db)
        await service.recalc_month(APRIL)
        await service.update_review_status(
            APRIL, imperfect_fact.id, AttendanceReviewStatus.RESOLVED, None, reviewer.id
        )

        fact = await service.update_review_status(
            APRIL, imperfect_fact.id, AttendanceReviewStatus.PENDING, "Needs follow-up", reviewer.id
        )

        assert fact.reviewed_by_id is None
        assert fact.reviewed_at is None
        assert fact.review_notes == "Needs follow-up"

    @pytest.mark.asyncio
    async def test_missing_fact(self, test_db):
        with pytest.raises(PayrollNotFoundError):
            await AttendanceFactService(test_db).update_review_status(
                APRIL, 999, AttendanceReviewStatus.RESOLVED, None, 1
            )

    @pytest.mark.asyncio
    async def test_list_facts_for_month(self, test_db, staff_factory, config_factory):
        for _ in range(2):
            config_factory(staff_factory(), date(2025, 1, 1))
        service = AttendanceFactService(test_db)
        await service.recalc_month(APRIL)

        listing = await service.list_facts_for_month(APRIL)

        assert listing.range_start == date(2025, 4, 1)
        assert listing.range_end == date(2025, 4, 30)
        assert [f.staff_id for f in listing.facts] == sorted(f.staff_id for f in listing.facts)
        assert await service.get_fact_for_user(APRIL, listing.facts[0].staff_id) is not None


class TestMakeUpMatching:
    """Pure greedy matching"""

    def _request(self, request_id, start, hours):
        return SimpleNamespace(id=request_id, start_date=start, hours=Decimal(hours))

    def test_earliest_request_wins_at_cap(self):
        ledger = [
            AbsenceEntry(day=date(2025, 4, 1), remaining=Decimal("8")),
            AbsenceEntry(day=date(2025, 4, 2), remaining=Decimal("8")),
        ]
        later = self._request(2, date(2025, 4, 5), "8")
        earlier = self._request(1, date(2025, 4, 4), "8")

        matched, matches = match_make_up_hours(ledger, [later, earlier])

        assert matched == Decimal("8.00")
        assert [m.request_id for m in matches] == [1]
        assert ledger[0].remaining == Decimal("0.00")
        assert ledger[1].remaining == Decimal("8")

    def test_window_is_inclusive_of_fourteen_days(self):
        ledger = [AbsenceEntry(day=date(2025, 4, 1), remaining=Decimal("4"))]

        matched, _ = match_make_up_hours(ledger, [self._request(1, date(2025, 4, 15), "4")])
        assert matched == Decimal("4.00")

        ledger = [AbsenceEntry(day=date(2025, 4, 1), remaining=Decimal("4"))]
        matched, _ = match_make_up_hours(ledger, [self._request(1, date(2025, 4, 16), "4")])
        assert matched == Decimal("0.00")

    def test_matches_earlier_absences_before_the_request(self):
        ledger = [AbsenceEntry(day=date(2025, 4, 20), remaining=Decimal("3"))]

        matched, _ = match_make_up_hours(ledger, [self._request(1, date(2025, 4, 10), "5")])

        assert matched == Decimal("3.00")
        assert ledger[0].remaining == Decimal("0.00")

    def test_cap_never_exceeded(self):
        ledger = [AbsenceEntry(day=date(2025, 4, d), remaining=Decimal("3")) for d in range(1, 6)]
        requests = [self._request(i, date(2025, 4, 6), "3") for i in range(5)]

        matched, matches = match_make_up_hours(ledger, requests)

        assert matched == Decimal("8.00")
        assert sum(m.hours for m in matches) == Decimal("8.00")
        residual = sum(e.remaining for e in ledger)
        assert residual == Decimal("6.00")
        assert [m.hours for m in matches] == [Decimal("3.00"), Decimal("3.00"), Decimal("2.00")]
        assert ledger[2].remaining == Decimal("0.00")


class TestRequestDistribution:

    def test_request_crossing_month_boundary_counts_in_each_month(self):
        request = SimpleNamespace(
            id=1,
            request_type=TimeRequestType.PTO,
            start_date=date(2025, 3, 31),
            end_date=date(2025, 4, 1),
            hours=Decimal("16"),
        )

        april = distribute_request_hours([request], date(2025, 4, 1), date(2025, 4, 30))
        march = distribute_request_hours([request], date(2025, 3, 1), date(2025, 3, 31))

        assert april.pto == {date(2025, 4, 1): Decimal("16.00")}
        assert march.pto == {date(2025, 3, 31): Decimal("16.00")}

    def test_make_up_summary_recorded(self):
        request = SimpleNamespace(
            id=7,
            request_type=TimeRequestType.MAKE_UP,
            start_date=date(2025, 4, 5),
            end_date=date(2025, 4, 7),
            hours=Decimal("10"),
        )

        result = distribute_request_hours([request], date(2025, 4, 1), date(2025, 4, 30))

        assert result.make_up[date(2025, 4, 5)] == Decimal("3.33")
        assert result.make_up_requests[0].id == 7


class TestTardyMinutes:

    def test_late_start(self):
        day = date(2025, 4, 8)
        assert compute_tardy_minutes("09:00", local_to_utc(day, "09:42"), day, attendance_rules.zone) == 42

    def test_early_start(self):
        day = date(2025, 4, 8)
        assert compute_tardy_minutes("09:00", local_to_utc(day, "08:50"), day, attendance_rules.zone) == 0

    def test_start_on_another_day_is_not_tardy(self):
        day = date(2025, 4, 8)
        actual = local_to_utc(date(2025, 4, 9), "00:30")
        assert compute_tardy_minutes("09:00", actual, day, attendance_rules.zone) == 0
