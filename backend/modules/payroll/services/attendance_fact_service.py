# backend/modules/payroll/services/attendance_fact_service.py

"""
Attendance fact builder.

Turns sessions, per-minute activity, approved time requests and holidays
into one AttendanceMonthFact per staff member and month.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence, Set, Tuple
import logging

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ...staff.enums.attendance_enums import TimeRequestStatus, TimeRequestType
from ...staff.models.attendance_models import MinuteStat, WorkSession
from ...staff.models.staff_models import StaffMember
from ...staff.models.time_request_models import TimeRequest
from ..config.attendance_rules import AttendanceRules, attendance_rules
from ..enums.payroll_enums import AttendanceReviewStatus, AuditScope, PayrollPeriodStatus
from ..exceptions import PayrollNotFoundError
from ..models.payroll_configuration import EmployeeCompConfig, Holiday
from ..models.payroll_models import AttendanceMonthFact, PayrollPeriod
from ..schemas.payroll_schemas import (
    AttendanceDayDetail,
    AttendanceFactResponse,
    AttendanceFactSnapshot,
    AttendanceMonthFacts,
    AttendanceReason,
    MakeUpMatch,
    MakeUpRequestSummary,
)
from ..utils.payroll_calendar import (
    iter_days,
    local_date_of,
    local_range_to_utc_bounds,
    month_range,
    period_keys_for_month,
    quantize_amount,
    to_local,
)
from ..utils.schedule_utils import ensure_schedule
from .audit_service import PayrollAuditService
from .config_resolver import ConfigResolver, resolve_active_config_for_range

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class AbsenceEntry:
    """One day's unexcused deficit awaiting make-up matching."""

    day: date
    remaining: Decimal


@dataclass
class RequestDistribution:
    pto: Dict[date, Decimal] = field(default_factory=dict)
    uto: Dict[date, Decimal] = field(default_factory=dict)
    make_up: Dict[date, Decimal] = field(default_factory=dict)
    make_up_requests: List[MakeUpRequestSummary] = field(default_factory=list)


@dataclass
class AttendanceComputation:
    assigned_hours: Decimal
    worked_hours: Decimal
    pto_hours: Decimal
    uto_absence_hours: Decimal
    tardy_minutes: int
    matched_make_up_hours: Decimal
    is_perfect: bool
    days: List[AttendanceDayDetail]
    make_up_requests: List[MakeUpRequestSummary]
    make_up_matches: List[MakeUpMatch]

    @property
    def reasons(self) -> List[AttendanceReason]:
        return [AttendanceReason(day=d.day, notes=d.notes) for d in self.days if d.notes]


def distribute_request_hours(
    requests: Sequence[TimeRequest], month_start: date, month_end: date
) -> RequestDistribution:
    """
    Spread each request's hours evenly over the days it overlaps the month.

    A request crossing a month boundary contributes its full hours to each
    month it touches.
    """
    result = RequestDistribution()
    targets = {
        TimeRequestType.PTO: result.pto,
        TimeRequestType.UTO: result.uto,
        TimeRequestType.MAKE_UP: result.make_up,
    }
    for request in requests:
        overlap_start = max(request.start_date, month_start)
        overlap_end = min(request.end_date, month_end)
        if overlap_end < overlap_start:
            continue
        overlap_days = (overlap_end - overlap_start).days + 1
        per_day = Decimal(request.hours) / Decimal(overlap_days)
        target = targets[request.request_type]
        for day in iter_days(overlap_start, overlap_end):
            target[day] = quantize_amount(target.get(day, ZERO) + per_day)
        if request.request_type == TimeRequestType.MAKE_UP:
            result.make_up_requests.append(
                MakeUpRequestSummary(
                    id=request.id,
                    start=overlap_start,
                    end=overlap_end,
                    hours=quantize_amount(request.hours),
                )
            )
    return result


def compute_tardy_minutes(scheduled_start: str, actual_start: datetime, day: date, zone) -> int:
    """Minutes late against the scheduled start; never across a day boundary."""
    hours, _, minutes = scheduled_start.partition(":")
    if not (hours.isdigit() and minutes.isdigit()):
        return 0
    local_start = to_local(actual_start, zone)
    if local_start.date() != day:
        return 0
    scheduled = local_start.replace(hour=int(hours), minute=int(minutes), second=0, microsecond=0)
    delta = (local_start - scheduled).total_seconds() / 60
    return max(0, int(Decimal(str(delta)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)))


def match_make_up_hours(
    ledger: List[AbsenceEntry],
    make_up_requests: Sequence[TimeRequest],
    rules: AttendanceRules = attendance_rules,
) -> Tuple[Decimal, List[MakeUpMatch]]:
    """
    Greedy make-up matching.

    Requests are taken in start-date order and each walks the ledger in date
    order, consuming deficits within the window until the request runs dry.
    The monthly cap stops everything once reached; earlier requests win.
    The application that crosses the cap still consumes its full amount from
    the ledger, but only the hours up to the cap are credited. Ledger
    entries are consumed in place.
    """
    cap = rules.MAKE_UP_CAP_HOURS
    window = rules.MAKE_UP_WINDOW_DAYS
    matched = ZERO
    matches: List[MakeUpMatch] = []

    for request in sorted(make_up_requests, key=lambda r: (r.start_date, r.id)):
        hours_remaining = Decimal(request.hours)
        for entry in ledger:
            if abs((entry.day - request.start_date).days) > window:
                continue
            if entry.remaining <= 0:
                continue
            if hours_remaining <= 0:
                break
            applied = min(entry.remaining, hours_remaining)
            entry.remaining = quantize_amount(entry.remaining - applied)
            hours_remaining = quantize_amount(hours_remaining - applied)
            credited = min(applied, cap - matched)
            matched += credited
            matches.append(
                MakeUpMatch(request_id=request.id, absence_date=entry.day, hours=quantize_amount(credited))
            )
            if matched >= cap:
                break
        if matched >= cap:
            break

    return quantize_amount(min(matched, cap)), matches


def build_attendance(
    days: Sequence[date],
    configs: Sequence[EmployeeCompConfig],
    first_starts: Dict[date, datetime],
    worked_minutes: Dict[date, int],
    distribution: RequestDistribution,
    make_up_requests: Sequence[TimeRequest],
    holidays: Set[date],
    rules: AttendanceRules = attendance_rules,
) -> AttendanceComputation:
    """Per-day pass, make-up matching and the perfect-attendance verdict for one month."""
    zone = rules.zone
    assigned = worked = pto_total = ZERO
    tardy_total = 0
    details: List[AttendanceDayDetail] = []
    ledger: List[AbsenceEntry] = []
    schedules = {}

    for day in days:
        config = resolve_active_config_for_range(configs, day)
        schedule = None
        if config is not None:
            if config.id not in schedules:
                schedules[config.id] = ensure_schedule(config.schedule)
            # isoweekday: Monday=1..Sunday=7, stored keys use Sunday=0
            schedule = schedules[config.id].for_weekday(day.isoweekday() % 7)

        detail = AttendanceDayDetail(day=day, holiday=day in holidays)

        if schedule is not None and schedule.enabled and not detail.holiday:
            detail.expected_hours = quantize_amount(schedule.expected_hours)
            assigned += detail.expected_hours

        minutes = worked_minutes.get(day, 0)
        if minutes > 0:
            detail.worked_hours = quantize_amount(Decimal(minutes) / Decimal(60))
            worked += detail.worked_hours

        pto_day = distribution.pto.get(day, ZERO)
        if pto_day > 0:
            detail.pto_hours = quantize_amount(pto_day)
            pto_total += detail.pto_hours
            detail.notes.append("PTO")

        uto_day = distribution.uto.get(day, ZERO)
        if uto_day > 0:
            detail.uto_hours = quantize_amount(uto_day)
            detail.notes.append("UTO Request")

        make_up_day = distribution.make_up.get(day, ZERO)
        if make_up_day > 0:
            detail.make_up_hours = quantize_amount(make_up_day)
            detail.notes.append("Make-up")

        first_start = first_starts.get(day)
        if schedule is not None and schedule.enabled and first_start is not None:
            detail.tardy_minutes = compute_tardy_minutes(schedule.start, first_start, day, zone)

        # PTO days and holidays excuse tardiness
        if detail.tardy_minutes > 0 and (detail.pto_hours > 0 or detail.holiday):
            detail.tardy_minutes = 0
        tardy_total += detail.tardy_minutes

        covered = detail.worked_hours + detail.pto_hours + detail.uto_hours + detail.make_up_hours
        deficit = max(detail.expected_hours - covered, ZERO)
        if deficit > 0:
            ledger.append(AbsenceEntry(day=day, remaining=deficit))
            detail.notes.append("Absence")

        details.append(detail)

    matched, matches = match_make_up_hours(ledger, make_up_requests, rules)
    residual = quantize_amount(sum((max(e.remaining, ZERO) for e in ledger), ZERO))

    assigned = quantize_amount(assigned)
    worked = quantize_amount(worked)
    pto_total = quantize_amount(pto_total)
    uncovered = assigned - (worked + pto_total + matched)
    is_perfect = tardy_total <= rules.MAX_TARDY_MINUTES and uncovered < rules.PERFECT_TOLERANCE_HOURS

    return AttendanceComputation(
        assigned_hours=assigned,
        worked_hours=worked,
        pto_hours=pto_total,
        uto_absence_hours=residual,
        tardy_minutes=tardy_total,
        matched_make_up_hours=matched,
        is_perfect=is_perfect,
        days=details,
        make_up_requests=distribution.make_up_requests,
        make_up_matches=matches,
    )


class AttendanceFactService:
    """Builds, stores and reviews monthly attendance facts."""

    def __init__(self, db: Session, rules: AttendanceRules = attendance_rules):
        self.db = db
        self.rules = rules
        self.resolver = ConfigResolver(db)
        self.audit = PayrollAuditService(db)

    async def is_month_locked(self, month_key: str) -> bool:
        """A month is locked once either of its pay periods is paid."""
        locked = (
            self.db.query(PayrollPeriod.id)
            .filter(
                PayrollPeriod.period_key.in_(period_keys_for_month(month_key)),
                PayrollPeriod.status == PayrollPeriodStatus.PAID,
            )
            .first()
        )
        return locked is not None

    async def recalc_month(
        self,
        month_key: str,
        actor_id: Optional[int] = None,
        staff_ids: Optional[List[int]] = None,
    ) -> List[AttendanceMonthFact]:
        """
        Recompute the facts for a month.

        Args:
            month_key: Month in ``YYYY-MM`` form
            actor_id: Staff member to credit in the audit log
            staff_ids: Restrict to these staff members (default: all active)

        Returns:
            The upserted facts, or an empty list when the month is locked
        """
        month_start, month_end = month_range(month_key)
        if await self.is_month_locked(month_key):
            logger.info(f"Attendance month {month_key} is locked; skipping recalculation")
            return []

        query = self.db.query(StaffMember).filter(StaffMember.is_active.is_(True))
        if staff_ids:
            query = query.filter(StaffMember.id.in_(staff_ids))
        staff_members = query.order_by(StaffMember.id).all()
        if not staff_members:
            return []

        target_ids = [member.id for member in staff_members]
        start_utc, end_utc = local_range_to_utc_bounds(month_start, month_end, self.rules.zone)
        first_starts = self._collect_first_starts(target_ids, start_utc, end_utc)
        worked_minutes = self._collect_worked_minutes(target_ids, start_utc, end_utc)
        requests = self._collect_approved_requests(target_ids, month_start, month_end)
        holidays = self._collect_holidays(month_start, month_end)

        days = list(iter_days(month_start, month_end))
        results = []
        for member in staff_members:
            configs = await self.resolver.configs_through(member.id, month_end)
            member_requests = requests.get(member.id, [])
            computation = build_attendance(
                days=days,
                configs=configs,
                first_starts=first_starts.get(member.id, {}),
                worked_minutes=worked_minutes.get(member.id, {}),
                distribution=distribute_request_hours(member_requests, month_start, month_end),
                make_up_requests=[
                    r for r in member_requests if r.request_type == TimeRequestType.MAKE_UP
                ],
                holidays=holidays,
                rules=self.rules,
            )
            fact = self._upsert_fact(member.id, month_key, month_start, month_end, computation)
            if actor_id:
                self.audit.record(
                    actor_id,
                    AuditScope.ATTENDANCE,
                    f"{member.id}:{month_key}",
                    "recalc",
                    {
                        "assigned_hours": computation.assigned_hours,
                        "worked_hours": computation.worked_hours,
                        "pto_hours": computation.pto_hours,
                        "matched_make_up_hours": computation.matched_make_up_hours,
                        "tardy_minutes": computation.tardy_minutes,
                        "is_perfect": computation.is_perfect,
                    },
                    commit=False,
                )
            self.db.commit()
            self.db.refresh(fact)
            results.append(fact)

        logger.info(f"Recalculated {len(results)} attendance facts for {month_key}")
        return results

    def _upsert_fact(
        self,
        staff_id: int,
        month_key: str,
        month_start: date,
        month_end: date,
        computation: AttendanceComputation,
    ) -> AttendanceMonthFact:
        fact = (
            self.db.query(AttendanceMonthFact)
            .filter(
                AttendanceMonthFact.staff_id == staff_id,
                AttendanceMonthFact.month_key == month_key,
            )
            .first()
        )
        if fact is None:
            fact = AttendanceMonthFact(staff_id=staff_id, month_key=month_key)
            self.db.add(fact)

        snapshot = AttendanceFactSnapshot(
            month_key=month_key,
            time_zone=self.rules.TIME_ZONE,
            range_start=month_start,
            range_end=month_end,
            days=computation.days,
            holiday_count=sum(1 for d in computation.days if d.holiday),
            make_up_requests=computation.make_up_requests,
            make_up_matches=computation.make_up_matches,
        )

        fact.range_start = month_start
        fact.range_end = month_end
        fact.assigned_hours = computation.assigned_hours
        fact.worked_hours = computation.worked_hours
        fact.pto_hours = computation.pto_hours
        fact.uto_absence_hours = computation.uto_absence_hours
        fact.tardy_minutes = computation.tardy_minutes
        fact.matched_make_up_hours = computation.matched_make_up_hours
        fact.is_perfect = computation.is_perfect
        fact.reasons = [r.model_dump(mode="json") for r in computation.reasons]
        fact.snapshot = snapshot.model_dump(mode="json")
        fact.computed_at = datetime.utcnow()

        # A perfect month needs no review; otherwise reopen it but keep notes
        if computation.is_perfect:
            fact.review_status = AttendanceReviewStatus.RESOLVED
            fact.review_notes = None
        else:
            fact.review_status = AttendanceReviewStatus.PENDING
        fact.reviewed_at = None
        fact.reviewed_by_id = None
        return fact

    def _collect_first_starts(
        self, staff_ids: List[int], start_utc: datetime, end_utc: datetime
    ) -> Dict[int, Dict[date, datetime]]:
        sessions = (
            self.db.query(WorkSession.staff_id, WorkSession.started_at)
            .filter(
                WorkSession.staff_id.in_(staff_ids),
                WorkSession.started_at < end_utc,
                or_(WorkSession.ended_at.is_(None), WorkSession.ended_at >= start_utc),
            )
            .all()
        )
        first_starts: Dict[int, Dict[date, datetime]] = defaultdict(dict)
        for staff_id, started_at in sessions:
            day = local_date_of(started_at, self.rules.zone)
            existing = first_starts[staff_id].get(day)
            if existing is None or started_at < existing:
                first_starts[staff_id][day] = started_at
        return first_starts

    def _collect_worked_minutes(
        self, staff_ids: List[int], start_utc: datetime, end_utc: datetime
    ) -> Dict[int, Dict[date, int]]:
        stats = (
            self.db.query(WorkSession.staff_id, MinuteStat.minute_start)
            .join(MinuteStat, MinuteStat.session_id == WorkSession.id)
            .filter(
                WorkSession.staff_id.in_(staff_ids),
                MinuteStat.minute_start >= start_utc,
                MinuteStat.minute_start < end_utc,
                or_(MinuteStat.active.is_(True), MinuteStat.idle.is_(True)),
            )
            .all()
        )
        minutes: Dict[int, Dict[date, int]] = defaultdict(lambda: defaultdict(int))
        for staff_id, minute_start in stats:
            minutes[staff_id][local_date_of(minute_start, self.rules.zone)] += 1
        return minutes

    def _collect_approved_requests(
        self, staff_ids: List[int], month_start: date, month_end: date
    ) -> Dict[int, List[TimeRequest]]:
        requests = (
            self.db.query(TimeRequest)
            .filter(
                TimeRequest.staff_id.in_(staff_ids),
                TimeRequest.status == TimeRequestStatus.APPROVED,
                TimeRequest.start_date <= month_end,
                TimeRequest.end_date >= month_start,
            )
            .order_by(TimeRequest.start_date, TimeRequest.id)
            .all()
        )
        by_staff: Dict[int, List[TimeRequest]] = defaultdict(list)
        for request in requests:
            by_staff[request.staff_id].append(request)
        return by_staff

    def _collect_holidays(self, month_start: date, month_end: date) -> Set[date]:
        rows = (
            self.db.query(Holiday.observed_on)
            .filter(Holiday.observed_on >= month_start, Holiday.observed_on <= month_end)
            .all()
        )
        return {row.observed_on for row in rows}

    # Review workflow

    async def list_facts_for_month(self, month_key: str) -> AttendanceMonthFacts:
        month_start, month_end = month_range(month_key)
        facts = (
            self.db.query(AttendanceMonthFact)
            .filter(AttendanceMonthFact.month_key == month_key)
            .order_by(AttendanceMonthFact.staff_id)
            .all()
        )
        return AttendanceMonthFacts(
            month_key=month_key,
            range_start=month_start,
            range_end=month_end,
            facts=[AttendanceFactResponse.model_validate(fact) for fact in facts],
        )

    async def get_fact_for_user(self, month_key: str, staff_id: int) -> Optional[AttendanceMonthFact]:
        month_range(month_key)
        return (
            self.db.query(AttendanceMonthFact)
            .filter(
                AttendanceMonthFact.month_key == month_key,
                AttendanceMonthFact.staff_id == staff_id,
            )
            .first()
        )

    async def update_review_status(
        self,
        month_key: str,
        staff_id: int,
        status: AttendanceReviewStatus,
        notes: Optional[str],
        reviewer_id: int,
    ) -> AttendanceMonthFact:
        fact = await self.get_fact_for_user(month_key, staff_id)
        if fact is None:
            raise PayrollNotFoundError("AttendanceMonthFact", f"{staff_id}:{month_key}")

        resolved = status == AttendanceReviewStatus.RESOLVED
        fact.review_status = status
        fact.review_notes = notes
        fact.reviewed_at = datetime.utcnow() if resolved else None
        fact.reviewed_by_id = reviewer_id if resolved else None
        self.audit.record(
            reviewer_id,
            AuditScope.ATTENDANCE,
            f"{staff_id}:{month_key}",
            "review",
            {"status": status.value, "notes": notes},
            commit=False,
        )
        self.db.commit()
        self.db.refresh(fact)
        return fact

    async def count_pending_reviews(self, month_key: str) -> int:
        month_range(month_key)
        return (
            self.db.query(func.count(AttendanceMonthFact.id))
            .filter(
                AttendanceMonthFact.month_key == month_key,
                AttendanceMonthFact.review_status == AttendanceReviewStatus.PENDING,
            )
            .scalar()
        )
