# backend/modules/payroll/services/payroll_service.py

"""
Semi-monthly payroll computation.

Each pay date closes one period: the 15th pays the prior month's second
half, the last day of a month pays its first half. Lines are rebuilt in
full on every recalculation; a paid period is frozen.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, selectinload

from ...staff.models.staff_models import StaffMember
from ..enums.payroll_enums import AuditScope, BonusStatus, BonusType, PayrollPeriodStatus
from ..exceptions import PayrollNotFoundError, PayrollPeriodLockedError
from ..models.payroll_configuration import EmployeeCompConfig
from ..models.payroll_models import BonusCandidate, PayrollLine, PayrollPeriod
from ..schemas.payroll_schemas import ConfigSegment, PayrollLineSnapshot, PayrollTotals
from ..utils.payroll_calendar import (
    PayPeriod,
    iter_days,
    month_key_for,
    previous_month_key,
    quantize_amount,
    resolve_pay_period,
)
from .audit_service import PayrollAuditService
from .config_resolver import ConfigResolver, resolve_active_config_for_range

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


@dataclass
class BonusBuckets:
    monthly: Decimal = ZERO
    monthly_deferred: Decimal = ZERO
    quarterly: Decimal = ZERO
    kpi: Decimal = ZERO
    candidate_ids: Tuple[int, ...] = ()
    deferred_month_keys: Tuple[str, ...] = ()


def compute_base_amount(
    configs: Sequence[EmployeeCompConfig], period: PayPeriod
) -> Tuple[Decimal, List[ConfigSegment]]:
    """Prorate the semi-monthly base by the days each config covers."""
    total_days = period.total_days
    counts: Dict[int, int] = defaultdict(int)
    by_id = {config.id: config for config in configs}
    for day in iter_days(period.period_start, period.period_end):
        config = resolve_active_config_for_range(configs, day)
        if config is not None:
            counts[config.id] += 1

    total = Decimal("0")
    segments = []
    for config_id, days in counts.items():
        config = by_id[config_id]
        share = Decimal(config.base_semi_monthly_salary) * Decimal(days) / Decimal(total_days)
        total += share
        segments.append(
            ConfigSegment(
                config_id=config_id,
                effective_on=config.effective_on,
                base_semi_monthly_salary=quantize_amount(config.base_semi_monthly_salary),
                days=days,
                amount=quantize_amount(share),
            )
        )
    return quantize_amount(total), segments


def categorize_bonuses(candidates: Sequence[BonusCandidate], pay_date: date) -> Dict[int, BonusBuckets]:
    """
    Bucket payable candidates per staff member.

    A monthly bonus earned in any month other than the one just before the
    pay date was missed by its usual cycle and is reported as deferred.
    """
    expected_month = previous_month_key(month_key_for(pay_date))
    buckets: Dict[int, BonusBuckets] = defaultdict(BonusBuckets)
    for candidate in candidates:
        bucket = buckets[candidate.staff_id]
        amount = candidate.payable_amount
        if candidate.bonus_type == BonusType.MONTHLY_ATTENDANCE:
            if candidate.period_key != expected_month:
                bucket.monthly_deferred += amount
                bucket.deferred_month_keys += (candidate.period_key,)
            else:
                bucket.monthly += amount
        elif candidate.bonus_type == BonusType.QUARTERLY_ATTENDANCE:
            bucket.quarterly += amount
        elif candidate.bonus_type == BonusType.KPI:
            bucket.kpi += amount
        bucket.candidate_ids += (candidate.id,)
    return buckets


def summarize_totals(lines: Sequence[PayrollLine]) -> PayrollTotals:
    totals = PayrollTotals(line_count=len(lines))
    for line in lines:
        totals.base_amount += line.base_amount
        totals.monthly_attendance += line.monthly_attendance
        totals.monthly_deferred += line.monthly_deferred
        totals.quarterly_attendance += line.quarterly_attendance
        totals.kpi_bonus += line.kpi_bonus
        totals.final_amount += line.final_amount
    for name in ("base_amount", "monthly_attendance", "monthly_deferred",
                 "quarterly_attendance", "kpi_bonus", "final_amount"):
        setattr(totals, name, quantize_amount(getattr(totals, name)))
    return totals


class PayrollService:
    """Computes, approves and pays semi-monthly payroll periods."""

    def __init__(self, db: Session):
        self.db = db
        self.resolver = ConfigResolver(db)
        self.audit = PayrollAuditService(db)

    resolve_pay_period = staticmethod(resolve_pay_period)

    async def recalc_for_pay_date(self, pay_date: date, actor_id: Optional[int] = None) -> PayrollPeriod:
        """
        Rebuild the period closed by ``pay_date``.

        Raises:
            InvalidPayDateError: pay date is neither the 15th nor month end
            PayrollPeriodLockedError: the period is already paid
        """
        period_info = resolve_pay_period(pay_date)
        existing = self._get_period_by_key(period_info.period_key)
        if existing is not None and existing.status == PayrollPeriodStatus.PAID:
            raise PayrollPeriodLockedError(period_info.period_key)

        staff_members = (
            self.db.query(StaffMember)
            .filter(StaffMember.is_active.is_(True))
            .order_by(StaffMember.id)
            .all()
        )
        candidates = self._payable_candidates(pay_date)
        buckets = categorize_bonuses(candidates, pay_date)

        lines: List[PayrollLine] = []
        for member in staff_members:
            configs = await self.resolver.configs_through(member.id, period_info.period_end)
            if not configs:
                continue
            base_amount, segments = compute_base_amount(configs, period_info)
            bonus = buckets.get(member.id, BonusBuckets())
            monthly = quantize_amount(bonus.monthly)
            monthly_deferred = quantize_amount(bonus.monthly_deferred)
            quarterly = quantize_amount(bonus.quarterly)
            kpi = quantize_amount(bonus.kpi)
            final_amount = quantize_amount(base_amount + monthly + monthly_deferred + quarterly + kpi)
            snapshot = PayrollLineSnapshot(
                period_key=period_info.period_key,
                total_days=period_info.total_days,
                segments=segments,
                bonus_candidate_ids=list(bonus.candidate_ids),
                deferred_month_keys=list(bonus.deferred_month_keys),
            )
            lines.append(
                PayrollLine(
                    staff_id=member.id,
                    base_amount=base_amount,
                    monthly_attendance=monthly,
                    monthly_deferred=monthly_deferred,
                    quarterly_attendance=quarterly,
                    kpi_bonus=kpi,
                    final_amount=final_amount,
                    snapshot=snapshot.model_dump(mode="json"),
                )
            )

        totals = summarize_totals(lines)

        try:
            period = existing
            if period is None:
                period = PayrollPeriod(
                    period_key=period_info.period_key,
                    status=PayrollPeriodStatus.DRAFT,
                )
                self.db.add(period)
            period.period_start = period_info.period_start
            period.period_end = period_info.period_end
            period.pay_date = pay_date
            period.totals = totals.model_dump(mode="json")
            period.computed_at = datetime.utcnow()

            period.lines.clear()
            self.db.flush()
            period.lines.extend(lines)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(f"Payroll recalculation failed for {period_info.period_key}", exc_info=True)
            raise

        self.db.refresh(period)
        logger.info(
            f"Recalculated payroll {period_info.period_key}: {totals.line_count} lines, "
            f"total {totals.final_amount}"
        )

        if actor_id:
            self.audit.record(
                actor_id, AuditScope.PAYROLL, period_info.period_key, "recalc", totals.model_dump(mode="json")
            )
        return period

    def _payable_candidates(self, pay_date: date) -> List[BonusCandidate]:
        return (
            self.db.query(BonusCandidate)
            .filter(
                BonusCandidate.eligible_pay_date == pay_date,
                or_(
                    and_(
                        BonusCandidate.bonus_type.in_(
                            [BonusType.MONTHLY_ATTENDANCE, BonusType.QUARTERLY_ATTENDANCE]
                        ),
                        BonusCandidate.status == BonusStatus.EARNED,
                    ),
                    and_(
                        BonusCandidate.bonus_type == BonusType.KPI,
                        BonusCandidate.status == BonusStatus.APPROVED,
                    ),
                ),
            )
            .order_by(BonusCandidate.staff_id, BonusCandidate.id)
            .all()
        )

    def _get_period_by_key(self, period_key: str) -> Optional[PayrollPeriod]:
        return self.db.query(PayrollPeriod).filter(PayrollPeriod.period_key == period_key).first()

    async def get_period(self, pay_date: date) -> Optional[PayrollPeriod]:
        period_info = resolve_pay_period(pay_date)
        return (
            self.db.query(PayrollPeriod)
            .options(selectinload(PayrollPeriod.lines).selectinload(PayrollLine.staff_member))
            .filter(PayrollPeriod.period_key == period_info.period_key)
            .first()
        )

    async def approve_period(self, pay_date: date, actor_id: int) -> PayrollPeriod:
        period_info = resolve_pay_period(pay_date)
        period = self._get_period_by_key(period_info.period_key)
        if period is None:
            raise PayrollNotFoundError("PayrollPeriod", period_info.period_key)
        if period.status == PayrollPeriodStatus.PAID:
            raise PayrollPeriodLockedError(period_info.period_key, action="approved")

        period.status = PayrollPeriodStatus.APPROVED
        period.approved_at = datetime.utcnow()
        period.approved_by_id = actor_id
        self.audit.record(actor_id, AuditScope.PAYROLL, period_info.period_key, "approve", {}, commit=False)
        self.db.commit()
        self.db.refresh(period)
        logger.info(f"Payroll period {period_info.period_key} approved by {actor_id}")
        return period

    async def mark_paid(self, pay_date: date, actor_id: int) -> PayrollPeriod:
        """Mark a period paid; its attendance month is locked from then on."""
        period_info = resolve_pay_period(pay_date)
        period = self._get_period_by_key(period_info.period_key)
        if period is None:
            raise PayrollNotFoundError("PayrollPeriod", period_info.period_key)

        period.status = PayrollPeriodStatus.PAID
        period.paid_at = datetime.utcnow()
        period.paid_by_id = actor_id
        self.audit.record(actor_id, AuditScope.PAYROLL, period_info.period_key, "pay", {}, commit=False)
        self.db.commit()
        self.db.refresh(period)
        logger.info(f"Payroll period {period_info.period_key} marked paid; month {period_info.month_key} locked")
        return period
