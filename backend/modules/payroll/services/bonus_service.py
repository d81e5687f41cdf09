# backend/modules/payroll/services/bonus_service.py

"""
Bonus cascade: monthly attendance, quarterly attendance and KPI candidates.

Automation may overwrite ``earned`` and ``pending`` candidates; ``approved``
and ``denied`` KPI decisions are manual and survive recomputation.
"""

from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from ..enums.payroll_enums import AuditScope, BonusStatus, BonusType
from ..exceptions import PayrollBusinessRuleError, PayrollNotFoundError
from ..models.payroll_models import AttendanceMonthFact, BonusCandidate
from ..schemas.payroll_schemas import BonusCandidateSnapshot, KpiDecision
from ..utils.payroll_calendar import (
    is_quarter_end,
    local_date_of,
    month_range,
    monthly_bonus_pay_date,
    quantize_amount,
    quarter_key,
    quarter_month_keys,
    quarterly_bonus_pay_date,
)
from .attendance_fact_service import AttendanceFactService
from .audit_service import PayrollAuditService
from .config_resolver import ConfigResolver

logger = logging.getLogger(__name__)


class BonusService:
    """Derives bonus candidates from attendance facts."""

    def __init__(self, db: Session):
        self.db = db
        self.resolver = ConfigResolver(db)
        self.audit = PayrollAuditService(db)
        self.attendance = AttendanceFactService(db)

    async def recalc_month(
        self,
        month_key: str,
        actor_id: Optional[int] = None,
        staff_ids: Optional[List[int]] = None,
        computed_at: Optional[date] = None,
    ) -> List[BonusCandidate]:
        """
        Run the cascade for one month.

        Args:
            month_key: Month in ``YYYY-MM`` form
            actor_id: Staff member to credit in the audit log
            staff_ids: Restrict to these staff members
            computed_at: Computation moment (naive UTC) or local date used for
                late-recompute deferral; defaults to now

        Returns:
            Monthly attendance candidates upserted for the month
        """
        _, month_end = month_range(month_key)
        if await self.attendance.is_month_locked(month_key):
            logger.info(f"Attendance month {month_key} is locked; skipping bonus cascade")
            return []

        computed_at = computed_at or datetime.utcnow()
        pay_date = monthly_bonus_pay_date(month_key, computed_at)
        computed_on = (
            local_date_of(computed_at) if isinstance(computed_at, datetime) else computed_at
        )

        query = self.db.query(AttendanceMonthFact).filter(AttendanceMonthFact.month_key == month_key)
        if staff_ids:
            query = query.filter(AttendanceMonthFact.staff_id.in_(staff_ids))
        facts = query.order_by(AttendanceMonthFact.staff_id).all()

        monthly: List[BonusCandidate] = []
        for fact in facts:
            candidate = await self._apply_monthly(fact, month_key, month_end, pay_date, computed_on, actor_id)
            if candidate is not None:
                monthly.append(candidate)

        if is_quarter_end(month_key):
            await self._apply_quarterly(month_key, month_end, staff_ids, computed_on, actor_id)

        for fact in facts:
            await self._apply_kpi(fact, month_key, month_end, pay_date, computed_on, actor_id)

        self.db.commit()
        logger.info(
            f"Bonus cascade for {month_key}: {len(monthly)} monthly candidates payable {pay_date}"
        )
        return monthly

    async def _apply_monthly(
        self,
        fact: AttendanceMonthFact,
        month_key: str,
        month_end: date,
        pay_date: date,
        computed_on: date,
        actor_id: Optional[int],
    ) -> Optional[BonusCandidate]:
        config = await self.resolver.effective_config(fact.staff_id, month_end)
        if config is None:
            logger.debug(f"No compensation config for staff {fact.staff_id}; monthly bonus skipped")
            return None
        if not fact.is_perfect:
            self._delete_candidate(fact.staff_id, BonusType.MONTHLY_ATTENDANCE, month_key)
            return None

        amount = quantize_amount(config.monthly_attendance_bonus)
        snapshot = BonusCandidateSnapshot(
            source_month_keys=[month_key],
            fact_ids=[fact.id],
            config_id=config.id,
            config_effective_on=config.effective_on,
            computed_on=computed_on,
        )
        return self._upsert_candidate(
            staff_id=fact.staff_id,
            bonus_type=BonusType.MONTHLY_ATTENDANCE,
            period_key=month_key,
            amount=amount,
            final_amount=amount,
            status=BonusStatus.EARNED,
            eligible_pay_date=pay_date,
            snapshot=snapshot,
            actor_id=actor_id,
        )

    async def _apply_quarterly(
        self,
        month_key: str,
        month_end: date,
        staff_ids: Optional[List[int]],
        computed_on: date,
        actor_id: Optional[int],
    ) -> None:
        month_keys = quarter_month_keys(month_key)
        period_key = quarter_key(month_key)
        pay_date = quarterly_bonus_pay_date(month_key)

        query = self.db.query(AttendanceMonthFact).filter(AttendanceMonthFact.month_key.in_(month_keys))
        if staff_ids:
            query = query.filter(AttendanceMonthFact.staff_id.in_(staff_ids))
        facts_by_staff: Dict[int, List[AttendanceMonthFact]] = defaultdict(list)
        for fact in query.order_by(AttendanceMonthFact.staff_id, AttendanceMonthFact.month_key).all():
            facts_by_staff[fact.staff_id].append(fact)

        for staff_id, facts in facts_by_staff.items():
            # Partial quarters (e.g. mid-quarter hires) are not prorated
            if len(facts) != 3 or not all(fact.is_perfect for fact in facts):
                self._delete_candidate(staff_id, BonusType.QUARTERLY_ATTENDANCE, period_key)
                continue
            config = await self.resolver.effective_config(staff_id, month_end)
            if config is None:
                continue
            amount = quantize_amount(config.quarterly_attendance_bonus)
            self._upsert_candidate(
                staff_id=staff_id,
                bonus_type=BonusType.QUARTERLY_ATTENDANCE,
                period_key=period_key,
                amount=amount,
                final_amount=amount,
                status=BonusStatus.EARNED,
                eligible_pay_date=pay_date,
                snapshot=BonusCandidateSnapshot(
                    source_month_keys=month_keys,
                    fact_ids=[fact.id for fact in facts],
                    config_id=config.id,
                    config_effective_on=config.effective_on,
                    computed_on=computed_on,
                ),
                actor_id=actor_id,
            )

    async def _apply_kpi(
        self,
        fact: AttendanceMonthFact,
        month_key: str,
        month_end: date,
        pay_date: date,
        computed_on: date,
        actor_id: Optional[int],
    ) -> None:
        config = await self.resolver.effective_config(fact.staff_id, month_end)
        if config is None or not config.kpi_eligible:
            self._delete_candidate(fact.staff_id, BonusType.KPI, month_key)
            return

        existing = self._get_candidate(fact.staff_id, BonusType.KPI, month_key)
        if existing is not None and not existing.status.is_overwritable_by_automation:
            return

        amount = quantize_amount(config.default_kpi_bonus or Decimal("0"))
        self._upsert_candidate(
            staff_id=fact.staff_id,
            bonus_type=BonusType.KPI,
            period_key=month_key,
            amount=amount,
            final_amount=existing.final_amount if existing is not None else None,
            status=BonusStatus.PENDING,
            eligible_pay_date=pay_date,
            snapshot=BonusCandidateSnapshot(
                source_month_keys=[month_key],
                fact_ids=[fact.id],
                config_id=config.id,
                config_effective_on=config.effective_on,
                computed_on=computed_on,
            ),
            actor_id=actor_id,
        )

    def _get_candidate(self, staff_id: int, bonus_type: BonusType, period_key: str) -> Optional[BonusCandidate]:
        return (
            self.db.query(BonusCandidate)
            .filter(
                BonusCandidate.staff_id == staff_id,
                BonusCandidate.bonus_type == bonus_type,
                BonusCandidate.period_key == period_key,
            )
            .first()
        )

    def _delete_candidate(self, staff_id: int, bonus_type: BonusType, period_key: str) -> None:
        existing = self._get_candidate(staff_id, bonus_type, period_key)
        if existing is not None:
            logger.info(f"Revoking {bonus_type.value} bonus {period_key} for staff {staff_id}")
            self.db.delete(existing)
            self.db.flush()

    def _upsert_candidate(
        self,
        staff_id: int,
        bonus_type: BonusType,
        period_key: str,
        amount: Decimal,
        final_amount: Optional[Decimal],
        status: BonusStatus,
        eligible_pay_date: date,
        snapshot: BonusCandidateSnapshot,
        actor_id: Optional[int],
    ) -> BonusCandidate:
        candidate = self._get_candidate(staff_id, bonus_type, period_key)
        if candidate is None:
            candidate = BonusCandidate(staff_id=staff_id, bonus_type=bonus_type, period_key=period_key)
            self.db.add(candidate)

        candidate.amount = amount
        candidate.final_amount = final_amount
        candidate.status = status
        candidate.eligible_pay_date = eligible_pay_date
        candidate.snapshot = snapshot.model_dump(mode="json")
        candidate.notes = None
        candidate.computed_at = datetime.utcnow()
        self.db.flush()

        if actor_id:
            self.audit.record(
                actor_id,
                AuditScope.BONUS,
                f"{staff_id}:{bonus_type.value}:{period_key}",
                "upsert",
                {"amount": amount, "status": status.value, "eligible_pay_date": eligible_pay_date},
                commit=False,
            )
        return candidate

    async def list_bonuses_for_pay_date(self, pay_date: date) -> List[BonusCandidate]:
        return (
            self.db.query(BonusCandidate)
            .filter(BonusCandidate.eligible_pay_date == pay_date)
            .order_by(BonusCandidate.staff_id, BonusCandidate.bonus_type, BonusCandidate.period_key)
            .all()
        )

    async def update_kpi_status(
        self, candidate_id: int, decision: KpiDecision, actor_id: int
    ) -> BonusCandidate:
        """Record a manual KPI approval or denial."""
        candidate = self.db.query(BonusCandidate).filter(BonusCandidate.id == candidate_id).first()
        if candidate is None:
            raise PayrollNotFoundError("BonusCandidate", candidate_id)
        if candidate.bonus_type != BonusType.KPI:
            raise PayrollBusinessRuleError(
                f"Bonus candidate {candidate_id} is not a KPI bonus", rule="kpi_only"
            )

        candidate.status = decision.status
        if decision.final_amount is not None:
            candidate.final_amount = quantize_amount(decision.final_amount)
        candidate.notes = decision.notes
        candidate.approved_at = datetime.utcnow()
        candidate.approved_by_id = actor_id

        self.audit.record(
            actor_id,
            AuditScope.BONUS,
            f"{candidate.staff_id}:{candidate.bonus_type.value}:{candidate.period_key}",
            decision.status.value,
            {"final_amount": candidate.final_amount, "notes": decision.notes},
            commit=False,
        )
        self.db.commit()
        self.db.refresh(candidate)
        logger.info(f"KPI bonus {candidate_id} {decision.status.value} by {actor_id}")
        return candidate
