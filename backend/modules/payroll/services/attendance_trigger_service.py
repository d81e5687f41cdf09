# backend/modules/payroll/services/attendance_trigger_service.py

"""
Recalculation trigger.

Config edits, holiday edits and time-request decisions call in here with
the affected dates; every touched month is rebuilt unless it is locked.
"""

from datetime import date
from typing import List, Optional, Sequence
import logging

from sqlalchemy.orm import Session

from ..models.payroll_models import AttendanceMonthFact
from ..utils.payroll_calendar import local_today, month_key_for, month_keys_between
from .attendance_fact_service import AttendanceFactService
from .bonus_service import BonusService

logger = logging.getLogger(__name__)


def month_keys_from_effective_date(effective_on: date, reference: Optional[date] = None) -> List[str]:
    """Month keys between an effective date and the reference day, either order."""
    return month_keys_between(effective_on, reference or local_today())


class AttendanceTriggerService:
    def __init__(self, db: Session):
        self.db = db
        self.attendance = AttendanceFactService(db)
        self.bonuses = BonusService(db)

    async def recalc_month(
        self,
        month_key: str,
        actor_id: Optional[int] = None,
        staff_ids: Optional[List[int]] = None,
    ) -> List[AttendanceMonthFact]:
        """Rebuild a month's facts, then its bonus candidates."""
        if await self.attendance.is_month_locked(month_key):
            logger.info(f"Skipping recalculation of {month_key}: month_locked")
            return []
        try:
            facts = await self.attendance.recalc_month(month_key, actor_id, staff_ids)
            await self.bonuses.recalc_month(month_key, actor_id, staff_ids)
        except Exception:
            self.db.rollback()
            logger.error(
                f"Attendance recalculation failed for {month_key} (staff {staff_ids})",
                exc_info=True,
            )
            raise
        return facts

    async def trigger_for_months(
        self,
        month_keys: Sequence[str],
        actor_id: Optional[int] = None,
        staff_ids: Optional[List[int]] = None,
    ) -> List[str]:
        """Recalculate each month in turn; returns the months actually rebuilt."""
        rebuilt = []
        for month_key in month_keys:
            if await self.attendance.is_month_locked(month_key):
                logger.info(f"Skipping recalculation of {month_key}: month_locked")
                continue
            await self.recalc_month(month_key, actor_id, staff_ids)
            rebuilt.append(month_key)
        return rebuilt

    async def trigger_for_user(
        self, staff_id: int, reference_date: date, actor_id: Optional[int] = None
    ) -> List[str]:
        return await self.trigger_for_months([month_key_for(reference_date)], actor_id, [staff_id])

    async def trigger_for_user_range(
        self, staff_id: int, start: date, end: date, actor_id: Optional[int] = None
    ) -> List[str]:
        return await self.trigger_for_months(month_keys_between(start, end), actor_id, [staff_id])
