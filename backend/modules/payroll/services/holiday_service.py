# backend/modules/payroll/services/holiday_service.py

from datetime import date
from typing import List, Optional
import logging

from sqlalchemy.orm import Session

from ..enums.payroll_enums import AuditScope
from ..exceptions import PayrollNotFoundError
from ..models.payroll_configuration import Holiday
from ..utils.payroll_calendar import month_key_for
from .attendance_trigger_service import AttendanceTriggerService
from .audit_service import PayrollAuditService

logger = logging.getLogger(__name__)


class HolidayService:
    """Company holidays; every change rebuilds the month it falls in."""

    def __init__(self, db: Session):
        self.db = db
        self.audit = PayrollAuditService(db)
        self.trigger = AttendanceTriggerService(db)

    async def list_holidays(self, start: date, end: date) -> List[Holiday]:
        return (
            self.db.query(Holiday)
            .filter(Holiday.observed_on >= start, Holiday.observed_on <= end)
            .order_by(Holiday.observed_on.asc())
            .all()
        )

    async def create_holiday(self, name: str, observed_on: date, actor_id: Optional[int] = None) -> Holiday:
        holiday = self.db.query(Holiday).filter(Holiday.observed_on == observed_on).first()
        if holiday is None:
            holiday = Holiday(name=name, observed_on=observed_on, created_by_id=actor_id)
            self.db.add(holiday)
        else:
            holiday.name = name
        self.db.commit()
        self.db.refresh(holiday)

        if actor_id:
            self.audit.record(actor_id, AuditScope.HOLIDAY, observed_on.isoformat(), "upsert", {"name": name})
        await self.trigger.trigger_for_months([month_key_for(observed_on)], actor_id)
        return holiday

    async def delete_holiday(self, observed_on: date, actor_id: Optional[int] = None) -> bool:
        deleted = self.db.query(Holiday).filter(Holiday.observed_on == observed_on).delete(
            synchronize_session=False
        )
        if not deleted:
            raise PayrollNotFoundError("Holiday", observed_on.isoformat())
        self.db.commit()

        if actor_id:
            self.audit.record(actor_id, AuditScope.HOLIDAY, observed_on.isoformat(), "delete", {})
        await self.trigger.trigger_for_months([month_key_for(observed_on)], actor_id)
        return True
