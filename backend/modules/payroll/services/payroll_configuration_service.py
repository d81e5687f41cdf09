# backend/modules/payroll/services/payroll_configuration_service.py

"""
Compensation config management.

Configs are effective-dated and never edited in place: a change is a new
row at a new ``effective_on``. Schedule changes rebuild attendance for every
month between the effective date and today.
"""

from datetime import date, datetime
from typing import List, Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..enums.payroll_enums import AuditScope
from ..exceptions import PayrollConflictError, PayrollNotFoundError
from ..models.payroll_configuration import EmployeeCompConfig
from ..schemas.error_schemas import ErrorDetail
from ..schemas.payroll_schemas import EmployeeCompConfigResponse, EmployeeCompInput
from ..utils.schedule_utils import ensure_schedule, serialize_schedule
from .attendance_trigger_service import AttendanceTriggerService, month_keys_from_effective_date
from .audit_service import PayrollAuditService
from .config_resolver import ConfigResolver

logger = logging.getLogger(__name__)


class PayrollConfigurationService:
    """Service for creating, listing and removing compensation configs."""

    def __init__(self, db: Session):
        self.db = db
        self.resolver = ConfigResolver(db)
        self.audit = PayrollAuditService(db)
        self.trigger = AttendanceTriggerService(db)

    async def list_configs(self, staff_id: Optional[int] = None) -> List[EmployeeCompConfig]:
        query = self.db.query(EmployeeCompConfig)
        if staff_id is not None:
            query = query.filter(EmployeeCompConfig.staff_id == staff_id)
        return query.order_by(EmployeeCompConfig.effective_on.desc(), EmployeeCompConfig.id.desc()).all()

    async def upsert_config(
        self,
        data: EmployeeCompInput,
        actor_id: Optional[int] = None,
        today: Optional[date] = None,
    ) -> EmployeeCompConfig:
        """
        Create a config effective on ``data.effective_on``.

        Raises:
            PayrollConflictError: a config already exists for that date
        """
        prior = await self.resolver.effective_config(data.staff_id, data.effective_on)
        schedule = ensure_schedule(data.schedule)
        schedule_changed = prior is None or ensure_schedule(prior.schedule) != schedule

        config = EmployeeCompConfig(
            staff_id=data.staff_id,
            effective_on=data.effective_on,
            base_semi_monthly_salary=data.base_semi_monthly_salary,
            monthly_attendance_bonus=data.monthly_attendance_bonus,
            quarterly_attendance_bonus=data.quarterly_attendance_bonus,
            kpi_eligible=data.kpi_eligible,
            default_kpi_bonus=data.default_kpi_bonus,
            schedule=serialize_schedule(schedule),
            accrual_enabled=data.accrual_enabled,
            accrual_method=data.accrual_method,
            pto_starting_balance=data.pto_starting_balance,
            uto_starting_balance=data.uto_starting_balance,
            submitted_by_id=actor_id,
            submitted_at=datetime.utcnow(),
        )
        self.db.add(config)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise PayrollConflictError(
                "Configuration already exists for this effective date.",
                details=[ErrorDetail(field="effective_on", message=str(data.effective_on))],
            ) from e
        self.db.refresh(config)
        logger.info(f"Created compensation config {config.id} for staff {data.staff_id} effective {data.effective_on}")

        if schedule_changed:
            month_keys = month_keys_from_effective_date(data.effective_on, today)
            await self.trigger.trigger_for_months(month_keys, actor_id, [data.staff_id])

        if actor_id:
            self.audit.record(
                actor_id,
                AuditScope.EMPLOYEE_CONFIG,
                str(data.staff_id),
                "upsert",
                data.model_dump(mode="json"),
            )
        return config

    async def delete_config(
        self, config_id: int, actor_id: Optional[int] = None, today: Optional[date] = None
    ) -> EmployeeCompConfigResponse:
        config = self.db.query(EmployeeCompConfig).filter(EmployeeCompConfig.id == config_id).first()
        if config is None:
            raise PayrollNotFoundError("EmployeeCompConfig", config_id)

        removed = EmployeeCompConfigResponse.model_validate(config)
        staff_id, effective_on = config.staff_id, config.effective_on
        self.db.delete(config)
        self.db.commit()
        logger.info(f"Deleted compensation config {config_id} for staff {staff_id}")

        await self.trigger.trigger_for_months(
            month_keys_from_effective_date(effective_on, today), actor_id, [staff_id]
        )

        if actor_id:
            self.audit.record(
                actor_id, AuditScope.EMPLOYEE_CONFIG, str(staff_id), "delete", {"id": config_id}
            )
        return removed

    async def delete_future_configs(self, staff_id: int, effective_after: date) -> int:
        """Remove configs that start after ``effective_after``; returns the count."""
        deleted = (
            self.db.query(EmployeeCompConfig)
            .filter(
                EmployeeCompConfig.staff_id == staff_id,
                EmployeeCompConfig.effective_on > effective_after,
            )
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted
