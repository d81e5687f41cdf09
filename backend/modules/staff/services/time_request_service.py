# backend/modules/staff/services/time_request_service.py

"""
Time request decisions.

Approving or denying a request changes the inputs of every attendance
month it spans, so each decision fires the payroll recalculation trigger.
"""

from typing import Optional
import logging

from sqlalchemy.orm import Session

from ...payroll.exceptions import PayrollNotFoundError, PayrollValidationError
from ...payroll.services.attendance_trigger_service import AttendanceTriggerService
from ..enums.attendance_enums import TimeRequestStatus
from ..models.time_request_models import TimeRequest

logger = logging.getLogger(__name__)


class TimeRequestService:
    def __init__(self, db: Session):
        self.db = db
        self.trigger = AttendanceTriggerService(db)

    async def decide(
        self,
        request_id: int,
        status: TimeRequestStatus,
        actor_id: Optional[int] = None,
    ) -> TimeRequest:
        if status not in (TimeRequestStatus.APPROVED, TimeRequestStatus.DENIED):
            raise PayrollValidationError(
                f"Cannot set time request to {status.value}", field="status"
            )
        request = self.db.query(TimeRequest).filter(TimeRequest.id == request_id).first()
        if request is None:
            raise PayrollNotFoundError("TimeRequest", request_id)

        request.status = status
        self.db.commit()
        self.db.refresh(request)
        logger.info(f"Time request {request_id} {status.value} by {actor_id}")

        await self.trigger.trigger_for_user_range(
            request.staff_id, request.start_date, request.end_date, actor_id
        )
        return request
