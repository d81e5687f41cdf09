# backend/modules/payroll/services/audit_service.py

"""
Audit trail service for payroll operations.
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
import logging

from pydantic import TypeAdapter
from sqlalchemy.orm import Session

from ..enums.payroll_enums import AuditScope
from ..models.payroll_audit import PayrollAuditLog

logger = logging.getLogger(__name__)

_details_adapter = TypeAdapter(Dict[str, Any])


class PayrollAuditService:
    """Writes and reads the payroll audit log."""

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        actor_id: Optional[int],
        scope: AuditScope,
        target: str,
        action: str,
        details: Optional[Dict[str, Any]] = None,
        commit: bool = True,
    ) -> PayrollAuditLog:
        entry = PayrollAuditLog(
            actor_id=actor_id,
            scope=scope,
            target=target,
            action=action,
            details=_details_adapter.dump_python(details or {}, mode="json"),
            created_at=datetime.utcnow(),
        )
        self.db.add(entry)
        if commit:
            self.db.commit()
        logger.debug(f"Audit {scope.value}:{action} on {target} by {actor_id}")
        return entry

    async def list_entries(
        self,
        scope: Optional[AuditScope] = None,
        target: Optional[str] = None,
        limit: int = 100,
    ) -> List[PayrollAuditLog]:
        query = self.db.query(PayrollAuditLog)
        if scope is not None:
            query = query.filter(PayrollAuditLog.scope == scope)
        if target is not None:
            query = query.filter(PayrollAuditLog.target == target)
        return (
            query.order_by(PayrollAuditLog.created_at.desc(), PayrollAuditLog.id.desc())
            .limit(limit)
            .all()
        )
