# backend/modules/payroll/models/payroll_audit.py

"""
Audit trail for payroll operations.

Every manual edit (configs, holidays, reviews, KPI decisions, period
approval and payment) and every actor-initiated recomputation leaves one
row here.
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, JSON,
    Index, Enum as SQLEnum
)
from datetime import datetime
from core.database import Base
from ..enums.payroll_enums import AuditScope


class PayrollAuditLog(Base):
    __tablename__ = "payroll_audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, nullable=True, index=True)
    scope = Column(
        SQLEnum(
            AuditScope,
            values_callable=lambda obj: [e.value for e in obj],
            create_type=False,
        ),
        nullable=False,
        index=True
    )
    target = Column(String(100), nullable=True, index=True)
    action = Column(String(100), nullable=False)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        Index('idx_payroll_audit_scope_target', 'scope', 'target'),
        Index('idx_payroll_audit_actor_created', 'actor_id', 'created_at'),
    )
