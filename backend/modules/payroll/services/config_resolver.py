# backend/modules/payroll/services/config_resolver.py

"""
Effective-dated lookup of compensation configs.

The config in force on a day is the one with the greatest ``effective_on``
not after that day.
"""

from typing import List, Optional, Sequence
from datetime import date

from sqlalchemy.orm import Session

from ..models.payroll_configuration import EmployeeCompConfig


def resolve_active_config_for_range(
    configs: Sequence[EmployeeCompConfig], on_date: date
) -> Optional[EmployeeCompConfig]:
    """As-of lookup over configs already sorted by ``effective_on`` ascending."""
    candidate = None
    for config in configs:
        if config.effective_on > on_date:
            break
        candidate = config
    return candidate


class ConfigResolver:
    def __init__(self, db: Session):
        self.db = db

    async def effective_config(self, staff_id: int, on_date: date) -> Optional[EmployeeCompConfig]:
        return (
            self.db.query(EmployeeCompConfig)
            .filter(
                EmployeeCompConfig.staff_id == staff_id,
                EmployeeCompConfig.effective_on <= on_date,
            )
            .order_by(EmployeeCompConfig.effective_on.desc())
            .first()
        )

    async def configs_through(self, staff_id: int, through: date) -> List[EmployeeCompConfig]:
        return (
            self.db.query(EmployeeCompConfig)
            .filter(
                EmployeeCompConfig.staff_id == staff_id,
                EmployeeCompConfig.effective_on <= through,
            )
            .order_by(EmployeeCompConfig.effective_on.asc())
            .all()
        )
