# backend/modules/payroll/services/payment_export_service.py

"""
Payroll export service for generating CSV files.
"""

from sqlalchemy.orm import Session
from datetime import date
import csv
import io
from decimal import Decimal

from .payroll_service import PayrollService

CSV_HEADERS = [
    "Employee",
    "Email",
    "Period Start",
    "Period End",
    "Base Amount",
    "Monthly Attendance",
    "Monthly Deferred",
    "Quarterly Attendance",
    "KPI Bonus",
    "Final Amount",
]


def _money(value) -> str:
    return f"{Decimal(value):.2f}"


class PayrollExportService:
    """Service for exporting payroll periods."""

    def __init__(self, db: Session):
        self.db = db
        self.payroll_service = PayrollService(db)

    async def export_csv(self, pay_date: date) -> str:
        """
        Export the period closed by ``pay_date`` as CSV.

        Rows are newline-joined with no trailing newline. Returns an empty
        string when the period has not been computed.
        """
        period = await self.payroll_service.get_period(pay_date)
        if period is None:
            return ""

        output = io.StringIO()
        writer = csv.writer(output, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        for line in period.lines:
            member = line.staff_member
            writer.writerow(
                [
                    member.name if member is not None and member.name else str(line.staff_id),
                    member.email if member is not None and member.email else "",
                    period.period_start.isoformat(),
                    period.period_end.isoformat(),
                    _money(line.base_amount),
                    _money(line.monthly_attendance),
                    _money(line.monthly_deferred),
                    _money(line.quarterly_attendance),
                    _money(line.kpi_bonus),
                    _money(line.final_amount),
                ]
            )
        return output.getvalue().rstrip("\n")
