# backend/modules/payroll/__init__.py

"""
Payroll Module - attendance reconciliation and semi-monthly payroll

- Effective-dated compensation and schedule configs
- Monthly attendance facts with make-up matching
- Monthly, quarterly and KPI bonus cascade
- Prorated semi-monthly payroll periods and CSV export
"""

__version__ = "1.0.0"
