# backend/modules/payroll/schemas/error_schemas.py

"""
Error schemas shared by the payroll exception hierarchy.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class ErrorDetail(BaseModel):
    """Detailed error information"""

    field: Optional[str] = None
    message: str
    code: Optional[str] = None


class ErrorResponse(BaseModel):
    """Serialized form of a PayrollException"""

    error: str = Field(..., description="Error type or category")
    message: str = Field(..., description="Human-readable error message")
    code: str = Field(..., description="Machine-readable error code")
    details: Optional[List[ErrorDetail]] = Field(
        None, description="Additional error details"
    )
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class PayrollErrorCodes:
    """Centralized error codes for payroll module"""

    # Validation errors
    INVALID_MONTH_KEY = "PAYROLL_INVALID_MONTH_KEY"
    INVALID_PAY_DATE = "PAYROLL_INVALID_PAY_DATE"
    INVALID_CONFIG_VALUE = "PAYROLL_INVALID_CONFIG_VALUE"

    # Business logic errors
    DUPLICATE_CONFIG = "PAYROLL_DUPLICATE_CONFIG"
    PERIOD_PAID = "PAYROLL_RULE_PERIOD_PAID"

    # Database errors
    DATABASE_ERROR = "PAYROLL_DATABASE_ERROR"
    RECORD_NOT_FOUND = "PAYROLL_RECORD_NOT_FOUND"
