# backend/modules/payroll/exceptions.py

"""
Custom exceptions for payroll module.
"""

from typing import Optional, List, Any
from .schemas.error_schemas import ErrorDetail, ErrorResponse, PayrollErrorCodes


class PayrollException(Exception):
    """Base exception for payroll module"""
    def __init__(
        self,
        message: str,
        code: str = PayrollErrorCodes.DATABASE_ERROR,
        details: Optional[List[ErrorDetail]] = None,
        status_code: int = 400
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or []
        self.status_code = status_code

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error=type(self).__name__,
            message=self.message,
            code=self.code,
            details=self.details or None,
        )


class PayrollValidationError(PayrollException):
    """Validation error for payroll operations"""
    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        code: str = PayrollErrorCodes.INVALID_CONFIG_VALUE,
        details: Optional[List[ErrorDetail]] = None,
    ):
        if field and not details:
            details = [ErrorDetail(field=field, message=message, code=code)]
        super().__init__(
            message=message,
            code=code,
            details=details,
            status_code=422
        )


class InvalidMonthKeyError(PayrollValidationError):
    def __init__(self, month_key: str):
        super().__init__(
            message=f"Invalid month key '{month_key}', expected YYYY-MM",
            field="month_key",
            code=PayrollErrorCodes.INVALID_MONTH_KEY,
        )


class InvalidPayDateError(PayrollValidationError):
    def __init__(self, pay_date: Any):
        super().__init__(
            message=f"Pay date {pay_date} must be the 15th or the last day of the month",
            field="pay_date",
            code=PayrollErrorCodes.INVALID_PAY_DATE,
        )


class PayrollNotFoundError(PayrollException):
    """Resource not found error"""
    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            message=f"{resource} with identifier {identifier} not found",
            code=PayrollErrorCodes.RECORD_NOT_FOUND,
            status_code=404
        )


class PayrollConflictError(PayrollException):
    """Uniqueness violation on an effective-dated record"""
    def __init__(self, message: str, details: Optional[List[ErrorDetail]] = None):
        super().__init__(
            message=message,
            code=PayrollErrorCodes.DUPLICATE_CONFIG,
            details=details,
            status_code=409
        )


class PayrollBusinessRuleError(PayrollException):
    """Business rule violation errors"""
    def __init__(self, message: str, rule: str, details: Optional[List[ErrorDetail]] = None):
        super().__init__(
            message=message,
            code=f"PAYROLL_RULE_{rule.upper()}",
            details=details,
            status_code=400
        )


class PayrollPeriodLockedError(PayrollBusinessRuleError):
    """Raised when mutating a period that has already been paid"""
    def __init__(self, period_key: str, action: str = "recalculated"):
        super().__init__(
            message=f"Payroll period {period_key} is paid and cannot be {action}",
            rule="period_paid",
            details=[ErrorDetail(field="period_key", message=period_key)],
        )
        self.period_key = period_key
