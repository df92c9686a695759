"""
Error Handling Module for Veyro Payroll

This module provides centralized error handling with:
- Custom exception hierarchy (validation, state conflict, configuration)
- Standardized error responses
- Error logging
- Payroll-specific validation helpers
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    DataError,
)
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.utils.money import CENT, to_decimal

# Configure logging
logger = logging.getLogger("veyro.errors")

class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (422)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    MISSING_BANK_DETAILS = "MISSING_BANK_DETAILS"
    PAYROLL_VALIDATION_FAILED = "PAYROLL_VALIDATION_FAILED"

    # Resource Errors (404/409)
    NOT_FOUND = "NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"

    # State Errors (409)
    STATE_CONFLICT = "STATE_CONFLICT"
    RUN_LOCKED = "RUN_LOCKED"
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    ALREADY_APPLIED = "ALREADY_APPLIED"

    # Database Errors (500)
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

    # Internal Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    MISSING_TAX_TABLES = "MISSING_TAX_TABLES"

class AppException(Exception):
    """Base exception for all application exceptions"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = datetime.utcnow()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        result = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat() + "Z",
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result

# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationException(AppException):
    """Base validation exception"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            field=field,
        )

class InvalidDateRangeException(ValidationException):
    """Invalid date range"""

    def __init__(self, start_date: date, end_date: date, message: Optional[str] = None):
        super().__init__(
            message=message or f"Invalid date range: {start_date} to {end_date}. End date must not be before start date.",
            code=ErrorCode.INVALID_DATE_RANGE,
            details={"start_date": str(start_date), "end_date": str(end_date)},
        )

class InvalidAmountException(ValidationException):
    """Invalid monetary amount"""

    def __init__(self, amount: Any, field: str = "amount", message: Optional[str] = None):
        super().__init__(
            message=message or f"Invalid amount: {amount}. Amount must be a positive number.",
            field=field,
            code=ErrorCode.INVALID_AMOUNT,
            details={"provided_amount": str(amount)},
        )

class MissingBankDetailsException(ValidationException):
    """Employees cannot be paid by bank transfer"""

    def __init__(self, employees: List[str]):
        super().__init__(
            message=f"Missing bank details for: {', '.join(employees)}",
            code=ErrorCode.MISSING_BANK_DETAILS,
            details={"employees": employees},
        )

# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """Resource not found exception"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id else None},
        )

class ConflictException(AppException):
    """Resource conflict exception"""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if resource_type:
            _details["resource_type"] = resource_type
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=_details,
        )

class StateConflictException(ConflictException):
    """
    Operation is illegal in the payroll run's current state.

    Always surfaced to the caller, never auto-resolved.
    """

    def __init__(
        self,
        message: str,
        current_status: Optional[str] = None,
        target_status: Optional[str] = None,
        code: ErrorCode = ErrorCode.STATE_CONFLICT,
    ):
        details: Dict[str, Any] = {}
        if current_status:
            details["current_status"] = current_status
        if target_status:
            details["target_status"] = target_status
        super().__init__(
            message=message,
            resource_type="PayrollRun",
            code=code,
            details=details,
        )

# ============================================================================
# Configuration Exceptions
# ============================================================================

class ConfigurationException(AppException):
    """Required statutory configuration is missing or incomplete"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.CONFIGURATION_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details,
        )

class MissingTaxTablesException(ConfigurationException):
    """No tax tables for the requested tax year"""

    def __init__(self, tax_year: str, missing: Optional[List[str]] = None):
        parts = ", ".join(missing) if missing else "tax tables"
        super().__init__(
            message=f"No {parts} configured for tax year {tax_year}",
            code=ErrorCode.MISSING_TAX_TABLES,
            details={"tax_year": tax_year, "missing": missing or []},
        )

# ============================================================================
# Exception Handlers
# ============================================================================

HTTP_STATUS_ERROR_CODES = {
    400: ErrorCode.INVALID_INPUT,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.RESOURCE_CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
}

def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
) -> JSONResponse:
    """Render the {"detail": {...}} error body shared by every handler."""
    body: Dict[str, Any] = {
        "code": code.value,
        "message": message,
        "timestamp": datetime.utcnow().isoformat() + "Z",
    }
    if field:
        body["field"] = field
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"detail": body})

def _request_context(request: Request) -> Dict[str, Any]:
    return {"path": request.url.path, "method": request.method}

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"{exc.code.value} on {request.method} {request.url.path}: {exc.message}",
        extra={**_request_context(request), "code": exc.code.value, "details": exc.details},
        exc_info=exc.original_error,
    )
    return create_error_response(exc.code, exc.message, exc.status_code, exc.details, exc.field)

async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    logger.warning(f"HTTP {exc.status_code} on {request.url.path}: {message}", extra=_request_context(request))
    return create_error_response(
        HTTP_STATUS_ERROR_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR),
        message,
        exc.status_code,
    )

async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Pydantic request errors, flattened to field/message/type triples."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(
        f"Request validation failed on {request.url.path}: {len(errors)} errors",
        extra={**_request_context(request), "errors": errors},
    )
    return create_error_response(
        ErrorCode.VALIDATION_ERROR,
        "Request validation failed",
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
    )

def _classify_database_error(exc: SQLAlchemyError) -> Tuple[ErrorCode, str, int]:
    if isinstance(exc, IntegrityError):
        reason = str(exc.orig).lower() if exc.orig else ""
        if "unique" in reason or "duplicate" in reason:
            # e.g. two first recalculations of the same period
            return ErrorCode.DUPLICATE_ENTRY, "A record with this value already exists", status.HTTP_409_CONFLICT
        if "foreign key" in reason:
            return ErrorCode.DATA_INTEGRITY_ERROR, "Referenced record does not exist", status.HTTP_422_UNPROCESSABLE_ENTITY
        return ErrorCode.DATA_INTEGRITY_ERROR, "Data integrity constraint violated", status.HTTP_500_INTERNAL_SERVER_ERROR
    if isinstance(exc, OperationalError):
        return ErrorCode.CONNECTION_ERROR, "Database operation failed", status.HTTP_500_INTERNAL_SERVER_ERROR
    if isinstance(exc, DataError):
        return ErrorCode.DATABASE_ERROR, "Invalid data format for database", status.HTTP_422_UNPROCESSABLE_ENTITY
    return ErrorCode.DATABASE_ERROR, "A database error occurred", status.HTTP_500_INTERNAL_SERVER_ERROR

async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    code, message, status_code = _classify_database_error(exc)
    logger.error(
        f"{type(exc).__name__} on {request.url.path}: {exc}",
        extra=_request_context(request),
        exc_info=True,
    )
    return create_error_response(code, message, status_code)

async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.critical(
        f"Unhandled {type(exc).__name__} on {request.url.path}: {exc}",
        extra=_request_context(request),
        exc_info=True,
    )
    return create_error_response(
        ErrorCode.INTERNAL_ERROR,
        "An unexpected error occurred. Please try again later.",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )

def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

# ============================================================================
# Utility Functions
# ============================================================================

def validate_amount(amount: Any, field: str = "amount", allow_zero: bool = False) -> Decimal:
    """Validate monetary amount"""
    try:
        value = to_decimal(amount, field)
    except (TypeError, ValueError):
        raise InvalidAmountException(amount, field)
    if not value.is_finite() or value < 0 or (not allow_zero and value == 0):
        raise InvalidAmountException(amount, field)
    if value % CENT != 0:
        raise InvalidAmountException(
            amount, field, message=f"Invalid amount: {amount}. Amounts are limited to whole cents.",
        )
    return value

def validate_date_range(start_date: date, end_date: Optional[date]) -> None:
    """An open-ended range is valid; otherwise end must not precede start."""
    if end_date is not None and end_date < start_date:
        raise InvalidDateRangeException(start_date, end_date)

# Export all exceptions for easy importing
__all__ = [
    # Base
    "AppException",
    "ErrorCode",

    # Validation
    "ValidationException",
    "InvalidDateRangeException",
    "InvalidAmountException",
    "MissingBankDetailsException",

    # Resource / state
    "NotFoundException",
    "ConflictException",
    "StateConflictException",

    # Configuration
    "ConfigurationException",
    "MissingTaxTablesException",

    # Handlers
    "create_error_response",
    "setup_exception_handlers",

    # Validators
    "validate_amount",
    "validate_date_range",
]
