"""
Error Handling Module for the Naira Payroll Engine

This module provides centralized error handling with:
- Custom exception hierarchy for the payroll domain
- Standardized error responses
- Error logging
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import UUID, uuid4
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    DataError,
)
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("naira_payroll.errors")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_ASSIGNMENT = "INVALID_ASSIGNMENT"
    INVALID_COMPENSATION_DATA = "INVALID_COMPENSATION_DATA"

    # Resource Errors (404/409)
    NOT_FOUND = "NOT_FOUND"
    PAYROLL_RUN_NOT_FOUND = "PAYROLL_RUN_NOT_FOUND"
    EMPLOYEE_NOT_FOUND = "EMPLOYEE_NOT_FOUND"
    SALARY_ASSIGNMENT_NOT_FOUND = "SALARY_ASSIGNMENT_NOT_FOUND"
    SALARY_STRUCTURE_NOT_FOUND = "SALARY_STRUCTURE_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    VERSION_CONFLICT = "VERSION_CONFLICT"
    AMBIGUOUS_ASSIGNMENT = "AMBIGUOUS_ASSIGNMENT"
    OVERLAPPING_PERIOD = "OVERLAPPING_PERIOD"
    INVALID_TRANSITION = "INVALID_TRANSITION"

    # Business Logic Errors (422)
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    NO_ELIGIBLE_EMPLOYEES = "NO_ELIGIBLE_EMPLOYEES"
    PARTIAL_COMPUTATION_FAILURE = "PARTIAL_COMPUTATION_FAILURE"
    APPROVAL_REQUIRED = "APPROVAL_REQUIRED"

    # Database Errors (500)
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

    # Internal Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"


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
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        result = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


def _id(value: Optional[Union[str, UUID]]) -> Optional[str]:
    return str(value) if value is not None else None


# ============================================================================
# Configuration Exceptions
# ============================================================================

class ConfigurationError(AppException):
    """Missing or invalid tax band / statutory rate configuration"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            code=ErrorCode.CONFIGURATION_ERROR,
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=details,
        )


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

    def __init__(self, start_date: str, end_date: str, message: Optional[str] = None):
        super().__init__(
            message=message or f"Invalid date range: {start_date} to {end_date}. Start date must not be after end date.",
            code=ErrorCode.INVALID_DATE_RANGE,
            details={"start_date": start_date, "end_date": end_date},
        )


class InvalidAmountException(ValidationException):
    """Invalid monetary amount"""

    def __init__(self, amount: Any, field: str = "amount", message: Optional[str] = None):
        super().__init__(
            message=message or f"Invalid amount: {amount}. Amount must not be negative.",
            field=field,
            code=ErrorCode.INVALID_AMOUNT,
            details={"provided_amount": str(amount)},
        )


class InvalidCompensationDataError(ValidationException):
    """Stored salary structure or assignment data that cannot be used"""

    def __init__(self, component: str, record_id: Union[str, UUID], field: str, reason: str):
        super().__init__(
            message=f"Invalid {field} on {component} '{record_id}': {reason}",
            field=field,
            code=ErrorCode.INVALID_COMPENSATION_DATA,
            details={"component": component, "record_id": _id(record_id)},
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
        details: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        _details = {"resource_type": resource_type, "resource_id": _id(resource_id)}
        _details.update(details or {})
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details=_details,
        )


class RunNotFoundError(NotFoundException):
    """Payroll run not found (or belongs to another tenant)"""

    def __init__(self, run_id: Union[str, UUID]):
        super().__init__(
            resource_type="PayrollRun",
            resource_id=run_id,
            code=ErrorCode.PAYROLL_RUN_NOT_FOUND,
            details={"run_id": _id(run_id)},
        )


class EmployeeNotFoundError(NotFoundException):
    """Employee not found"""

    def __init__(self, employee_id: Union[str, UUID]):
        super().__init__(
            resource_type="Employee",
            resource_id=employee_id,
            code=ErrorCode.EMPLOYEE_NOT_FOUND,
            details={"employee_id": _id(employee_id)},
        )


class SalaryAssignmentNotFoundError(NotFoundException):
    """No salary assignment covers the requested date"""

    def __init__(self, employee_id: Union[str, UUID], as_of: Any):
        super().__init__(
            resource_type="EmployeeSalaryAssignment",
            message=f"No salary assignment for employee '{employee_id}' covers {as_of}",
            code=ErrorCode.SALARY_ASSIGNMENT_NOT_FOUND,
            details={"employee_id": _id(employee_id), "as_of": str(as_of), "component": "salary_assignment"},
        )


class SalaryStructureNotFoundError(NotFoundException):
    """Salary structure not found"""

    def __init__(self, structure_id: Union[str, UUID], employee_id: Optional[Union[str, UUID]] = None):
        details = {"component": "salary_structure"}
        if employee_id is not None:
            details["employee_id"] = _id(employee_id)
        super().__init__(
            resource_type="SalaryStructure",
            resource_id=structure_id,
            code=ErrorCode.SALARY_STRUCTURE_NOT_FOUND,
            details=details,
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


class ConflictError(ConflictException):
    """Run state changed since it was read (optimistic concurrency)"""

    def __init__(self, run_id: Union[str, UUID], expected_version: Optional[int] = None):
        details = {"run_id": _id(run_id)}
        if expected_version is not None:
            details["expected_version"] = expected_version
        super().__init__(
            message=f"Payroll run '{run_id}' was modified concurrently. Reload and retry.",
            resource_type="PayrollRun",
            code=ErrorCode.VERSION_CONFLICT,
            details=details,
        )


class AmbiguousAssignmentError(ConflictException):
    """More than one salary assignment covers the same date"""

    def __init__(self, employee_id: Union[str, UUID], as_of: Any, assignment_ids: List[Union[str, UUID]]):
        super().__init__(
            message=f"Employee '{employee_id}' has {len(assignment_ids)} salary assignments covering {as_of}",
            resource_type="EmployeeSalaryAssignment",
            code=ErrorCode.AMBIGUOUS_ASSIGNMENT,
            details={
                "employee_id": _id(employee_id),
                "as_of": str(as_of),
                "assignment_ids": [_id(a) for a in assignment_ids],
                "component": "salary_assignment",
            },
        )


class OverlappingPeriodError(ConflictException):
    """Another non-cancelled run already covers part of the period"""

    def __init__(self, period_start: Any, period_end: Any, existing_run_ids: List[Union[str, UUID]]):
        super().__init__(
            message=f"A payroll run already covers part of {period_start} to {period_end}",
            resource_type="PayrollRun",
            code=ErrorCode.OVERLAPPING_PERIOD,
            details={
                "period_start": str(period_start),
                "period_end": str(period_end),
                "existing_run_ids": [_id(r) for r in existing_run_ids],
            },
        )


class InvalidTransitionError(ConflictException):
    """Illegal payroll run state transition"""

    def __init__(self, run_id: Union[str, UUID], current: str, target: str, reason: Optional[str] = None):
        message = f"Cannot move payroll run '{run_id}' from '{current}' to '{target}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            resource_type="PayrollRun",
            code=ErrorCode.INVALID_TRANSITION,
            details={"run_id": _id(run_id), "from_status": current, "to_status": target},
        )


# ============================================================================
# Business Rule Exceptions
# ============================================================================

class BusinessRuleException(AppException):
    """Business rule violation exception"""

    def __init__(
        self,
        message: str,
        rule: Optional[str] = None,
        code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if rule:
            _details["violated_rule"] = rule
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=_details,
        )


class PartialComputationFailure(BusinessRuleException):
    """
    One or more employees failed during processing.

    Raised after the run has been persisted; the failed items are recorded
    on the run and the run stays in 'processing'.
    """

    def __init__(
        self,
        run_id: Union[str, UUID],
        failures: List[Dict[str, Any]],
        status_value: str,
        totals: Optional[Dict[str, Any]] = None,
    ):
        self.run_id = run_id
        self.failures = failures
        super().__init__(
            message=f"{len(failures)} employee(s) failed during payroll processing",
            rule="all_employees_computed",
            code=ErrorCode.PARTIAL_COMPUTATION_FAILURE,
            details={
                "run_id": _id(run_id),
                "status": status_value,
                "failures": failures,
                "totals": totals or {},
            },
        )


# ============================================================================
# Exception Handlers
# ============================================================================

def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
) -> JSONResponse:
    """Create a standardized error response"""
    error = {
        "code": code.value,
        "message": message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if field:
        error["field"] = field
    if details:
        error["details"] = details

    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle AppException"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"AppException: {exc.code.value} - {exc.message}",
        extra={
            "code": exc.code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
        exc_info=exc.original_error,
    )

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        field=exc.field,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException"""
    code_map = {
        400: ErrorCode.INVALID_INPUT,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        500: ErrorCode.INTERNAL_ERROR,
    }

    error_code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    logger.warning(
        f"HTTPException: {exc.status_code} - {message}",
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=error_code,
        message=message,
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors"""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        f"ValidationError: {len(errors)} validation errors",
        extra={"path": request.url.path, "method": request.method, "errors": errors},
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy errors"""
    error_message = "A database error occurred"
    error_code = ErrorCode.DATABASE_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(exc, IntegrityError):
        error_message = "Data integrity constraint violated"
        error_code = ErrorCode.DATA_INTEGRITY_ERROR
        error_str = str(exc.orig).lower() if exc.orig else ""
        if "unique" in error_str or "duplicate" in error_str:
            error_message = "A record with this value already exists"
            error_code = ErrorCode.DUPLICATE_ENTRY
            status_code = status.HTTP_409_CONFLICT
        elif "foreign key" in error_str:
            error_message = "Referenced record does not exist"
            status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, OperationalError):
        error_message = "Database operation failed"
        error_code = ErrorCode.CONNECTION_ERROR
    elif isinstance(exc, DataError):
        error_message = "Invalid data format for database"
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    logger.error(
        f"SQLAlchemyError: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=error_code,
        message=error_message,
        status_code=status_code,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions"""
    error_id = str(uuid4())
    logger.critical(
        f"UnhandledException [{error_id}]: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method, "error_id": error_id},
        exc_info=True,
    )

    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        details={"error_id": error_id},
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
