"""Error classification utilities for engine errors surfaced over HTTP."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ValidationError

from familyload.core.db_client import DatabaseError, DuplicateRecordError, RecordNotFoundError
from familyload.core.schedule_evaluator import InvalidScheduleRuleError


class ErrorCategory(Enum):
    """Categories of errors that can occur while running the engine."""

    STORE_UNAVAILABLE = "store_unavailable"
    RECORD_NOT_FOUND = "record_not_found"
    DUPLICATE_RECORD = "duplicate_record"
    INVALID_SCHEDULE_RULE = "invalid_schedule_rule"
    VALIDATION_FAILED = "validation_failed"
    AUTHENTICATION_FAILED = "authentication_failed"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    # Store errors
    ERR_STORE_UNAVAILABLE = "ERR_STORE_UNAVAILABLE"
    ERR_RECORD_NOT_FOUND = "ERR_RECORD_NOT_FOUND"
    ERR_DUPLICATE_RECORD = "ERR_DUPLICATE_RECORD"

    # Template errors
    ERR_INVALID_SCHEDULE_RULE = "ERR_INVALID_SCHEDULE_RULE"

    # Exclusion errors (returned as values by the exclusion service)
    ERR_INVALID_EXCLUSION_RANGE = "ERR_INVALID_EXCLUSION_RANGE"
    ERR_EXCLUSION_OVERLAP = "ERR_EXCLUSION_OVERLAP"

    # Request errors
    ERR_VALIDATION_FAILED = "ERR_VALIDATION_FAILED"
    ERR_AUTHENTICATION_FAILED = "ERR_AUTHENTICATION_FAILED"

    # Generic errors
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity


_ERROR_PATTERNS: dict[Literal["store", "auth"], dict[str, list[str] | set[str]]] = {
    "store": {
        "phrases": ["database is locked", "unable to open database", "disk i/o error", "no such table"],
        "exception_types": {"OperationalError", "ConnectionError", "TimeoutError"},
    },
    "auth": {
        "phrases": ["unauthorized", "invalid token", "invalid secret", "401"],
        "exception_types": {"PermissionError"},
    },
}


def _match_error_pattern(*, error_str: str, exception_type: str, pattern_type: Literal["store", "auth"]) -> bool:
    """Return True if the error matches the configured pattern type."""
    patterns = _ERROR_PATTERNS[pattern_type]
    return any(phrase in error_str for phrase in patterns["phrases"]) or exception_type in patterns["exception_types"]


def classify_error(exception: Exception) -> ErrorCategory:
    """Map an exception raised by the engine to its category."""
    if isinstance(exception, InvalidScheduleRuleError):
        return ErrorCategory.INVALID_SCHEDULE_RULE
    if isinstance(exception, RecordNotFoundError):
        return ErrorCategory.RECORD_NOT_FOUND
    if isinstance(exception, DuplicateRecordError):
        return ErrorCategory.DUPLICATE_RECORD
    if isinstance(exception, DatabaseError):
        return ErrorCategory.STORE_UNAVAILABLE
    if isinstance(exception, ValidationError | ValueError):
        return ErrorCategory.VALIDATION_FAILED

    error_str = str(exception).lower()
    exception_type = type(exception).__name__
    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="store"):
        return ErrorCategory.STORE_UNAVAILABLE
    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="auth"):
        return ErrorCategory.AUTHENTICATION_FAILED
    return ErrorCategory.UNKNOWN


def classify_error_with_response(exception: Exception) -> ErrorResponse:
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised during execution

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    category = classify_error(exception)

    match category:
        case ErrorCategory.INVALID_SCHEDULE_RULE:
            return ErrorResponse(
                code=ErrorCode.ERR_INVALID_SCHEDULE_RULE,
                message=str(exception),
                suggestion="Use yearly, monthly, weekly, daily or a cron expression such as '0 9 1 9 *'.",
                severity=ErrorSeverity.LOW,
            )
        case ErrorCategory.RECORD_NOT_FOUND:
            return ErrorResponse(
                code=ErrorCode.ERR_RECORD_NOT_FOUND,
                message="The requested record does not exist.",
                suggestion="Check the identifier and try again.",
                severity=ErrorSeverity.LOW,
            )
        case ErrorCategory.DUPLICATE_RECORD:
            return ErrorResponse(
                code=ErrorCode.ERR_DUPLICATE_RECORD,
                message="This record already exists.",
                suggestion="No action needed; the existing record is kept.",
                severity=ErrorSeverity.LOW,
            )
        case ErrorCategory.STORE_UNAVAILABLE:
            return ErrorResponse(
                code=ErrorCode.ERR_STORE_UNAVAILABLE,
                message="The task store is unavailable.",
                suggestion="Retry the run later; completed work is kept and re-running is safe.",
                severity=ErrorSeverity.CRITICAL,
            )
        case ErrorCategory.VALIDATION_FAILED:
            return ErrorResponse(
                code=ErrorCode.ERR_VALIDATION_FAILED,
                message=str(exception),
                suggestion="Correct the request and try again.",
                severity=ErrorSeverity.LOW,
            )
        case ErrorCategory.AUTHENTICATION_FAILED:
            return ErrorResponse(
                code=ErrorCode.ERR_AUTHENTICATION_FAILED,
                message="Authentication failed.",
                suggestion="Check the configured secret.",
                severity=ErrorSeverity.HIGH,
            )
        case _:
            return ErrorResponse(
                code=ErrorCode.ERR_UNKNOWN,
                message="An unexpected error occurred. Please try again later.",
                suggestion="If the problem persists, check the service logs.",
                severity=ErrorSeverity.MEDIUM,
            )
