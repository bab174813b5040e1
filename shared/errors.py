"""
Shared error handling for the property rules platform.
"""

from typing import Dict, Any, Optional

from opentelemetry import trace
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    trace_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class RulesPlatformException(Exception):
    """Base exception for rules platform services."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        trace_id = None
        current_span = trace.get_current_span()
        if current_span and current_span.is_recording():
            span_context = current_span.get_span_context()
            if span_context.trace_id != 0:
                trace_id = f"{span_context.trace_id:032x}"

        return ErrorResponse(
            trace_id=trace_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class ValidationError(RulesPlatformException):
    """Malformed rule definition; rejected before persistence."""

    status_code = 422

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class ContextError(RulesPlatformException):
    """Execution context violates the evaluation contract."""

    def __init__(self, message: str = "Invalid execution context", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONTEXT_ERROR", message, details)


class ConditionEvaluationError(RulesPlatformException):
    """A condition could not be evaluated (type mismatch, unresolvable field)."""

    def __init__(self, message: str = "Condition evaluation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONDITION_EVALUATION_ERROR", message, details)


class ActionApplicationError(RulesPlatformException):
    """An action could not be applied (invalid value)."""

    def __init__(self, message: str = "Action application failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("ACTION_APPLICATION_ERROR", message, details)


class RuleFetchError(RulesPlatformException):
    """Rule store unavailable or too slow."""

    status_code = 503

    def __init__(self, message: str = "Rule store unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__("RULE_FETCH_ERROR", message, details)


class PerformanceWriteError(RulesPlatformException):
    """Execution log or performance aggregate write failed."""

    status_code = 503

    def __init__(self, message: str = "Performance write failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("PERFORMANCE_WRITE_ERROR", message, details)


class NotFoundError(RulesPlatformException):
    """Requested entity does not exist."""

    status_code = 404

    def __init__(self, message: str = "Not found", details: Optional[Dict[str, Any]] = None):
        super().__init__("NOT_FOUND", message, details)


class ServiceError(RulesPlatformException):
    """Service-related errors."""

    status_code = 500

    def __init__(self, message: str = "Service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("SERVICE_ERROR", message, details)


class ExternalServiceError(RulesPlatformException):
    """External collaborator errors."""

    status_code = 502

    def __init__(self, service: str, message: str = "External service error", details: Optional[Dict[str, Any]] = None):
        super().__init__("EXTERNAL_SERVICE_ERROR", f"{service}: {message}", details)
