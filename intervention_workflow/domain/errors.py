"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict"""
        return {
            "success": False,
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Authentication & Authorization Errors
class AuthenticationError(DomainError):
    """Token missing, invalid, or expired"""
    error_code = "AUTHENTICATION_ERROR"
    http_status = 401


class AuthorizationError(DomainError):
    """Role/action not permitted in the current state, or out of scope"""
    error_code = "AUTHORIZATION_ERROR"
    http_status = 403


class PermissionDeniedError(AuthorizationError):
    """Actor is outside the intervention's team or not assigned to it"""
    error_code = "PERMISSION_DENIED"


# Validation Errors
class ValidationError(DomainError):
    """Input validation failed"""
    error_code = "VALIDATION_ERROR"
    http_status = 400


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class InterventionNotFoundError(NotFoundError):
    """Intervention not found"""
    error_code = "INTERVENTION_NOT_FOUND"


class QuoteNotFoundError(NotFoundError):
    """Quote not found"""
    error_code = "QUOTE_NOT_FOUND"


class TimeSlotNotFoundError(NotFoundError):
    """Time slot not found"""
    error_code = "TIME_SLOT_NOT_FOUND"


class UserNotFoundError(NotFoundError):
    """User not found in the directory"""
    error_code = "USER_NOT_FOUND"


# Conflict Errors
class ConflictError(DomainError):
    """Resource conflict (e.g., concurrent modification)"""
    error_code = "CONFLICT"
    http_status = 409


class ConcurrencyError(ConflictError):
    """Status or version changed between read and write"""
    error_code = "CONCURRENCY_CONFLICT"


class InvalidStateError(ConflictError):
    """Child entity (quote, slot) not in a state that allows the action"""
    error_code = "INVALID_STATE"


class AlreadyExistsError(ConflictError):
    """Resource already exists"""
    error_code = "ALREADY_EXISTS"


class ContestLimitError(ConflictError):
    """Tenant has used every allowed contestation"""
    error_code = "CONTEST_LIMIT_REACHED"


class TerminalStateError(ConflictError, AuthorizationError):
    """No action is defined once an intervention is terminal"""
    error_code = "TERMINAL_STATE"
    http_status = 409


# External Service Errors
class ExternalServiceError(DomainError):
    """External service failure"""
    error_code = "EXTERNAL_SERVICE_ERROR"
    http_status = 502


class EmailSendError(ExternalServiceError):
    """Email sending failed"""
    error_code = "EMAIL_SEND_ERROR"


class PushSendError(ExternalServiceError):
    """Push delivery failed"""
    error_code = "PUSH_SEND_ERROR"
