"""Custom exceptions for the Variable backend."""

import logging
from typing import Any

logger = logging.getLogger(__name__)

# Exception type → safe user-facing message mapping
_SAFE_MESSAGES: dict[str, str] = {
    "NotFoundError": "The requested resource was not found.",
    "AuthenticationError": "Authentication failed. Please log in again.",
    "AuthorizationError": "You do not have permission to perform this action.",
    "DatabaseError": "A database error occurred. Please try again.",
    "CircuitBreakerOpen": "A service dependency is temporarily unavailable. Please try again in a moment.",
    "ProvisioningError": "Failed to initialize company setup. Please reload and try again.",
    "InvalidTransitionError": "This onboarding step change is not allowed.",
    "SessionCompletedError": "Onboarding has already been completed.",
    "ValueError": "The provided value is invalid.",
}

_DEFAULT_MESSAGE = "An error occurred. Please try again."


def sanitize_error(e: Exception) -> str:
    """Map an exception to a safe, user-facing error message.

    Logs nothing and never echoes the exception text, so database
    details and stack traces stay server-side.

    Args:
        e: The exception to sanitize.

    Returns:
        A safe, generic error message string.
    """
    # Walk the MRO to find the most specific matching type
    for cls in type(e).__mro__:
        safe_msg = _SAFE_MESSAGES.get(cls.__name__)
        if safe_msg:
            return safe_msg

    return _DEFAULT_MESSAGE


class VariableException(Exception):
    """Base exception for all Variable-specific errors."""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize Variable exception.

        Args:
            message: Human-readable error message.
            code: Machine-readable error code.
            status_code: HTTP status code.
            details: Additional error details.
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}


class NotFoundError(VariableException):
    """Resource not found error (404)."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        """Initialize not found error.

        Args:
            resource: Name of the resource that was not found.
            resource_id: Optional ID of the resource.
        """
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' not found"
        super().__init__(
            message=message,
            code="NOT_FOUND",
            status_code=404,
            details={"resource": resource, "resource_id": resource_id},
        )


class AuthenticationError(VariableException):
    """Authentication failed error (401)."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            message=message,
            code="AUTHENTICATION_ERROR",
            status_code=401,
        )


class AuthorizationError(VariableException):
    """Authorization/permission denied error (403)."""

    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(
            message=message,
            code="AUTHORIZATION_ERROR",
            status_code=403,
        )


class DatabaseError(VariableException):
    """Database operation error (500)."""

    def __init__(self, message: str = "A database error occurred") -> None:
        super().__init__(
            message=message,
            code="DATABASE_ERROR",
            status_code=500,
        )


class ProvisioningError(VariableException):
    """Atomic company create-and-link failed (500).

    Terminal for the current onboarding attempt; nothing is retried.
    """

    def __init__(self, user_id: str, message: str = "Failed to provision company") -> None:
        """Initialize provisioning error.

        Args:
            user_id: The user whose company could not be provisioned.
            message: Error message.
        """
        super().__init__(
            message=message,
            code="PROVISIONING_ERROR",
            status_code=500,
            details={"user_id": user_id},
        )


class InvalidTransitionError(VariableException):
    """Wizard operation not allowed from the current step (400)."""

    def __init__(self, operation: str, current_step: int) -> None:
        """Initialize invalid transition error.

        Args:
            operation: The attempted wizard operation.
            current_step: The step the wizard is positioned at.
        """
        super().__init__(
            message=f"Cannot {operation} from step {current_step}",
            code="INVALID_TRANSITION",
            status_code=400,
            details={"operation": operation, "current_step": current_step},
        )


class SessionCompletedError(VariableException):
    """Onboarding session already completed (409)."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            message=f"Onboarding session '{session_id}' is already completed",
            code="SESSION_COMPLETED",
            status_code=409,
            details={"session_id": session_id},
        )
