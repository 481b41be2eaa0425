# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Custom exceptions for Release Wizard.

All exceptions inherit from RWizardError for consistent error handling.
"""

from typing import Optional


class RWizardError(Exception):
    """Base exception for all Release Wizard errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[dict] = None
    ):
        """
        Initialize Release Wizard error.

        Args:
            message: Human-readable error message
            status_code: Status code reported to the management layer
            details: Additional error details
        """
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert error to dictionary for API response."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details
        }


class NotFoundError(RWizardError):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str, details: Optional[dict] = None):
        """
        Initialize not found error.

        Args:
            resource: Type of resource (e.g., "Release", "UserInput")
            identifier: Resource identifier
            details: Additional error details
        """
        message = f"{resource} not found: {identifier}"
        super().__init__(message, status_code=404, details=details)
        self.resource = resource
        self.identifier = identifier


class ValidationError(RWizardError):
    """Validation failed."""

    def __init__(self, message: str, field: Optional[str] = None, details: Optional[dict] = None):
        """
        Initialize validation error.

        Args:
            message: Validation error message
            field: Field that failed validation
            details: Additional error details
        """
        super().__init__(message, status_code=400, details=details)
        self.field = field


class ConfigurationError(RWizardError):
    """Configuration error."""

    def __init__(self, message: str, config_file: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, status_code=500, details=details)
        self.config_file = config_file


class ExecutionError(RWizardError):
    """Execution error."""

    def __init__(self, message: str, release_id: Optional[str] = None, details: Optional[dict] = None):
        """
        Initialize execution error.

        Args:
            message: Execution error message
            release_id: Release identifier
            details: Additional error details
        """
        super().__init__(message, status_code=500, details=details)
        self.release_id = release_id


class ConflictError(RWizardError):
    """Resource conflict."""

    def __init__(self, message: str, resource: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, status_code=409, details=details)
        self.resource = resource


class InvalidStateError(ConflictError):
    """Operation is not allowed in the resource's current status."""

    def __init__(self, resource: str, identifier: str, status: str, operation: str):
        """
        Initialize invalid state error.

        Args:
            resource: Type of resource (e.g., "Release", "BlockExecution")
            identifier: Resource identifier
            status: Current status of the resource
            operation: Operation that was refused
        """
        super().__init__(
            f"Cannot {operation} {resource} {identifier} in status {status}",
            resource=resource,
            details={"status": status, "operation": operation}
        )
        self.identifier = identifier
        self.status = status
        self.operation = operation


# Error Message Utilities

def sanitize_error_for_user(error: Exception, include_type: bool = True) -> str:
    """
    Sanitize error messages for user display.
    Removes stack traces and overly long payloads.

    Args:
        error: The exception to sanitize
        include_type: Whether to include exception type

    Returns:
        User-friendly error message without stack trace
    """
    error_msg = str(error).strip()

    # Limit message length
    if len(error_msg) > 500:
        error_msg = error_msg[:500] + "..."

    if include_type:
        return f"{error.__class__.__name__}: {error_msg}"

    return error_msg
