"""
Custom Exception Types for Nova

Specific exception classes so routers can map failures to HTTP responses.
"""

from typing import Optional


class NovaError(Exception):
    """Base exception for all Nova-specific errors."""

    def __init__(self, message: str, error_code: str = "NOVA_ERROR"):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class ProjectNotFoundError(NovaError):
    """Raised when a project cannot be found."""

    def __init__(self, project_id: str):
        message = f"Project '{project_id}' not found"
        super().__init__(message, error_code="PROJECT_NOT_FOUND")
        self.project_id = project_id


class CardNotFoundError(NovaError):
    """Raised when a card cannot be found by id or title."""

    def __init__(self, card_ref: str, project_id: Optional[str] = None):
        if project_id:
            message = f"Card '{card_ref}' not found in project '{project_id}'"
        else:
            message = f"Card '{card_ref}' not found"
        super().__init__(message, error_code="CARD_NOT_FOUND")
        self.card_ref = card_ref
        self.project_id = project_id


class DatabaseError(NovaError):
    """Raised when a database operation fails."""

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message, error_code="DATABASE_ERROR")
        self.original_error = original_error


class UpstreamError(NovaError):
    """Raised when the upstream AI provider answers with a non-success status."""

    def __init__(self, service: str, status: int, body: str = ""):
        message = f"{service} API error: {status} - {body}"
        super().__init__(message, error_code="UPSTREAM_ERROR")
        self.service = service
        self.status = status
        self.body = body


class StreamTransportError(NovaError):
    """Raised when reading the upstream stream fails after it has started."""

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message, error_code="STREAM_TRANSPORT_ERROR")
        self.original_error = original_error


class ValidationError(NovaError):
    """Raised when request data validation fails."""

    def __init__(self, message: str, field: str = None):
        super().__init__(message, error_code="VALIDATION_ERROR")
        self.field = field


class ConfigurationError(NovaError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, config_key: str = None):
        super().__init__(message, error_code="CONFIGURATION_ERROR")
        self.config_key = config_key


class AIGenerationError(NovaError):
    """Raised when an AI provider returns an unusable response."""

    def __init__(self, message: str, model: str = None):
        super().__init__(message, error_code="AI_GENERATION_ERROR")
        self.model = model


def create_error_response(error: Exception, include_traceback: bool = False) -> dict:
    """
    Create a consistent error response dict from an exception.

    Args:
        error: The exception to convert
        include_traceback: Whether to include traceback info (for debugging)

    Returns:
        Dict with error details
    """
    if isinstance(error, NovaError):
        response = {
            "success": False,
            "error": error.message,
            "error_code": error.error_code
        }
    else:
        response = {
            "success": False,
            "error": str(error),
            "error_code": "UNKNOWN_ERROR"
        }

    if include_traceback:
        import traceback
        response["traceback"] = traceback.format_exc()

    return response
