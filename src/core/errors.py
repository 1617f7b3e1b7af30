"""Typed failures raised by the service layer and their response shape."""

from typing import Any

from pydantic import BaseModel

from src.core.config import Constants


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_UNAUTHORIZED = "ERR_UNAUTHORIZED"
    ERR_FORBIDDEN = "ERR_FORBIDDEN"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_INVALID_REFERENCE = "ERR_INVALID_REFERENCE"
    ERR_VALIDATION_FAILED = "ERR_VALIDATION_FAILED"
    ERR_CONFLICT = "ERR_CONFLICT"

    # Generic errors
    ERR_INTERNAL = "ERR_INTERNAL"


class ErrorResponse(BaseModel):
    """Stable failure body returned by every endpoint."""

    success: bool = False
    code: str
    message: str
    errors: list[dict[str, Any]] | None = None


class TaskHubError(Exception):
    """Base class for failures that are part of the API contract."""

    code: str = ErrorCode.ERR_INTERNAL
    status_code: int = Constants.HTTP_SERVER_ERROR
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None, *, errors: list[dict[str, Any]] | None = None) -> None:
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(code=self.code, message=self.message, errors=self.errors)


class UnauthorizedError(TaskHubError):
    """Missing or invalid credential, or the actor is deactivated."""

    code = ErrorCode.ERR_UNAUTHORIZED
    status_code = Constants.HTTP_UNAUTHORIZED
    default_message = "Not authorized to access this route"


class ForbiddenError(TaskHubError):
    """The visibility policy denied the operation."""

    code = ErrorCode.ERR_FORBIDDEN
    status_code = Constants.HTTP_FORBIDDEN
    default_message = "Not authorized to access this task"


class NotFoundError(TaskHubError):
    """A task, subtask or user reference does not exist."""

    code = ErrorCode.ERR_NOT_FOUND
    status_code = Constants.HTTP_NOT_FOUND
    default_message = "Resource not found"


class InvalidReferenceError(TaskHubError):
    """The payload references an assignee that does not exist."""

    code = ErrorCode.ERR_INVALID_REFERENCE
    status_code = Constants.HTTP_BAD_REQUEST
    default_message = "Assignee not found"


class ValidationFailedError(TaskHubError):
    """Payload shape or range violation."""

    code = ErrorCode.ERR_VALIDATION_FAILED
    status_code = Constants.HTTP_BAD_REQUEST
    default_message = "Validation failed"


class ConflictError(TaskHubError):
    """Reserved for concurrency tokens; nothing raises it yet."""

    code = ErrorCode.ERR_CONFLICT
    status_code = Constants.HTTP_CONFLICT
    default_message = "The resource was modified concurrently"


def internal_error_response() -> ErrorResponse:
    """Generic body for unanticipated failures; never carries exception details."""
    return ErrorResponse(code=ErrorCode.ERR_INTERNAL, message=TaskHubError.default_message)
