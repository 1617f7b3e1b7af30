"""Map failures to the stable ``{success: false, code, message, errors?}`` body."""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from src.core.config import Constants
from src.core.errors import TaskHubError, ValidationFailedError, internal_error_response


logger = logging.getLogger(__name__)


def _field_errors(errors: list[Any]) -> list[dict[str, Any]]:
    details = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        details.append({"field": ".".join(loc), "message": error.get("msg", "Invalid value")})
    return details


async def handle_taskhub_error(request: Request, exc: TaskHubError) -> JSONResponse:
    logger.info(
        "request_failed",
        extra={"path": request.url.path, "code": exc.code, "status_code": exc.status_code},
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_response().model_dump(exclude_none=True))


async def handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    error = ValidationFailedError(errors=_field_errors(list(exc.errors())))
    return await handle_taskhub_error(request, error)


async def handle_pydantic_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    error = ValidationFailedError(errors=_field_errors(list(exc.errors())))
    return await handle_taskhub_error(request, error)


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_exception",
        extra={"path": request.url.path, "error": str(exc), "error_type": type(exc).__name__},
    )
    return JSONResponse(
        status_code=Constants.HTTP_SERVER_ERROR, content=internal_error_response().model_dump(exclude_none=True)
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TaskHubError, handle_taskhub_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(ValidationError, handle_pydantic_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, handle_unexpected_error)
