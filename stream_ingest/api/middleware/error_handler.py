"""Error handler middleware for standardized error responses.

Pipeline errors carry their own error code and HTTP status; everything
else is converted to the same ErrorResponse shape.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from stream_ingest.api.middleware.logging import get_request_id
from stream_ingest.api.models.errors import (
    ErrorResponse,
    InternalServerErrorResponse,
    ValidationErrorResponse,
    error_type_for_status,
)
from stream_ingest.core.constants import ErrorCodes
from stream_ingest.core.exceptions import PipelineError

logger = logging.getLogger(__name__)

# Error codes for plain HTTP exceptions raised by FastAPI itself
HTTP_STATUS_TO_CODE = {
    status.HTTP_400_BAD_REQUEST: ErrorCodes.INVALID_PARAMETER,
    status.HTTP_401_UNAUTHORIZED: ErrorCodes.AUTHENTICATION_ERROR,
    status.HTTP_403_FORBIDDEN: ErrorCodes.AUTHENTICATION_ERROR,
    status.HTTP_404_NOT_FOUND: ErrorCodes.NOT_FOUND,
    status.HTTP_429_TOO_MANY_REQUESTS: ErrorCodes.RATE_LIMIT_EXCEEDED,
}


class ErrorHandlerMiddleware:
    """Global error handler for the FastAPI application.

    This middleware:
    - Maps PipelineError subclasses onto their HTTP status and error code
    - Converts validation and HTTP exceptions to ErrorResponse
    - Logs errors with request context

    Usage:
        app = FastAPI()
        setup_error_handler(app)
    """

    def __init__(self, app: FastAPI) -> None:
        self.app = app
        self._register_exception_handlers()

    def _register_exception_handlers(self) -> None:
        """Register exception handlers for different exception types."""
        self.app.add_exception_handler(PipelineError, self._handle_pipeline_error)
        self.app.add_exception_handler(Exception, self._handle_generic_exception)
        self.app.add_exception_handler(RequestValidationError, self._handle_validation_error)
        self.app.add_exception_handler(ValidationError, self._handle_validation_error)
        self.app.add_exception_handler(StarletteHTTPException, self._handle_http_exception)

    async def _handle_pipeline_error(
        self,
        request: Request,
        exc: PipelineError,
    ) -> JSONResponse:
        """Handle domain errors raised by the pipeline.

        Args:
            request: FastAPI request object
            exc: The pipeline error

        Returns:
            JSONResponse with the error's own status code
        """
        request_id = get_request_id(request)
        status_code = exc.status_code

        error_response = ErrorResponse(
            error=error_type_for_status(status_code),
            error_code=exc.error_code,
            message=exc.message,
            details=exc.details or None,
            request_id=request_id,
        )

        log_level = logging.ERROR if status_code >= 500 else logging.INFO
        logger.log(
            log_level,
            f"{exc.error_code}: {exc.message}",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
            },
        )

        return JSONResponse(
            status_code=status_code,
            content=error_response.model_dump(),
        )

    async def _handle_generic_exception(
        self,
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Handle generic unhandled exceptions."""
        request_id = get_request_id(request)

        logger.exception(
            "Unhandled exception",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "client_ip": request.client.host if request.client else "unknown",
            },
        )

        # Don't leak internal error details
        error_response = InternalServerErrorResponse(
            request_id=request_id,
            details={"error_type": type(exc).__name__},
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_response.model_dump(),
        )

    async def _handle_validation_error(
        self,
        request: Request,
        exc: RequestValidationError | ValidationError,
    ) -> JSONResponse:
        """Handle validation errors from request parsing."""
        request_id = get_request_id(request)

        errors: list[dict[str, Any]] = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]

        error_response = ValidationErrorResponse(
            message="Request validation failed",
            details={"errors": errors},
            request_id=request_id,
        )

        logger.info(
            "Validation error",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "validation_errors": errors,
            },
        )

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_response.model_dump(),
        )

    async def _handle_http_exception(
        self,
        request: Request,
        exc: StarletteHTTPException,
    ) -> JSONResponse:
        """Handle HTTP exceptions (404, 401, 405, ...)."""
        request_id = get_request_id(request)
        status_code = exc.status_code
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

        error_response = ErrorResponse(
            error=error_type_for_status(status_code),
            error_code=HTTP_STATUS_TO_CODE.get(status_code, f"HTTP_{status_code}"),
            message=detail,
            request_id=request_id,
        )

        logger.info(
            f"HTTP {status_code} error",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": status_code,
            },
        )

        return JSONResponse(
            status_code=status_code,
            content=error_response.model_dump(),
            headers=getattr(exc, "headers", None),
        )


def setup_error_handler(app: FastAPI) -> None:
    """Set up error handler middleware for the application.

    Args:
        app: FastAPI application instance
    """
    ErrorHandlerMiddleware(app)
    logger.info("Error handler middleware initialized")
