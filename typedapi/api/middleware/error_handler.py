"""Exception handlers turning typedapi errors into JSON error bodies.

Status codes come from the exception class: extraction and validation
failures are 400, verification failures 401, everything else 500. For
5xx responses the client only sees a generic message; the detail stays in
the logs.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import Response
from loguru import logger
from starlette.exceptions import HTTPException

from typedapi.api.schemas.errors import ErrorResponse, ValidationErrorResponse
from typedapi.api.utils.responses import ORJSONResponse
from typedapi.core.context import RequestContext, generate_request_id
from typedapi.core.exceptions import (
    ErrorCode,
    RequestValidationError,
    ServerFaultError,
    Severity,
    TypedAPIError,
)

GENERIC_SERVER_ERROR_MESSAGE = "Internal Server Error"


def _public_message(exc: TypedAPIError) -> str:
    if isinstance(exc, ServerFaultError):
        return exc.public_message
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        return GENERIC_SERVER_ERROR_MESSAGE
    return exc.message


async def typed_api_error_handler(request: Request, exc: Exception) -> Response:
    """Handle TypedAPIError exceptions.

    Args:
        request: The request that caused the exception
        exc: The TypedAPIError exception to handle

    Returns:
        Response: ORJSONResponse with the error body

    Raises:
        TypeError: If exc is not a TypedAPIError instance
    """
    if not isinstance(exc, TypedAPIError):
        raise TypeError(f"Expected TypedAPIError, got {type(exc).__name__}")

    correlation_id = RequestContext.get_correlation_id()
    status_code = exc.status_code
    log = logger.bind(
        method=request.method,
        path=str(request.url.path),
        status_code=status_code,
        error_code=exc.error_code,
        fingerprint=exc.fingerprint,
    )
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        log.opt(exception=exc.cause or exc).error(
            "Handling {}: {}", type(exc).__name__, exc.message
        )
    else:
        log.warning("Handling {}: {}", type(exc).__name__, exc.message)

    error_response: ErrorResponse
    if isinstance(exc, RequestValidationError):
        error_response = ValidationErrorResponse(
            error_code=exc.error_code,
            message=exc.message,
            details=exc.details,
            correlation_id=correlation_id,
            request_id=generate_request_id(),
            severity=exc.severity.value,
        )
    else:
        client_error = status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
        error_response = ErrorResponse(
            error_code=exc.error_code,
            message=_public_message(exc),
            details=(exc.context or None) if client_error else None,
            correlation_id=correlation_id,
            request_id=generate_request_id(),
            severity=exc.severity.value,
        )

    return ORJSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json"),
    )


async def http_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle Starlette HTTPException (unmatched routes, wrong methods).

    Raises:
        TypeError: If exc is not an HTTPException instance
    """
    if not isinstance(exc, HTTPException):
        raise TypeError(f"Expected HTTPException, got {type(exc).__name__}")

    error_code = ErrorCode.INTERNAL_ERROR.value
    severity = Severity.MEDIUM
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        error_code = ErrorCode.UNAUTHORIZED.value
        severity = Severity.HIGH
    elif exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR:
        error_code = ErrorCode.VALIDATION_ERROR.value
        severity = Severity.LOW

    logger.warning(
        "HTTP exception",
        method=request.method,
        path=str(request.url.path),
        status_code=exc.status_code,
        detail=exc.detail,
    )

    error_response = ErrorResponse(
        error_code=error_code,
        message=str(exc.detail),
        correlation_id=RequestContext.get_correlation_id(),
        request_id=generate_request_id(),
        severity=severity.value,
    )
    return ORJSONResponse(
        status_code=exc.status_code,
        content=error_response.model_dump(mode="json"),
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle any other exception, typically raised by a route handler.

    The exception is logged with its traceback; the client only receives
    a generic message.
    """
    logger.opt(exception=exc).error(
        "Unhandled exception: {}",
        type(exc).__name__,
        method=request.method,
        path=str(request.url.path),
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )

    error_response = ErrorResponse(
        error_code=ErrorCode.INTERNAL_ERROR.value,
        message=GENERIC_SERVER_ERROR_MESSAGE,
        correlation_id=RequestContext.get_correlation_id(),
        request_id=generate_request_id(),
        severity=Severity.CRITICAL.value,
    )
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response.model_dump(mode="json"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(TypedAPIError, typed_api_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.debug("Exception handlers registered")
