"""Global error handling for consistent error responses."""

import logging
import time
import traceback
from typing import Any, Callable

from fastapi import Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.schemas.common import ErrorResponse, format_validation_errors

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors.

    Use this class to raise application-specific errors that should
    be returned to the client with a specific status code and code.
    """

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        code: str = "INTERNAL",
        details: Any | None = None,
    ) -> None:
        """Initialize API error.

        Args:
            message: Human-readable error message.
            status_code: HTTP status code to return.
            code: Error kind for client handling.
            details: Optional additional error details.
        """
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details
        super().__init__(message)


class AuthenticationError(APIError):
    """Missing or invalid caller identity."""

    def __init__(self, message: str = "Authentication required", details: Any | None = None) -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            code="UNAUTHORIZED",
            details=details,
        )


class AuthorizationError(APIError):
    """Caller is known but may not act on the resource."""

    def __init__(self, message: str = "Access denied", details: Any | None = None) -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            code="FORBIDDEN",
            details=details,
        )


class NotFoundError(APIError):
    """Resource not found error."""

    def __init__(self, message: str = "Resource not found", details: Any | None = None) -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            code="NOT_FOUND",
            details=details,
        )


class InvalidInputError(APIError):
    """Request violates a precondition (e.g. order not paid yet)."""

    def __init__(self, message: str = "Invalid input", details: Any | None = None) -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            code="INVALID_INPUT",
            details=details,
        )


class ValidationError(APIError):
    """Request validation error."""

    def __init__(self, message: str = "Validation error", details: Any | None = None) -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="VALIDATION_ERROR",
            details=details,
        )


class PaymentNotConfirmedError(APIError):
    """Payment provider does not report the session as paid."""

    def __init__(self, message: str = "Payment not confirmed", details: Any | None = None) -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            code="PAYMENT_NOT_CONFIRMED",
            details=details,
        )


class TooManyRequestsError(APIError):
    """Upstream provider rate limit reached."""

    def __init__(
        self,
        message: str = "Too Many Requests",
        retry_after: int = 1,
        details: Any | None = None,
    ) -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            code="TOO_MANY_REQUESTS",
            details=details,
        )
        self.retry_after = retry_after


class InternalError(APIError):
    """Unexpected failure, including malformed upstream responses."""

    def __init__(self, message: str = "Internal error", details: Any | None = None) -> None:
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code="INTERNAL",
            details=details,
        )


_HTTP_STATUS_CODES = {
    status.HTTP_400_BAD_REQUEST: "INVALID_INPUT",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: "INVALID_INPUT",
    status.HTTP_422_UNPROCESSABLE_ENTITY: "VALIDATION_ERROR",
    status.HTTP_429_TOO_MANY_REQUESTS: "TOO_MANY_REQUESTS",
}


def create_error_response(
    code: str,
    message: str,
    status_code: int,
    details: Any | None = None,
) -> JSONResponse:
    """Create a standardized JSON error response.

    Args:
        code: Error kind for client handling.
        message: Human-readable error description.
        status_code: HTTP status code.
        details: Optional error details.

    Returns:
        JSONResponse: Formatted error response.
    """
    error_response = ErrorResponse.from_exception(code=code, message=message, details=details)
    return JSONResponse(
        status_code=status_code,
        content=error_response.model_dump(mode="json", exclude_none=True),
    )


def api_error_response(error: APIError, request_id: str | None = None) -> JSONResponse:
    """Render an APIError, adding Retry-After for rate limits."""
    logger.warning(
        "API error: %s - %s",
        error.code,
        error.message,
        extra={"request_id": request_id, "status_code": error.status_code},
    )
    response = create_error_response(
        code=error.code,
        message=error.message,
        status_code=error.status_code,
        details=error.details,
    )
    if isinstance(error, TooManyRequestsError):
        response.headers["Retry-After"] = str(error.retry_after)
        response.headers["X-RateLimit-Reset"] = str(int(time.time()) + error.retry_after)
    return response


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Exception handler for APIError raised inside routes or dependencies."""
    return api_error_response(exc, request.headers.get("X-Request-ID"))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework HTTP exceptions in the standard envelope."""
    logger.warning(
        "HTTP exception: %s - %s",
        exc.status_code,
        exc.detail,
        extra={"request_id": request.headers.get("X-Request-ID")},
    )
    response = create_error_response(
        code=_HTTP_STATUS_CODES.get(exc.status_code, "INTERNAL"),
        message=str(exc.detail),
        status_code=exc.status_code,
    )
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request body/query validation failures as VALIDATION_ERROR."""
    details = format_validation_errors(list(exc.errors()))
    logger.info("Request validation failed on %s: %s", request.url.path, details)
    return create_error_response(
        code="VALIDATION_ERROR",
        message="Validation error",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details=details,
    )


async def error_handler_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Middleware to catch and format all exceptions.

    Ensures consistent error response format across the application.
    Logs full stack traces for debugging while returning safe messages to clients.

    Args:
        request: The incoming request.
        call_next: Next middleware or route handler.

    Returns:
        Response: Either the successful response or formatted error response.
    """
    request_id = request.headers.get("X-Request-ID")

    try:
        return await call_next(request)

    except APIError as e:
        return api_error_response(e, request_id)

    except Exception as e:
        logger.error(
            "Unhandled exception: %s\n%s",
            str(e),
            traceback.format_exc(),
            extra={"request_id": request_id},
        )
        return create_error_response(
            code="INTERNAL",
            message="An unexpected error occurred",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
