"""Common schemas used across the application.

Every endpoint answers with the same envelope:

    {"success": true, "data": ..., "timestamp": ...}
    {"success": false, "error": {"code", "message", "details"?}, "timestamp": ...}
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthStatus(str, Enum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """Response schema for basic health check endpoint.

    Used for liveness probes to verify the service is running.
    """

    model_config = ConfigDict(from_attributes=True)

    status: HealthStatus = Field(description="Current health status")
    timestamp: datetime = Field(default_factory=_utcnow, description="Check timestamp")
    version: str = Field(default="0.1.0", description="API version")


class CheckResult(BaseModel):
    """Result of an individual dependency check."""

    model_config = ConfigDict(from_attributes=True)

    name: str = Field(description="Name of the dependency being checked")
    healthy: bool = Field(description="Whether the dependency is healthy")
    latency_ms: float | None = Field(default=None, description="Response time in milliseconds")
    error: str | None = Field(default=None, description="Error message if unhealthy")


class ReadinessResponse(BaseModel):
    """Response schema for readiness check endpoint."""

    model_config = ConfigDict(from_attributes=True)

    status: HealthStatus = Field(description="Overall readiness status")
    timestamp: datetime = Field(default_factory=_utcnow, description="Check timestamp")
    checks: list[CheckResult] = Field(default_factory=list, description="Individual check results")


class ErrorBody(BaseModel):
    """The `error` member of a failed response."""

    model_config = ConfigDict(from_attributes=True)

    code: str = Field(description="Error kind (e.g. NOT_FOUND, INVALID_INPUT)")
    message: str = Field(description="Human-readable error message")
    details: Any | None = Field(default=None, description="Additional error details")


class ErrorResponse(BaseModel):
    """Standard error response schema.

    All API errors are returned in this format for consistency.
    """

    model_config = ConfigDict(from_attributes=True)

    success: bool = Field(default=False, description="Always false for errors")
    error: ErrorBody = Field(description="Error information")
    timestamp: datetime = Field(default_factory=_utcnow, description="Error timestamp")

    @classmethod
    def from_exception(
        cls,
        code: str,
        message: str,
        details: Any | None = None,
    ) -> "ErrorResponse":
        """Create an ErrorResponse from exception details.

        Args:
            code: Error kind for client handling.
            message: Human-readable error description.
            details: Optional additional details.

        Returns:
            ErrorResponse: Formatted error response.
        """
        return cls(error=ErrorBody(code=code, message=message, details=details))


class SuccessResponse(BaseModel):
    """Standard success response schema."""

    model_config = ConfigDict(from_attributes=True)

    success: bool = Field(default=True, description="Always true for successful responses")
    data: Any = Field(default=None, description="Response payload")
    timestamp: datetime = Field(default_factory=_utcnow, description="Response timestamp")


def success_response(data: Any = None) -> dict[str, Any]:
    """Build a JSON-ready success envelope around `data`."""
    return SuccessResponse(data=data).model_dump(mode="json")


def format_validation_errors(
    error: PydanticValidationError | list[dict[str, Any]],
) -> dict[str, list[str]]:
    """Group validation error messages by dotted field path.

    Args:
        error: A pydantic ValidationError or its `errors()` list.

    Returns:
        dict: Mapping of field path (or "_root") to its messages.
    """
    errors = error.errors() if isinstance(error, PydanticValidationError) else error
    formatted: dict[str, list[str]] = {}
    for item in errors:
        loc = [str(part) for part in item.get("loc", ()) if part != "body"]
        key = ".".join(loc) or "_root"
        formatted.setdefault(key, []).append(item.get("msg", "Invalid value"))
    return formatted
