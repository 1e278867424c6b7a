"""Health check endpoints for monitoring and deployment verification."""

import time
from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from storefront.api.middleware.error_handler import create_error_response
from storefront.core.supabase import check_database_connection
from storefront.schemas.common import (
    CheckResult,
    HealthResponse,
    HealthStatus,
    ReadinessResponse,
    success_response,
)

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    summary="Liveness check",
    description="Basic health check to verify the service is running. Used for liveness probes.",
)
async def health_check() -> dict[str, Any]:
    """Return basic health status without checking dependencies."""
    return success_response(HealthResponse(status=HealthStatus.HEALTHY))


@router.get(
    "/health/ready",
    responses={
        200: {"description": "All dependencies healthy"},
        503: {"description": "One or more dependencies unhealthy"},
    },
    summary="Readiness check",
    description="Check if all dependencies are available. Used for readiness probes.",
)
async def readiness_check() -> Any:
    """Check database connectivity; 503 if it is unavailable."""
    start_time = time.perf_counter()
    db_result = await check_database_connection()
    latency_ms = (time.perf_counter() - start_time) * 1000

    checks = [
        CheckResult(
            name="database",
            healthy=db_result["healthy"],
            latency_ms=round(latency_ms, 2),
            error=db_result.get("error"),
        )
    ]

    if all(check.healthy for check in checks):
        return success_response(ReadinessResponse(status=HealthStatus.HEALTHY, checks=checks))

    response: JSONResponse = create_error_response(
        code="INTERNAL",
        message="One or more dependencies are unhealthy",
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        details=ReadinessResponse(status=HealthStatus.UNHEALTHY, checks=checks).model_dump(mode="json"),
    )
    return response
