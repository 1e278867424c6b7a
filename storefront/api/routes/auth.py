"""Password reset API routes."""

from typing import Any

from fastapi import APIRouter

from storefront.schemas.auth import (
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    ResetPasswordRequest,
    ResetPasswordResponse,
)
from storefront.schemas.common import success_response
from storefront.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/forgot-password",
    summary="Request password reset",
    description="Emails a password reset link if the account exists.",
)
async def forgot_password(data: ForgotPasswordRequest) -> dict[str, Any]:
    """Request a password reset email.

    Always returns the same message, whether or not the email is registered.
    """
    result = await AuthService().request_password_reset(email=data.email)
    return success_response(ForgotPasswordResponse(**result))


@router.post(
    "/reset-password",
    summary="Reset password",
    description="Reset user password using the token from the password reset email.",
)
async def reset_password(data: ResetPasswordRequest) -> dict[str, Any]:
    """Reset the password with a single-use token.

    Raises:
        InvalidInputError: 400 if the token is unknown, used, or expired.
    """
    result = await AuthService().reset_password(token=data.token, new_password=data.new_password)
    return success_response(ResetPasswordResponse(**result))
