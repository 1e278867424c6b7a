"""Authentication schemas for JWT tokens, user context and password reset."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

ADMIN_ROLE = "admin"


class UserContext(BaseModel):
    """Authenticated user for the current request, built from a validated JWT."""

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID = Field(description="Unique identifier for the user (from JWT sub claim)")
    email: str | None = Field(default=None, description="User's email address if available")
    role: str | None = Field(default=None, description="User's role (e.g., 'authenticated', 'admin')")

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


class TokenPayload(BaseModel):
    """Claims of a Supabase-issued JWT.

    The application role is read from `app_metadata.role` (set server-side,
    not editable by the user) and falls back to the top-level `role` claim.
    """

    model_config = ConfigDict(from_attributes=True)

    sub: str = Field(description="Subject - the user's UUID")
    email: str | None = Field(default=None, description="User's email address")
    role: str | None = Field(default=None, description="Postgres role claim")
    app_metadata: dict[str, Any] = Field(default_factory=dict, description="Server-managed metadata")
    exp: int = Field(description="Expiration timestamp (Unix epoch)")
    iat: int = Field(description="Issued at timestamp (Unix epoch)")
    aud: str | None = Field(default=None, description="Audience - intended recipient")
    iss: str | None = Field(default=None, description="Issuer - token issuer URL")

    @property
    def expiration_datetime(self) -> datetime:
        """Get expiration as datetime object."""
        return datetime.fromtimestamp(self.exp)

    @property
    def effective_role(self) -> str | None:
        app_role = self.app_metadata.get("role") if isinstance(self.app_metadata, dict) else None
        return app_role or self.role

    def to_user_context(self) -> UserContext:
        """Convert token payload to UserContext.

        Returns:
            UserContext: User context derived from token claims.
        """
        return UserContext(
            user_id=UUID(self.sub),
            email=self.email,
            role=self.effective_role,
        )


# Password reset schemas


class ForgotPasswordRequest(BaseModel):
    """Request schema for password reset request."""

    model_config = ConfigDict(from_attributes=True)

    email: str = Field(..., description="User's email address", min_length=3, max_length=255)


class ForgotPasswordResponse(BaseModel):
    """Response schema for password reset request.

    The same message is returned whether or not the email is registered.
    """

    model_config = ConfigDict(from_attributes=True)

    message: str = Field(description="Status message")


class ResetPasswordRequest(BaseModel):
    """Request schema for password reset."""

    model_config = ConfigDict(from_attributes=True)

    token: str = Field(..., description="Password reset token from email", min_length=1)
    new_password: str = Field(..., description="New password", min_length=8, max_length=100)


class ResetPasswordResponse(BaseModel):
    """Response schema for password reset."""

    model_config = ConfigDict(from_attributes=True)

    message: str = Field(description="Status message")
    redirect_url: str | None = Field(default=None, description="URL to redirect to after reset")
