"""Password reset business logic service."""

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

from supabase import Client

from storefront.api.middleware.error_handler import InternalError, InvalidInputError
from storefront.core.config import Settings, get_settings
from storefront.core.supabase import get_supabase_client
from storefront.models.password_reset import PasswordReset
from storefront.services.email_service import EmailService

logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = "If an account exists with this email, a password reset link has been sent."


def hash_reset_token(token: str) -> str:
    """Return the sha256 hex digest stored in place of a reset token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AuthService:
    """Service for password reset tokens.

    Tokens are random, emailed in clear once, and stored only as a hash.
    A token is valid while unused and unexpired, and is consumed by a
    single conditional update so it can never be used twice.
    """

    table = "password_resets"

    def __init__(
        self,
        client: Client | None = None,
        email_service: EmailService | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.client = client or get_supabase_client()
        self.settings = settings or get_settings()
        self._email_service = email_service

    @property
    def email_service(self) -> EmailService:
        if self._email_service is None:
            self._email_service = EmailService()
        return self._email_service

    async def _find_user_id(self, email: str) -> str | None:
        response = (
            self.client.table("profiles")
            .select("id")
            .eq("email", email.strip().lower())
            .maybe_single()
            .execute()
        )
        return response.data["id"] if response and response.data else None

    async def request_password_reset(self, email: str) -> dict[str, Any]:
        """Issue a reset token and email it if the account exists.

        Always returns the same message so the response does not reveal
        whether an account exists.
        """
        email = email.strip().lower()
        user_id = await self._find_user_id(email)
        if not user_id:
            logger.info("Password reset requested for unknown email")
            return {"message": RESET_REQUESTED_MESSAGE}

        now = datetime.now(timezone.utc)
        token = secrets.token_urlsafe(32)
        ttl = self.settings.password_reset_ttl_minutes

        # Older unused tokens of this user stop working
        self.client.table(self.table).update({"used": True}).eq("user_id", user_id).eq("used", False).execute()
        self.client.table(self.table).delete().lt("expires_at", now.isoformat()).execute()
        self.client.table(self.table).insert({
            "user_id": user_id,
            "token_hash": hash_reset_token(token),
            "expires_at": (now + timedelta(minutes=ttl)).isoformat(),
            "used": False,
        }).execute()

        result = await self.email_service.send_password_reset(email, token, ttl)
        if not result.get("success"):
            logger.error("Password reset email could not be sent for user %s", user_id)

        return {"message": RESET_REQUESTED_MESSAGE}

    async def reset_password(self, token: str, new_password: str) -> dict[str, Any]:
        """Consume a reset token and set the new password.

        Raises:
            InvalidInputError: Token unknown, used, or expired.
            InternalError: Password update failed after the token was consumed.
        """
        now = datetime.now(timezone.utc).isoformat()
        response = (
            self.client.table(self.table)
            .update({"used": True})
            .eq("token_hash", hash_reset_token(token))
            .eq("used", False)
            .gt("expires_at", now)
            .execute()
        )
        if not response.data:
            raise InvalidInputError("Invalid or expired password reset token")

        reset: PasswordReset = response.data[0]
        user_id = reset["user_id"]
        try:
            self.client.auth.admin.update_user_by_id(user_id, {"password": new_password})
        except Exception as e:
            logger.error("Password update failed for user %s: %s", user_id, str(e))
            raise InternalError("Password reset failed") from e

        logger.info("Password reset for user: %s", user_id)
        return {
            "message": "Password has been reset successfully",
            "redirect_url": f"{self.settings.frontend_url.rstrip('/')}/auth/signin?reset=success",
        }
