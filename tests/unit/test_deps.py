"""Unit tests for FastAPI dependency injection functions."""

import time
from unittest.mock import patch
from uuid import UUID

import pytest

from storefront.api.deps import get_admin_user, get_current_user
from storefront.api.middleware.auth import AuthError, AuthErrorCode
from storefront.api.middleware.error_handler import AuthenticationError, AuthorizationError
from storefront.schemas.auth import TokenPayload, UserContext

TEST_USER_ID = "550e8400-e29b-41d4-a716-446655440000"


def make_payload(role: str | None = "authenticated", app_metadata: dict | None = None) -> TokenPayload:
    now = int(time.time())
    return TokenPayload(
        sub=TEST_USER_ID,
        email="test@example.com",
        role=role,
        app_metadata=app_metadata or {},
        exp=now + 3600,
        iat=now,
    )


class TestGetCurrentUser:
    """Tests for get_current_user dependency."""

    @pytest.mark.asyncio
    @patch("storefront.api.deps.decode_jwt")
    async def test_extracts_user_context_correctly(self, mock_decode: any) -> None:
        """Test get_current_user extracts UserContext from valid token."""
        mock_decode.return_value = make_payload()

        user = await get_current_user("Bearer valid-token")

        assert isinstance(user, UserContext)
        assert str(user.user_id) == TEST_USER_ID
        assert user.email == "test@example.com"
        mock_decode.assert_called_once_with("valid-token")

    @pytest.mark.asyncio
    async def test_raises_401_for_missing_header(self) -> None:
        with pytest.raises(AuthenticationError) as exc_info:
            await get_current_user("")

        assert exc_info.value.status_code == 401
        assert exc_info.value.code == "UNAUTHORIZED"
        assert "Authorization header required" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_raises_401_for_invalid_header_format(self) -> None:
        # Missing "Bearer" prefix
        with pytest.raises(AuthenticationError) as exc_info:
            await get_current_user("invalid-token")

        assert "Invalid authorization header format" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_raises_401_for_wrong_scheme(self) -> None:
        with pytest.raises(AuthenticationError):
            await get_current_user("Basic some-credentials")

    @pytest.mark.asyncio
    @patch("storefront.api.deps.decode_jwt")
    async def test_raises_401_for_expired_token(self, mock_decode: any) -> None:
        mock_decode.side_effect = AuthError("Token has expired", AuthErrorCode.TOKEN_EXPIRED)

        with pytest.raises(AuthenticationError) as exc_info:
            await get_current_user("Bearer expired-token")

        assert "expired" in exc_info.value.message.lower()

    @pytest.mark.asyncio
    @patch("storefront.api.deps.decode_jwt")
    async def test_raises_401_for_bad_signature(self, mock_decode: any) -> None:
        mock_decode.side_effect = AuthError("Invalid token signature", AuthErrorCode.INVALID_SIGNATURE)

        with pytest.raises(AuthenticationError) as exc_info:
            await get_current_user("Bearer forged-token")

        assert exc_info.value.message == "Invalid token signature"


class TestGetAdminUser:
    """Tests for get_admin_user dependency."""

    @pytest.mark.asyncio
    async def test_admin_passes(self) -> None:
        admin = UserContext(user_id=UUID(TEST_USER_ID), role="admin")

        assert await get_admin_user(admin) is admin

    @pytest.mark.asyncio
    async def test_non_admin_is_forbidden(self) -> None:
        user = UserContext(user_id=UUID(TEST_USER_ID), role="authenticated")

        with pytest.raises(AuthorizationError) as exc_info:
            await get_admin_user(user)

        assert exc_info.value.status_code == 403
        assert exc_info.value.message == "Admin access required"

    @pytest.mark.asyncio
    @patch("storefront.api.deps.decode_jwt")
    async def test_admin_role_comes_from_app_metadata(self, mock_decode: any) -> None:
        """Test that a token whose app_metadata grants admin passes the admin check."""
        mock_decode.return_value = make_payload(role="authenticated", app_metadata={"role": "admin"})

        user = await get_current_user("Bearer admin-token")

        assert (await get_admin_user(user)).is_admin
