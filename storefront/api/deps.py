"""FastAPI dependency injection functions."""

from typing import Annotated

from fastapi import Depends, Header

from storefront.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt
from storefront.api.middleware.error_handler import AuthenticationError, AuthorizationError
from storefront.schemas.auth import UserContext


async def get_current_user(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Extract and validate the current user from the Authorization header.

    Args:
        authorization: The Authorization header value (Bearer token).

    Returns:
        UserContext: The authenticated user's context.

    Raises:
        AuthenticationError: If token is missing, invalid, or expired.
    """
    if not authorization:
        raise AuthenticationError("Authorization header required")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError("Invalid authorization header format. Expected: Bearer <token>")

    try:
        return decode_jwt(parts[1]).to_user_context()
    except AuthError as e:
        if e.code == AuthErrorCode.TOKEN_EXPIRED:
            raise AuthenticationError("Token has expired") from e
        raise AuthenticationError(e.message) from e


async def get_admin_user(
    user: Annotated[UserContext, Depends(get_current_user)],
) -> UserContext:
    """Require an authenticated user with the admin role.

    Raises:
        AuthorizationError: If the user is not an admin.
    """
    if not user.is_admin:
        raise AuthorizationError("Admin access required")
    return user


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[UserContext, Depends(get_current_user)]
AdminUser = Annotated[UserContext, Depends(get_admin_user)]
