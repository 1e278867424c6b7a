"""Password reset token type definitions."""

from datetime import datetime
from typing import TypedDict


class PasswordReset(TypedDict):
    """password_resets table row.

    Only the sha256 hash of the token is stored. A token verifies when
    `used` is false and `expires_at` is in the future; it is single-use.
    """

    id: str
    user_id: str
    token_hash: str
    expires_at: datetime
    used: bool
    created_at: datetime
