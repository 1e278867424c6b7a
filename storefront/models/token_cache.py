"""Cached external token type definitions."""

from datetime import datetime
from typing import TypedDict


# Rows are purged once their expiry is this far in the past
TOKEN_CACHE_RETENTION_SECONDS = 48 * 60 * 60


class TokenCacheEntry(TypedDict):
    """token_cache table row. `service` is unique; `expiry` is epoch seconds."""

    service: str
    token: str
    expiry: int
    updated_at: datetime
