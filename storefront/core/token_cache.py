"""Persisted cache for external API bearer tokens.

Tokens live in the `token_cache` table keyed by service name so every
instance of the service shares one source of truth instead of holding
its own copy in memory.
"""

import logging
import time
from datetime import datetime, timezone

from supabase import Client

from storefront.core.supabase import get_supabase_client
from storefront.models.token_cache import TOKEN_CACHE_RETENTION_SECONDS, TokenCacheEntry

logger = logging.getLogger(__name__)

# A token this close to its expiry is treated as already expired
EXPIRY_MARGIN_SECONDS = 60


class TokenCacheStore:
    """Read and write cached tokens in the token_cache table."""

    table = "token_cache"

    def __init__(self, client: Client | None = None) -> None:
        self.client = client or get_supabase_client()

    async def get(self, service: str) -> TokenCacheEntry | None:
        """Get the cached entry for a service, expired or not."""
        response = (
            self.client.table(self.table)
            .select("*")
            .eq("service", service)
            .maybe_single()
            .execute()
        )
        return response.data if response and response.data else None

    async def get_valid_token(self, service: str, now: float | None = None) -> str | None:
        """Return the cached token if it is still inside its validity window.

        Args:
            service: Cache key, e.g. "cj_access_token".
            now: Current epoch seconds (defaults to time.time()).

        Returns:
            str | None: The token, or None on a miss or expiry.
        """
        entry = await self.get(service)
        if not entry or not entry.get("token"):
            return None

        now = time.time() if now is None else now
        if int(entry.get("expiry") or 0) - EXPIRY_MARGIN_SECONDS <= now:
            logger.info("Cached token for %s has expired", service)
            return None

        logger.debug(
            "Using cached token for %s (expires in %d minutes)",
            service,
            (int(entry["expiry"]) - now) // 60,
        )
        return entry["token"]

    async def store(self, service: str, token: str, expiry: int) -> None:
        """Insert or replace the token for a service and purge stale rows."""
        self.client.table(self.table).upsert(
            {
                "service": service,
                "token": token,
                "expiry": int(expiry),
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
            on_conflict="service",
        ).execute()
        logger.info(
            "Stored token for %s (expires at %s)",
            service,
            datetime.fromtimestamp(expiry, tz=timezone.utc).isoformat(),
        )
        await self.purge_expired()

    async def purge_expired(self, now: float | None = None) -> None:
        """Delete rows whose expiry is past the retention window."""
        now = time.time() if now is None else now
        cutoff = int(now) - TOKEN_CACHE_RETENTION_SECONDS
        self.client.table(self.table).delete().lt("expiry", cutoff).execute()
