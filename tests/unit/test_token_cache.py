"""Unit tests for the persisted token cache."""

from unittest.mock import MagicMock

import pytest

from storefront.core.token_cache import EXPIRY_MARGIN_SECONDS, TokenCacheStore
from storefront.models.token_cache import TOKEN_CACHE_RETENTION_SECONDS

NOW = 1_900_000_000


def store_with(entry: dict | None) -> tuple[TokenCacheStore, MagicMock]:
    mock_supabase = MagicMock()
    mock_response = MagicMock()
    mock_response.data = entry
    mock_supabase.table.return_value.select.return_value.eq.return_value.maybe_single.return_value.execute.return_value = (
        mock_response
    )
    return TokenCacheStore(client=mock_supabase), mock_supabase


class TestGetValidToken:
    """Tests for TokenCacheStore.get_valid_token."""

    @pytest.mark.asyncio
    async def test_returns_token_inside_validity_window(self) -> None:
        store, _ = store_with({"service": "cj_access_token", "token": "abc", "expiry": NOW + 3600})

        assert await store.get_valid_token("cj_access_token", now=NOW) == "abc"

    @pytest.mark.asyncio
    async def test_token_within_margin_counts_as_expired(self) -> None:
        """Test that a token expiring within the safety margin is not returned."""
        store, _ = store_with({"service": "cj_access_token", "token": "abc", "expiry": NOW + EXPIRY_MARGIN_SECONDS})

        assert await store.get_valid_token("cj_access_token", now=NOW) is None

    @pytest.mark.asyncio
    async def test_returns_none_on_miss(self) -> None:
        store, _ = store_with(None)

        assert await store.get_valid_token("cj_access_token", now=NOW) is None

    @pytest.mark.asyncio
    async def test_looks_up_by_service(self) -> None:
        store, mock_supabase = store_with(None)

        await store.get_valid_token("cj_refresh_token", now=NOW)

        mock_supabase.table.assert_called_with("token_cache")
        mock_supabase.table.return_value.select.return_value.eq.assert_called_with("service", "cj_refresh_token")


class TestStore:
    """Tests for TokenCacheStore.store and purge_expired."""

    @pytest.mark.asyncio
    async def test_upserts_on_service(self) -> None:
        """Test that storing replaces the row of the same service."""
        store, mock_supabase = store_with(None)

        await store.store("cj_access_token", "abc", NOW + 3600)

        upsert = mock_supabase.table.return_value.upsert
        row = upsert.call_args.args[0]
        assert row["service"] == "cj_access_token"
        assert row["token"] == "abc"
        assert row["expiry"] == NOW + 3600
        assert upsert.call_args.kwargs["on_conflict"] == "service"

    @pytest.mark.asyncio
    async def test_purges_rows_past_retention(self) -> None:
        store, mock_supabase = store_with(None)

        await store.purge_expired(now=NOW)

        mock_supabase.table.return_value.delete.return_value.lt.assert_called_once_with(
            "expiry", NOW - TOKEN_CACHE_RETENTION_SECONDS
        )
