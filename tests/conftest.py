"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock, patch
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ.setdefault("SUPABASE_SIGNING_KEY_JWK", "")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_stripe_secret_key")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_webhook_secret")
os.environ.setdefault("STRIPE_PUBLISHABLE_KEY", "pk_test_stripe_publishable_key")
os.environ.setdefault("RESEND_API_KEY", "re_test_key")
os.environ.setdefault("CJ_API_KEY", "test-cj-api-key")
os.environ.setdefault("FRONTEND_URL", "https://shop.example.com")

TEST_USER_ID = "550e8400-e29b-41d4-a716-446655440000"
OTHER_USER_ID = "660e8400-e29b-41d4-a716-446655440001"


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from storefront.core.config import get_settings

    # Clear the cache to ensure fresh settings
    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    # Clean up cache after tests
    get_settings.cache_clear()


@pytest.fixture
def user_context() -> Any:
    """Regular authenticated customer."""
    from storefront.schemas.auth import UserContext

    return UserContext(user_id=UUID(TEST_USER_ID), email="test@example.com", role="authenticated")


@pytest.fixture
def admin_context() -> Any:
    """Authenticated user with the admin role."""
    from storefront.schemas.auth import UserContext

    return UserContext(user_id=UUID(OTHER_USER_ID), email="admin@example.com", role="admin")


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client.

    Yields:
        MagicMock: Mocked Supabase client for testing.
    """
    mock_client = MagicMock()

    # Configure default mock responses
    mock_response = MagicMock()
    mock_response.data = []
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = (
        mock_response
    )

    with patch("storefront.core.supabase.get_supabase_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def client(mock_supabase_client: MagicMock) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    Args:
        mock_supabase_client: Mocked Supabase client fixture.

    Yields:
        TestClient: FastAPI test client.
    """
    from storefront.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def authenticated_client(client: TestClient, user_context: Any) -> Generator[TestClient, None, None]:
    """Test client whose requests run as the regular test user."""
    from storefront.api.deps import get_current_user
    from storefront.main import app

    app.dependency_overrides[get_current_user] = lambda: user_context
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_client(client: TestClient, admin_context: Any) -> Generator[TestClient, None, None]:
    """Test client whose requests run as an admin."""
    from storefront.api.deps import get_current_user
    from storefront.main import app

    app.dependency_overrides[get_current_user] = lambda: admin_context
    yield client
    app.dependency_overrides.clear()
