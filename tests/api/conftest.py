"""Shared fixtures for API tests."""

from collections.abc import Iterator
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from bakery_api.infrastructure.config import settings
from bakery_api.main import app


@pytest.fixture(autouse=True)
def clear_overrides() -> Iterator[None]:
    """Drop dependency overrides after each test."""
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client() -> TestClient:
    """Create test client without authentication."""
    return TestClient(app)


@pytest.fixture
def admin_client() -> TestClient:
    """Create test client with the admin API key."""
    return TestClient(
        app,
        headers={"Authorization": f"Bearer {settings.admin_api_key}"},
    )


@pytest.fixture
def notifications() -> AsyncMock:
    """Notification service that records calls instead of sending."""
    return AsyncMock()


@pytest.fixture
def customer_token():
    """Build a customer bearer token for a user id."""

    def _token(user_id: str) -> dict[str, str]:
        token = jwt.encode(
            {"sub": user_id, "aud": "authenticated"},
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        return {"Authorization": f"Bearer {token}"}

    return _token
