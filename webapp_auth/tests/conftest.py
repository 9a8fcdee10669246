"""Shared fixtures for the sign-in tests."""

import pytest
from fastapi.testclient import TestClient

from webapp_auth.config import Settings
from webapp_auth.main import create_app
from webapp_auth.tests.tokens import (
    TEST_CLIENT_ID,
    StaticKeyResolver,
    create_mock_jwks,
    state_from_location,
)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        MSFT_CLIENT_ID=TEST_CLIENT_ID,
        MSFT_CLIENT_SECRET="test-client-secret",
        COOKIE_KEY="test-cookie-key-0123456789abcdef",
        _env_file=None,
    )


@pytest.fixture
def key_resolver() -> StaticKeyResolver:
    return StaticKeyResolver(create_mock_jwks())


@pytest.fixture
def app(settings, key_resolver):
    return create_app(settings=settings, key_resolver=key_resolver)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def session_state(client) -> str:
    """Open a session by visiting a protected page and return its state."""
    response = client.get("/login", follow_redirects=False)
    assert response.status_code == 302
    return state_from_location(response.headers["location"])
