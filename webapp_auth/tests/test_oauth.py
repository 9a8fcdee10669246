"""
OAuth Client Tests

Tests the authorization URL and the authorization code exchange against a
mocked token endpoint.
"""

from unittest.mock import AsyncMock, patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from webapp_auth.auth.exceptions import TokenExchangeError
from webapp_auth.auth.oauth import build_authorization_url, exchange_code_for_tokens
from webapp_auth.models import OAuthClientConfig

ASYNC_CLIENT = "webapp_auth.auth.oauth.httpx.AsyncClient"


@pytest.fixture
def oauth_config():
    return OAuthClientConfig(
        client_id="test-client-id",
        client_secret="test-client-secret",
        authorize_endpoint="https://login.example.com/common/oauth2/v2.0/authorize",
        token_endpoint="https://login.example.com/common/oauth2/v2.0/token",
        redirect_url="http://localhost:8080/login/callback",
        scopes=("openid", "email", "profile"),
    )


@pytest.fixture
def mock_httpx_client():
    """Mock httpx AsyncClient usable as an async context manager"""
    client = AsyncMock()
    client.__aenter__.return_value = client
    client.__aexit__.return_value = False
    return client


class TestAuthorizationUrl:
    """Test suite for the login redirect URL"""

    def test_contains_client_parameters(self, oauth_config):
        url = urlparse(build_authorization_url(oauth_config, "state-123"))
        params = parse_qs(url.query)

        assert f"{url.scheme}://{url.netloc}{url.path}" == oauth_config.authorize_endpoint
        assert params["client_id"] == ["test-client-id"]
        assert params["response_type"] == ["code"]
        assert params["response_mode"] == ["query"]
        assert params["redirect_uri"] == ["http://localhost:8080/login/callback"]
        assert params["scope"] == ["openid email profile"]
        assert params["state"] == ["state-123"]

    def test_secret_is_not_sent_to_browser(self, oauth_config):
        assert "test-client-secret" not in build_authorization_url(oauth_config, "s")


class TestCodeExchange:
    """Test suite for the authorization code exchange"""

    @pytest.mark.asyncio
    async def test_successful_exchange(self, oauth_config, mock_httpx_client):
        mock_httpx_client.post.return_value = httpx.Response(
            200,
            json={
                "access_token": "mock-access-token",
                "id_token": "mock-id-token",
                "token_type": "Bearer",
                "expires_in": 3600,
            },
        )

        with patch(ASYNC_CLIENT, return_value=mock_httpx_client):
            token = await exchange_code_for_tokens(oauth_config, "auth-code", timeout=5.0)

        assert token.access_token == "mock-access-token"
        assert token.extra("id_token") == "mock-id-token"

        mock_httpx_client.post.assert_awaited_once()
        args, kwargs = mock_httpx_client.post.call_args
        assert args[0] == oauth_config.token_endpoint
        assert kwargs["timeout"] == 5.0
        assert kwargs["data"]["grant_type"] == "authorization_code"
        assert kwargs["data"]["code"] == "auth-code"
        assert kwargs["data"]["client_secret"] == "test-client-secret"
        assert kwargs["data"]["redirect_uri"] == oauth_config.redirect_url

    @pytest.mark.asyncio
    async def test_error_status_raises(self, oauth_config, mock_httpx_client):
        mock_httpx_client.post.return_value = httpx.Response(
            400,
            json={"error": "invalid_grant", "error_description": "Code expired"},
        )

        with patch(ASYNC_CLIENT, return_value=mock_httpx_client):
            with pytest.raises(TokenExchangeError) as exc_info:
                await exchange_code_for_tokens(oauth_config, "auth-code", timeout=5.0)

        assert "400" in str(exc_info.value)
        assert "Code expired" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_error_status_with_html_body_raises(self, oauth_config, mock_httpx_client):
        mock_httpx_client.post.return_value = httpx.Response(502, text="<html>Bad Gateway</html>")

        with patch(ASYNC_CLIENT, return_value=mock_httpx_client):
            with pytest.raises(TokenExchangeError, match="502"):
                await exchange_code_for_tokens(oauth_config, "auth-code", timeout=5.0)

    @pytest.mark.asyncio
    async def test_timeout_raises(self, oauth_config, mock_httpx_client):
        mock_httpx_client.post.side_effect = httpx.ReadTimeout("slow")

        with patch(ASYNC_CLIENT, return_value=mock_httpx_client):
            with pytest.raises(TokenExchangeError, match="timed out"):
                await exchange_code_for_tokens(oauth_config, "auth-code", timeout=0.5)

    @pytest.mark.asyncio
    async def test_network_error_raises(self, oauth_config, mock_httpx_client):
        mock_httpx_client.post.side_effect = httpx.ConnectError("refused")

        with patch(ASYNC_CLIENT, return_value=mock_httpx_client):
            with pytest.raises(TokenExchangeError, match="Unable to reach"):
                await exchange_code_for_tokens(oauth_config, "auth-code", timeout=5.0)

    @pytest.mark.asyncio
    async def test_body_without_access_token_raises(self, oauth_config, mock_httpx_client):
        mock_httpx_client.post.return_value = httpx.Response(200, json={"token_type": "Bearer"})

        with patch(ASYNC_CLIENT, return_value=mock_httpx_client):
            with pytest.raises(TokenExchangeError, match="Invalid token response"):
                await exchange_code_for_tokens(oauth_config, "auth-code", timeout=5.0)
