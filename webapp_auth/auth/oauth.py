"""
OAuth 2.0 authorization code flow client.

Builds the authorization request URL and exchanges the returned code for
tokens at the provider's token endpoint.
"""

import logging
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from webapp_auth.auth.exceptions import TokenExchangeError
from webapp_auth.models import OAuthClientConfig, TokenResponse

logger = logging.getLogger(__name__)


def build_authorization_url(config: OAuthClientConfig, state: str) -> str:
    """
    Build the provider's authorization URL for an interactive login.

    Args:
        config: OAuth client configuration
        state: Session state token echoed back on the callback

    Returns:
        Authorization URL to redirect the browser to
    """
    params = {
        "client_id": config.client_id,
        "response_type": "code",
        "redirect_uri": config.redirect_url,
        "response_mode": "query",
        "scope": " ".join(config.scopes),
        "state": state,
    }
    return f"{config.authorize_endpoint}?{urlencode(params)}"


async def exchange_code_for_tokens(
    config: OAuthClientConfig,
    code: str,
    timeout: float,
) -> TokenResponse:
    """
    Exchange an authorization code for access and ID tokens.

    Args:
        config: OAuth client configuration
        code: Authorization code from the callback
        timeout: Seconds to wait for the token endpoint

    Returns:
        Parsed token response

    Raises:
        TokenExchangeError: On transport errors, timeouts, non-2xx responses
            or a body that is not a token response
    """
    payload = {
        "client_id": config.client_id,
        "client_secret": config.client_secret,
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": config.redirect_url,
        "scope": " ".join(config.scopes),
    }

    try:
        async with httpx.AsyncClient() as client:
            response = await client.post(
                config.token_endpoint,
                data=payload,
                headers={"Accept": "application/json"},
                timeout=timeout,
            )
    except httpx.TimeoutException as e:
        raise TokenExchangeError(f"Token endpoint timed out after {timeout}s") from e
    except httpx.HTTPError as e:
        raise TokenExchangeError(f"Unable to reach token endpoint: {e}") from e

    if not response.is_success:
        error_data = {}
        if response.headers.get("content-type", "").startswith("application/json"):
            try:
                error_data = response.json()
            except ValueError:
                pass
        if not isinstance(error_data, dict):
            error_data = {}
        error_msg = error_data.get("error_description") or error_data.get("error") or "Token exchange failed"
        raise TokenExchangeError(f"Token endpoint returned {response.status_code}: {error_msg}")

    try:
        token = TokenResponse.model_validate(response.json())
    except (ValueError, ValidationError) as e:
        raise TokenExchangeError(f"Invalid token response: {e}") from e

    logger.info(
        "Exchanged authorization code",
        extra={"token_type": token.token_type, "expires_in": token.expires_in},
    )
    return token
