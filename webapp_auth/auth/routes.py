"""
Authentication routes for the sign-in sample.

This module implements the OAuth 2.0 / OIDC authorization code flow with
the Microsoft identity platform:

- require_authentication: dependency guarding protected pages; sends
  unauthenticated callers to the provider with the session's state token
- GET /login: start (or skip) the login
- GET <REDIRECT_PATH>: authorization code callback
- GET /logout: drop the session and sign out at the provider
- GET /: greet the signed-in user
"""

import html
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from webapp_auth.auth.exceptions import (
    ClaimsError,
    IdTokenVerificationError,
    LoginRedirect,
    SessionStoreError,
    TokenExchangeError,
)
from webapp_auth.auth.oauth import build_authorization_url, exchange_code_for_tokens
from webapp_auth.auth.session import (
    SessionContext,
    clear_session,
    get_session_context,
    save_session,
    states_match,
)
from webapp_auth.auth.utils import SigningKeyResolver, extract_identity_claims, verify_id_token
from webapp_auth.config import Settings
from webapp_auth.models import OAuthClientConfig

logger = logging.getLogger(__name__)


# =============================================================================
# Dependencies
# =============================================================================

def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_oauth_config(request: Request) -> OAuthClientConfig:
    return request.app.state.oauth_config


def get_key_resolver(request: Request) -> SigningKeyResolver:
    return request.app.state.key_resolver


async def require_authentication(
    request: Request,
    config: OAuthClientConfig = Depends(get_oauth_config),
) -> SessionContext:
    """
    Let authenticated sessions through; send everyone else to the provider.

    A missing or malformed session context counts as not authenticated.

    Returns:
        The session context of an authenticated caller

    Raises:
        LoginRedirect: If the caller is not authenticated
        SessionStoreError: If there is no state to send with the redirect
    """
    context = get_session_context(request)
    if context is not None and context.authenticated:
        logger.debug("Session is authenticated, calling handler")
        return context

    if context is None or not context.state:
        raise SessionStoreError("No session state available for the authorization request")

    authorize_url = build_authorization_url(config, context.state)
    logger.info(f"Redirecting unauthenticated request for {request.url.path} to authorization server")
    raise LoginRedirect(authorize_url)


# =============================================================================
# Routes
# =============================================================================

def build_auth_router(settings: Settings) -> APIRouter:
    """
    Create the router. The callback path comes from settings so that it
    always matches the redirect URL registered with the provider.
    """
    router = APIRouter(tags=["authentication"])

    router.add_api_route(
        "/", user_info, methods=["GET"], response_class=HTMLResponse,
    )
    router.add_api_route(
        "/login", login, methods=["GET"], response_class=RedirectResponse,
    )
    router.add_api_route(
        settings.REDIRECT_PATH, authorization_callback, methods=["GET"], response_class=HTMLResponse,
    )
    router.add_api_route(
        "/logout", logout, methods=["GET"], response_class=RedirectResponse,
    )
    return router


async def user_info(context: SessionContext = Depends(require_authentication)):
    """Greet the signed-in user."""
    name = context.name or context.email or "User"
    return HTMLResponse(f"Hello {html.escape(name)}!")


async def login(context: SessionContext = Depends(require_authentication)):
    """Already signed in: go home."""
    return RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)


async def authorization_callback(
    request: Request,
    code: Optional[str] = Query(None, description="Authorization code"),
    state: Optional[str] = Query(None, description="State echoed by the provider"),
    error: Optional[str] = Query(None, description="Error code if authentication failed"),
    error_description: Optional[str] = Query(None, description="Error description"),
    settings: Settings = Depends(get_app_settings),
    config: OAuthClientConfig = Depends(get_oauth_config),
    resolver: SigningKeyResolver = Depends(get_key_resolver),
):
    """
    Handle the redirect back from the identity provider.

    This endpoint:
    1. Checks the returned state against the session (406 on mismatch)
    2. Exchanges the authorization code for tokens
    3. Verifies the ID token and reads name/email from it
    4. Stores them in the session and redirects home

    Nothing in the session changes unless every step succeeds.
    """
    context = get_session_context(request)
    if context is None or not context.state:
        logger.error("Callback: could not find state in session")
        return _render_error_page(
            "Session Error", "Could not find the login state for this session.",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if not states_match(context.state, state):
        logger.warning("Callback: state doesn't match session's state, rejecting")
        return _render_error_page(
            "Security Error", "State doesn't match this session's state.",
            status.HTTP_406_NOT_ACCEPTABLE,
        )

    if error:
        logger.warning(f"Callback: provider returned error {error}")
        return _render_error_page(
            "Authentication Failed", f"Unable to authenticate: {error_description or error}",
            status.HTTP_400_BAD_REQUEST,
        )

    if not code:
        return _render_error_page(
            "Invalid Request", "Missing authorization code.",
            status.HTTP_400_BAD_REQUEST,
        )

    try:
        token = await exchange_code_for_tokens(
            config, code, timeout=settings.TOKEN_EXCHANGE_TIMEOUT_SECONDS,
        )
    except TokenExchangeError as e:
        logger.error(f"Callback: failed to exchange authz code: {e}")
        return _render_error_page(
            "Authentication Error", "Failed to get access token with authorization code.",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    raw_id_token = token.extra("id_token")
    if not isinstance(raw_id_token, str) or not raw_id_token:
        logger.error("Callback: token response has no id_token")
        return _render_error_page(
            "Authentication Error", "Didn't receive an ID token.",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    try:
        claims = await verify_id_token(
            raw_id_token,
            resolver,
            client_id=config.client_id,
            authority_host=settings.MSFT_AUTHORITY_HOST,
            tenant=settings.tenant_id,
        )
        identity = extract_identity_claims(claims)
    except (IdTokenVerificationError, ClaimsError) as e:
        logger.error(f"Callback: could not use id_token: {e}")
        return _render_error_page(
            "Token Verification Failed", "Unable to verify identity token.",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    try:
        save_session(identity.as_session_fields(), request)
    except SessionStoreError as e:
        logger.error(f"Callback: failed to save session: {e}")
        return _render_error_page(
            "Session Error", "Could not save session.",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    logger.info("Callback: user signed in, redirecting to user info")
    return RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)


async def logout(request: Request, settings: Settings = Depends(get_app_settings)):
    """Clear the session and sign out at the provider."""
    clear_session(request)

    post_logout_redirect_uri = f"{settings.REDIRECT_SCHEME}://{settings.REDIRECT_HOSTNAME}/"
    logout_url = f"{settings.logout_endpoint}?{urlencode({'post_logout_redirect_uri': post_logout_redirect_uri})}"
    return RedirectResponse(url=logout_url, status_code=status.HTTP_302_FOUND)


# =============================================================================
# HTML Response Templates
# =============================================================================

def _render_error_page(title: str, message: str, status_code: int) -> HTMLResponse:
    """
    Render error page for authentication failures.

    Args:
        title: Error title
        message: Error message (no tokens or codes)
        status_code: HTTP status code
    """
    html_content = f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>{html.escape(title)}</title>
</head>
<body>
    <h1>{html.escape(title)}</h1>
    <p>{html.escape(message)}</p>
    <p><a href="/login">Try again</a></p>
</body>
</html>"""
    return HTMLResponse(content=html_content, status_code=status_code)
