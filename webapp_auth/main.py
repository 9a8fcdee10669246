"""
FastAPI Application Factory
===========================

Entry point for the sign-in sample web application.

Routes:
    - /             : Greeting for the signed-in user (requires login)
    - /login        : Starts the login with the identity provider
    - /login/callback (REDIRECT_PATH) : Authorization code callback
    - /logout       : Clears the session and signs out at the provider
    - /health       : Health check endpoint

Environment Variables Required:
    - MSFT_CLIENT_ID: Application (client) ID
    - MSFT_CLIENT_SECRET: Client secret
    - COOKIE_KEY: Session cookie signing key (random per process if unset)
    See webapp_auth/config.py for the optional ones.

Running the Service:
    Development:
        uvicorn webapp_auth.main:create_app --factory --reload --port 8080

    Direct:
        python -m webapp_auth.main
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from starlette.middleware.sessions import SessionMiddleware

from webapp_auth.auth import SessionContextMiddleware, build_auth_router
from webapp_auth.auth.exceptions import AuthFlowError, LoginRedirect
from webapp_auth.auth.utils import JWKSKeyResolver, SigningKeyResolver
from webapp_auth.config import Settings, get_settings
from webapp_auth.models import ErrorResponse

SERVICE_NAME = "webapp-auth"
SERVICE_VERSION = "1.0.0"


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s", "module": "%(module)s", "function": "%(funcName)s"}',
        handlers=[logging.StreamHandler(sys.stdout)],
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Logs startup configuration (no secrets) and drops cached signing keys on
    shutdown.
    """
    settings: Settings = app.state.settings
    logger = logging.getLogger("webapp_auth.main")

    logger.info(
        "Starting sign-in sample",
        extra={
            "authority": settings.authority,
            "redirect_url": settings.redirect_url,
            "scopes": settings.scopes_list,
        },
    )

    yield

    resolver = app.state.key_resolver
    if isinstance(resolver, JWKSKeyResolver):
        resolver.clear()
    logger.info("Sign-in sample shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    key_resolver: Optional[SigningKeyResolver] = None,
) -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application instance with:
        - Cookie session storage and the session context middleware
        - Authentication routes
        - Exception handlers

    Args:
        settings: Configuration; loaded from the environment when omitted
        key_resolver: Source of ID token signing keys; the provider's JWKS
            endpoint when omitted

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="Sign-in Sample",
        description="OAuth 2.0 / OpenID Connect sign-in against the Microsoft identity platform",
        version=SERVICE_VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.oauth_config = settings.oauth_client_config()
    app.state.key_resolver = key_resolver or JWKSKeyResolver(
        settings.jwks_uri,
        cache_seconds=settings.JWKS_CACHE_SECONDS,
        timeout=settings.TOKEN_EXCHANGE_TIMEOUT_SECONDS,
    )

    # Added first so it runs inside SessionMiddleware
    app.add_middleware(SessionContextMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.COOKIE_KEY,
        session_cookie=settings.SESSION_COOKIE_NAME,
        max_age=settings.SESSION_MAX_AGE_SECONDS,
        same_site="lax",
        https_only=settings.https_only,
    )

    app.include_router(build_auth_router(settings))

    @app.get("/health", tags=["System"])
    async def health_check() -> Dict[str, str]:
        """Service health information."""
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
        }

    @app.exception_handler(LoginRedirect)
    async def login_redirect_handler(request: Request, exc: LoginRedirect) -> RedirectResponse:
        return RedirectResponse(url=exc.url, status_code=status.HTTP_302_FOUND)

    @app.exception_handler(AuthFlowError)
    async def auth_flow_error_handler(request: Request, exc: AuthFlowError) -> HTMLResponse:
        logging.getLogger("webapp_auth.main").error(
            f"Sign-in flow error: {exc}",
            extra={"path": request.url.path, "exception_type": type(exc).__name__},
        )
        return HTMLResponse("Authentication error", status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Global exception handler for unhandled errors.

        Logs the error and returns a standardized error response.
        """
        logging.getLogger("webapp_auth.main").error(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "exception_type": type(exc).__name__,
            },
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(
                error="internal_server_error",
                message="An unexpected error occurred",
                detail=str(exc) if settings.LOG_LEVEL == "DEBUG" else None,
            ).model_dump(),
        )

    return app


if __name__ == "__main__":
    settings = get_settings()
    _, _, port = settings.REDIRECT_HOSTNAME.partition(":")

    uvicorn.run(
        "webapp_auth.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=int(port) if port else 8080,
        log_level=settings.LOG_LEVEL.lower(),
    )
