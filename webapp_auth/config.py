"""
Configuration module for the sign-in sample web application.

This module uses Pydantic Settings to load and validate environment variables
for the Microsoft identity platform OAuth client, the session cookie and the
outbound calls made during login.

Environment variables are loaded from .env file or system environment.
"""

import logging
import re
import secrets
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from webapp_auth.models import OAuthClientConfig

logger = logging.getLogger(__name__)

GUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Built once at startup and handed to the application factory; request
    handlers read it from ``app.state.settings``.
    """

    # =========================================================================
    # Microsoft identity platform (OAuth client)
    # =========================================================================

    MSFT_CLIENT_ID: str = Field(
        ...,
        description="Application (client) ID registered with the identity provider",
        min_length=1,
    )

    MSFT_CLIENT_SECRET: str = Field(
        ...,
        description="Client secret for the confidential web client",
        min_length=1,
    )

    MSFT_TENANT: str = Field(
        default="common",
        description="Tenant segment of the authority (GUID, domain, or common/organizations/consumers)",
        min_length=1,
    )

    MSFT_AUTHORITY_HOST: str = Field(
        default="https://login.microsoftonline.com",
        description="Identity provider host",
    )

    OAUTH_SCOPES: str = Field(
        # user.read is a non-OpenID scope; without one only an id_token is returned
        default="openid email profile offline_access user.read",
        description="Space or comma separated scopes requested at login",
    )

    # =========================================================================
    # Redirect URL
    # =========================================================================

    REDIRECT_SCHEME: str = Field(default="http")
    REDIRECT_HOSTNAME: str = Field(default="localhost:8080")
    REDIRECT_PATH: str = Field(default="/login/callback")

    # =========================================================================
    # Session cookie
    # =========================================================================

    COOKIE_KEY: Optional[str] = Field(
        default=None,
        description="Key used to sign the session cookie",
    )

    SESSION_COOKIE_NAME: str = Field(default="auth_sample", min_length=1)

    SESSION_MAX_AGE_SECONDS: int = Field(
        default=14 * 24 * 60 * 60,
        ge=60,
    )

    # =========================================================================
    # Outbound calls
    # =========================================================================

    TOKEN_EXCHANGE_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)

    JWKS_CACHE_SECONDS: int = Field(
        default=3600,
        description="Time to cache the provider's signing keys in seconds",
        ge=60,
        le=86400,
    )

    LOG_LEVEL: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("REDIRECT_SCHEME")
    @classmethod
    def validate_scheme(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("http", "https"):
            raise ValueError(f"REDIRECT_SCHEME must be http or https, got: {v}")
        return v

    @field_validator("REDIRECT_PATH")
    @classmethod
    def validate_redirect_path(cls, v: str) -> str:
        if not v.startswith("/"):
            v = "/" + v
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid LOG_LEVEL: {v}")
        return v

    @model_validator(mode="after")
    def ensure_cookie_key(self) -> "Settings":
        """
        Fall back to a random per-process cookie key.

        Sessions signed with it do not survive a restart, so a warning is
        logged asking for COOKIE_KEY.
        """
        if not self.COOKIE_KEY:
            logger.warning(
                "COOKIE_KEY not set; using a random key, sessions will not survive restarts"
            )
            self.COOKIE_KEY = secrets.token_urlsafe(32)
        return self

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def redirect_url(self) -> str:
        return f"{self.REDIRECT_SCHEME}://{self.REDIRECT_HOSTNAME}{self.REDIRECT_PATH}"

    @property
    def https_only(self) -> bool:
        return self.REDIRECT_SCHEME == "https"

    @property
    def authority(self) -> str:
        """
        Construct the authority URL.

        Returns:
            Authority URL without trailing slash.
        """
        return f"{self.MSFT_AUTHORITY_HOST.rstrip('/')}/{self.MSFT_TENANT}"

    @property
    def tenant_id(self) -> Optional[str]:
        """
        Tenant GUID that ID token issuers must carry.

        Returns:
            The lowercased GUID, or None when MSFT_TENANT is multi-tenant or
            a domain name (issuers only ever contain the GUID).
        """
        if GUID_PATTERN.match(self.MSFT_TENANT):
            return self.MSFT_TENANT.lower()
        return None

    @property
    def authorize_endpoint(self) -> str:
        return f"{self.authority}/oauth2/v2.0/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.authority}/oauth2/v2.0/token"

    @property
    def logout_endpoint(self) -> str:
        return f"{self.authority}/oauth2/v2.0/logout"

    @property
    def jwks_uri(self) -> str:
        return f"{self.authority}/discovery/v2.0/keys"

    @property
    def scopes_list(self) -> List[str]:
        """
        Parse OAUTH_SCOPES into a list, accepting spaces or commas.

        Returns:
            Scopes in declaration order without duplicates.
        """
        scopes: List[str] = []
        for scope in self.OAUTH_SCOPES.replace(",", " ").split():
            if scope not in scopes:
                scopes.append(scope)
        return scopes

    def oauth_client_config(self) -> OAuthClientConfig:
        """
        Build the immutable OAuth client configuration used by the login flow.

        Returns:
            OAuthClientConfig with endpoints, credentials and scopes.
        """
        return OAuthClientConfig(
            client_id=self.MSFT_CLIENT_ID,
            client_secret=self.MSFT_CLIENT_SECRET,
            authorize_endpoint=self.authorize_endpoint,
            token_endpoint=self.token_endpoint,
            redirect_url=self.redirect_url,
            scopes=tuple(self.scopes_list),
        )


# =============================================================================
# Settings Singleton
# =============================================================================

@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Only used when the application factory is not given explicit settings.

    Raises:
        ValidationError: If required environment variables are missing
                        or invalid.
    """
    return Settings()
