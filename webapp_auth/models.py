"""
Data Models Module

This module defines Pydantic models shared by the login flow:
- OAuth client configuration (immutable, built once at startup)
- Token endpoint response bundle
- Identity claims pulled from a verified ID token
- Error responses
"""

from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# OAuth Models
# ============================================================================

class OAuthClientConfig(BaseModel):
    """Endpoints and credentials for the authorization code flow."""

    model_config = ConfigDict(frozen=True)

    client_id: str = Field(..., description="OAuth client ID")
    client_secret: str = Field(..., description="OAuth client secret", repr=False)
    authorize_endpoint: str = Field(..., description="Authorization endpoint URL")
    token_endpoint: str = Field(..., description="Token endpoint URL")
    redirect_url: str = Field(..., description="Redirect URL registered with the provider")
    scopes: Tuple[str, ...] = Field(default=(), description="Requested scopes")


class TokenResponse(BaseModel):
    """
    Successful token endpoint response.

    Provider-specific members are kept as extra fields, ``id_token`` among
    them when an OpenID scope was requested.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str = Field(..., repr=False)
    token_type: str = Field(default="Bearer")
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    refresh_token: Optional[str] = Field(default=None, repr=False)

    def extra(self, key: str) -> Any:
        """Return a provider-specific member of the response, or None."""
        return (self.model_extra or {}).get(key)


class IdentityClaims(BaseModel):
    """User identity extracted from a verified ID token."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="User display name")
    email: str = Field(..., min_length=3, description="User email address")

    def as_session_fields(self) -> Dict[str, str]:
        return {"name": self.name, "email": self.email}


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standardized error response model."""
    error: str = Field(..., description="Error type or code")
    message: str = Field(..., description="Human-readable error message")
    detail: Optional[str] = Field(None, description="Additional error detail")
