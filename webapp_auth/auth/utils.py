"""
Authentication utilities for ID token verification and signing key management.

This module handles:
- Resolving the provider's signing keys (JWKS fetch and cache)
- Verifying ID tokens from the Microsoft identity platform
- Extracting the profile claims stored in the session
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx
from jose import JWTError, jwk, jwt
from pydantic import ValidationError

from webapp_auth.auth.exceptions import ClaimsError, IdTokenVerificationError
from webapp_auth.models import IdentityClaims

logger = logging.getLogger(__name__)

CLOCK_SKEW_LEEWAY_SECONDS = 10


# =============================================================================
# Signing Key Resolution
# =============================================================================

class SigningKeyResolver(ABC):
    """
    Finds the public key matching an ID token's ``kid``.

    Subclasses provide ``_load_jwks``. A kid that is not in the current key
    set triggers exactly one forced reload, to pick up rotated keys.
    """

    @abstractmethod
    async def _load_jwks(self, force_refresh: bool = False) -> Dict[str, Any]:
        """Return the current JWKS document, refetching it when forced."""

    async def get_signing_key(self, token: str) -> Dict[str, Any]:
        """
        Return the JWK that signed ``token``.

        Raises:
            IdTokenVerificationError: If the header is malformed or no key matches
        """
        kid = _get_key_id(token)

        signing_key = _find_key(await self._load_jwks(), kid)
        if signing_key is None:
            logger.info(f"Signing key {kid} not cached, refreshing JWKS")
            signing_key = _find_key(await self._load_jwks(force_refresh=True), kid)

        if signing_key is None:
            raise IdTokenVerificationError(
                "Unable to find matching signing key in JWKS. "
                "Token may be from a different tenant or keys may have rotated."
            )
        return signing_key


class JWKSKeyResolver(SigningKeyResolver):
    """
    Fetches the provider's published JWKS and caches it for ``cache_seconds``.
    """

    def __init__(self, jwks_uri: str, cache_seconds: int = 3600, timeout: float = 10.0):
        self.jwks_uri = jwks_uri
        self.cache_seconds = cache_seconds
        self.timeout = timeout
        self._jwks: Optional[Dict[str, Any]] = None
        self._fetched_at: float = 0.0
        self._lock = asyncio.Lock()

    async def _load_jwks(self, force_refresh: bool = False) -> Dict[str, Any]:
        """
        Fetch JWKS with caching.

        Args:
            force_refresh: If True, bypass cache and fetch fresh JWKS

        Raises:
            IdTokenVerificationError: If the endpoint is unreachable or the
                response has no keys
        """
        if not force_refresh and self._is_fresh():
            return self._jwks

        seen_fetch = self._fetched_at
        async with self._lock:
            # another request refreshed the keys while we waited
            if self._jwks and self._fetched_at != seen_fetch:
                return self._jwks
            if not force_refresh and self._is_fresh():
                return self._jwks

            try:
                async with httpx.AsyncClient() as client:
                    response = await client.get(self.jwks_uri, timeout=self.timeout)
                    response.raise_for_status()
                    jwks_data = response.json()
            except (httpx.HTTPError, ValueError) as e:
                raise IdTokenVerificationError(f"Unable to fetch signing keys: {e}") from e

            if not isinstance(jwks_data, dict) or "keys" not in jwks_data:
                raise IdTokenVerificationError("Invalid JWKS response: missing 'keys' field")

            self._jwks = jwks_data
            self._fetched_at = time.time()
            logger.info(f"Fetched {len(jwks_data['keys'])} signing keys from {self.jwks_uri}")
            return jwks_data

    def _is_fresh(self) -> bool:
        return bool(self._jwks) and (time.time() - self._fetched_at) < self.cache_seconds

    def clear(self) -> None:
        self._jwks = None
        self._fetched_at = 0.0


def _get_key_id(token: str) -> str:
    try:
        unverified_header = jwt.get_unverified_header(token)
    except JWTError as e:
        raise IdTokenVerificationError(f"Failed to decode token header: {e}") from e

    kid = unverified_header.get("kid")
    if not kid:
        raise IdTokenVerificationError("Token header missing 'kid' (Key ID)")
    return kid


def _find_key(jwks: Dict[str, Any], kid: str) -> Optional[Dict[str, Any]]:
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key
    return None


# =============================================================================
# ID Token Verification
# =============================================================================

async def verify_id_token(
    id_token: str,
    resolver: SigningKeyResolver,
    client_id: str,
    authority_host: str,
    tenant: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Verify and decode an ID token.

    Checks performed:
    1. Signature against the key resolved for the token's kid (RS256)
    2. Audience equals our client ID
    3. exp / nbf / iat with a small clock skew leeway
    4. Issuer belongs to the authority host, and to ``tenant`` when the app
       is registered for a single tenant

    Args:
        id_token: Raw JWT from the token response
        resolver: Source of the provider's signing keys
        client_id: Expected audience
        authority_host: e.g. https://login.microsoftonline.com
        tenant: Tenant ID to require in the issuer, or None for multi-tenant

    Returns:
        Dictionary of verified token claims

    Raises:
        IdTokenVerificationError: If any check fails
    """
    signing_key = await resolver.get_signing_key(id_token)

    try:
        public_key = jwk.construct(signing_key, algorithm=signing_key.get("alg", "RS256"))
    except Exception as e:
        raise IdTokenVerificationError(f"Failed to construct public key from JWK: {e}") from e

    try:
        claims = jwt.decode(
            id_token,
            public_key.to_pem().decode("utf-8"),
            algorithms=["RS256"],
            audience=client_id,
            options={
                "verify_signature": True,
                "verify_aud": True,
                "verify_iat": True,
                "verify_exp": True,
                "verify_nbf": True,
                "verify_iss": False,
                "verify_sub": True,
                "verify_jti": False,
                "verify_at_hash": False,
                "leeway": CLOCK_SKEW_LEEWAY_SECONDS,
            },
        )
    except jwt.ExpiredSignatureError as e:
        raise IdTokenVerificationError("ID token has expired") from e
    except jwt.JWTClaimsError as e:
        raise IdTokenVerificationError(f"Invalid token claims: {e}") from e
    except JWTError as e:
        raise IdTokenVerificationError(f"Token verification failed: {e}") from e

    issuer = claims.get("iss", "")
    if not isinstance(issuer, str) or not issuer.startswith(authority_host.rstrip("/") + "/"):
        raise IdTokenVerificationError(f"Invalid issuer: {issuer}")

    if tenant and tenant.lower() not in issuer.lower():
        raise IdTokenVerificationError(f"Token issued by wrong tenant. Expected {tenant}")

    return claims


# =============================================================================
# Claims
# =============================================================================

def extract_email_from_claims(claims: Dict[str, Any]) -> Optional[str]:
    """
    Extract email address from ID token claims.

    The ``email`` claim is only present when the optional claim is configured
    for the app registration, so an email-shaped ``preferred_username`` is
    accepted as a fallback.
    """
    for claim_name in ("email", "preferred_username"):
        email = claims.get(claim_name)
        if isinstance(email, str) and "@" in email:
            return email.strip()
    return None


def extract_identity_claims(claims: Dict[str, Any]) -> IdentityClaims:
    """
    Pull the name and email claims stored in the session.

    Raises:
        ClaimsError: If either claim is missing, not a string or malformed
    """
    name = claims.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ClaimsError("ID token has no usable 'name' claim")

    email = extract_email_from_claims(claims)
    if email is None:
        raise ClaimsError("ID token has no usable 'email' claim")

    try:
        return IdentityClaims(name=name.strip(), email=email)
    except ValidationError as e:
        raise ClaimsError(f"ID token claims are malformed: {e.error_count()} invalid field(s)") from e
