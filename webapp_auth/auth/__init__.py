"""
Authentication Package

This package handles sign-in for the sample web app using the Microsoft
identity platform and OpenID Connect (OIDC).

Modules:
- session: cookie session record, state token and request context
- oauth: authorization URL and authorization code exchange
- utils: signing key resolution, ID token verification, claim extraction
- routes: protected pages, login, callback and logout endpoints
- exceptions: errors raised along the flow

The authentication flow:
1. Every request gets a session with a random state token
2. A protected page sees an unauthenticated session and redirects to the provider
3. The provider redirects back with a code and the state
4. The callback checks the state, exchanges the code, verifies the ID token
5. Name and email are stored in the session; the user is sent home
"""

from .routes import build_auth_router, require_authentication
from .session import SessionContextMiddleware

__all__ = [
    "SessionContextMiddleware",
    "build_auth_router",
    "require_authentication",
]
