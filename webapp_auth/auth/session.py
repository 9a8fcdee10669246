"""
Cookie Session Module
=====================

Keeps the per-browser session record (state, authenticated, name, email)
that drives the sign-in flow.

Storage is Starlette's SessionMiddleware, which signs the session into a
cookie. SessionContextMiddleware runs inside it on every request: it makes
sure the record has a state token and an authenticated flag, then publishes
a read-only SessionContext on ``request.state`` for the route handlers.

To read the context in a later handler:
    context = get_session_context(request)   # None if absent
    if is_authenticated(request): ...
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Any, Mapping, MutableMapping, Optional

from fastapi import Request, status
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware

from webapp_auth.auth.exceptions import SessionStoreError

logger = logging.getLogger(__name__)

AUTHENTICATED_KEY = "authenticated"
STATE_KEY = "state"
NAME_KEY = "name"
EMAIL_KEY = "email"

CONTEXT_ATTRIBUTE = "session_context"


# =============================================================================
# Session Context
# =============================================================================

@dataclass(frozen=True)
class SessionContext:
    """Read-only view of the session handed to downstream handlers."""
    state: Optional[str]
    authenticated: bool
    name: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_session(cls, session: Mapping[str, Any]) -> "SessionContext":
        authenticated = session.get(AUTHENTICATED_KEY)
        return cls(
            state=_as_str(session.get(STATE_KEY)),
            authenticated=authenticated if isinstance(authenticated, bool) else False,
            name=_as_str(session.get(NAME_KEY)),
            email=_as_str(session.get(EMAIL_KEY)),
        )


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def get_session_context(request: Request) -> Optional[SessionContext]:
    """
    Return the SessionContext published for this request.

    Returns:
        The context, or None if it is absent or of the wrong type.
    """
    context = getattr(request.state, CONTEXT_ATTRIBUTE, None)
    if isinstance(context, SessionContext):
        return context
    return None


def is_authenticated(request: Request) -> bool:
    """Missing or invalid context counts as not authenticated."""
    context = get_session_context(request)
    return context is not None and context.authenticated


# =============================================================================
# State Token
# =============================================================================

def generate_state() -> str:
    """Opaque per-session value round-tripped through the identity provider."""
    return secrets.token_urlsafe(32)


def states_match(expected: Optional[str], received: Optional[str]) -> bool:
    """
    Compare the stored and echoed state tokens in constant time.

    Args:
        expected: State stored in the session
        received: State returned on the callback URL

    Returns:
        True only if both are non-empty and equal
    """
    if not expected or not received:
        return False
    return secrets.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


# =============================================================================
# Session Store Access
# =============================================================================

def _load_session(request: Request) -> MutableMapping[str, Any]:
    try:
        return request.session
    except AssertionError as e:
        # raised by Starlette when SessionMiddleware is not installed
        raise SessionStoreError(f"Session store unavailable: {e}") from e


def _publish_context(request: Request, session: Mapping[str, Any]) -> SessionContext:
    context = SessionContext.from_session(session)
    setattr(request.state, CONTEXT_ATTRIBUTE, context)
    return context


def ensure_session_defaults(request: Request) -> SessionContext:
    """
    Make sure the session carries a state token and an authenticated flag.

    Returns:
        The context published on the request

    Raises:
        SessionStoreError: If the session store is unavailable
    """
    session = _load_session(request)

    if not isinstance(session.get(STATE_KEY), str) or not session.get(STATE_KEY):
        logger.debug("No state in session, generating one")
        session[STATE_KEY] = generate_state()

    if not isinstance(session.get(AUTHENTICATED_KEY), bool):
        logger.debug("User not previously authenticated")
        session[AUTHENTICATED_KEY] = False

    return _publish_context(request, session)


def save_session(info: Mapping[str, str], request: Request) -> Request:
    """
    Merge string fields into the current session and mark it authenticated.

    The cookie is rewritten by SessionMiddleware when the response is sent.

    Args:
        info: Fields to store (e.g. name, email)
        request: Current request

    Returns:
        The request, whose context now carries the new fields

    Raises:
        SessionStoreError: If the session store is unavailable
    """
    session = _load_session(request)

    session[AUTHENTICATED_KEY] = True
    for key, value in info.items():
        logger.debug(f"Saving session key [{key}]")
        session[key] = value

    _publish_context(request, session)
    return request


def clear_session(request: Request) -> None:
    """Drop every field of the current session."""
    session = _load_session(request)
    session.clear()
    setattr(request.state, CONTEXT_ATTRIBUTE, None)


# =============================================================================
# Middleware
# =============================================================================

class SessionContextMiddleware(BaseHTTPMiddleware):
    """
    Ensure a usable session exists before any route runs.

    Must be installed inside Starlette's SessionMiddleware. If the store
    cannot be used the request is answered with a 500 and the route is
    never called.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            context = ensure_session_defaults(request)
        except SessionStoreError as e:
            logger.error(f"Session unavailable for {request.url.path}: {e}")
            return PlainTextResponse(
                "Session unavailable",
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        logger.debug(
            "Session ready",
            extra={"path": request.url.path, "authenticated": context.authenticated},
        )
        return await call_next(request)


__all__ = [
    "SessionContext",
    "SessionContextMiddleware",
    "clear_session",
    "ensure_session_defaults",
    "generate_state",
    "get_session_context",
    "is_authenticated",
    "save_session",
    "states_match",
]
