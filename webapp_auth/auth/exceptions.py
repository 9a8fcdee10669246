"""
Exceptions raised along the sign-in flow.

Each one maps to a single HTTP status in the callback handler; none of them
is retried.
"""


class AuthFlowError(Exception):
    """Base exception for sign-in flow errors"""
    status_code = 500


class SessionStoreError(AuthFlowError):
    """The cookie session could not be read or written"""


class TokenExchangeError(AuthFlowError):
    """The authorization code could not be exchanged for tokens"""


class IdTokenVerificationError(AuthFlowError):
    """The ID token is malformed or failed signature/claim checks"""


class ClaimsError(AuthFlowError):
    """A required profile claim is missing or has the wrong type"""


class LoginRedirect(Exception):
    """
    Raised by the authentication dependency to send the caller to the
    identity provider. Converted into a 302 by the application.
    """

    def __init__(self, url: str):
        super().__init__(url)
        self.url = url
