"""Sign-in sample web application (OAuth 2.0 / OpenID Connect)."""
