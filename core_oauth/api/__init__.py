"""FastAPI integration for the OAuth 2.0 provider."""

from .fast_api import OAuthMiddleware, get_access_token_claims, get_app

__all__ = ["OAuthMiddleware", "get_access_token_claims", "get_app"]
