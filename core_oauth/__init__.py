"""Simple Cloud Kit OAuth 2.0 Provider Package.

The core_oauth package provides an OAuth 2.0 authorization server protocol engine.
It implements the grant state machine and the self-contained token format, and
delegates everything stateful (users, clients, grants, revocation lists) to a
host-supplied collaborator.

Key Components:
    - **Secure Token Codec**: encrypt-then-sign opaque tokens (JWE inside an HMAC JWT)
    - **Token Factory**: access/refresh token bundles
    - **Grant State Machine**: authorization code, implicit, password and refresh grants, plus revocation
    - **Collaborator Protocol**: the abstract interface the host application implements
    - **ASGI Binding**: FastAPI middleware and app factory

Modules:
    - **oauth/**: protocol engine
        - serializer.py: secure token codec
        - tokens.py: token payloads, bundles and the token factory
        - collaborator.py: collaborator interface
        - auth_server.py: grant flow endpoint handlers
        - handler.py: route dispatch and bearer token filter
        - tools.py: credential and URL helpers
        - options.py: provider configuration model

    - **api/**: FastAPI integration
        - fast_api.py: middleware, dependencies and app factory

    - **request.py**: inbound request model
    - **response.py**: outbound response model
    - **exceptions.py**: error taxonomy mapped to HTTP status codes
    - **logging.py**: structlog configuration

Usage Examples:

    **Embedding the engine**:

    .. code-block:: python

        from core_oauth import OAuth2Provider, OAuthRequest

        provider = OAuth2Provider(collaborator=MyCollaborator())

        response = await provider.handle(
            OAuthRequest(method="POST", path="/oauth/access_token", body={...})
        )
        if response is None:
            ...  # not an OAuth route

    **FastAPI**:

    .. code-block:: python

        import uvicorn
        from core_oauth.api.fast_api import get_app

        app = get_app(provider)
        uvicorn.run(app, host="0.0.0.0", port=8090)

OAuth Flow:

    .. code-block:: text

        GET  /oauth/authorize?client_id=app&redirect_uri=https://app.example.com/cb
        POST /oauth/authorize            allow=1&x_user_id=...&response_type=code
        POST /oauth/access_token         grant_type=authorization_code&code=...
        POST /oauth/access_token         grant_type=refresh_token&refresh_token=...
        POST /oauth/revoke               token=...&token_type_hint=refresh_token

Dependencies:
    - fastapi: ASGI binding
    - pydantic: request, response and token models
    - PyJWT: token integrity (HMAC signature)
    - jwcrypto: token confidentiality (JWE A256GCM)
    - structlog: structured logging
    - python-dotenv: local configuration

License: MIT
"""

from .exceptions import (
    OAuthException,
    BadRequestException,
    UnauthorizedException,
    CollaboratorError,
    ConfigurationError,
)
from .request import OAuthRequest
from .response import OAuthResponse
from .oauth.collaborator import Collaborator
from .oauth.handler import OAuth2Provider
from .oauth.options import ProviderOptions
from .oauth.tokens import AccessTokenBundle, AccessTokenClaims, TokenGrant

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "OAuth2Provider",
    "ProviderOptions",
    "Collaborator",
    "OAuthRequest",
    "OAuthResponse",
    "AccessTokenBundle",
    "AccessTokenClaims",
    "TokenGrant",
    "OAuthException",
    "BadRequestException",
    "UnauthorizedException",
    "CollaboratorError",
    "ConfigurationError",
]
