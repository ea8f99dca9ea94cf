"""FastAPI application binding for the OAuth 2.0 provider.

The provider is transport-neutral. This module adapts it to Starlette/FastAPI:

- ``OAuthMiddleware`` answers the provider routes itself and runs the bearer
  token filter in front of every other route.
- ``get_access_token_claims`` is a dependency for protected endpoints.
- ``get_app`` builds a ready-to-serve application.

Example:
    Basic usage::

        from core_oauth.api.fast_api import get_app, get_access_token_claims

        app = get_app(collaborator=MyCollaborator())

        @app.get("/me")
        async def me(claims: AccessTokenClaims = Depends(get_access_token_claims)):
            return {"subject": claims.subject_id}

    Or with uvicorn::

        uvicorn myapp:app
"""

from typing import Any, Dict, Optional
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv, find_dotenv

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.background import BackgroundTask
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from ..logging import get_logger
from ..oauth.collaborator import Collaborator
from ..oauth.handler import OAuth2Provider
from ..oauth.tokens import AccessTokenClaims
from ..request import OAuthRequest
from ..response import OAuthResponse

log = get_logger(__name__)

FORM_CONTENT_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


async def read_body(request: Request) -> Dict[str, Any]:
    """Parse a form or JSON request body into a flat dict.

    File uploads are ignored. A body that is not a JSON object yields ``{}``.
    """
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("application/json"):
        try:
            data = await request.json()
        except ValueError:
            log.debug("Ignoring unparseable JSON body", details={"path": request.url.path})
            return {}
        return data if isinstance(data, dict) else {}

    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        return {k: v for k, v in form.items() if isinstance(v, str)}

    return {}


async def to_oauth_request(request: Request, with_body: bool = False) -> OAuthRequest:
    """Convert a Starlette request to an :class:`OAuthRequest`.

    Args:
        request (Request): The incoming request.
        with_body (bool): Read and parse the body. Only done for provider routes
            so the body stream stays untouched for the application.
    """
    return OAuthRequest(
        method=request.method,
        path=request.url.path,
        query_params=dict(request.query_params),
        body=await read_body(request) if with_body else {},
        headers=dict(request.headers),
        cookies=dict(request.cookies),
        native=request,
    )


def to_http_response(response: OAuthResponse) -> Response:
    """Convert an :class:`OAuthResponse` to a Starlette response.

    Deferred collaborator work is attached as a ``BackgroundTask`` and runs after
    the body has been sent.
    """
    background = BackgroundTask(response.run_background) if response.background_tasks else None

    return Response(
        content=response.body,
        status_code=response.status_code,
        headers=response.headers,
        background=background,
    )


class OAuthMiddleware(BaseHTTPMiddleware):
    """Serve the OAuth endpoints and authenticate bearer tokens.

    Provider routes never reach the application router. On every other route
    a valid access token is decoded and its claims are exposed as
    ``request.state.oauth``. Requests without a token pass through.
    """

    def __init__(self, app, provider: OAuth2Provider):
        super().__init__(app)
        self.provider = provider

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if self.provider.handles(request.method, request.url.path):
            oauth_request = await to_oauth_request(request, with_body=True)
            response = await self.provider.handle(oauth_request)
            return to_http_response(response)

        oauth_request = await to_oauth_request(request)
        response = await self.provider.login(oauth_request)
        if response is not None:
            return to_http_response(response)

        claims = oauth_request.context.get("oauth")
        if claims is not None:
            request.state.oauth = claims

        return await call_next(request)


def get_access_token_claims(request: Request) -> AccessTokenClaims:
    """FastAPI dependency returning the claims of the presented access token.

    Raises:
        HTTPException: 401 when the request carried no access token.
    """
    claims = getattr(request.state, "oauth", None)
    if claims is None:
        raise HTTPException(status_code=401, detail="access token required")
    return claims


def get_allow_origins() -> list[str]:
    """Read allowed CORS origins from ``CORS_ALLOW_ORIGINS`` (comma-separated)."""
    return [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "").split(",") if o.strip()]


def get_allow_credentials() -> bool:
    return os.getenv("CORS_ALLOW_CREDENTIALS", "True").lower() in ("true", "1", "yes")


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.running = True
    log.info("OAuth provider application started")

    yield

    app.state.running = False
    log.info("OAuth provider application shutdown")


def get_app(
    provider: Optional[OAuth2Provider] = None,
    collaborator: Optional[Collaborator] = None,
    **overrides,
) -> FastAPI:
    """Create a FastAPI application serving the OAuth endpoints.

    A ``.env`` file, if found, is loaded before the provider is built, so the
    ``OAUTH_*`` settings may live there.

    Args:
        provider (Optional[OAuth2Provider]): A ready provider.
        collaborator (Optional[Collaborator]): Used to build a provider from the
            environment when ``provider`` is not given.
        **overrides: Provider option overrides, used with ``collaborator``.

    Returns:
        FastAPI: Configured application with the OAuth middleware, the RFC 8414
        discovery document and a health check.

    Raises:
        ValueError: If neither a provider nor a collaborator is given, or if a
            provider is given together with a collaborator or option overrides.
    """
    load_dotenv(find_dotenv(), override=False)

    if provider is not None and (collaborator is not None or overrides):
        raise ValueError("get_app takes either a provider or a collaborator with option overrides, not both")

    if provider is None:
        if collaborator is None:
            raise ValueError("get_app requires a provider or a collaborator")
        provider = OAuth2Provider(collaborator, **overrides)

    app = FastAPI(
        title="SCK Core OAuth",
        description="Simple Cloud Kit OAuth 2.0 Provider",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.oauth_provider = provider
    app.state.running = False

    app.add_middleware(OAuthMiddleware, provider=provider)

    allow_origins = get_allow_origins()
    if allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allow_origins,
            allow_credentials=get_allow_credentials(),
            allow_methods=["*"],
            allow_headers=["*"],
            max_age=86400,
        )

    @app.get("/.well-known/oauth-authorization-server", include_in_schema=False)
    async def oauth_discovery(request: Request) -> Response:
        """OAuth 2.0 Authorization Server Metadata (RFC 8414)"""
        return JSONResponse(content=discovery_document(request, provider))

    @app.get("/health", include_in_schema=False)
    async def health_check(request: Request) -> Dict[str, Any]:
        return {"status": "healthy", "running": request.app.state.running}

    return app


def discovery_document(request: Request, provider: OAuth2Provider) -> Dict[str, Any]:
    """Build the RFC 8414 metadata for ``provider`` as seen through ``request``."""

    # Check for forwarded protocol (common in reverse proxies/load balancers)
    host = request.headers.get("host", "")
    protocol = request.headers.get("x-forwarded-proto", request.url.scheme)
    base_url = f"{protocol}://{host}"

    options = provider.options

    grant_types = ["authorization_code", "implicit"]
    if provider.collaborator.supports_password_grant:
        grant_types.append("password")
    if provider.collaborator.supports_refresh_grant:
        grant_types.append("refresh_token")

    return {
        "issuer": base_url,
        "authorization_endpoint": f"{base_url}{options.authorize_uri}",
        "token_endpoint": f"{base_url}{options.access_token_uri}",
        "revocation_endpoint": f"{base_url}{options.revoke_uri}",
        "response_types_supported": ["code", "token"],
        "grant_types_supported": grant_types,
        "token_endpoint_auth_methods_supported": ["client_secret_basic", "client_secret_post"],
        "revocation_endpoint_auth_methods_supported": ["client_secret_basic", "client_secret_post", "none"],
    }
