from typing import Any, Dict, Optional

import structlog

from ..constants import HDR_X_CORRELATION_ID
from ..exceptions import BadRequestException, CollaboratorError, OAuthException
from ..logging import get_logger, set_correlation_id
from ..request import ActionHandlerRoutes, OAuthRequest, RouteEndpoint
from ..response import HttpStatus, OAuthResponse
from .auth_server import AuthorizationServer
from .collaborator import Collaborator
from .options import ProviderOptions
from .serializer import SecureSerializer
from .tokens import AccessTokenBundle, AccessTokenClaims, TokenFactory, TokenPayload
from .tools import get_bearer_token

log = get_logger(__name__)


class OAuth2Provider:
    """OAuth 2.0 authorization server.

    Owns the three protocol endpoints and the bearer token filter. Everything
    stateful is delegated to the :class:`Collaborator`.

    Args:
        collaborator (Collaborator): Host application implementation.
        options (Optional[ProviderOptions]): Configuration. Read from the
            ``OAUTH_*`` environment variables when omitted.
        **overrides: Option values that replace the ones in ``options`` or the
            environment, e.g. ``authorize_uri="/auth/authorize"``.

    Raises:
        ConfigurationError: If the encryption key is not a base64url-encoded
            32-byte key.

    Example:

        .. code-block:: python

            provider = OAuth2Provider(MyCollaborator(), crypt_key=key, sign_key=secret)

            response = await provider.handle(request)
            if response is None:
                response = await provider.login(request)
    """

    def __init__(self, collaborator: Collaborator, options: Optional[ProviderOptions] = None, **overrides):
        if options is None:
            options = ProviderOptions.from_env(**overrides)
        elif overrides:
            options = ProviderOptions(**{**options.model_dump(), **overrides})

        self.options = options
        self.collaborator = collaborator
        self.serializer = SecureSerializer(options.crypt_key, options.sign_key, options.sign_algorithm)
        self.tokens = TokenFactory(self.serializer)
        self.server = AuthorizationServer(options, collaborator, self.serializer, self.tokens)

        self.endpoints: ActionHandlerRoutes = {
            f"GET:{options.authorize_uri}": RouteEndpoint(self.server.oauth_authorize, name="authorize"),
            f"POST:{options.authorize_uri}": RouteEndpoint(self.server.oauth_authorize_decision, name="authorize_decision"),
            f"POST:{options.access_token_uri}": RouteEndpoint(self.server.oauth_token, name="access_token"),
            f"POST:{options.revoke_uri}": RouteEndpoint(self.server.oauth_revoke, name="revoke"),
        }

        log.debug("OAuth provider initialized", details={"routes": sorted(self.endpoints)})

    def handles(self, method: str, path: str) -> bool:
        """Check whether ``method`` and ``path`` address one of the provider endpoints."""
        return f"{method.upper()}:{path}" in self.endpoints

    async def handle(self, request: OAuthRequest) -> Optional[OAuthResponse]:
        """Dispatch a request to the matching OAuth endpoint.

        Returns:
            Optional[OAuthResponse]: The endpoint response, or None if the
            request is not for an OAuth route and should pass through.
        """
        endpoint = self.endpoints.get(request.route_key)
        if endpoint is None:
            return None

        set_correlation_id(request.header(HDR_X_CORRELATION_ID))

        with structlog.contextvars.bound_contextvars(operation=endpoint.name):
            try:
                return await endpoint.handler(request)

            except OAuthException as e:
                if e.code >= HttpStatus.INTERNAL_SERVER_ERROR:
                    log.error("OAuth request failed", details={"status": e.code, "error": e.message})
                else:
                    log.info("OAuth request rejected", details={"status": e.code, "error": e.message})
                return OAuthResponse.from_exception(e)

            except CollaboratorError as e:
                log.error("Unhandled collaborator error", details={"error": e.message})
                return OAuthResponse.text(HttpStatus.INTERNAL_SERVER_ERROR, e.message)

            except Exception as e:
                log.error("Unexpected error in OAuth request", details={"error": str(e)}, exc_info=True)
                return OAuthResponse.text(HttpStatus.INTERNAL_SERVER_ERROR, "internal server error")

    async def login(self, request: OAuthRequest) -> Optional[OAuthResponse]:
        """Bearer token filter for protected resources.

        Requests without a token pass through untouched. A valid access token
        is decoded, its claims are stored as ``request.context["oauth"]`` and the
        collaborator gets the last word.

        Returns:
            Optional[OAuthResponse]: A 400 for an undecodable token or a refresh
            token, the collaborator's response if it vetoes the request, else None.
        """
        token = get_bearer_token(request)
        if not token:
            return None

        set_correlation_id(request.header(HDR_X_CORRELATION_ID))

        with structlog.contextvars.bound_contextvars(operation="bearer"):
            try:
                payload = self.tokens.decode(token)
                if payload.is_refresh():
                    raise BadRequestException("invalid access token")
            except OAuthException as e:
                log.info("Bearer token rejected", details={"error": e.message})
                return OAuthResponse.from_exception(e)

            claims = AccessTokenClaims.from_payload(payload)
            request.context["oauth"] = claims

            return await self.collaborator.access_token(request, claims)

    def generate_access_token(
        self,
        subject_id: Any,
        client_id: str,
        extra_data: Any = None,
        token_options: Optional[Dict[str, Any]] = None,
    ) -> AccessTokenBundle:
        """Issue a token bundle outside of any grant flow, e.g. for first-party logins."""
        return self.tokens.issue(subject_id, client_id, extra_data, token_options)

    def decode_token(self, token: str) -> TokenPayload:
        return self.tokens.decode(token)
