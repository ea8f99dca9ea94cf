from typing import Any, Optional

from ..constants import (
    TOKEN_TYPE_ACCESS,
    TOKEN_TYPE_REFRESH,
    TOKEN_TYPES,
    X_USER_ID,
)
from ..exceptions import (
    AuthenticationFailed,
    BadRequestException,
    CollaboratorError,
    InvalidRefreshToken,
    MalformedToken,
    MissingParameter,
    StorageFailure,
    SubjectMismatch,
    UnauthorizedException,
    UnsupportedGrant,
)
from ..logging import get_logger
from ..request import OAuthRequest
from ..response import OAuthResponse
from .collaborator import Collaborator
from .options import ProviderOptions
from .serializer import SecureSerializer, random_string
from .tokens import AccessTokenBundle, TokenFactory, TokenGrant
from .tools import append_to_url, get_client_credentials, parse_basic_auth, query_separator

log = get_logger(__name__)


def _short(value: Optional[str]) -> Optional[str]:
    """Trim a code or token for log output."""
    return (value[:8] + "...") if value else None


def _check_redirect_uri(redirect_uri: str) -> None:
    # RFC 6749 3.1.2: the redirection endpoint URI MUST NOT include a fragment
    if "#" in redirect_uri:
        raise BadRequestException("redirect_uri must not contain a fragment")


class AuthorizationServer:
    """OAuth 2.0 grant flows.

    Each endpoint coroutine takes an :class:`OAuthRequest` and returns an
    :class:`OAuthResponse`, or raises an :class:`core_oauth.exceptions.OAuthException`
    that the dispatcher turns into a plain-text error response.

    Endpoints:
        - ``oauth_authorize``: GET authorize, start the authorization request
        - ``oauth_authorize_decision``: POST authorize, approve or deny
        - ``oauth_token``: POST access_token, code, password and refresh grants
        - ``oauth_revoke``: POST revoke, token revocation
    """

    def __init__(
        self,
        options: ProviderOptions,
        collaborator: Collaborator,
        serializer: SecureSerializer,
        tokens: TokenFactory,
    ):
        self.options = options
        self.collaborator = collaborator
        self.serializer = serializer
        self.tokens = tokens

    async def oauth_authorize(self, request: OAuthRequest) -> OAuthResponse:
        """OAuth 2.0 authorization request.

        Route:
            GET /oauth/authorize

        Query:
            client_id, redirect_uri, response_type?, state?, scope?

        Behavior:
            - Requires client_id and redirect_uri.
            - Asks the collaborator to enforce login and resolve the subject.
            - Appends the subject to the authorize URL as an encrypted, signed
              ``x_user_id`` parameter so it cannot be forged between the login
              and the approval steps.
            - Hands the URL to the collaborator to render the approval form.
        """
        client_id = request.query_params.get("client_id")
        redirect_uri = request.query_params.get("redirect_uri")

        if not client_id or not redirect_uri:
            raise MissingParameter("client_id and redirect_uri required")

        _check_redirect_uri(redirect_uri)

        log.debug(
            "Received OAuth authorization request",
            details={"client_id": client_id, "redirect_uri": redirect_uri, "response_type": request.query_params.get("response_type")},
        )

        # The approval form POSTs back to this URL, so it carries every original parameter
        params = {k: v for k, v in request.query_params.items() if k != X_USER_ID}
        return_url = append_to_url(request.path, "?", params)

        try:
            login = await self.collaborator.enforce_login(request, return_url)
        except CollaboratorError as e:
            raise UnauthorizedException(e.message)

        if isinstance(login, OAuthResponse):
            log.debug("Resource owner not logged in, returning login response", details={"client_id": client_id})
            return login

        if login is None or login == "":
            raise UnauthorizedException("login required")

        authorize_url = append_to_url(return_url, "&", {X_USER_ID: self.serializer.encode(str(login))})

        return await self.collaborator.authorize_form(request, client_id, authorize_url)

    async def oauth_authorize_decision(self, request: OAuthRequest) -> OAuthResponse:
        """OAuth 2.0 authorization decision.

        Route:
            POST /oauth/authorize

        Form:
            client_id, redirect_uri, response_type=code|token, state?, x_user_id, allow?

        Behavior:
            - response_type is validated first. An unknown value is rejected even
              when the request was denied.
            - Without an ``allow`` field the user agent is sent back with
              ``error=access_denied``.
            - ``token`` (implicit grant): the token bundle is returned in the
              redirect URL fragment.
            - ``code``: a single-use grant code is saved by the collaborator and
              returned in the redirect URL query.
        """
        client_id = request.param("client_id")
        redirect_uri = request.param("redirect_uri")
        response_type = request.param("response_type") or "code"
        state = request.param("state")
        x_user_id = request.param(X_USER_ID)

        if response_type not in ("code", "token"):
            raise BadRequestException("invalid response_type requested")

        if not client_id or not redirect_uri:
            raise MissingParameter("client_id and redirect_uri required")

        _check_redirect_uri(redirect_uri)

        separator = "#" if response_type == "token" else query_separator(redirect_uri)

        if "allow" not in request.body:
            log.info("Resource owner denied authorization", details={"client_id": client_id})
            return OAuthResponse.redirect(append_to_url(redirect_uri, separator, {"error": "access_denied", "state": state}))

        if response_type == "token":
            subject_id = self._decode_subject(x_user_id)

            bundle = await self.create_access_token(subject_id, client_id, redirect_uri)

            log.debug("Issued implicit grant token", details={"client_id": client_id, "subject_id": subject_id})

            return OAuthResponse.redirect(append_to_url(redirect_uri, separator, {**bundle.model_dump(), "state": state}))

        # The approval form normally echoes x_user_id; when it does, it must verify
        if x_user_id:
            request.context["subject_id"] = self._decode_subject(x_user_id)

        code = random_string(self.options.grant_code_bits)

        try:
            await self.collaborator.save_grant(request, client_id, code)
        except CollaboratorError as e:
            log.error("Failed to save authorization code", details={"client_id": client_id, "error": e.message})
            raise StorageFailure(e.message)

        log.debug("Created new authorization code", details={"client_id": client_id, "code": _short(code)})

        # pass back anti-CSRF opaque value
        return OAuthResponse.redirect(append_to_url(redirect_uri, separator, {"code": code, "state": state}))

    async def oauth_token(self, request: OAuthRequest) -> OAuthResponse:
        """Exchange authorization codes, passwords and refresh tokens for access.

        Route:
            POST /oauth/access_token

        Client authentication:
            client_id + client_secret form fields, or HTTP Basic.

        Grants:
            - password: username, password
            - refresh_token: refresh_token (rotated, single-use)
            - anything else: authorization code exchange with ``code``

        Returns:
            OAuthResponse: 200 with the JSON token bundle.
        """
        client_id, client_secret = get_client_credentials(request)
        grant_type = request.body.get("grant_type")

        if grant_type == "password":
            bundle = await self._password_grant(request, client_id, client_secret)
            return OAuthResponse.json_document(bundle.model_dump())

        if grant_type == "refresh_token":
            bundle = await self._refresh_token_grant(request, client_id, client_secret)
            return OAuthResponse.json_document(bundle.model_dump())

        return await self._authorization_code_grant(request, client_id, client_secret)

    async def _password_grant(self, request: OAuthRequest, client_id: str, client_secret: str) -> AccessTokenBundle:
        if not self.collaborator.supports_password_grant:
            raise UnsupportedGrant("client authentication not supported")

        try:
            subject_id = await self.collaborator.client_auth(
                client_id, client_secret, request.body.get("username"), request.body.get("password")
            )
        except CollaboratorError as e:
            log.warning("Resource owner password authentication failed", details={"client_id": client_id})
            raise AuthenticationFailed(e.message)

        return await self.create_access_token(subject_id, client_id)

    async def _refresh_token_grant(self, request: OAuthRequest, client_id: str, client_secret: str) -> AccessTokenBundle:
        if not self.collaborator.supports_refresh_grant:
            raise UnsupportedGrant("refresh_token not supported")

        refresh_token = request.body.get("refresh_token")
        if not refresh_token:
            raise MissingParameter("refresh_token required")

        # Decode before anything is asked of the collaborator
        rt = self.tokens.decode(refresh_token)

        if not rt.is_refresh() or rt.client_id != client_id:
            log.warning(
                "Refresh token validation failed",
                details={"client_id": client_id, "refresh_client": rt.client_id, "is_refresh": rt.is_refresh()},
            )
            raise InvalidRefreshToken("invalid refresh token")

        try:
            subject_id = await self.collaborator.refresh_token_auth(client_id, client_secret, refresh_token)
        except CollaboratorError as e:
            raise AuthenticationFailed(e.message)

        if str(subject_id) != rt.subject_id:
            log.warning("Refresh token subject does not match", details={"client_id": client_id})
            raise SubjectMismatch("invalid refresh token")

        try:
            await self.collaborator.remove_token(client_id, refresh_token, TOKEN_TYPE_REFRESH)
        except CollaboratorError as e:
            log.error("Failed to remove rotated refresh token", details={"client_id": client_id, "error": e.message})
            raise StorageFailure("failed to refresh token")

        return await self.create_access_token(rt.subject_id, client_id)

    async def _authorization_code_grant(self, request: OAuthRequest, client_id: str, client_secret: str) -> OAuthResponse:
        code = request.body.get("code")
        if not code:
            raise MissingParameter("code required")

        try:
            subject_id = await self.collaborator.lookup_grant(client_id, client_secret, code)
        except CollaboratorError as e:
            log.warning("Authorization code lookup failed", details={"client_id": client_id, "code": _short(code)})
            raise BadRequestException(e.message)

        bundle = await self.create_access_token(subject_id, client_id, request.body.get("redirect_uri"))

        async def remove_grant() -> None:
            try:
                await self.collaborator.remove_grant(str(subject_id), client_id, code)
            except CollaboratorError as e:
                log.warning("Failed to remove exchanged authorization code", details={"client_id": client_id, "error": e.message})

        response = OAuthResponse.json_document(bundle.model_dump())
        return response.add_background_task(remove_grant)

    async def oauth_revoke(self, request: OAuthRequest) -> OAuthResponse:
        """Token revocation endpoint (RFC 7009).

        Route:
            POST /oauth/revoke

        Form Fields:
            token (required): The token to revoke
            token_type_hint (optional): access_token, refresh_token

        Refresh tokens are recognised by their payload and revoked as refresh
        tokens whatever the hint says.

        Returns:
            OAuthResponse: 200 ``{"success": true}``
        """
        token = request.body.get("token")
        if not token:
            raise MissingParameter("token required")

        payload = self.tokens.decode(token)

        if payload.is_refresh():
            token_type = TOKEN_TYPE_REFRESH
        else:
            hint = request.body.get("token_type_hint")
            token_type = hint if hint in TOKEN_TYPES else TOKEN_TYPE_ACCESS

        client_id = self._revoking_client(request) or payload.client_id
        if client_id != payload.client_id:
            log.warning("Token revocation by foreign client", details={"client_id": client_id, "token_client": payload.client_id})
            raise BadRequestException("token was not issued to this client")

        try:
            await self.collaborator.remove_token(client_id, token, token_type)
        except CollaboratorError as e:
            raise BadRequestException(e.message)

        log.debug("Token revoked", details={"client_id": client_id, "type": token_type})

        return OAuthResponse.json_document({"success": True})

    async def create_access_token(self, subject_id: Any, client_id: str, redirect_uri: Optional[str] = None) -> AccessTokenBundle:
        """Issue a token bundle with the collaborator's extra data and options."""
        subject_id = str(subject_id)

        try:
            grant = await self.collaborator.create_access_token(subject_id, client_id, redirect_uri)
        except CollaboratorError as e:
            raise StorageFailure(e.message)

        grant = grant or TokenGrant()
        bundle = self.tokens.issue(subject_id, client_id, grant.extra_data, grant.token_options)

        try:
            await self.collaborator.save_access_token(subject_id, client_id, bundle)
        except Exception as e:
            log.warning("Failed to save access token", details={"client_id": client_id, "error": str(e)})

        return bundle

    def _decode_subject(self, x_user_id: Optional[str]) -> str:
        if not x_user_id:
            raise MissingParameter("x_user_id required")

        subject_id = self.serializer.decode(x_user_id)
        if not isinstance(subject_id, str):
            raise MalformedToken("malformed token: x_user_id is not a subject")

        return subject_id

    @staticmethod
    def _revoking_client(request: OAuthRequest) -> Optional[str]:
        client_id = request.body.get("client_id")
        if client_id:
            return str(client_id)

        credentials = parse_basic_auth(request.header("authorization"))
        return credentials[0] if credentials else None
