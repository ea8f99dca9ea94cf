"""Collaborator interface.

The provider stores nothing. Authentication of resource owners and clients,
grant persistence and token revocation lists all belong to the host
application, which implements :class:`Collaborator` and passes an instance to
:class:`core_oauth.oauth.handler.OAuth2Provider`.

Every method is a coroutine and is awaited exactly once per request. To reject a
request, raise :class:`core_oauth.exceptions.CollaboratorError`. The provider
turns it into the status code the current operation prescribes and returns the
message to the caller.

Example:

    .. code-block:: python

        class MyCollaborator(Collaborator):
            supports_refresh_grant = True

            async def lookup_grant(self, client_id, client_secret, code):
                grant = await db.grants.get(code)
                if not grant or grant.client_id != client_id:
                    raise CollaboratorError("invalid code")
                return grant.user_id
            ...
"""

from abc import ABC, abstractmethod
from typing import Optional, Union

from ..exceptions import UnsupportedGrant
from ..request import OAuthRequest
from ..response import OAuthResponse
from .tokens import AccessTokenBundle, AccessTokenClaims, TokenGrant


class Collaborator(ABC):
    """Host application contract for the OAuth 2.0 provider.

    Attributes:
        supports_password_grant (bool): The collaborator implements
            :meth:`client_auth`. Enables ``grant_type=password``.
        supports_refresh_grant (bool): The collaborator implements
            :meth:`refresh_token_auth`. Enables ``grant_type=refresh_token``.
    """

    supports_password_grant: bool = False
    supports_refresh_grant: bool = False

    @abstractmethod
    async def enforce_login(self, request: OAuthRequest, return_url: str) -> Union[str, OAuthResponse]:
        """Ensure the resource owner is logged in.

        Returns:
            str | OAuthResponse: The authenticated subject id, or a response
            (typically a redirect to a login page that comes back to
            ``return_url``) which is sent to the user agent unchanged.
        """

    @abstractmethod
    async def authorize_form(self, request: OAuthRequest, client_id: str, authorize_url: str) -> OAuthResponse:
        """Render the approval page.

        The form must POST to ``authorize_url``, which already carries every
        original parameter plus the encrypted ``x_user_id``. Include a field named
        ``allow`` to approve. Omit it to deny.
        """

    @abstractmethod
    async def save_grant(self, request: OAuthRequest, client_id: str, code: str) -> None:
        """Persist a new authorization code for the logged-in subject."""

    async def create_access_token(
        self, subject_id: str, client_id: str, redirect_uri: Optional[str] = None
    ) -> TokenGrant:
        """Return the extra data and token options for a new token bundle."""
        return TokenGrant()

    async def save_access_token(self, subject_id: str, client_id: str, bundle: AccessTokenBundle) -> None:
        """Record an issued token bundle. Failures are logged and ignored."""
        return None

    async def client_auth(self, client_id: str, client_secret: str, username: str, password: str) -> str:
        """Authenticate resource owner credentials for the password grant.

        Returns:
            str: The subject id.
        """
        raise UnsupportedGrant("client authentication not supported")

    async def refresh_token_auth(self, client_id: str, client_secret: str, refresh_token: str) -> str:
        """Validate a refresh token against the revocation list.

        Returns:
            str: The subject id the refresh token currently belongs to.
        """
        raise UnsupportedGrant("refresh_token not supported")

    @abstractmethod
    async def lookup_grant(self, client_id: str, client_secret: str, code: str) -> str:
        """Validate a client and an authorization code.

        Must reject codes that were already exchanged.

        Returns:
            str: The subject id the code was issued for.
        """

    @abstractmethod
    async def remove_grant(self, subject_id: str, client_id: str, code: str) -> None:
        """Delete an exchanged authorization code."""

    @abstractmethod
    async def remove_token(self, client_id: str, token: str, token_type: str) -> None:
        """Revoke a token. ``token_type`` is ``access_token`` or ``refresh_token``."""

    async def access_token(self, request: OAuthRequest, claims: AccessTokenClaims) -> Optional[OAuthResponse]:
        """Inspect a validated bearer token.

        Returns:
            OAuthResponse | None: A response to stop the request (for example a
            401 for a revoked token), or None to let it continue.
        """
        return None
