from typing import Any, Dict, Optional
import time
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field

from ..constants import REFRESH_TOKEN_EXTRA, RESERVED_TOKEN_FIELDS
from ..exceptions import ConfigurationError, MalformedToken
from ..logging import get_logger
from .serializer import SecureSerializer

log = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class TokenPayload(BaseModel):
    """Decoded token contents.

    Tokens carry an ordered tuple ``[subject_id, client_id, issued_at, extra]``.
    ``extra`` is application data for access tokens and the ``"refresh"`` marker
    for refresh tokens.
    """

    subject_id: str = Field(..., description="Subject (resource owner) identifier")
    client_id: str = Field(..., description="Client ID the token was issued to")
    issued_at: int = Field(..., description="Issue time as UNIX epoch milliseconds")
    extra: Any = Field(None, description="Application data, or the refresh marker")

    def is_refresh(self) -> bool:
        """Check if the token is a refresh token."""
        return self.extra == REFRESH_TOKEN_EXTRA

    @property
    def grant_date(self) -> datetime:
        return datetime.fromtimestamp(self.issued_at / 1000, tz=timezone.utc)

    def to_list(self) -> list:
        return [self.subject_id, self.client_id, self.issued_at, self.extra]

    @classmethod
    def from_list(cls, data: Any) -> "TokenPayload":
        """Build a payload from a decoded tuple.

        Raises:
            MalformedToken: If ``data`` is not a 4-tuple of the expected types.
        """
        if not isinstance(data, list) or len(data) != 4:
            raise MalformedToken("malformed token: unexpected payload shape")

        subject_id, client_id, issued_at, extra = data
        if not isinstance(issued_at, int) or subject_id is None or client_id is None:
            raise MalformedToken("malformed token: unexpected payload fields")

        return cls(subject_id=str(subject_id), client_id=str(client_id), issued_at=issued_at, extra=extra)


class AccessTokenClaims(BaseModel):
    """Claims attached to a request that presented a valid bearer token."""

    subject_id: str
    client_id: str
    extra_data: Any = None
    issued_at: datetime

    @classmethod
    def from_payload(cls, payload: TokenPayload) -> "AccessTokenClaims":
        return cls(
            subject_id=payload.subject_id,
            client_id=payload.client_id,
            extra_data=payload.extra,
            issued_at=payload.grant_date,
        )


class TokenGrant(BaseModel):
    """What a collaborator contributes to a new token bundle.

    Attributes:
        extra_data (Any): Application data embedded in the access token.
        token_options (Dict[str, Any]): Extra fields merged into the bundle,
            e.g. ``token_type`` or ``expires_in``. Must not contain
            ``access_token`` or ``refresh_token``.
    """

    extra_data: Any = None
    token_options: Dict[str, Any] = Field(default_factory=dict)


class AccessTokenBundle(BaseModel):
    """Token endpoint response document (RFC 6749 Section 5.1).

    Additional fields from :class:`TokenGrant.token_options` are kept as extras.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    access_token: str = Field(description="The access token issued by the authorization server")
    refresh_token: str = Field(description="The refresh token for obtaining new access tokens")


class TokenFactory:
    """Builds access/refresh token pairs with a :class:`SecureSerializer`."""

    def __init__(self, serializer: SecureSerializer):
        self.serializer = serializer

    def issue(
        self,
        subject_id: Any,
        client_id: str,
        extra_data: Any = None,
        token_options: Optional[Dict[str, Any]] = None,
    ) -> AccessTokenBundle:
        """Issue a new token bundle.

        Both tokens share the same ``issued_at``. The refresh token always
        carries the refresh marker in place of ``extra_data``.

        Raises:
            ConfigurationError: If ``token_options`` tries to set a reserved field.
        """
        token_options = dict(token_options or {})

        collisions = RESERVED_TOKEN_FIELDS & set(token_options)
        if collisions:
            log.error("token_options collide with reserved fields", details={"fields": sorted(collisions)})
            raise ConfigurationError(f"token_options cannot override {', '.join(sorted(collisions))}")

        # An access token carrying the marker would be accepted as a refresh token
        if extra_data == REFRESH_TOKEN_EXTRA:
            raise ConfigurationError(f"extra_data cannot be {REFRESH_TOKEN_EXTRA!r}")

        issued_at = _now_ms()
        subject = str(subject_id)

        access = TokenPayload(subject_id=subject, client_id=client_id, issued_at=issued_at, extra=extra_data)
        refresh = TokenPayload(subject_id=subject, client_id=client_id, issued_at=issued_at, extra=REFRESH_TOKEN_EXTRA)

        return AccessTokenBundle(
            **token_options,
            access_token=self.serializer.encode(access.to_list()),
            refresh_token=self.serializer.encode(refresh.to_list()),
        )

    def decode(self, token: str) -> TokenPayload:
        """Decode and validate a token issued by :meth:`issue`."""
        return TokenPayload.from_list(self.serializer.decode(token))
