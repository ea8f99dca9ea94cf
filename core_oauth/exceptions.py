from typing import Optional


class OAuthException(Exception):
    """Base class for protocol exceptions mapped to HTTP responses.

    Each subclass carries the HTTP status ``code`` the request fails with. The
    ``message`` is returned to the caller as the response body, so it must never
    contain key material or whole tokens.

    - 400: client-supplied input is missing or malformed
    - 401: the client or resource owner could not be authenticated
    - 500: the collaborator failed to persist or remove state
    """

    code: int = 500

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class BadRequestException(OAuthException):
    """Request is malformed or invalid (400)."""

    code = 400


class MissingParameter(BadRequestException):
    """A required request parameter is absent (400)."""


class TokenDecodeError(BadRequestException):
    """A token could not be decoded (400)."""


class InvalidSignature(TokenDecodeError):
    """The integrity tag of a token did not verify."""


class MalformedToken(TokenDecodeError):
    """The token verified but could not be decrypted or deserialized."""


class InvalidRefreshToken(BadRequestException):
    """The token is not a refresh token issued to this client (400)."""


class SubjectMismatch(InvalidRefreshToken):
    """The collaborator resolved a different subject than the refresh token carries."""


class UnauthorizedException(OAuthException):
    """Authentication failed or is not possible (401)."""

    code = 401


class UnsupportedGrant(UnauthorizedException):
    """The collaborator does not support the requested grant type."""


class AuthenticationFailed(UnauthorizedException):
    """The collaborator rejected the supplied credentials."""


class StorageFailure(OAuthException):
    """The collaborator failed to persist or remove state (500)."""

    code = 500


class ConfigurationError(OAuthException):
    """The provider or a token bundle was configured incorrectly (500)."""

    code = 500


class CollaboratorError(Exception):
    """Raised by collaborator implementations to reject a request.

    The provider maps it to the status the current operation prescribes and
    returns ``message`` to the caller.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


__all__ = [
    "OAuthException",
    "BadRequestException",
    "MissingParameter",
    "TokenDecodeError",
    "InvalidSignature",
    "MalformedToken",
    "InvalidRefreshToken",
    "SubjectMismatch",
    "UnauthorizedException",
    "UnsupportedGrant",
    "AuthenticationFailed",
    "StorageFailure",
    "ConfigurationError",
    "CollaboratorError",
]
