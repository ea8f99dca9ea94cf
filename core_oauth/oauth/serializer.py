"""Secure token codec.

Tokens are JSON values encrypted as a compact JWE (``dir`` / ``A256GCM``) and the
ciphertext is then carried inside an HMAC-signed JWT. Decoding verifies the JWT
signature before the JWE is ever deserialized, so no ciphertext from an
unauthenticated source reaches the decryption code.

Wire format::

    <jwt header>.<jwt payload {"dat": "<compact JWE>"}>.<hmac signature>

The output only contains base64url characters and dots and is safe to use in
query strings, fragments and headers.
"""

from typing import Any
import base64
import json
import secrets

import jwt
from jwcrypto.jwe import JWE
from jwcrypto.jwk import JWK

from ..constants import SUPPORTED_ALGORITHMS
from ..exceptions import ConfigurationError, InvalidSignature, MalformedToken
from ..logging import get_logger

log = get_logger(__name__)

# JWT claim carrying the compact JWE
DATA_CLAIM = "dat"

JWE_PROTECTED_HEADER = {"alg": "dir", "enc": "A256GCM"}


def _b64pad(v: str) -> str:
    """Add missing padding to base64url strings for safe decoding."""
    return v + "=" * (-len(v) % 4)


def get_encryption_key(crypt_key: str) -> JWK:
    """Create the JWK used for token encryption.

    Args:
        crypt_key (str): Base64url-encoded 32-byte AES key.

    Returns:
        JWK: JSON Web Key for AES-256-GCM encryption.

    Raises:
        ConfigurationError: If the key is missing or does not decode to exactly 32 bytes.
    """
    if not crypt_key:
        raise ConfigurationError("crypt_key is required")

    try:
        key_bytes = base64.urlsafe_b64decode(_b64pad(crypt_key))
    except (ValueError, TypeError) as e:
        raise ConfigurationError(f"crypt_key is not valid base64url: {e}")

    length = len(key_bytes)
    if length != 32:
        raise ConfigurationError(f"crypt_key must be 32 bytes (base64url-decoded), got {length} bytes")

    return JWK(kty="oct", k=base64.urlsafe_b64encode(key_bytes).decode().rstrip("="))


def generate_crypt_key() -> str:
    """Generate a new base64url crypt key suitable for ``OAUTH_CRYPT_KEY``."""
    return base64.urlsafe_b64encode(secrets.token_bytes(32)).decode().rstrip("=")


def random_string(bits: int = 128) -> str:
    """Return a URL-safe string carrying ``bits`` bits of cryptographic randomness.

    Used for authorization grant codes.
    """
    if bits <= 0 or bits % 8:
        raise ValueError("bits must be a positive multiple of 8")
    return secrets.token_urlsafe(bits // 8)


class SecureSerializer:
    """Encrypt-then-sign serializer for structured token payloads.

    Args:
        crypt_key (str): Base64url-encoded 32-byte encryption key.
        sign_key (str): HMAC signing secret.
        algorithm (str): HMAC JWT algorithm, one of HS256, HS384, HS512.

    Examples:
        >>> serializer = SecureSerializer(generate_crypt_key(), "sign-secret")
        >>> token = serializer.encode(["u1", "c1", 1700000000000, None])
        >>> serializer.decode(token)
        ['u1', 'c1', 1700000000000, None]
    """

    def __init__(self, crypt_key: str, sign_key: str, algorithm: str = "HS256"):
        if not sign_key:
            raise ConfigurationError("sign_key is required")
        if algorithm not in SUPPORTED_ALGORITHMS:
            raise ConfigurationError(f"Unsupported signing algorithm: {algorithm}")

        self._enc_key = get_encryption_key(crypt_key)
        self._sign_key = sign_key
        self._algorithm = algorithm

    @property
    def algorithm(self) -> str:
        return self._algorithm

    def encode(self, value: Any) -> str:
        """Serialize, encrypt and sign ``value``.

        A fresh IV is generated for every call, so encoding the same value twice
        produces different tokens.
        """
        jwe_token = JWE(json.dumps(value, separators=(",", ":")), JWE_PROTECTED_HEADER)
        jwe_token.add_recipient(self._enc_key)
        ciphertext = jwe_token.serialize(compact=True)

        return jwt.encode({DATA_CLAIM: ciphertext}, self._sign_key, algorithm=self._algorithm)

    def decode(self, token: str) -> Any:
        """Verify, decrypt and deserialize a token produced by :meth:`encode`.

        Raises:
            InvalidSignature: If the token is not a JWT signed with our key.
            MalformedToken: If the verified ciphertext cannot be decrypted or parsed.
        """
        if not token or not isinstance(token, str):
            raise InvalidSignature("invalid token: empty")

        try:
            claims = jwt.decode(
                token,
                self._sign_key,
                algorithms=[self._algorithm],
                options={"verify_signature": True, "require": [DATA_CLAIM]},
            )
        except jwt.InvalidTokenError as e:
            raise InvalidSignature(f"invalid token signature: {e}")

        ciphertext = claims.get(DATA_CLAIM)
        if not isinstance(ciphertext, str):
            raise MalformedToken("malformed token: missing payload")

        try:
            jwe_token = JWE()
            jwe_token.deserialize(ciphertext, key=self._enc_key)
            return json.loads(jwe_token.payload.decode("utf-8"))
        except Exception as e:
            log.debug("Failed to decrypt verified token", details={"error": str(e)})
            raise MalformedToken("malformed token: unable to decrypt payload")
