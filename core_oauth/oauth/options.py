import os

from pydantic import BaseModel, Field, field_validator

from ..constants import (
    GRANT_CODE_BITS,
    OAUTH_ACCESS_TOKEN_URI,
    OAUTH_AUTHORIZE_URI,
    OAUTH_CRYPT_KEY,
    OAUTH_REVOKE_URI,
    OAUTH_SIGN_ALGORITHM,
    OAUTH_SIGN_KEY,
    SUPPORTED_ALGORITHMS,
    parse_grant_code_bits,
)


class ProviderOptions(BaseModel):
    """Provider configuration.

    Keys are immutable for the lifetime of the provider. Rotating them
    invalidates every outstanding token.

    Examples:
        >>> ProviderOptions(crypt_key=generate_crypt_key(), sign_key="secret")
        >>> ProviderOptions.from_env(authorize_uri="/auth/authorize")
    """

    model_config = {"frozen": True}

    crypt_key: str = Field(..., description="Base64url-encoded 32-byte token encryption key", repr=False)
    sign_key: str = Field(..., description="HMAC token signing key", repr=False)
    sign_algorithm: str = Field(default="HS256", description="HS256, HS384 or HS512")
    authorize_uri: str = Field(default="/oauth/authorize")
    access_token_uri: str = Field(default="/oauth/access_token")
    revoke_uri: str = Field(default="/oauth/revoke")
    grant_code_bits: int = Field(default=128, ge=128, multiple_of=8, description="Randomness of authorization codes")

    @field_validator("sign_algorithm")
    @classmethod
    def validate_algorithm(cls, v: str) -> str:
        if v not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"sign_algorithm must be one of {SUPPORTED_ALGORITHMS}")
        return v

    @field_validator("authorize_uri", "access_token_uri", "revoke_uri")
    @classmethod
    def validate_uri(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("endpoint paths must start with '/'")
        return v

    @classmethod
    def from_env(cls, **overrides) -> "ProviderOptions":
        """Build options from ``OAUTH_*`` environment variables. Keyword arguments win.

        The environment is read at call time so a ``.env`` loaded after import
        still applies. Import-time values from :mod:`core_oauth.constants` are
        the fallbacks.
        """
        algorithm = os.getenv("OAUTH_SIGN_ALGORITHM", OAUTH_SIGN_ALGORITHM)

        values = {
            "crypt_key": os.getenv("OAUTH_CRYPT_KEY", OAUTH_CRYPT_KEY),
            "sign_key": os.getenv("OAUTH_SIGN_KEY", OAUTH_SIGN_KEY),
            "sign_algorithm": algorithm if algorithm in SUPPORTED_ALGORITHMS else "HS256",
            "authorize_uri": os.getenv("OAUTH_AUTHORIZE_URI", OAUTH_AUTHORIZE_URI),
            "access_token_uri": os.getenv("OAUTH_ACCESS_TOKEN_URI", OAUTH_ACCESS_TOKEN_URI),
            "revoke_uri": os.getenv("OAUTH_REVOKE_URI", OAUTH_REVOKE_URI),
            "grant_code_bits": parse_grant_code_bits(os.getenv("OAUTH_GRANT_CODE_BITS", GRANT_CODE_BITS)),
        }
        values.update(overrides)
        return cls(**values)
