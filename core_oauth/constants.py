import os


# Token keys
OAUTH_CRYPT_KEY = os.getenv("OAUTH_CRYPT_KEY", "")  # 32-byte base64url
OAUTH_SIGN_KEY = os.getenv("OAUTH_SIGN_KEY", "")

OAUTH_SIGN_ALGORITHM = os.getenv("OAUTH_SIGN_ALGORITHM", "HS256")
# Validate algorithm is supported
SUPPORTED_ALGORITHMS = ["HS256", "HS384", "HS512"]
if OAUTH_SIGN_ALGORITHM not in SUPPORTED_ALGORITHMS:
    OAUTH_SIGN_ALGORITHM = "HS256"

# Endpoint paths
OAUTH_AUTHORIZE_URI = os.getenv("OAUTH_AUTHORIZE_URI", "/oauth/authorize")
OAUTH_ACCESS_TOKEN_URI = os.getenv("OAUTH_ACCESS_TOKEN_URI", "/oauth/access_token")
OAUTH_REVOKE_URI = os.getenv("OAUTH_REVOKE_URI", "/oauth/revoke")

DEFAULT_GRANT_CODE_BITS = 128


def parse_grant_code_bits(value) -> int:
    """Safe integer conversion. Anything below 128 bits or not a whole number of bytes falls back to the default."""
    try:
        bits = int(value)
    except (ValueError, TypeError):
        return DEFAULT_GRANT_CODE_BITS
    if bits < DEFAULT_GRANT_CODE_BITS or bits % 8:
        return DEFAULT_GRANT_CODE_BITS
    return bits


GRANT_CODE_BITS = parse_grant_code_bits(os.getenv("OAUTH_GRANT_CODE_BITS", "128"))

# Marker stored in the extra field of every refresh token
REFRESH_TOKEN_EXTRA = "refresh"

TOKEN_TYPE_ACCESS = "access_token"
TOKEN_TYPE_REFRESH = "refresh_token"
TOKEN_TYPES = {TOKEN_TYPE_ACCESS, TOKEN_TYPE_REFRESH}

# Bundle keys the token factory owns
RESERVED_TOKEN_FIELDS = frozenset({"access_token", "refresh_token"})

# Encrypted subject id carried from the login step to the approval step
X_USER_ID = "x_user_id"

HDR_AUTHORIZATION = "authorization"
HDR_CONTENT_TYPE = "Content-Type"
HDR_LOCATION = "Location"
HDR_CACHE_CONTROL = "Cache-Control"
HDR_X_CORRELATION_ID = "x-correlation-id"

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_TEXT = "text/plain; charset=utf-8"
