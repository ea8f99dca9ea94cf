from typing import Any, Dict, Optional, Tuple
import base64
import binascii
from urllib.parse import urlencode

from ..constants import HDR_AUTHORIZATION
from ..exceptions import MissingParameter
from ..request import OAuthRequest


def parse_basic_auth(auth_header: Optional[str]) -> Optional[Tuple[str, str]]:
    """Parse HTTP Basic client authentication.

    Args:
        auth_header (Optional[str]): Authorization header value.

    Returns:
        Optional[Tuple[str, str]]: (client_id, client_secret) or None when the
        header is absent or malformed.
    """
    if not auth_header:
        return None

    parts = auth_header.split(" ")
    if len(parts) != 2 or parts[0] != "Basic":
        return None

    try:
        raw = base64.b64decode(parts[1], validate=True).decode("utf-8")
    except (binascii.Error, ValueError):
        return None

    if ":" not in raw:
        return None

    client_id, client_secret = raw.split(":", 1)
    return client_id, client_secret


def get_client_credentials(request: OAuthRequest) -> Tuple[str, str]:
    """Resolve client credentials from the body, falling back to HTTP Basic.

    Raises:
        MissingParameter: If neither source supplies both values.
    """
    client_id = request.body.get("client_id")
    client_secret = request.body.get("client_secret")

    if client_id and client_secret:
        return str(client_id), str(client_secret)

    credentials = parse_basic_auth(request.header(HDR_AUTHORIZATION))
    if not credentials:
        raise MissingParameter("client_id and client_secret required")

    return credentials


def get_bearer_token(request: OAuthRequest) -> Optional[str]:
    """Extract an access token from the query string or the Authorization header.

    Auth sources (in order):
        - ``access_token`` query parameter
        - ``Authorization: Bearer <token>``
    """
    token = request.query_params.get("access_token")
    if token:
        return token

    authz = request.header(HDR_AUTHORIZATION) or ""
    if authz.startswith("Bearer "):
        return authz[len("Bearer ") :].strip() or None

    return None


def append_to_url(url: str, separator: str, params: Dict[str, Any]) -> str:
    """Append url-encoded ``params`` to ``url`` after ``separator`` (``?``, ``&`` or ``#``)."""
    clean = {k: v for k, v in params.items() if v is not None}
    return f"{url}{separator}{urlencode(clean)}"


def query_separator(url: str) -> str:
    return "&" if "?" in url else "?"
