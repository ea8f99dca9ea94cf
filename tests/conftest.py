"""Shared fixtures for the core_oauth test suite.

Provides an in-memory collaborator, fixed test keys and request helpers.
"""

from typing import Any, Dict, List, Optional, Tuple
import base64
from urllib.parse import parse_qs, quote, urlsplit

import pytest

from core_oauth.exceptions import CollaboratorError
from core_oauth.oauth.collaborator import Collaborator
from core_oauth.oauth.handler import OAuth2Provider
from core_oauth.oauth.options import ProviderOptions
from core_oauth.oauth.serializer import generate_crypt_key
from core_oauth.oauth.tokens import AccessTokenBundle, TokenGrant
from core_oauth.request import OAuthRequest
from core_oauth.response import OAuthResponse

CLIENT_ID = "client-1"
CLIENT_SECRET = "client-1-secret"
OTHER_CLIENT_ID = "client-2"
OTHER_CLIENT_SECRET = "client-2-secret"
REDIRECT_URI = "https://app.example.com/callback"
SUBJECT_ID = "user-1"
SESSION_ID = "session-abc"
SIGN_KEY = "test-signing-key-0123456789abcdef0123456789"


class MemoryCollaborator(Collaborator):
    """In-memory collaborator recording every call it receives."""

    supports_password_grant = True
    supports_refresh_grant = True

    def __init__(self):
        self.clients: Dict[str, str] = {CLIENT_ID: CLIENT_SECRET, OTHER_CLIENT_ID: OTHER_CLIENT_SECRET}
        self.users: Dict[str, str] = {SUBJECT_ID: "correct-horse"}
        self.sessions: Dict[str, str] = {SESSION_ID: SUBJECT_ID}
        self.grants: Dict[str, Tuple[str, str]] = {}
        self.refresh_tokens: Dict[str, str] = {}
        self.revoked: List[Tuple[str, str, str]] = []
        self.saved_bundles: List[AccessTokenBundle] = []
        self.blocked_subjects: set = set()
        self.calls: List[str] = []

        self.fail_save_grant = False
        self.fail_remove_token = False
        self.fail_remove_grant = False
        self.fail_save_access_token = False
        self.refresh_subject_override: Optional[str] = None

    def _check_client(self, client_id: str, client_secret: str) -> None:
        if self.clients.get(client_id) != client_secret:
            raise CollaboratorError("invalid client")

    async def enforce_login(self, request, return_url):
        self.calls.append("enforce_login")
        subject_id = self.sessions.get(request.cookies.get("session", ""))
        if subject_id is None:
            return OAuthResponse.redirect(f"/login?return_to={quote(return_url, safe='')}", status_code=302)
        return subject_id

    async def authorize_form(self, request, client_id, authorize_url):
        self.calls.append("authorize_form")
        return OAuthResponse.json_document({"client_id": client_id, "authorize_url": authorize_url})

    async def save_grant(self, request, client_id, code):
        self.calls.append("save_grant")
        if self.fail_save_grant:
            raise CollaboratorError("grant store unavailable")
        subject_id = request.context.get("subject_id") or self.sessions.get(request.cookies.get("session", ""))
        self.grants[code] = (client_id, subject_id)

    async def create_access_token(self, subject_id, client_id, redirect_uri=None):
        self.calls.append("create_access_token")
        return TokenGrant(extra_data={"scope": "read"}, token_options={"token_type": "bearer"})

    async def save_access_token(self, subject_id, client_id, bundle):
        self.calls.append("save_access_token")
        if self.fail_save_access_token:
            raise CollaboratorError("token store unavailable")
        self.saved_bundles.append(bundle)
        self.refresh_tokens[bundle.refresh_token] = subject_id

    async def client_auth(self, client_id, client_secret, username, password):
        self.calls.append("client_auth")
        self._check_client(client_id, client_secret)
        if username not in self.users or self.users[username] != password:
            raise CollaboratorError("invalid username or password")
        return username

    async def refresh_token_auth(self, client_id, client_secret, refresh_token):
        self.calls.append("refresh_token_auth")
        self._check_client(client_id, client_secret)
        subject_id = self.refresh_tokens.get(refresh_token)
        if subject_id is None:
            raise CollaboratorError("refresh token revoked")
        return self.refresh_subject_override or subject_id

    async def lookup_grant(self, client_id, client_secret, code):
        self.calls.append("lookup_grant")
        self._check_client(client_id, client_secret)
        grant = self.grants.get(code)
        if grant is None or grant[0] != client_id:
            raise CollaboratorError("invalid grant")
        return grant[1]

    async def remove_grant(self, subject_id, client_id, code):
        self.calls.append("remove_grant")
        if self.fail_remove_grant:
            raise CollaboratorError("grant store unavailable")
        self.grants.pop(code, None)

    async def remove_token(self, client_id, token, token_type):
        self.calls.append("remove_token")
        if self.fail_remove_token:
            raise CollaboratorError("token store unavailable")
        self.revoked.append((client_id, token, token_type))
        self.refresh_tokens.pop(token, None)

    async def access_token(self, request, claims):
        self.calls.append("access_token")
        if claims.subject_id in self.blocked_subjects:
            return OAuthResponse.text(401, "access token revoked")
        return None


def make_request(
    method: str,
    path: str,
    query: Optional[Dict[str, str]] = None,
    body: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    cookies: Optional[Dict[str, str]] = None,
) -> OAuthRequest:
    return OAuthRequest(
        method=method,
        path=path,
        query_params=query or {},
        body=body or {},
        headers=headers or {},
        cookies=cookies or {},
    )


def basic_auth(client_id: str, client_secret: str) -> Dict[str, str]:
    raw = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()
    return {"Authorization": f"Basic {raw}"}


def split_location(location: str) -> Tuple[str, Dict[str, str], Dict[str, str]]:
    """Split a redirect into (base, query params, fragment params)."""
    parts = urlsplit(location)
    query = {k: v[0] for k, v in parse_qs(parts.query).items()}
    fragment = {k: v[0] for k, v in parse_qs(parts.fragment).items()}
    return f"{parts.scheme}://{parts.netloc}{parts.path}", query, fragment


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def crypt_key() -> str:
    return generate_crypt_key()


@pytest.fixture
def options(crypt_key) -> ProviderOptions:
    return ProviderOptions(crypt_key=crypt_key, sign_key=SIGN_KEY)


@pytest.fixture
def collaborator() -> MemoryCollaborator:
    return MemoryCollaborator()


@pytest.fixture
def provider(collaborator, options) -> OAuth2Provider:
    return OAuth2Provider(collaborator, options)
