"""Inbound request structures.

The protocol engine never touches a transport object directly. Transports (the
FastAPI binding, a Lambda handler, a test) build an :class:`OAuthRequest` and hand
it to :class:`core_oauth.oauth.handler.OAuth2Provider`.

Example:
    Basic request construction::

        from core_oauth.request import OAuthRequest

        request = OAuthRequest(
            method="GET",
            path="/oauth/authorize",
            query_params={"client_id": "c1", "redirect_uri": "https://a.example/cb"},
        )

        request.route_key  # "GET:/oauth/authorize"
        request.url        # "/oauth/authorize?client_id=c1&redirect_uri=..."
"""

from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OAuthRequest(BaseModel):
    """A transport-neutral HTTP request.

    Attributes:
        method (str): HTTP method, upper case.
        path (str): Request path without the query string.
        query_params (Dict[str, str]): Single-value query string parameters.
        body (Dict[str, Any]): Parsed form or JSON body.
        headers (Dict[str, str]): Request headers. Keys are lower-cased.
        cookies (Dict[str, str]): Request cookies.
        context (Dict[str, Any]): Per-request scratch space. The bearer check
            stores the decoded claims under ``"oauth"``.
        native (Any): The transport's own request object, if any. Collaborators
            may use it to read sessions or render templates.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    method: str = Field(..., description="HTTP method")
    path: str = Field(..., description="Request path without query string")
    query_params: Dict[str, str] = Field(default_factory=dict, description="Query string parameters")
    body: Dict[str, Any] = Field(default_factory=dict, description="Parsed request body")
    headers: Dict[str, str] = Field(default_factory=dict, description="Request headers (lower-case keys)")
    cookies: Dict[str, str] = Field(default_factory=dict, description="Request cookies")
    context: Dict[str, Any] = Field(default_factory=dict, description="Per-request context")
    native: Any = Field(default=None, exclude=True, description="Transport request object")

    @field_validator("method", mode="before")
    @classmethod
    def validate_method(cls, v: str) -> str:
        return (v or "").upper()

    @field_validator("headers", mode="before")
    @classmethod
    def validate_headers(cls, v: Optional[Dict[str, str]]) -> Dict[str, str]:
        return {str(k).lower(): str(val) for k, val in (v or {}).items()}

    @property
    def route_key(self) -> str:
        """Return the ``"{METHOD}:{path}"`` key used for endpoint lookup."""
        return f"{self.method}:{self.path}"

    @property
    def url(self) -> str:
        """Return the path and query string of this request."""
        if not self.query_params:
            return self.path
        return f"{self.path}?{urlencode(self.query_params)}"

    def param(self, name: str) -> Optional[str]:
        """Return a parameter from the query string, falling back to the body."""
        value = self.query_params.get(name) or self.body.get(name)
        return str(value) if value else None

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


class RouteEndpoint:
    """
    Represents an endpoint for a specific OAuth route, encapsulating the handler
    coroutine and the metadata the dispatcher needs.

    Args:
        method (Callable[..., Any]): The handler coroutine for the route.
        name (str): Operation name used in logs.
    """

    def __init__(self, method: Callable[..., Any], **kwargs):
        self.handler = method
        self.name: str = kwargs.get("name", getattr(method, "__name__", "endpoint"))


ActionHandlerRoutes = Dict[str, RouteEndpoint]
