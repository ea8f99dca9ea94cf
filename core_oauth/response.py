from typing import Any, Awaitable, Callable, Dict, List, Optional
from enum import Enum
import json

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import (
    CONTENT_TYPE_JSON,
    CONTENT_TYPE_TEXT,
    HDR_CACHE_CONTROL,
    HDR_CONTENT_TYPE,
    HDR_LOCATION,
)
from .exceptions import OAuthException
from .logging import get_logger

log = get_logger(__name__)

BackgroundTask = Callable[[], Awaitable[None]]


class HttpStatus(int, Enum):
    """HTTP status codes for OAuth responses."""

    # Success
    OK = 200

    # Redirection
    FOUND = 302
    SEE_OTHER = 303

    # Client Error
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403

    # Server Error
    INTERNAL_SERVER_ERROR = 500


class OAuthResponse(BaseModel):
    """Transport-neutral HTTP response description.

    Every endpoint of the provider returns one of these. The transport writes
    ``status_code``, ``headers`` and ``body`` to the wire and then runs the
    ``background_tasks``.

    Example Recommended Usage:

        response = await provider.handle(request)
        if response is not None:
            send(response.status_code, response.headers, response.body)
            await response.run_background()

    Attributes:
        status_code (int): HTTP status code
        body (str): Response body content as string
        headers (Dict[str, str]): HTTP headers
        background_tasks (List[BackgroundTask]): Coroutine factories to run after
            the response has been sent. Never serialized.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    status_code: int = Field(..., description="HTTP status code")
    body: str = Field(default="", description="Response body content as string")
    headers: Dict[str, str] = Field(default_factory=dict, description="HTTP headers")
    background_tasks: List[BackgroundTask] = Field(default_factory=list, exclude=True)

    @field_validator("status_code", mode="before")
    @classmethod
    def validate_status_code(cls, v):
        """Validate that status code is a valid HTTP status code."""
        if not isinstance(v, int) or v < 100 or v > 599:
            raise ValueError(f"Invalid HTTP status code: {v}. Must be between 100-599")
        return int(v)

    @field_validator("body", mode="before")
    @classmethod
    def validate_body_is_string(cls, v):
        if v is None:
            return ""
        if not isinstance(v, str):
            raise ValueError("Body must be a string")
        return v

    def set_header(self, name: str, value: str) -> "OAuthResponse":
        """Set a header on the response.

        Returns:
            OAuthResponse: Self for method chaining
        """
        self.headers[str(name)] = str(value)
        return self

    def add_background_task(self, task: BackgroundTask) -> "OAuthResponse":
        self.background_tasks.append(task)
        return self

    @property
    def location(self) -> Optional[str]:
        return self.headers.get(HDR_LOCATION)

    def json_body(self) -> Any:
        """Parse the body as JSON."""
        return json.loads(self.body) if self.body else None

    async def run_background(self) -> None:
        """Run the deferred tasks in order.

        A failing task is logged and does not prevent the remaining tasks from running.
        """
        for task in self.background_tasks:
            try:
                await task()
            except Exception as e:
                log.error("Background task failed", details={"task": getattr(task, "__name__", repr(task)), "error": str(e)})

    @classmethod
    def text(cls, status_code: int, message: str) -> "OAuthResponse":
        """Plain-text response. Used for every error the provider returns."""
        return cls(status_code=status_code, body=message, headers={HDR_CONTENT_TYPE: CONTENT_TYPE_TEXT})

    @classmethod
    def json_document(cls, data: Any, status_code: int = HttpStatus.OK) -> "OAuthResponse":
        """JSON response. Token responses are never cached."""
        return cls(
            status_code=status_code,
            body=json.dumps(data),
            headers={HDR_CONTENT_TYPE: CONTENT_TYPE_JSON, HDR_CACHE_CONTROL: "no-store"},
        )

    @classmethod
    def redirect(cls, url: str, status_code: int = HttpStatus.SEE_OTHER) -> "OAuthResponse":
        return cls(status_code=status_code, headers={HDR_LOCATION: url})

    @classmethod
    def from_exception(cls, e: OAuthException) -> "OAuthResponse":
        return cls.text(e.code, e.message)
