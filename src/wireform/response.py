"""Response values returned by backends."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, Optional, TypeVar

from .headers import Headers

if TYPE_CHECKING:
    from .request import Request

T = TypeVar("T")

SWITCHING_PROTOCOLS = 101


def charset_from_content_type(content_type: Optional[str]) -> Optional[str]:
    """Extract the ``charset`` parameter from a Content-Type value."""
    if not content_type:
        return None
    for part in content_type.split(";")[1:]:
        part = part.strip()
        if part.lower().startswith("charset="):
            return part.split("=", 1)[1].strip().strip("\"'") or None
    return None


class _StatusChecks:
    """Status classification shared by metadata and full responses."""

    status: int
    headers: Headers

    @property
    def is_informational(self) -> bool:
        return 100 <= self.status < 200

    @property
    def is_switching_protocols(self) -> bool:
        return self.status == SWITCHING_PROTOCOLS

    @property
    def is_success(self) -> bool:
        return 200 <= self.status < 300

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status < 400

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self.status < 600

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("Content-Type")

    @property
    def content_length(self) -> Optional[int]:
        value = self.headers.get("Content-Length")
        if value is None or not value.strip().isdigit():
            return None
        return int(value)

    @property
    def charset(self) -> Optional[str]:
        return charset_from_content_type(self.content_type)


@dataclass(frozen=True)
class ResponseMetadata(_StatusChecks):
    """
    What is known about a response before its body is read.

    Attributes:
        status: HTTP status code (200, 404, 101 for an accepted websocket upgrade)
        headers: Response headers
        status_text: Reason phrase sent by the server
    """

    status: int
    headers: Headers = field(default_factory=Headers)
    status_text: str = ""


@dataclass(frozen=True)
class Response(_StatusChecks, Generic[T]):
    """
    Immutable response produced by a backend send.

    Attributes:
        body: The value produced by the request's response description
        status: HTTP status code
        headers: Response headers
        status_text: Reason phrase sent by the server
        request: The request that produced this response
        history: Metadata of redirect responses followed on the way, oldest first
    """

    body: T
    status: int
    headers: Headers = field(default_factory=Headers)
    status_text: str = ""
    request: Optional[Request[Any]] = field(default=None, repr=False, compare=False)
    history: tuple[ResponseMetadata, ...] = ()

    @classmethod
    def from_metadata(
        cls,
        body: T,
        metadata: ResponseMetadata,
        request: Optional[Request[Any]] = None,
        history: tuple[ResponseMetadata, ...] = (),
    ) -> Response[T]:
        """Build a response from metadata and an already-evaluated body."""
        return cls(
            body=body,
            status=metadata.status,
            headers=metadata.headers,
            status_text=metadata.status_text,
            request=request,
            history=history,
        )

    @property
    def metadata(self) -> ResponseMetadata:
        return ResponseMetadata(status=self.status, headers=self.headers, status_text=self.status_text)
