"""
Immutable request definitions and their builder methods.

Every builder method returns a new ``Request``; the original is never
modified, so a base request can be shared and sent concurrently.

Example:
    base = basic_request.header("Accept", "application/json").read_timeout(5)

    orders = base.get("https://api.example.com/orders").response(as_json(list[Order]))
    response = backend.send(orders)
"""

from __future__ import annotations

import base64
import json
from collections.abc import AsyncIterable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Generic, Optional, TypeVar, Union

from .errors import InvalidRequestError
from .headers import Headers
from .response_as import ResponseAs, as_text

if TYPE_CHECKING:
    from .backends.base import AsyncBackend, SyncBackend

T = TypeVar("T")
U = TypeVar("U")

DEFAULT_TEXT_CONTENT_TYPE = "text/plain"
DEFAULT_BINARY_CONTENT_TYPE = "application/octet-stream"
JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class NoBody:
    """The request has no body."""


@dataclass(frozen=True)
class BytesBody:
    data: bytes
    default_content_type: str = DEFAULT_BINARY_CONTENT_TYPE


@dataclass(frozen=True)
class StringBody:
    text: str
    encoding: str = "utf-8"
    default_content_type: str = DEFAULT_TEXT_CONTENT_TYPE

    def encoded(self) -> bytes:
        return self.text.encode(self.encoding)


@dataclass(frozen=True)
class FileBody:
    """A file uploaded from disk. It is opened by the backend during the send."""

    path: Path
    default_content_type: str = DEFAULT_BINARY_CONTENT_TYPE


@dataclass(frozen=True)
class StreamBody:
    """
    A lazily produced upload.

    ``chunks`` is a sync or async iterable of bytes. The backend pulls a
    chunk only when the transport is ready to write it. Only async backends
    accept async iterables.
    """

    chunks: Union[Iterable[bytes], AsyncIterable[bytes]] = field(compare=False)
    default_content_type: str = DEFAULT_BINARY_CONTENT_TYPE


RequestBody = Union[NoBody, BytesBody, StringBody, FileBody, StreamBody]


@dataclass(frozen=True)
class RequestOptions:
    """
    Per-request transport options.

    Attributes:
        read_timeout: Seconds between socket reads; overrides the backend default
        follow_redirects: Follow 3xx responses; None uses the backend default
        max_redirects: Longest redirect chain; None uses the backend default
    """

    read_timeout: Optional[float] = None
    follow_redirects: Optional[bool] = None
    max_redirects: Optional[int] = None


@dataclass(frozen=True)
class Request(Generic[T]):
    """
    Description of one HTTP request and of how to read its response.

    Build requests from ``basic_request`` rather than calling the
    constructor directly.
    """

    method: str = "GET"
    uri: Optional[str] = None
    headers: Headers = field(default_factory=Headers)
    body: RequestBody = field(default_factory=NoBody)
    response_as: ResponseAs[T] = field(default_factory=as_text)  # type: ignore[assignment]
    options: RequestOptions = field(default_factory=RequestOptions)

    # Target

    def with_method(self, method: str, uri: str) -> Request[T]:
        return replace(self, method=method.upper(), uri=uri)

    def get(self, uri: str) -> Request[T]:
        return self.with_method("GET", uri)

    def head(self, uri: str) -> Request[T]:
        return self.with_method("HEAD", uri)

    def post(self, uri: str) -> Request[T]:
        return self.with_method("POST", uri)

    def put(self, uri: str) -> Request[T]:
        return self.with_method("PUT", uri)

    def patch(self, uri: str) -> Request[T]:
        return self.with_method("PATCH", uri)

    def delete(self, uri: str) -> Request[T]:
        return self.with_method("DELETE", uri)

    # Headers

    def header(self, name: str, value: str) -> Request[T]:
        """Set a header. An existing header with the same name (any case) is replaced."""
        return replace(self, headers=self.headers.set(name, value))

    def with_headers(self, headers: Mapping[str, str]) -> Request[T]:
        """Set several headers at once, each replacing any previous value."""
        return replace(self, headers=self.headers.merge(headers))

    def content_type(self, content_type: str, encoding: Optional[str] = None) -> Request[T]:
        if encoding:
            content_type = f"{content_type}; charset={encoding}"
        return self.header("Content-Type", content_type)

    def auth_bearer(self, token: str) -> Request[T]:
        return self.header("Authorization", f"Bearer {token}")

    def auth_basic(self, username: str, password: str) -> Request[T]:
        encoded = base64.b64encode(f"{username}:{password}".encode()).decode()
        return self.header("Authorization", f"Basic {encoded}")

    # Body

    def with_body(
        self,
        value: Union[str, bytes, Path, Iterable[bytes], AsyncIterable[bytes]],
        encoding: str = "utf-8",
    ) -> Request[T]:
        """
        Attach a request body.

        ``str`` is sent as text in ``encoding``, ``bytes`` as-is, a ``Path``
        as a file upload, and any other (async) iterable of bytes as a
        streamed upload.
        """
        if isinstance(value, str):
            return self._set_body(StringBody(value, encoding), charset=encoding)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return self._set_body(BytesBody(bytes(value)))
        if isinstance(value, Path):
            return self._set_body(FileBody(value))
        if isinstance(value, (Iterable, AsyncIterable)):
            return self._set_body(StreamBody(value))
        raise InvalidRequestError(f"Cannot use {type(value).__name__} as a request body")

    def stream_body(self, chunks: Union[Iterable[bytes], AsyncIterable[bytes]]) -> Request[T]:
        """Attach a lazily produced upload."""
        return self._set_body(StreamBody(chunks))

    def json_body(self, value: Any) -> Request[T]:
        """Serialize ``value`` as JSON. Pydantic models use their own serializer."""
        if hasattr(value, "model_dump_json"):
            text = value.model_dump_json()
        else:
            text = json.dumps(value)
        request = replace(self, body=StringBody(text, "utf-8", JSON_CONTENT_TYPE))
        if "Content-Type" in self.headers:
            return request
        return request.header("Content-Type", JSON_CONTENT_TYPE)

    def _set_body(self, body: RequestBody, charset: Optional[str] = None) -> Request[T]:
        request = replace(self, body=body)
        if "Content-Type" in self.headers:
            return request
        content_type = body.default_content_type  # type: ignore[union-attr]
        if charset:
            content_type = f"{content_type}; charset={charset}"
        return request.header("Content-Type", content_type)

    # Response handling and options

    def response(self, response_as: ResponseAs[U]) -> Request[U]:
        """Replace the response description."""
        return replace(self, response_as=response_as)  # type: ignore[return-value]

    def read_timeout(self, seconds: Optional[float]) -> Request[T]:
        return replace(self, options=replace(self.options, read_timeout=seconds))

    def follow_redirects(self, follow: bool = True) -> Request[T]:
        return replace(self, options=replace(self.options, follow_redirects=follow))

    def max_redirects(self, count: int) -> Request[T]:
        return replace(self, options=replace(self.options, max_redirects=count))

    # Sending

    def send(self, backend: Union[SyncBackend, AsyncBackend]) -> Any:
        """Send with ``backend``; returns whatever container the backend uses."""
        return backend.send(self)

    def require_uri(self) -> str:
        if not self.uri:
            raise InvalidRequestError("Request has no target URI")
        return self.uri

    def show(self) -> str:
        """One-line description for logs, with credentials masked."""
        parts = [f"{self.method} {self.uri}"]
        if self.headers:
            parts.append(f"headers: {self.headers.show()}")
        parts.append(f"response as: {self.response_as.show()}")
        return ", ".join(parts)


basic_request: Request[Any] = Request()
