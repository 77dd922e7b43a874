"""Exception hierarchy for wireform.

Backends translate library exceptions (requests, aiohttp) into these types at
the transport boundary, chaining the original with ``raise ... from err``.
A non-2xx status is never an exception here: default decoding turns it into a
``Left`` value instead.
"""

from __future__ import annotations

from typing import Any


class WireformError(Exception):
    """Base class for every error raised by wireform."""


class HttpConnectionError(WireformError, ConnectionError):
    """Transport-level failure: refused connection, TLS failure, reset socket."""


class ProtocolError(HttpConnectionError):
    """Malformed status line, bad HTTP framing or an invalid websocket frame."""


class HttpTimeoutError(WireformError, TimeoutError):
    """A connect or read deadline was exceeded."""


class IncompleteBodyError(WireformError):
    """The response body stream (or the file it was written to) ended early."""


class DecodeError(WireformError):
    """A mapping or codec function failed on an already-fetched body."""


class DeserializationError(DecodeError):
    """The body could not be parsed into the requested type."""

    def __init__(self, body: str, cause: Exception) -> None:
        super().__init__(f"Failed to deserialize body: {cause}")
        self.body = body
        self.cause = cause


class HttpError(WireformError):
    """Raised by ``or_fail()`` when the response carried a non-2xx status."""

    def __init__(self, body: Any, status: int) -> None:
        super().__init__(f"HTTP {status}: {body!r}")
        self.body = body
        self.status = status


class UnsupportedCapabilityError(WireformError):
    """The backend cannot provide a capability the response description needs."""


class StreamConsumedError(WireformError):
    """A single-consumption body stream was iterated a second time."""


class StreamClosedError(IncompleteBodyError):
    """A body stream was read after it was closed or cancelled."""


class WebSocketClosedError(WireformError):
    """Send or receive on a websocket session that is closing or closed."""

    def __init__(self, message: str = "WebSocket is closed", code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class UnexpectedFrameError(WireformError):
    """A websocket frame of a different type than requested was received."""


class InvalidRequestError(WireformError, ValueError):
    """The request cannot be sent as described (bad URL, unusable body)."""


class TooManyRedirectsError(WireformError):
    """The redirect chain exceeded the configured maximum."""
