"""
wireform - Describe HTTP requests once, send them with any backend.

Usage:
    from wireform import AiohttpBackend, RequestsBackend, as_json, basic_request

    request = basic_request.get("https://api.example.com/orders").response(as_json(list[Order]))

    with RequestsBackend.resource() as backend:
        response = backend.send(request)

    async with AiohttpBackend.resource() as backend:
        response = await backend.send(request)

    response.body  # Right([...]), Left(HttpError) or Left(DeserializationError)
"""

__version__ = "1.0.0"

from .backends import (
    AiohttpBackend,
    AsyncBackend,
    AsyncLoggingBackend,
    Deferred,
    FutureBackend,
    LoggingBackend,
    RequestsBackend,
    SyncBackend,
)
from .either import Either, Left, Right
from .errors import (
    DecodeError,
    DeserializationError,
    HttpConnectionError,
    HttpError,
    HttpTimeoutError,
    IncompleteBodyError,
    InvalidRequestError,
    ProtocolError,
    StreamClosedError,
    StreamConsumedError,
    TooManyRedirectsError,
    UnexpectedFrameError,
    UnsupportedCapabilityError,
    WebSocketClosedError,
    WireformError,
)
from .headers import Headers
from .logging_config import setup_logging
from .models.config import BackendConfig, WebSocketConfig
from .request import Request, RequestOptions, basic_request
from .response import Response, ResponseMetadata
from .response_as import (
    Capability,
    ResponseAs,
    as_binary,
    as_binary_always,
    as_either,
    as_file,
    as_file_always,
    as_json,
    as_json_always,
    as_stream,
    as_stream_always,
    as_stream_always_with,
    as_stream_with,
    as_text,
    as_text_always,
    as_websocket,
    as_websocket_always,
    as_websocket_pipe,
    as_websocket_unsafe,
    conditional,
    from_metadata,
    ignore,
)
from .streams import AsyncBodyStream, BodyStream
from .websocket import AsyncWebSocket, Binary, Close, Ping, Pong, Text, WebSocketState

__all__ = [
    "__version__",
    # Requests and responses
    "Request",
    "RequestOptions",
    "basic_request",
    "Headers",
    "Response",
    "ResponseMetadata",
    "Either",
    "Left",
    "Right",
    # Response descriptions
    "Capability",
    "ResponseAs",
    "ignore",
    "as_binary",
    "as_binary_always",
    "as_text",
    "as_text_always",
    "as_file",
    "as_file_always",
    "as_stream",
    "as_stream_always",
    "as_stream_with",
    "as_stream_always_with",
    "as_json",
    "as_json_always",
    "as_websocket",
    "as_websocket_always",
    "as_websocket_unsafe",
    "as_websocket_pipe",
    "as_either",
    "conditional",
    "from_metadata",
    # Backends
    "SyncBackend",
    "AsyncBackend",
    "Deferred",
    "RequestsBackend",
    "FutureBackend",
    "AiohttpBackend",
    "LoggingBackend",
    "AsyncLoggingBackend",
    # Streams and websockets
    "BodyStream",
    "AsyncBodyStream",
    "AsyncWebSocket",
    "WebSocketState",
    "Text",
    "Binary",
    "Ping",
    "Pong",
    "Close",
    # Config
    "BackendConfig",
    "WebSocketConfig",
    "setup_logging",
    # Errors
    "WireformError",
    "HttpConnectionError",
    "ProtocolError",
    "HttpTimeoutError",
    "IncompleteBodyError",
    "StreamClosedError",
    "StreamConsumedError",
    "DecodeError",
    "DeserializationError",
    "HttpError",
    "UnsupportedCapabilityError",
    "WebSocketClosedError",
    "UnexpectedFrameError",
    "InvalidRequestError",
    "TooManyRedirectsError",
]
