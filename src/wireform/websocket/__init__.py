"""Websocket sessions and pipes."""

from .frames import (
    INTERNAL_ERROR,
    NORMAL_CLOSURE,
    Binary,
    Close,
    DataFrame,
    Ping,
    Pong,
    Text,
    WebSocketFrame,
)
from .pipe import Pipe, run_pipe
from .session import AsyncWebSocket, FrameTransport, WebSocketState

__all__ = [
    "AsyncWebSocket",
    "Binary",
    "Close",
    "DataFrame",
    "FrameTransport",
    "INTERNAL_ERROR",
    "NORMAL_CLOSURE",
    "Pipe",
    "Ping",
    "Pong",
    "Text",
    "WebSocketFrame",
    "WebSocketState",
    "run_pipe",
]
