"""Websocket frame types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

NORMAL_CLOSURE = 1000
GOING_AWAY = 1001
PROTOCOL_ERROR = 1002
NO_STATUS_RECEIVED = 1005
ABNORMAL_CLOSURE = 1006
INTERNAL_ERROR = 1011

# Codes a peer may report but an endpoint must never put on the wire
RESERVED_CLOSE_CODES = frozenset({NO_STATUS_RECEIVED, ABNORMAL_CLOSURE, 1015})


@dataclass(frozen=True)
class Text:
    payload: str
    final: bool = True


@dataclass(frozen=True)
class Binary:
    payload: bytes
    final: bool = True


@dataclass(frozen=True)
class Ping:
    payload: bytes = b""


@dataclass(frozen=True)
class Pong:
    payload: bytes = b""


@dataclass(frozen=True)
class Close:
    code: int = NORMAL_CLOSURE
    reason: str = ""

    def echo(self) -> Close:
        """The close frame to send back when this one is received."""
        if self.code in RESERVED_CLOSE_CODES:
            return Close(NORMAL_CLOSURE)
        return Close(self.code)


DataFrame = Union[Text, Binary]
ControlFrame = Union[Ping, Pong, Close]
WebSocketFrame = Union[Text, Binary, Ping, Pong, Close]
