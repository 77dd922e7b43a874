"""Low-level websocket session with an explicit open/closing/closed state machine."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from enum import Enum
from types import TracebackType
from typing import Optional, Protocol

from ..errors import ProtocolError, UnexpectedFrameError, WebSocketClosedError, WireformError
from .frames import NORMAL_CLOSURE, Binary, Close, DataFrame, Ping, Pong, Text, WebSocketFrame

logger = logging.getLogger(__name__)


class WebSocketState(str, Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class FrameTransport(Protocol):
    """
    Frame-level connection a session runs on.

    Implementations translate library errors into wireform errors and raise
    ``ProtocolError`` for frames that cannot be parsed.
    """

    async def send_frame(self, frame: WebSocketFrame) -> None: ...

    async def receive_frame(self) -> WebSocketFrame: ...

    async def close(self) -> None: ...


class AsyncWebSocket:
    """
    A websocket session: frame-level send and receive over a ``FrameTransport``.

    State machine:
        OPEN --send Close--> CLOSING --receive Close--> CLOSED
        OPEN --receive Close--> (echo Close) --> CLOSED
        any --ProtocolError / abort()--> CLOSED

    Only one task may receive at a time. Data frames cannot be sent once a
    close frame has gone out or come in.

    Example:
        response = await backend.send(basic_request.get(url).response(as_websocket_unsafe()))
        async with response.body as ws:
            await ws.send_text("hello")
            reply = await ws.receive_text()
    """

    def __init__(
        self,
        transport: FrameTransport,
        *,
        auto_pong: bool = True,
        close_grace_period: float = 5.0,
    ) -> None:
        """
        Initialize the session.

        Args:
            transport: Connected frame transport
            auto_pong: Answer received pings; disable when the transport does it itself
            close_grace_period: Seconds to wait for the peer's close acknowledgement
        """
        self._transport = transport
        self._auto_pong = auto_pong
        self.close_grace_period = close_grace_period
        self._state = WebSocketState.OPEN
        self._close_code: Optional[int] = None
        self._transport_closed = False

    @property
    def state(self) -> WebSocketState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is WebSocketState.OPEN

    @property
    def closed(self) -> bool:
        return self._state is WebSocketState.CLOSED

    @property
    def close_code(self) -> Optional[int]:
        """Code of the close frame that ended the session, if any."""
        return self._close_code

    async def send(self, frame: WebSocketFrame) -> None:
        """
        Send one frame. Sending ``Close`` moves the session to CLOSING.

        Raises:
            WebSocketClosedError: A close frame was already sent or received
        """
        if self._state is not WebSocketState.OPEN:
            raise WebSocketClosedError(f"Cannot send on a {self._state.value} websocket", self._close_code)
        if isinstance(frame, Close):
            self._state = WebSocketState.CLOSING
            self._close_code = frame.code
        try:
            await self._transport.send_frame(frame)
        except ProtocolError:
            await self.abort()
            raise

    async def send_text(self, text: str) -> None:
        await self.send(Text(text))

    async def send_binary(self, data: bytes) -> None:
        await self.send(Binary(data))

    async def ping(self, payload: bytes = b"") -> None:
        await self.send(Ping(payload))

    async def pong(self, payload: bytes = b"") -> None:
        await self.send(Pong(payload))

    async def receive(self) -> WebSocketFrame:
        """
        Receive the next frame of any type, including control frames.

        A received ``Close`` is echoed if the session was open and ends the
        session; it is still returned so callers can inspect the code.

        Raises:
            WebSocketClosedError: The session is already closed
            ProtocolError: The peer sent an invalid frame (session is closed)
        """
        if self._state is WebSocketState.CLOSED:
            raise WebSocketClosedError("WebSocket is closed", self._close_code)
        try:
            frame = await self._transport.receive_frame()
        except ProtocolError:
            logger.warning("Malformed websocket frame, closing session")
            await self.abort()
            raise

        if isinstance(frame, Close):
            if self._state is WebSocketState.OPEN:
                self._state = WebSocketState.CLOSING
                try:
                    await self._transport.send_frame(frame.echo())
                except WireformError as err:
                    logger.debug(f"Could not echo close frame: {err}")
            self._close_code = frame.code
            await self.abort()
            return frame

        if isinstance(frame, Ping) and self._auto_pong and self._state is WebSocketState.OPEN:
            await self._transport.send_frame(Pong(frame.payload))
        return frame

    async def receive_data(self) -> DataFrame:
        """
        Receive the next text or binary frame, skipping control frames.

        Raises:
            WebSocketClosedError: The peer closed the session
        """
        while True:
            frame = await self.receive()
            if isinstance(frame, (Text, Binary)):
                return frame
            if isinstance(frame, Close):
                raise WebSocketClosedError(f"WebSocket closed by peer ({frame.code})", frame.code)

    async def receive_text(self) -> str:
        frame = await self.receive_data()
        if not isinstance(frame, Text):
            raise UnexpectedFrameError("Expected a text frame, got binary")
        return frame.payload

    async def receive_binary(self) -> bytes:
        frame = await self.receive_data()
        if not isinstance(frame, Binary):
            raise UnexpectedFrameError("Expected a binary frame, got text")
        return frame.payload

    async def close(self, code: int = NORMAL_CLOSURE, reason: str = "") -> None:
        """
        Close the session with the closing handshake.

        Sends a close frame if none was sent yet, then waits up to
        ``close_grace_period`` seconds for the peer to acknowledge, discarding
        any data frames that arrive meanwhile. Idempotent.
        """
        if self._state is WebSocketState.CLOSED:
            return
        try:
            if self._state is WebSocketState.OPEN:
                await self.send(Close(code, reason))
            await asyncio.wait_for(self._await_close(), self.close_grace_period)
        except asyncio.TimeoutError:
            logger.debug(f"No close acknowledgement within {self.close_grace_period}s")
        except WireformError as err:
            logger.debug(f"Error during close handshake: {err}")
        finally:
            await self.abort()

    async def _await_close(self) -> None:
        while self._state is not WebSocketState.CLOSED:
            await self.receive()

    async def abort(self) -> None:
        """Drop the connection without a handshake. Idempotent."""
        self._state = WebSocketState.CLOSED
        if not self._transport_closed:
            self._transport_closed = True
            await self._transport.close()

    def __aiter__(self) -> AsyncIterator[DataFrame]:
        return self._iter_data()

    async def _iter_data(self) -> AsyncIterator[DataFrame]:
        while not self.closed:
            try:
                yield await self.receive_data()
            except WebSocketClosedError:
                return

    async def __aenter__(self) -> AsyncWebSocket:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        await self.close()
