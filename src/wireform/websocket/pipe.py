"""Drive a websocket session with a frame-transforming pipe."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Callable, Optional

from ..errors import WebSocketClosedError, WireformError
from .frames import INTERNAL_ERROR, NORMAL_CLOSURE, Binary, Close, DataFrame, Text, WebSocketFrame
from .session import AsyncWebSocket, WebSocketState

logger = logging.getLogger(__name__)

Pipe = Callable[[AsyncIterator[DataFrame]], AsyncIterator[WebSocketFrame]]

# Inbound data frames buffered for a pipe that is not reading its input
MAX_QUEUED_FRAMES = 1024


async def run_pipe(
    ws: AsyncWebSocket,
    pipe: Pipe,
    *,
    close_grace_period: Optional[float] = None,
    max_queued_frames: int = MAX_QUEUED_FRAMES,
) -> None:
    """
    Run ``pipe`` over ``ws`` until the session is closed.

    Inbound data frames are fed to the pipe while its output is written,
    in two concurrent tasks, so the pipe may emit frames without waiting
    for input (heartbeats, merged sources).

    Termination:
        - pipe emits ``Close`` or finishes: a close frame is sent (if not
          already) and the peer gets the grace period to acknowledge
        - peer closes: the inbound iterator ends and the pipe gets the grace
          period to finish before it is cancelled
        - pipe raises: ``Close(1011)`` is sent and the error propagates
        - malformed inbound frame: ``ProtocolError`` propagates

    At most ``max_queued_frames`` inbound data frames wait for the pipe;
    further frames are dropped (with a warning) until it catches up.

    Example:
        async def echo(inbound):
            async for frame in inbound:
                yield frame

        await backend.send(basic_request.get(url).response(as_websocket_pipe(echo)))
    """
    grace = ws.close_grace_period if close_grace_period is None else close_grace_period
    inbound: asyncio.Queue[Optional[DataFrame]] = asyncio.Queue(maxsize=max_queued_frames)
    dropped = 0

    async def inbound_frames() -> AsyncIterator[DataFrame]:
        while True:
            frame = await inbound.get()
            if frame is None:
                return
            yield frame

    async def pump_inbound() -> None:
        nonlocal dropped
        try:
            while not ws.closed:
                frame = await ws.receive()
                if isinstance(frame, (Text, Binary)):
                    if inbound.full():
                        dropped += 1
                        if dropped == 1:
                            logger.warning(f"Pipe is not reading inbound frames, dropping after {max_queued_frames}")
                        continue
                    inbound.put_nowait(frame)
                elif isinstance(frame, Close):
                    logger.debug(f"Peer closed websocket with code {frame.code}")
                    return
        finally:
            if dropped:
                logger.debug(f"Dropped {dropped} inbound websocket frames")
            if inbound.full():
                inbound.get_nowait()
            inbound.put_nowait(None)

    async def pump_outbound() -> None:
        outbound = pipe(inbound_frames())
        try:
            async for frame in outbound:
                if ws.state is not WebSocketState.OPEN:
                    return
                await ws.send(frame)
                if isinstance(frame, Close):
                    return
        except WebSocketClosedError:
            # The peer closed between the state check and the send
            return
        finally:
            aclose = getattr(outbound, "aclose", None)
            if aclose is not None:
                await aclose()

    reader = asyncio.create_task(pump_inbound())
    writer = asyncio.create_task(pump_outbound())
    try:
        done, _ = await asyncio.wait({reader, writer}, return_when=asyncio.FIRST_COMPLETED)

        # The pipe may already have ended because the reader failed
        if reader in done and reader.exception() is not None:
            raise reader.exception()  # type: ignore[misc]

        if writer in done:
            error = writer.exception()
            if error is not None:
                logger.warning(f"Websocket pipe failed: {error}")
                await _send_close(ws, Close(INTERNAL_ERROR, "pipe failed"))
                raise error
            await _send_close(ws, Close(NORMAL_CLOSURE))
            await asyncio.wait({reader}, timeout=grace)
            if reader.done() and reader.exception() is not None:
                logger.debug(f"Error while waiting for close acknowledgement: {reader.exception()}")
        else:
            await asyncio.wait({writer}, timeout=grace)
            if writer.done() and writer.exception() is not None:
                raise writer.exception()  # type: ignore[misc]
            if not writer.done():
                logger.debug(f"Pipe did not finish within {grace}s after peer close, cancelling")
    finally:
        for task in (reader, writer):
            if not task.done():
                task.cancel()
        await asyncio.gather(reader, writer, return_exceptions=True)
        await ws.abort()


async def _send_close(ws: AsyncWebSocket, frame: Close) -> None:
    if ws.state is not WebSocketState.OPEN:
        return
    try:
        await ws.send(frame)
    except WireformError as err:
        logger.debug(f"Could not send close frame: {err}")
