"""
Evaluation of response descriptions against a raw response.

This is the only place where a ``ResponseAs`` tree meets body bytes, for
blocking and asyncio backends alike. The order is always:

1. metadata (status, headers) is already known
2. ``resolve()`` picks the leaf, running ``from_metadata`` selections once
3. the leaf consumes the raw body (exactly one pass over the bytes)
4. mapping functions run over the produced value, innermost first

Ownership: the raw body is closed here on every path, except when the
result is a stream or websocket handed to the caller, which then owns it.
"""

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any, Optional

from .errors import UnsupportedCapabilityError
from .response import ResponseMetadata
from .response_as import (
    ResponseAs,
    ResponseAsBytes,
    ResponseAsFile,
    ResponseAsIgnore,
    ResponseAsStream,
    ResponseAsWebSocket,
    ResponseAsWebSocketPipe,
    resolve,
)
from .streams import AsyncBodyStream, AsyncRawBody, BodyStream, RawBody, write_to_file, write_to_file_async

if TYPE_CHECKING:
    from .websocket.session import AsyncWebSocket

logger = logging.getLogger(__name__)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def evaluate(response_as: ResponseAs[Any], metadata: ResponseMetadata, raw: RawBody) -> Any:
    """Produce the body value for a blocking backend."""
    try:
        resolved = resolve(response_as, metadata)
        leaf = resolved.leaf

        if isinstance(leaf, ResponseAsStream) and leaf.consumer is None:
            stream = BodyStream(raw)
            try:
                return resolved.finish(stream, metadata)
            except BaseException:
                stream.close()
                raise

        if isinstance(leaf, ResponseAsIgnore):
            for _ in raw.iter_chunks():
                pass
            value: Any = None
        elif isinstance(leaf, ResponseAsBytes):
            value = b"".join(raw.iter_chunks())
        elif isinstance(leaf, ResponseAsFile):
            value = write_to_file(raw.iter_chunks(), leaf.path)
        elif isinstance(leaf, ResponseAsStream):
            with BodyStream(raw) as stream:
                value = leaf.consumer(stream)  # type: ignore[misc]
        elif isinstance(leaf, (ResponseAsWebSocket, ResponseAsWebSocketPipe)):
            raise UnsupportedCapabilityError("Websockets require an asyncio backend")
        else:
            raise TypeError(f"Unknown response description: {leaf!r}")
    except BaseException:
        raw.close()
        raise

    raw.close()
    return resolved.finish(value, metadata)


async def evaluate_async(
    response_as: ResponseAs[Any],
    metadata: ResponseMetadata,
    raw: AsyncRawBody,
    websocket: Optional[AsyncWebSocket] = None,
) -> Any:
    """
    Produce the body value for an asyncio backend.

    ``websocket`` is the session opened for an upgraded connection, if any.
    It is closed here unless the result hands it to the caller.
    """
    from .websocket.pipe import run_pipe

    handed_over = False
    try:
        resolved = resolve(response_as, metadata)
        leaf = resolved.leaf

        if isinstance(leaf, ResponseAsStream) and leaf.consumer is None:
            stream = AsyncBodyStream(raw)
            try:
                return resolved.finish(stream, metadata)
            except BaseException:
                stream.close()
                raise

        if isinstance(leaf, ResponseAsWebSocket) and leaf.handler is None:
            if websocket is None:
                raise UnsupportedCapabilityError("Response is not a websocket upgrade")
            handed_over = True
            try:
                return resolved.finish(websocket, metadata)
            except BaseException:
                handed_over = False
                raise

        if isinstance(leaf, ResponseAsIgnore):
            async for _ in raw.iter_chunks():
                pass
            value: Any = None
        elif isinstance(leaf, ResponseAsBytes):
            value = b"".join([chunk async for chunk in raw.iter_chunks()])
        elif isinstance(leaf, ResponseAsFile):
            value = await write_to_file_async(raw.iter_chunks(), leaf.path)
        elif isinstance(leaf, ResponseAsStream):
            async with AsyncBodyStream(raw) as stream:
                value = await _maybe_await(leaf.consumer(stream))  # type: ignore[misc]
        elif isinstance(leaf, ResponseAsWebSocket):
            if websocket is None:
                raise UnsupportedCapabilityError("Response is not a websocket upgrade")
            try:
                value = await _maybe_await(leaf.handler(websocket))  # type: ignore[misc]
            finally:
                await websocket.close()
        elif isinstance(leaf, ResponseAsWebSocketPipe):
            if websocket is None:
                raise UnsupportedCapabilityError("Response is not a websocket upgrade")
            value = await run_pipe(websocket, leaf.pipe)
        else:
            raise TypeError(f"Unknown response description: {leaf!r}")
    except BaseException:
        raw.close()
        raise
    finally:
        if websocket is not None and not handed_over and not websocket.closed:
            await websocket.abort()

    raw.close()
    return resolved.finish(value, metadata)
