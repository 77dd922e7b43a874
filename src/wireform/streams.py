"""
Lazy byte-chunk streams for request and response bodies.

Response side: backends wrap the transport's body in a raw body object
(``RawBody``/``AsyncRawBody``). The evaluator either drains it, buffers it,
writes it to a file, or hands it to the caller inside a single-use
``BodyStream``/``AsyncBodyStream``.

Request side: ``sync_payload``/``async_payload`` turn a ``RequestBody`` into
something the transport library pulls from lazily, so a streamed upload is
never held in memory as a whole.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator
from contextlib import asynccontextmanager, contextmanager
from pathlib import Path
from types import TracebackType
from typing import IO, Any, Optional, Protocol

from .errors import (
    HttpTimeoutError,
    IncompleteBodyError,
    InvalidRequestError,
    StreamClosedError,
    StreamConsumedError,
)
from .request import BytesBody, FileBody, NoBody, RequestBody, StreamBody, StringBody

logger = logging.getLogger(__name__)


class RawBody(Protocol):
    """Response body as exposed by a blocking transport."""

    def iter_chunks(self) -> Iterator[bytes]:
        """Yield body chunks in wire order. May be called at most once."""
        ...

    def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        ...


class AsyncRawBody(Protocol):
    """Response body as exposed by an asyncio transport."""

    def iter_chunks(self) -> AsyncIterator[bytes]:
        """Yield body chunks in wire order. May be called at most once."""
        ...

    def close(self) -> None:
        """Release the connection. Safe to call more than once."""
        ...


class EmptyRawBody:
    """A body with no bytes, used for websocket upgrades and HEAD-like responses."""

    def iter_chunks(self) -> Iterator[bytes]:
        return iter(())

    def close(self) -> None:
        pass


class AsyncEmptyRawBody:
    """Async counterpart of ``EmptyRawBody``."""

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        return
        yield  # pragma: no cover

    def close(self) -> None:
        pass


class BodyStream:
    """
    Single-use iterator over a response body from a blocking backend.

    The stream owns the connection: it is released when iteration finishes,
    fails, or when ``close()`` is called. Use it as a context manager when
    the body may not be read to the end.

    Example:
        response = backend.send(basic_request.get(url).response(as_stream_always()))
        with response.body as stream:
            for chunk in stream:
                sink.write(chunk)
    """

    def __init__(self, raw: RawBody) -> None:
        self._raw = raw
        self._consumed = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> Iterator[bytes]:
        if self._consumed:
            raise StreamConsumedError("Body stream can only be consumed once")
        if self._closed:
            raise StreamClosedError("Body stream was closed before it was read")
        self._consumed = True
        return self._iterate()

    def _iterate(self) -> Iterator[bytes]:
        try:
            for chunk in self._raw.iter_chunks():
                if self._closed:
                    raise StreamClosedError("Body stream was closed while being read")
                yield chunk
        finally:
            self.close()

    def read(self) -> bytes:
        """Read the remaining body into memory."""
        return b"".join(self)

    def close(self) -> None:
        """Stop reading and release the underlying connection."""
        if not self._closed:
            self._closed = True
            self._raw.close()

    cancel = close

    def __enter__(self) -> BodyStream:
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.close()


class AsyncBodyStream:
    """
    Single-use async iterator over a response body from an asyncio backend.

    Cancelling the task that is reading the stream, or calling ``aclose()``,
    releases the connection.

    Example:
        response = await backend.send(basic_request.get(url).response(as_stream_always()))
        async with response.body as stream:
            async for chunk in stream:
                await sink.write(chunk)
    """

    def __init__(self, raw: AsyncRawBody) -> None:
        self._raw = raw
        self._consumed = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self._consumed:
            raise StreamConsumedError("Body stream can only be consumed once")
        if self._closed:
            raise StreamClosedError("Body stream was closed before it was read")
        self._consumed = True
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._raw.iter_chunks():
                if self._closed:
                    raise StreamClosedError("Body stream was closed while being read")
                yield chunk
        finally:
            self.close()

    async def read(self) -> bytes:
        """Read the remaining body into memory."""
        return b"".join([chunk async for chunk in self])

    def close(self) -> None:
        """Stop reading and release the underlying connection."""
        if not self._closed:
            self._closed = True
            self._raw.close()

    cancel = close

    async def aclose(self) -> None:
        self.close()

    async def __aenter__(self) -> AsyncBodyStream:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.close()


def _discard_partial_file(handle: Optional[IO[bytes]], path: Path) -> None:
    # Not opened by us, so anything at path predates this download
    if handle is None:
        return
    handle.close()
    path.unlink(missing_ok=True)
    logger.debug(f"Removed partially written file {path}")


def _incomplete(err: Exception, path: Path) -> BaseException:
    if isinstance(err, (IncompleteBodyError, HttpTimeoutError)):
        return err
    return IncompleteBodyError(f"Body for {path} ended early: {err}")


def write_to_file(chunks: Iterable[bytes], path: Path) -> Path:
    """
    Stream chunks to ``path``.

    The file is created (or truncated) when the first chunk arrives, or at
    the end for an empty body. On a failure after the file was opened the
    handle is closed and the file removed before the error propagates. A
    failure before the first chunk leaves an existing file at ``path`` as is.

    Raises:
        IncompleteBodyError: The chunk source failed part way through
    """
    handle: Optional[IO[bytes]] = None
    try:
        for chunk in chunks:
            if handle is None:
                path.parent.mkdir(parents=True, exist_ok=True)
                handle = path.open("wb")
            handle.write(chunk)
        if handle is None:
            path.parent.mkdir(parents=True, exist_ok=True)
            handle = path.open("wb")
    except Exception as err:
        _discard_partial_file(handle, path)
        error = _incomplete(err, path)
        if error is err:
            raise
        raise error from err
    except BaseException:
        _discard_partial_file(handle, path)
        raise
    handle.close()
    return path


async def _open_for_write(path: Path) -> IO[bytes]:
    def open_file() -> IO[bytes]:
        path.parent.mkdir(parents=True, exist_ok=True)
        return path.open("wb")

    return await asyncio.to_thread(open_file)


async def write_to_file_async(chunks: AsyncIterable[bytes], path: Path) -> Path:
    """Async counterpart of ``write_to_file``. Disk writes run in a worker thread."""
    handle: Optional[IO[bytes]] = None
    try:
        async for chunk in chunks:
            if handle is None:
                handle = await _open_for_write(path)
            await asyncio.to_thread(handle.write, chunk)
        if handle is None:
            handle = await _open_for_write(path)
    except Exception as err:
        _discard_partial_file(handle, path)
        error = _incomplete(err, path)
        if error is err:
            raise
        raise error from err
    except BaseException:
        # Cancellation: no truncated file may be left behind
        _discard_partial_file(handle, path)
        raise
    handle.close()
    return path


def _iter_stream(chunks: Iterable[bytes]) -> Iterator[bytes]:
    for chunk in chunks:
        yield chunk


async def _aiter_stream(chunks: Any) -> AsyncIterator[bytes]:
    if isinstance(chunks, AsyncIterable):
        async for chunk in chunks:
            yield chunk
    else:
        for chunk in chunks:
            yield chunk


@contextmanager
def sync_payload(body: RequestBody) -> Iterator[Any]:
    """
    Open a request body for a blocking transport.

    Yields ``None``, ``bytes``, an open file or a generator of chunks. Files
    opened here are closed when the context exits.
    """
    if isinstance(body, NoBody):
        yield None
    elif isinstance(body, BytesBody):
        yield body.data
    elif isinstance(body, StringBody):
        yield body.encoded()
    elif isinstance(body, FileBody):
        with body.path.open("rb") as handle:
            yield handle
    elif isinstance(body, StreamBody):
        if isinstance(body.chunks, AsyncIterable) and not isinstance(body.chunks, Iterable):
            raise InvalidRequestError("A blocking backend cannot upload an async chunk stream")
        yield _iter_stream(body.chunks)
    else:
        raise InvalidRequestError(f"Unsupported request body: {type(body).__name__}")


@asynccontextmanager
async def async_payload(body: RequestBody) -> AsyncIterator[Any]:
    """
    Open a request body for an asyncio transport.

    Streams, sync or async, are exposed as async generators so the transport
    pulls one chunk at a time as it writes.
    """
    if isinstance(body, NoBody):
        yield None
    elif isinstance(body, BytesBody):
        yield body.data
    elif isinstance(body, StringBody):
        yield body.encoded()
    elif isinstance(body, FileBody):
        handle = await asyncio.to_thread(body.path.open, "rb")
        try:
            yield handle
        finally:
            handle.close()
    elif isinstance(body, StreamBody):
        yield _aiter_stream(body.chunks)
    else:
        raise InvalidRequestError(f"Unsupported request body: {type(body).__name__}")
