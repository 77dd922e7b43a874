"""Asyncio backend built on ``aiohttp``: HTTP, streaming and websockets."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Iterator
from contextlib import asynccontextmanager, contextmanager
from ssl import SSLContext
from typing import Any, Callable, Optional, TypeVar, Union

import aiohttp

from ..errors import (
    HttpConnectionError,
    HttpTimeoutError,
    IncompleteBodyError,
    InvalidRequestError,
    ProtocolError,
    TooManyRedirectsError,
    WireformError,
)
from ..evaluation import evaluate_async
from ..headers import Headers
from ..models.config import BackendConfig
from ..request import Request
from ..response import SWITCHING_PROTOCOLS, Response, ResponseMetadata
from ..response_as import Capability
from ..streams import AsyncEmptyRawBody, async_payload
from ..websocket.frames import ABNORMAL_CLOSURE, NORMAL_CLOSURE, Binary, Close, Ping, Pong, Text, WebSocketFrame
from ..websocket.session import AsyncWebSocket
from .base import AsyncBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@contextmanager
def _translated_errors(uri: str) -> Iterator[None]:
    """Translate aiohttp exceptions into wireform errors."""
    try:
        yield
    except WireformError:
        raise
    except asyncio.TimeoutError as err:
        raise HttpTimeoutError(f"Timed out talking to {uri}") from err
    except aiohttp.ClientPayloadError as err:
        raise IncompleteBodyError(f"Body from {uri} ended early: {err}") from err
    except aiohttp.TooManyRedirects as err:
        raise TooManyRedirectsError(f"Too many redirects for {uri}") from err
    except aiohttp.InvalidURL as err:
        raise InvalidRequestError(f"Invalid URL {uri!r}") from err
    except aiohttp.ClientResponseError as err:
        raise ProtocolError(f"Malformed response from {uri}: {err.message}") from err
    except (aiohttp.ClientError, ConnectionError) as err:
        raise HttpConnectionError(f"Connection to {uri} failed: {err}") from err


class _AiohttpRawBody:
    """Raw body of an ``aiohttp`` response."""

    def __init__(self, response: aiohttp.ClientResponse, chunk_size: int, uri: str) -> None:
        self._response = response
        self._chunk_size = chunk_size
        self._uri = uri

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        with _translated_errors(self._uri):
            async for chunk in self._response.content.iter_chunked(self._chunk_size):
                yield chunk

    def close(self) -> None:
        # A fully read body has already returned its connection to the pool;
        # otherwise the connection is dropped.
        self._response.close()


class AiohttpFrameTransport:
    """``FrameTransport`` over an ``aiohttp`` client websocket."""

    def __init__(
        self,
        ws: aiohttp.ClientWebSocketResponse,
        uri: str,
        receive_timeout: Optional[float] = None,
    ) -> None:
        self._ws = ws
        self._uri = uri
        self._receive_timeout = receive_timeout

    async def send_frame(self, frame: WebSocketFrame) -> None:
        with _translated_errors(self._uri):
            if isinstance(frame, Text):
                await self._ws.send_str(frame.payload)
            elif isinstance(frame, Binary):
                await self._ws.send_bytes(frame.payload)
            elif isinstance(frame, Ping):
                await self._ws.ping(frame.payload)
            elif isinstance(frame, Pong):
                await self._ws.pong(frame.payload)
            elif isinstance(frame, Close):
                await self._ws.close(code=frame.code, message=frame.reason.encode("utf-8"))
            else:
                raise TypeError(f"Not a websocket frame: {frame!r}")

    async def receive_frame(self) -> WebSocketFrame:
        with _translated_errors(self._uri):
            msg = await self._ws.receive(timeout=self._receive_timeout)

        if msg.type is aiohttp.WSMsgType.TEXT:
            return Text(msg.data)
        if msg.type is aiohttp.WSMsgType.BINARY:
            return Binary(msg.data)
        if msg.type is aiohttp.WSMsgType.PING:
            return Ping(msg.data)
        if msg.type is aiohttp.WSMsgType.PONG:
            return Pong(msg.data)
        if msg.type is aiohttp.WSMsgType.CLOSE:
            return Close(msg.data if msg.data is not None else ABNORMAL_CLOSURE, msg.extra or "")
        if msg.type is aiohttp.WSMsgType.CLOSING:
            # Our own close() is in progress
            return Close(self._ws.close_code or NORMAL_CLOSURE)
        if msg.type is aiohttp.WSMsgType.CLOSED:
            code = self._ws.close_code
            return Close(code if code is not None else ABNORMAL_CLOSURE)
        raise ProtocolError(f"Invalid websocket frame from {self._uri}: {msg.data}")

    async def close(self) -> None:
        if not self._ws.closed:
            with _translated_errors(self._uri):
                await self._ws.close()


def _metadata(response: aiohttp.ClientResponse) -> ResponseMetadata:
    return ResponseMetadata(
        status=response.status,
        headers=Headers(response.headers),
        status_text=response.reason or "",
    )


class AiohttpBackend(AsyncBackend):
    """
    Asyncio backend: every send is a coroutine on the running event loop.

    The ``aiohttp.ClientSession`` is created on first use, inside the loop
    that sends. Cancelling a send (``asyncio.wait_for``, ``task.cancel()``)
    closes the connection and any stream, file or websocket it had opened.

    Example:
        async with AiohttpBackend.resource() as backend:
            response = await backend.send(basic_request.get("https://example.com"))
            print(response.status, response.body)

            # Websocket
            async def echo(inbound):
                async for frame in inbound:
                    yield frame

            await backend.send(basic_request.get("wss://echo.example").response(as_websocket_pipe(echo)))
    """

    capabilities = frozenset({Capability.STREAMS, Capability.WEBSOCKETS})

    def __init__(
        self,
        config: Optional[BackendConfig] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """
        Initialize the backend.

        Args:
            config: Backend configuration (defaults used if None)
            session: Existing session to adopt. Its connector, timeouts and
                     headers are used as-is and it is never closed here.
        """
        self.config = config or BackendConfig()
        self._owns_session = session is None
        self._session = session
        self._closed = False

    @classmethod
    def with_config(cls, adjust: Callable[[BackendConfig], BackendConfig]) -> AiohttpBackend:
        """Create a backend from the default configuration as modified by ``adjust``."""
        return cls(adjust(BackendConfig()))

    @classmethod
    def adopt(cls, session: aiohttp.ClientSession, config: Optional[BackendConfig] = None) -> AiohttpBackend:
        """Wrap a caller-owned session. ``close()`` will not close it."""
        return cls(config, session=session)

    @classmethod
    @asynccontextmanager
    async def resource(cls, config: Optional[BackendConfig] = None) -> AsyncIterator[AiohttpBackend]:
        """Create a backend that is closed when the block exits, however it exits."""
        backend = cls(config)
        try:
            yield backend
        finally:
            await backend.close()

    @classmethod
    async def use(
        cls,
        fn: Callable[[AiohttpBackend], Awaitable[R]],
        config: Optional[BackendConfig] = None,
    ) -> R:
        """Run ``fn`` with a fresh backend and close it afterwards."""
        async with cls.resource(config) as backend:
            return await fn(backend)

    def _create_session(self) -> aiohttp.ClientSession:
        config = self.config
        ssl: Union[bool, SSLContext] = config.verify_ssl
        if config.ssl_context is not None:
            ssl = config.ssl_context
        connector = aiohttp.TCPConnector(limit=config.max_connections, ssl=ssl)
        headers = dict(config.default_headers)
        if config.user_agent:
            headers["User-Agent"] = config.user_agent
        return aiohttp.ClientSession(
            connector=connector,
            headers=headers,
            timeout=aiohttp.ClientTimeout(
                total=None,
                connect=config.connect_timeout,
                sock_read=config.read_timeout,
            ),
        )

    @property
    def session(self) -> aiohttp.ClientSession:
        """The underlying session, created on first access."""
        if self._closed:
            raise RuntimeError("Backend is closed")
        if self._session is None:
            self._session = self._create_session()
        return self._session

    def _timeout(self, request: Request[Any]) -> aiohttp.ClientTimeout:
        read_timeout = request.options.read_timeout
        if read_timeout is None:
            read_timeout = self.config.read_timeout
        return aiohttp.ClientTimeout(total=None, connect=self.config.connect_timeout, sock_read=read_timeout)

    async def _send(self, request: Request[T]) -> Response[T]:
        uri = request.require_uri()
        if Capability.WEBSOCKETS in request.response_as.capabilities:
            return await self._send_websocket(request, uri)

        follow = request.options.follow_redirects
        if follow is None:
            follow = self.config.follow_redirects
        max_redirects = request.options.max_redirects
        if max_redirects is None:
            max_redirects = self.config.max_redirects

        logger.debug(f"Sending {request.method} {uri}")
        async with async_payload(request.body) as data:
            with _translated_errors(uri):
                response = await self.session.request(
                    request.method,
                    uri,
                    headers=dict(request.headers),
                    data=data,
                    timeout=self._timeout(request),
                    allow_redirects=follow,
                    max_redirects=max_redirects,
                    proxy=self.config.proxy,
                )

        metadata = _metadata(response)
        history = tuple(_metadata(previous) for previous in response.history)
        raw = _AiohttpRawBody(response, self.config.chunk_size, uri)
        body = await evaluate_async(request.response_as, metadata, raw)
        return Response.from_metadata(body, metadata, request=request, history=history)

    async def _send_websocket(self, request: Request[T], uri: str) -> Response[T]:
        ws_config = self.config.websocket
        logger.debug(f"Opening websocket {uri}")
        try:
            with _translated_errors(uri):
                ws = await self.session.ws_connect(
                    uri,
                    method=request.method,
                    headers=dict(request.headers),
                    autoclose=False,
                    autoping=ws_config.auto_pong,
                    heartbeat=ws_config.ping_interval,
                    max_msg_size=ws_config.max_message_size,
                    timeout=aiohttp.ClientWSTimeout(ws_close=ws_config.close_grace_period),
                    proxy=self.config.proxy,
                )
        except ProtocolError as err:
            handshake = err.__cause__
            if not isinstance(handshake, aiohttp.WSServerHandshakeError):
                raise
            if handshake.status == SWITCHING_PROTOCOLS:
                # Upgraded, but the handshake itself was invalid
                raise
            # The server answered without upgrading; aiohttp has already
            # discarded the body.
            logger.debug(f"Websocket upgrade for {uri} refused with status {handshake.status}")
            metadata = ResponseMetadata(
                status=handshake.status,
                headers=Headers(handshake.headers or {}),
                status_text=handshake.message or "",
            )
            body = await evaluate_async(request.response_as, metadata, AsyncEmptyRawBody())
            return Response.from_metadata(body, metadata, request=request)

        metadata = ResponseMetadata(status=SWITCHING_PROTOCOLS, headers=Headers(), status_text="Switching Protocols")
        session = AsyncWebSocket(
            AiohttpFrameTransport(ws, uri, receive_timeout=ws_config.receive_timeout),
            # aiohttp answers pings itself when autoping is on
            auto_pong=False,
            close_grace_period=ws_config.close_grace_period,
        )
        body = await evaluate_async(request.response_as, metadata, AsyncEmptyRawBody(), websocket=session)
        return Response.from_metadata(body, metadata, request=request)

    async def close(self) -> None:
        """Close the session if this backend created it."""
        if self._closed:
            return
        self._closed = True
        if self._owns_session and self._session is not None:
            await self._session.close()
