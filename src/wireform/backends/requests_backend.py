"""Blocking backend built on a pooled ``requests.Session``."""

from __future__ import annotations

import http.client
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Callable, Optional, TypeVar

import requests
from requests.adapters import HTTPAdapter
from urllib3.exceptions import ProtocolError as Urllib3ProtocolError
from urllib3.exceptions import ReadTimeoutError

from ..errors import (
    DecodeError,
    HttpConnectionError,
    HttpTimeoutError,
    IncompleteBodyError,
    InvalidRequestError,
    ProtocolError,
    TooManyRedirectsError,
)
from ..evaluation import evaluate
from ..headers import Headers
from ..models.config import BackendConfig
from ..request import Request
from ..response import Response, ResponseMetadata
from ..response_as import Capability
from ..streams import sync_payload
from .base import SyncBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def _is_read_timeout(err: requests.exceptions.ConnectionError) -> bool:
    # iter_content() reports read timeouts as ConnectionError(ReadTimeoutError)
    return bool(err.args) and isinstance(err.args[0], ReadTimeoutError)


def _is_protocol_failure(err: requests.exceptions.ConnectionError) -> bool:
    reason = err.args[0] if err.args else None
    if not isinstance(reason, Urllib3ProtocolError) or len(reason.args) < 2:
        return False
    cause = reason.args[1]
    return isinstance(cause, http.client.HTTPException) and not isinstance(cause, http.client.RemoteDisconnected)


@contextmanager
def _translated_errors(uri: str) -> Iterator[None]:
    """Translate requests/urllib3 exceptions into wireform errors."""
    try:
        yield
    except requests.exceptions.Timeout as err:
        raise HttpTimeoutError(f"Timed out talking to {uri}: {err}") from err
    except requests.exceptions.TooManyRedirects as err:
        raise TooManyRedirectsError(f"Too many redirects for {uri}") from err
    except (
        requests.exceptions.MissingSchema,
        requests.exceptions.InvalidSchema,
        requests.exceptions.InvalidURL,
    ) as err:
        raise InvalidRequestError(f"Invalid URL {uri!r}: {err}") from err
    except requests.exceptions.ChunkedEncodingError as err:
        raise IncompleteBodyError(f"Body from {uri} ended early: {err}") from err
    except requests.exceptions.ContentDecodingError as err:
        raise DecodeError(f"Could not decode body from {uri}: {err}") from err
    except requests.exceptions.ConnectionError as err:
        if _is_read_timeout(err):
            raise HttpTimeoutError(f"Timed out reading from {uri}: {err}") from err
        if _is_protocol_failure(err):
            raise ProtocolError(f"Malformed response from {uri}: {err}") from err
        raise HttpConnectionError(f"Connection to {uri} failed: {err}") from err
    except requests.exceptions.RequestException as err:
        raise HttpConnectionError(f"Request to {uri} failed: {err}") from err


class _PoolAdapter(HTTPAdapter):
    """HTTPAdapter that passes a custom TLS context to its pool managers."""

    def __init__(self, ssl_context: Any = None, **kwargs: Any) -> None:
        self._ssl_context = ssl_context
        super().__init__(**kwargs)

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        if self._ssl_context is not None:
            kwargs["ssl_context"] = self._ssl_context
        super().init_poolmanager(*args, **kwargs)

    def proxy_manager_for(self, proxy: str, **proxy_kwargs: Any) -> Any:
        if self._ssl_context is not None:
            proxy_kwargs["ssl_context"] = self._ssl_context
        return super().proxy_manager_for(proxy, **proxy_kwargs)


class _RequestsRawBody:
    """Raw body of a ``requests`` response opened with ``stream=True``."""

    def __init__(self, response: requests.Response, chunk_size: int, uri: str) -> None:
        self._response = response
        self._chunk_size = chunk_size
        self._uri = uri

    def iter_chunks(self) -> Iterator[bytes]:
        with _translated_errors(self._uri):
            yield from self._response.iter_content(chunk_size=self._chunk_size)

    def close(self) -> None:
        self._response.close()


def _metadata(response: requests.Response) -> ResponseMetadata:
    return ResponseMetadata(
        status=response.status_code,
        headers=Headers(response.headers),
        status_text=response.reason or "",
    )


class RequestsBackend(SyncBackend):
    """
    Blocking backend: sends on the calling thread through a ``requests.Session``.

    The session's connection pool is shared by every send; a send borrows a
    connection and returns it once the body has been consumed (or, for an
    ``as_stream_always()`` result, once the stream is exhausted or closed).

    Example:
        with RequestsBackend.resource() as backend:
            response = backend.send(basic_request.get("https://example.com"))
            print(response.status, response.body)

        # Adjust the defaults
        backend = RequestsBackend.with_config(lambda c: c.adjust(max_connections=10))

        # Wrap a session you manage yourself; close() leaves it open
        backend = RequestsBackend.adopt(my_session)
    """

    capabilities = frozenset({Capability.STREAMS})

    def __init__(
        self,
        config: Optional[BackendConfig] = None,
        *,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Initialize the backend.

        Args:
            config: Backend configuration (defaults used if None)
            session: Existing session to adopt. Its pool, proxy and TLS
                     settings are used as-is and it is never closed here.
        """
        self.config = config or BackendConfig()
        self._owns_session = session is None
        self._session = session if session is not None else self._create_session(self.config)
        self._closed = False

    @staticmethod
    def _create_session(config: BackendConfig) -> requests.Session:
        session = requests.Session()
        adapter = _PoolAdapter(
            ssl_context=config.ssl_context,
            pool_maxsize=config.max_connections,
            max_retries=0,
        )
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.verify = config.verify_ssl
        session.max_redirects = config.max_redirects
        if config.proxy:
            session.proxies = {"http": config.proxy, "https": config.proxy}
        if config.user_agent:
            session.headers["User-Agent"] = config.user_agent
        session.headers.update(config.default_headers)
        return session

    @classmethod
    def with_config(cls, adjust: Callable[[BackendConfig], BackendConfig]) -> RequestsBackend:
        """Create a backend from the default configuration as modified by ``adjust``."""
        return cls(adjust(BackendConfig()))

    @classmethod
    def adopt(cls, session: requests.Session, config: Optional[BackendConfig] = None) -> RequestsBackend:
        """Wrap a caller-owned session. ``close()`` will not close it."""
        return cls(config, session=session)

    @classmethod
    @contextmanager
    def resource(cls, config: Optional[BackendConfig] = None) -> Iterator[RequestsBackend]:
        """Create a backend that is closed when the block exits, however it exits."""
        backend = cls(config)
        try:
            yield backend
        finally:
            backend.close()

    @classmethod
    def use(cls, fn: Callable[[RequestsBackend], R], config: Optional[BackendConfig] = None) -> R:
        """Run ``fn`` with a fresh backend and close it afterwards."""
        with cls.resource(config) as backend:
            return fn(backend)

    @property
    def session(self) -> requests.Session:
        return self._session

    def _timeout(self, request: Request[Any]) -> tuple[float, Optional[float]]:
        read_timeout = request.options.read_timeout
        if read_timeout is None:
            read_timeout = self.config.read_timeout
        return (self.config.connect_timeout, read_timeout)

    def _send(self, request: Request[T]) -> Response[T]:
        if self._closed:
            raise RuntimeError("Backend is closed")
        uri = request.require_uri()
        follow = request.options.follow_redirects
        if follow is None:
            follow = self.config.follow_redirects

        logger.debug(f"Sending {request.method} {uri}")
        with sync_payload(request.body) as data, _translated_errors(uri):
            response = self._session.request(
                request.method,
                uri,
                headers=dict(request.headers),
                data=data,
                timeout=self._timeout(request),
                allow_redirects=follow,
                stream=True,
            )

        metadata = _metadata(response)
        history = tuple(_metadata(previous) for previous in response.history)
        raw = _RequestsRawBody(response, self.config.chunk_size, uri)
        body = evaluate(request.response_as, metadata, raw)
        return Response.from_metadata(body, metadata, request=request, history=history)

    def close(self) -> None:
        """Close the session if this backend created it."""
        if self._closed:
            return
        self._closed = True
        if self._owns_session:
            self._session.close()
