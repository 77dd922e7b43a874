"""Backend wrappers that log every send."""

from __future__ import annotations

import logging
import time
from typing import Any, Optional, TypeVar

from ..request import Request
from ..response import Response
from .base import AsyncBackend, SyncBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _log_response(
    log: logging.Logger,
    level: int,
    request: Request[Any],
    response: Response[Any],
    elapsed: float,
) -> None:
    log.log(level, f"{request.method} {request.uri} -> {response.status} in {elapsed:.3f}s")


def _log_failure(log: logging.Logger, request: Request[Any], err: BaseException, elapsed: float) -> None:
    log.warning(f"{request.method} {request.uri} failed after {elapsed:.3f}s: {type(err).__name__}: {err}")


class LoggingBackend(SyncBackend):
    """
    Wrap a blocking backend and log each request, its status and duration.

    Headers are shown with sensitive values redacted.

    Example:
        backend = LoggingBackend(RequestsBackend())
        backend.send(basic_request.get(url))
        # DEBUG Sending GET https://example.com (headers: {...})
        # INFO  GET https://example.com -> 200 in 0.123s
    """

    def __init__(
        self,
        delegate: SyncBackend,
        *,
        level: int = logging.INFO,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self._delegate = delegate
        self._level = level
        self._log = log or logger
        self.capabilities = delegate.capabilities

    def _send(self, request: Request[T]) -> Response[T]:
        self._log.debug(f"Sending {request.show()}")
        started = time.monotonic()
        try:
            response = self._delegate.send(request)
        except Exception as err:
            _log_failure(self._log, request, err, time.monotonic() - started)
            raise
        _log_response(self._log, self._level, request, response, time.monotonic() - started)
        return response

    def close(self) -> None:
        self._delegate.close()


class AsyncLoggingBackend(AsyncBackend):
    """Asyncio counterpart of ``LoggingBackend``. Cancelled sends are logged too."""

    def __init__(
        self,
        delegate: AsyncBackend,
        *,
        level: int = logging.INFO,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self._delegate = delegate
        self._level = level
        self._log = log or logger
        self.capabilities = delegate.capabilities

    async def _send(self, request: Request[T]) -> Response[T]:
        self._log.debug(f"Sending {request.show()}")
        started = time.monotonic()
        try:
            response = await self._delegate.send(request)
        except BaseException as err:
            _log_failure(self._log, request, err, time.monotonic() - started)
            raise
        _log_response(self._log, self._level, request, response, time.monotonic() - started)
        return response

    async def close(self) -> None:
        await self._delegate.close()
