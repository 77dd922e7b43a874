"""
The execution contract every backend implements.

A backend takes a ``Request`` and produces a ``Response`` inside its own
container: a plain value for blocking backends, a coroutine for asyncio
backends, a ``concurrent.futures.Future`` for executor-based backends.
Whatever the container, the response description is evaluated exactly once
by ``wireform.evaluation``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Generator
from types import TracebackType
from typing import Any, Callable, Generic, Optional, TypeVar

from ..errors import UnsupportedCapabilityError
from ..request import Request
from ..response import Response
from ..response_as import Capability

T = TypeVar("T")
U = TypeVar("U")


def ensure_supported(request: Request[Any], capabilities: frozenset[Capability]) -> None:
    """Fail before any I/O when the response description needs a missing capability."""
    missing = request.response_as.capabilities - capabilities
    if missing:
        names = ", ".join(sorted(cap.value for cap in missing))
        raise UnsupportedCapabilityError(f"Backend does not support: {names}")


class SyncBackend(ABC):
    """A backend that sends on the calling thread and returns the response directly."""

    capabilities: frozenset[Capability] = frozenset()

    def send(self, request: Request[T]) -> Response[T]:
        """
        Send ``request`` and evaluate its response description.

        Raises:
            HttpConnectionError: Transport failure
            HttpTimeoutError: Connect or read deadline exceeded
            UnsupportedCapabilityError: The description needs streams/websockets this backend lacks
        """
        ensure_supported(request, self.capabilities)
        return self._send(request)

    @abstractmethod
    def _send(self, request: Request[T]) -> Response[T]: ...

    def close(self) -> None:
        """Release resources owned by this backend."""

    def __enter__(self) -> SyncBackend:
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.close()


class Deferred(Generic[T]):
    """
    A send that has been described but not started.

    Nothing happens until the value is awaited, and every await runs the
    send again from scratch, so one ``Deferred`` can be retried or scheduled
    several times without shared state between runs.

    Example:
        fetch = backend.deferred(basic_request.get(url))
        first = await fetch
        second = await fetch  # a new request
    """

    def __init__(self, thunk: Callable[[], Awaitable[T]]) -> None:
        self._thunk = thunk

    def __await__(self) -> Generator[Any, None, T]:
        return self._run().__await__()

    async def _run(self) -> T:
        return await self._thunk()

    def map(self, fn: Callable[[T], U]) -> Deferred[U]:
        async def mapped() -> U:
            return fn(await self._thunk())

        return Deferred(mapped)


class AsyncBackend(ABC):
    """A backend whose ``send`` is a coroutine running on the asyncio event loop."""

    capabilities: frozenset[Capability] = frozenset()

    async def send(self, request: Request[T]) -> Response[T]:
        """
        Send ``request`` and evaluate its response description.

        Cancelling the awaiting task closes the connection and any partially
        consumed body, stream or file.
        """
        ensure_supported(request, self.capabilities)
        return await self._send(request)

    @abstractmethod
    async def _send(self, request: Request[T]) -> Response[T]: ...

    def deferred(self, request: Request[T]) -> Deferred[Response[T]]:
        """Describe the send of ``request`` without starting it."""
        return Deferred(lambda: self.send(request))

    async def close(self) -> None:
        """Release resources owned by this backend."""

    async def __aenter__(self) -> AsyncBackend:
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        await self.close()
