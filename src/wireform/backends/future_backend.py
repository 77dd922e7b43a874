"""Future-based backend: blocking sends submitted to a thread pool."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from contextlib import contextmanager
from types import TracebackType
from typing import Any, Callable, Optional, TypeVar

from ..models.config import BackendConfig
from ..request import Request
from ..response import Response
from ..response_as import Capability
from .base import SyncBackend, ensure_supported
from .requests_backend import RequestsBackend

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FutureBackend:
    """
    Runs a blocking backend on a ``ThreadPoolExecutor`` and returns futures.

    ``send()`` returns immediately; the request runs on a worker thread and
    the future completes with the response or the error. ``future.cancel()``
    prevents a send that has not started yet.

    Example:
        with FutureBackend(max_workers=8) as backend:
            futures = [backend.send(basic_request.get(url)) for url in urls]
            responses = [f.result() for f in futures]

        # Share an application-wide pool
        backend = FutureBackend.adopt(app_executor)
    """

    def __init__(
        self,
        delegate: Optional[SyncBackend] = None,
        max_workers: int = 4,
        *,
        config: Optional[BackendConfig] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        """
        Initialize the backend.

        Args:
            delegate: Blocking backend doing the actual sends. When None a
                      ``RequestsBackend`` is created (and closed with this one).
            max_workers: Number of worker threads; ignored when an executor is given
            config: Configuration for the created delegate; ignored when a delegate is given
            executor: Existing executor to submit to. It is never shut down here.
        """
        self.max_workers = max_workers
        self._owns_delegate = delegate is None
        self._delegate = delegate if delegate is not None else RequestsBackend(config)
        self._owns_executor = executor is None
        self._executor = executor
        self._pending: set[Future[Any]] = set()
        self._lock = threading.Lock()
        self._closed = False

    @classmethod
    def with_config(
        cls,
        adjust: Callable[[BackendConfig], BackendConfig],
        max_workers: int = 4,
    ) -> FutureBackend:
        """Create a backend whose ``RequestsBackend`` uses the adjusted default configuration."""
        return cls(max_workers=max_workers, config=adjust(BackendConfig()))

    @classmethod
    def adopt(
        cls,
        executor: ThreadPoolExecutor,
        delegate: Optional[SyncBackend] = None,
        config: Optional[BackendConfig] = None,
    ) -> FutureBackend:
        """Submit to a caller-owned executor. ``close()`` will not shut it down."""
        return cls(delegate, config=config, executor=executor)

    @property
    def delegate(self) -> SyncBackend:
        return self._delegate

    @property
    def capabilities(self) -> frozenset[Capability]:
        return self._delegate.capabilities

    @property
    def executor(self) -> ThreadPoolExecutor:
        """Get or create the thread pool executor."""
        if self._closed:
            raise RuntimeError("Backend is closed")
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers,
                thread_name_prefix="wireform-send-",
            )
        return self._executor

    def send(self, request: Request[T]) -> Future[Response[T]]:
        """Submit ``request``; the future carries the response or the send's error."""
        try:
            ensure_supported(request, self.capabilities)
        except Exception as err:
            failed: Future[Response[T]] = Future()
            failed.set_exception(err)
            return failed
        logger.debug(f"Submitting {request.method} {request.uri}")
        future = self.executor.submit(self._delegate.send, request)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)
        return future

    def _discard(self, future: Future[Any]) -> None:
        with self._lock:
            self._pending.discard(future)

    def _close_delegate_after(self, pending: list[Future[Any]]) -> None:
        wait_futures(pending)
        self._delegate.close()
        logger.debug("Closed send delegate after in-flight sends finished")

    def close(self, wait: bool = True) -> None:
        """
        Shut down the executor (if created here) and the delegate (if created here).

        The delegate is closed only once every send this backend submitted has
        finished, so running sends never see a closed session.

        Args:
            wait: If True, wait for running sends. If False, pending sends are
                  cancelled and the delegate is closed in the background once
                  the running ones finish.
        """
        if self._closed:
            return
        self._closed = True
        if self._executor is not None and self._owns_executor:
            self._executor.shutdown(wait=wait, cancel_futures=not wait)
        self._executor = None

        with self._lock:
            pending = list(self._pending)
        if not wait:
            for future in pending:
                future.cancel()
        if not self._owns_delegate:
            return
        if wait:
            self._close_delegate_after(pending)
        else:
            threading.Thread(
                target=self._close_delegate_after,
                args=(pending,),
                name="wireform-close",
                daemon=True,
            ).start()

    @classmethod
    @contextmanager
    def resource(
        cls,
        config: Optional[BackendConfig] = None,
        max_workers: int = 4,
    ) -> Iterator[FutureBackend]:
        """Create a backend that is shut down when the block exits."""
        backend = cls(max_workers=max_workers, config=config)
        try:
            yield backend
        finally:
            backend.close()

    def __enter__(self) -> FutureBackend:
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.close(wait=exc_type is None)
