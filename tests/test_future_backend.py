"""Tests for the thread-pool backend."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from wireform import (
    FutureBackend,
    HttpConnectionError,
    RequestsBackend,
    Right,
    UnsupportedCapabilityError,
    as_websocket_unsafe,
    basic_request,
)
from wireform.testing import StubBackend

URL = "http://svc.example/x"


class TestFutureBackend:
    """Tests for FutureBackend."""

    def test_send_returns_future(self):
        """Test the response is delivered through a future."""
        stub = StubBackend().when_any_request().then_respond("ok")
        with FutureBackend(stub) as backend:
            future = backend.send(basic_request.get(URL))
            assert future.result(timeout=5).body == Right("ok")

    def test_runs_on_worker_thread(self):
        """Test sends run off the calling thread."""
        threads = []

        def record(request):
            threads.append(threading.current_thread().name)
            return True

        stub = StubBackend().when_request_matches(record).then_respond("ok")
        with FutureBackend(stub, max_workers=2) as backend:
            backend.send(basic_request.get(URL)).result(timeout=5)
        assert threads[0].startswith("wireform-send-")

    def test_many_sends(self):
        """Test concurrent sends all complete."""
        stub = StubBackend().when_any_request().then_respond("ok")
        with FutureBackend(stub, max_workers=4) as backend:
            futures = [backend.send(basic_request.get(f"{URL}/{i}")) for i in range(10)]
            assert all(f.result(timeout=5).body == Right("ok") for f in futures)
        assert len(stub.requests) == 10

    def test_error_carried_by_future(self):
        """Test a failed send fails the future."""
        stub = StubBackend().when_any_request().then_raise(HttpConnectionError("refused"))
        with FutureBackend(stub) as backend:
            future = backend.send(basic_request.get(URL))
            with pytest.raises(HttpConnectionError):
                future.result(timeout=5)

    def test_capability_error_without_io(self):
        """Test an unsupported description fails the future before anything is sent."""
        stub = StubBackend().when_any_request().then_respond("ok")
        with FutureBackend(stub) as backend:
            future = backend.send(basic_request.get(URL).response(as_websocket_unsafe()))
            assert isinstance(future.exception(timeout=5), UnsupportedCapabilityError)
        assert stub.requests == []

    def test_capabilities_from_delegate(self):
        """Test the backend advertises what its delegate supports."""
        stub = StubBackend()
        assert FutureBackend(stub).capabilities == stub.capabilities

    def test_given_delegate_not_closed(self):
        """Test close() only shuts down the executor for a caller-owned delegate."""
        closed = []
        stub = StubBackend()
        stub.close = lambda: closed.append(True)
        backend = FutureBackend(stub)
        backend.send(basic_request.get(URL)).result(timeout=5)
        backend.close()
        assert closed == []

    def test_resource_creates_requests_delegate(self):
        """Test resource() builds and closes its own blocking backend."""
        with FutureBackend.resource(max_workers=1) as backend:
            assert backend.max_workers == 1
            assert backend.executor is backend.executor

    def test_send_after_close(self):
        """Test a closed backend refuses to send."""
        backend = FutureBackend(StubBackend())
        backend.close()
        with pytest.raises(RuntimeError):
            backend.send(basic_request.get(URL))


class TestFutureBackendLifecycle:
    """Tests for executor and delegate ownership."""

    def test_with_config(self):
        """Test with_config() adjusts the created delegate's defaults."""
        backend = FutureBackend.with_config(lambda c: c.adjust(read_timeout=5), max_workers=2)
        assert isinstance(backend.delegate, RequestsBackend)
        assert backend.delegate.config.read_timeout == 5
        assert backend.max_workers == 2
        backend.close()

    def test_adopted_executor_not_shut_down(self):
        """Test close() leaves a caller-owned executor running."""
        executor = ThreadPoolExecutor(max_workers=1)
        stub = StubBackend().when_any_request().then_respond("ok")
        backend = FutureBackend.adopt(executor, stub)
        try:
            assert backend.executor is executor
            assert backend.send(basic_request.get(URL)).result(timeout=5).body == Right("ok")
            backend.close()
            assert executor.submit(lambda: 42).result(timeout=5) == 42
        finally:
            executor.shutdown()

    def test_adopted_executor_closes_created_delegate(self):
        """Test the delegate created for an adopted executor is still closed."""
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            with patch.object(RequestsBackend, "close") as close:
                FutureBackend.adopt(executor).close()
                close.assert_called_once()
        finally:
            executor.shutdown()

    def test_close_without_wait_defers_delegate_close(self):
        """Test the delegate is closed only after a running send has finished."""
        started = threading.Event()
        release = threading.Event()

        def slow_send(request):
            started.set()
            release.wait(5)
            return "sent"

        with patch.object(RequestsBackend, "send", side_effect=slow_send), patch.object(
            RequestsBackend, "close"
        ) as close:
            backend = FutureBackend(max_workers=1)
            future = backend.send(basic_request.get(URL))
            assert started.wait(5)

            backend.close(wait=False)
            assert close.call_count == 0

            release.set()
            assert future.result(timeout=5) == "sent"
            deadline = time.monotonic() + 5
            while not close.called and time.monotonic() < deadline:
                time.sleep(0.01)
            close.assert_called_once()
