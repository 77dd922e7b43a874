"""Tests for the logging backend wrappers."""

import logging

import pytest

from wireform import AsyncLoggingBackend, HttpConnectionError, LoggingBackend, Right, basic_request
from wireform.testing import AsyncStubBackend, StubBackend

URL = "http://svc.example/orders"
LOGGER_NAME = "test.wireform"


class TestLoggingBackend:
    """Tests for LoggingBackend."""

    def test_logs_status_and_duration(self, caplog):
        """Test a successful send is logged with its status."""
        caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
        stub = StubBackend().when_any_request().then_respond("ok", status=201)
        backend = LoggingBackend(stub, log=logging.getLogger(LOGGER_NAME))

        response = backend.send(basic_request.get(URL).auth_bearer("secret-token"))

        assert response.body == Right("ok")
        assert f"GET {URL} -> 201" in caplog.text
        assert "secret-token" not in caplog.text

    def test_logs_failures(self, caplog):
        """Test failed sends are logged and re-raised."""
        caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
        stub = StubBackend().when_any_request().then_raise(HttpConnectionError("refused"))
        backend = LoggingBackend(stub, log=logging.getLogger(LOGGER_NAME))

        with pytest.raises(HttpConnectionError):
            backend.send(basic_request.get(URL))

        assert "HttpConnectionError: refused" in caplog.text
        assert any(record.levelno == logging.WARNING for record in caplog.records)

    def test_capabilities_and_close_delegate(self):
        """Test the wrapper exposes the delegate's capabilities and closes it."""
        closed = []
        stub = StubBackend()
        stub.close = lambda: closed.append(True)
        backend = LoggingBackend(stub)
        assert backend.capabilities == stub.capabilities
        backend.close()
        assert closed == [True]

    @pytest.mark.asyncio
    async def test_async_logging(self, caplog):
        """Test the asyncio wrapper."""
        caplog.set_level(logging.DEBUG, logger=LOGGER_NAME)
        stub = AsyncStubBackend().when_any_request().then_respond("ok")
        backend = AsyncLoggingBackend(stub, log=logging.getLogger(LOGGER_NAME))

        response = await backend.send(basic_request.get(URL))

        assert response.body == Right("ok")
        assert f"GET {URL} -> 200" in caplog.text
