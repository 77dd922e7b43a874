"""Tests for backend configuration models."""

import logging
import ssl

import pytest
from pydantic import ValidationError

from wireform import BackendConfig, LoggingBackend, WebSocketConfig, basic_request, setup_logging
from wireform.testing import StubBackend


class TestBackendConfig:
    """Tests for BackendConfig."""

    def test_defaults(self):
        """Test default values."""
        config = BackendConfig()
        assert config.connect_timeout == 10.0
        assert config.read_timeout == 60.0
        assert config.max_connections == 100
        assert config.follow_redirects is True
        assert config.max_redirects == 30
        assert config.websocket.close_grace_period == 5.0
        assert config.websocket.auto_pong is True

    def test_rejects_unknown_fields(self):
        """Test typos in config keys are errors."""
        with pytest.raises(ValidationError):
            BackendConfig(conect_timeout=1)

    def test_rejects_invalid_values(self):
        """Test bounds are validated."""
        with pytest.raises(ValidationError):
            BackendConfig(max_connections=0)
        with pytest.raises(ValidationError):
            WebSocketConfig(close_grace_period=-1)

    def test_frozen(self):
        """Test configs cannot be modified in place."""
        config = BackendConfig()
        with pytest.raises(ValidationError):
            config.read_timeout = 1

    def test_adjust_returns_validated_copy(self):
        """Test adjust() copies and validates."""
        config = BackendConfig()
        adjusted = config.adjust(read_timeout=5, websocket={"ping_interval": None})
        assert adjusted.read_timeout == 5
        assert adjusted.websocket.ping_interval is None
        assert config.read_timeout == 60.0
        with pytest.raises(ValidationError):
            config.adjust(read_timeout=-1)

    def test_adjust_keeps_ssl_context(self):
        """Test the TLS context survives adjust()."""
        context = ssl.create_default_context()
        config = BackendConfig(ssl_context=context).adjust(max_connections=5)
        assert config.ssl_context is context

    def test_yaml_round_trip(self):
        """Test YAML serialization."""
        config = BackendConfig(connect_timeout=5, proxy="http://proxy:3128", websocket={"ping_interval": 10})
        loaded = BackendConfig.from_yaml(config.to_yaml())
        assert loaded == config

    def test_from_yaml_file(self, tmp_path):
        """Test loading config from a file."""
        path = tmp_path / "wireform.yaml"
        path.write_text(
            """
connect_timeout: 3
max_connections: 20
default_headers:
  X-Team: core
websocket:
  close_grace_period: 1
"""
        )
        config = BackendConfig.from_yaml_file(path)
        assert config.connect_timeout == 3
        assert config.max_connections == 20
        assert config.default_headers == {"X-Team": "core"}
        assert config.websocket.close_grace_period == 1

    def test_empty_yaml_is_defaults(self):
        """Test an empty document gives the defaults."""
        assert BackendConfig.from_yaml("") == BackendConfig()


@pytest.fixture
def restore_logging():
    """Undo setup_logging() changes to the loggers it touches."""
    names = ("wireform", "wireform.backends.logging_backend", "urllib3", "aiohttp")
    saved = {name: logging.getLogger(name).level for name in names}
    yield
    wireform_logger = logging.getLogger("wireform")
    for handler in list(wireform_logger.handlers):
        wireform_logger.removeHandler(handler)
        handler.close()
    wireform_logger.propagate = True
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_configures_wireform_logger(self, tmp_path, restore_logging):
        """Test level and file handler setup."""
        log_file = tmp_path / "wireform.log"
        logger = setup_logging("DEBUG", log_file=str(log_file), force=True)
        assert logger.name == "wireform"
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 2
        assert logger.propagate is False
        logging.getLogger("wireform.backends").debug("hello from backend")
        for handler in logger.handlers:
            handler.flush()
        assert "hello from backend" in log_file.read_text()

    def test_force_replaces_handlers(self, restore_logging):
        """Test a second forced call does not stack handlers."""
        setup_logging(force=True)
        logger = setup_logging(force=True)
        assert len(logger.handlers) == 1

    def test_request_lines_kept_at_quieter_level(self, tmp_path, restore_logging):
        """Test request_level keeps LoggingBackend lines while other output is filtered."""
        log_file = tmp_path / "wireform.log"
        logger = setup_logging("WARNING", log_file=str(log_file), force=True, request_level="INFO")
        backend = LoggingBackend(StubBackend().when_any_request().then_respond("ok", status=201))

        backend.send(basic_request.get("http://svc.example/orders"))
        logging.getLogger("wireform.backends.requests_backend").info("connection pool resized")
        for handler in logger.handlers:
            handler.flush()

        output = log_file.read_text()
        assert "GET http://svc.example/orders -> 201" in output
        assert "connection pool resized" not in output

    def test_transport_level(self, restore_logging):
        """Test transport_level sets the urllib3 and aiohttp loggers."""
        setup_logging(force=True, transport_level="ERROR")
        assert logging.getLogger("urllib3").level == logging.ERROR
        assert logging.getLogger("aiohttp").level == logging.ERROR

    def test_transport_loggers_untouched_by_default(self, restore_logging):
        """Test library loggers keep their level unless asked."""
        logging.getLogger("urllib3").setLevel(logging.DEBUG)
        setup_logging(force=True)
        assert logging.getLogger("urllib3").level == logging.DEBUG

    def test_unknown_level(self, restore_logging):
        """Test a misspelled level is an error."""
        with pytest.raises(ValueError):
            setup_logging("LOUD", force=True)
