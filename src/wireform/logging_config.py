import logging
import sys
from typing import Optional, Union

LOGGER_NAME = "wireform"
# Logger the LoggingBackend wrappers write request lines to by default
REQUEST_LOGGER_NAME = "wireform.backends.logging_backend"
# Libraries the requests and aiohttp backends drive
TRANSPORT_LOGGER_NAMES = ("urllib3", "aiohttp")

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

Level = Union[str, int]


def _to_level(level: Level) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return value


def setup_logging(
    level: Level = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
    force: bool = False,
    *,
    request_level: Optional[Level] = None,
    transport_level: Optional[Level] = None,
) -> logging.Logger:
    """
    Route wireform's log output to stdout and optionally a file.

    Backends log each send at DEBUG, websocket close handshakes at DEBUG and
    malformed frames or failed pipes at WARNING. ``LoggingBackend`` writes
    one line per request to ``wireform.backends.logging_backend``.
    Applications that already configure logging do not need this.

    Args:
        level: Level for the ``wireform`` logger tree
        log_file: Also write to this file
        format_string: Record format; defaults to time, logger, level, message
        force: Replace handlers installed by an earlier call
        request_level: Separate level for ``LoggingBackend`` request lines,
                       e.g. "INFO" to keep them while the rest is at "WARNING"
        transport_level: Level for the ``urllib3`` and ``aiohttp`` loggers;
                         left untouched when None

    Returns:
        The ``wireform`` logger

    Raises:
        ValueError: A level name is not a logging level
    """
    numeric_level = _to_level(level)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(numeric_level)

    if force or not logger.handlers:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

        handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
        if log_file:
            handlers.append(logging.FileHandler(log_file))
        formatter = logging.Formatter(format_string or DEFAULT_FORMAT)
        for handler in handlers:
            # Filtering happens on the loggers so request_level can be lower
            handler.setLevel(logging.NOTSET)
            handler.setFormatter(formatter)
            logger.addHandler(handler)

    # Library output should not be duplicated by the root logger
    logger.propagate = False

    if request_level is not None:
        logging.getLogger(REQUEST_LOGGER_NAME).setLevel(_to_level(request_level))

    if transport_level is not None:
        for name in TRANSPORT_LOGGER_NAMES:
            logging.getLogger(name).setLevel(_to_level(transport_level))

    return logger
