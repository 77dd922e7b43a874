"""Backends: blocking (requests), future-based (thread pool) and asyncio (aiohttp)."""

from .aiohttp_backend import AiohttpBackend, AiohttpFrameTransport
from .base import AsyncBackend, Deferred, SyncBackend, ensure_supported
from .future_backend import FutureBackend
from .logging_backend import AsyncLoggingBackend, LoggingBackend
from .requests_backend import RequestsBackend

__all__ = [
    "AiohttpBackend",
    "AiohttpFrameTransport",
    "AsyncBackend",
    "AsyncLoggingBackend",
    "Deferred",
    "FutureBackend",
    "LoggingBackend",
    "RequestsBackend",
    "SyncBackend",
    "ensure_supported",
]
