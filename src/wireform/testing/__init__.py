"""Stub backends for testing code built on wireform."""

from .stub import AsyncStubBackend, StubBackend, StubResponse, StubWebSocketTransport

__all__ = ["AsyncStubBackend", "StubBackend", "StubResponse", "StubWebSocketTransport"]
