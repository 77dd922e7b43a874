"""Configuration models for wireform."""

from .config import BackendConfig, WebSocketConfig

__all__ = [
    "BackendConfig",
    "WebSocketConfig",
]
