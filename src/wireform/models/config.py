"""Pydantic configuration models for wireform backends."""

import ssl
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field


class WebSocketConfig(BaseModel):
    """Configuration for websocket sessions opened by a backend."""

    ping_interval: Optional[float] = Field(
        20.0,
        gt=0,
        description="Seconds between keepalive pings sent by the transport (None = no heartbeat)",
    )
    receive_timeout: Optional[float] = Field(
        None,
        gt=0,
        description="Seconds to wait for a single frame before failing (None = wait forever)",
    )
    max_message_size: int = Field(
        4 * 1024 * 1024,
        ge=0,
        description="Largest accepted inbound message in bytes (0 = unlimited)",
    )
    close_grace_period: float = Field(
        5.0,
        ge=0,
        description="Seconds the other side gets to acknowledge a close before the socket is dropped",
    )
    auto_pong: bool = Field(True, description="Answer ping frames with pong frames automatically")

    model_config = {"extra": "forbid", "frozen": True}


class BackendConfig(BaseModel):
    """
    Configuration shared by every network backend.

    Each option affects the connection pool or the transport, never how a
    body is decoded (that belongs to the request's response description).

    Example:
        config = BackendConfig(connect_timeout=5, max_connections=20)
        backend = RequestsBackend(config)

        # Adjust a copy; the original is frozen
        tighter = config.adjust(read_timeout=10)

    YAML format:
        connect_timeout: 5
        max_connections: 20
        proxy: http://proxy.internal:3128
        websocket:
          ping_interval: 10
    """

    connect_timeout: float = Field(
        10.0,
        gt=0,
        description="Seconds allowed to establish a TCP/TLS connection",
    )
    read_timeout: Optional[float] = Field(
        60.0,
        gt=0,
        description="Seconds allowed between two socket reads; a request's own read_timeout wins",
    )
    max_connections: int = Field(
        100,
        gt=0,
        description="Size of the connection pool shared by all sends of one backend",
    )
    proxy: Optional[str] = Field(None, description="HTTP/HTTPS proxy URL used for every request")
    ssl_context: Optional[ssl.SSLContext] = Field(
        None,
        description="TLS context for HTTPS connections (client certificates, custom CAs)",
    )
    verify_ssl: bool = Field(True, description="Verify server certificates when no ssl_context is given")
    follow_redirects: bool = Field(True, description="Follow 3xx responses unless a request overrides it")
    max_redirects: int = Field(30, ge=0, description="Longest redirect chain before failing")
    user_agent: Optional[str] = Field(None, description="User-Agent header added to every request")
    default_headers: dict[str, str] = Field(
        default_factory=dict,
        description="Headers added to every request; request headers win on conflict",
    )
    chunk_size: int = Field(
        64 * 1024,
        gt=0,
        description="Largest chunk read from the socket at once when streaming a body",
    )
    websocket: WebSocketConfig = Field(default_factory=WebSocketConfig)

    model_config = {"extra": "forbid", "frozen": True, "arbitrary_types_allowed": True}

    def adjust(self, **changes: Any) -> "BackendConfig":
        """Return a validated copy with ``changes`` applied."""
        data = self.model_dump(exclude={"ssl_context"})
        data["ssl_context"] = self.ssl_context
        data.update(changes)
        return type(self).model_validate(data)

    def to_yaml(self) -> str:
        """Serialize config to YAML string. The TLS context is not serializable and is left out."""
        import yaml

        return yaml.dump(
            self.model_dump(mode="json", exclude={"ssl_context"}, exclude_none=True),
            default_flow_style=False,
        )

    @classmethod
    def from_yaml(cls, yaml_str: str) -> "BackendConfig":
        """Load config from YAML string."""
        import yaml

        data = yaml.safe_load(yaml_str) or {}
        return cls.model_validate(data)

    @classmethod
    def from_yaml_file(cls, path: Path) -> "BackendConfig":
        """Load config from YAML file."""
        return cls.from_yaml(path.read_text())
