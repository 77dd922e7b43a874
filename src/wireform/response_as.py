"""
Response descriptions: how a raw response becomes a typed value.

A ``ResponseAs`` is a small tree built from a closed set of variants. Leaves
say how the body bytes are consumed (ignored, buffered, streamed, written to
a file, upgraded to a websocket). ``MappedResponseAs`` post-processes an
already produced value, and ``ResponseAsFromMetadata`` picks a subtree from
the status and headers before any byte is read.

Backends never interpret the tree themselves: ``resolve()`` walks it once
against the response metadata and returns the single leaf to consume plus the
mapping functions to apply afterwards. See ``wireform.evaluation``.

Example:
    request = basic_request.get(url).response(as_text().map_right(int))
    response = backend.send(request)
    response.body  # Right(42), or Left("not found") for a 404
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Generic, Optional, TypeVar, Union

from .either import Left, Right
from .errors import DecodeError, DeserializationError, HttpError, WireformError
from .response import ResponseMetadata

if TYPE_CHECKING:
    from .websocket.pipe import Pipe

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")

DEFAULT_ENCODING = "utf-8"

MetadataMapper = Callable[[Any, ResponseMetadata], Any]


class Capability(str, Enum):
    """Transport features a response description may depend on."""

    STREAMS = "streams"
    WEBSOCKETS = "websockets"


class ResponseAs(Generic[T]):
    """Base class of every response description variant."""

    @property
    def capabilities(self) -> frozenset[Capability]:
        return frozenset()

    def show(self) -> str:
        raise NotImplementedError

    def map(self, fn: Callable[[T], U]) -> ResponseAs[U]:
        """Apply ``fn`` to the produced value. The body is not read again."""
        return MappedResponseAs(self, lambda value, _meta: fn(value), "mapped")

    def map_with_metadata(self, fn: Callable[[T, ResponseMetadata], U]) -> ResponseAs[U]:
        """Apply ``fn`` to the produced value and the response metadata."""
        return MappedResponseAs(self, fn, "mapped with metadata")

    def map_right(self, fn: Callable[[Any], U]) -> ResponseAs[Any]:
        """For descriptions producing ``Left``/``Right``: map the ``Right`` side only."""
        return MappedResponseAs(self, lambda value, _meta: value.map(fn), "mapped right")

    def map_left(self, fn: Callable[[Any], U]) -> ResponseAs[Any]:
        """For descriptions producing ``Left``/``Right``: map the ``Left`` side only."""
        return MappedResponseAs(self, lambda value, _meta: value.map_left(fn), "mapped left")

    def or_fail(self) -> ResponseAs[Any]:
        """
        Unwrap ``Right`` values and fail the send on ``Left``.

        ``Left(exception)`` is raised as-is; any other ``Left`` becomes an
        ``HttpError`` carrying the value and the status code.
        """
        return MappedResponseAs(self, _unwrap_right, "or fail")

    def __str__(self) -> str:
        return self.show()


@dataclass(frozen=True, eq=False)
class ResponseAsIgnore(ResponseAs[None]):
    """Drain and discard the body."""

    def show(self) -> str:
        return "ignore"


@dataclass(frozen=True, eq=False)
class ResponseAsBytes(ResponseAs[bytes]):
    """Buffer the full body in memory."""

    def show(self) -> str:
        return "as bytes"


@dataclass(frozen=True, eq=False)
class ResponseAsStream(ResponseAs[Any]):
    """
    Expose the body as a lazy chunk stream.

    With no ``consumer`` the stream itself is the result and the caller owns
    the connection until the stream is exhausted or closed. With a
    ``consumer`` the stream is passed to it during the send and released
    when it returns.
    """

    consumer: Optional[Callable[[Any], Any]] = None

    @property
    def capabilities(self) -> frozenset[Capability]:
        return frozenset({Capability.STREAMS})

    def show(self) -> str:
        return "as stream" if self.consumer is None else "as stream (consumed)"


@dataclass(frozen=True, eq=False)
class ResponseAsFile(ResponseAs[Path]):
    """Write the body to ``path`` chunk by chunk."""

    path: Path

    def show(self) -> str:
        return f"as file {self.path}"


@dataclass(frozen=True, eq=False)
class ResponseAsWebSocket(ResponseAs[Any]):
    """
    Use the upgraded connection as a websocket session.

    With no ``handler`` the open session is the result and the caller must
    close it. Otherwise the handler (sync or async) receives the session and
    the session is closed when the handler returns.
    """

    handler: Optional[Callable[[Any], Any]] = None

    @property
    def capabilities(self) -> frozenset[Capability]:
        return frozenset({Capability.WEBSOCKETS})

    def show(self) -> str:
        return "as websocket" if self.handler is None else "as websocket (handled)"


@dataclass(frozen=True, eq=False)
class ResponseAsWebSocketPipe(ResponseAs[None]):
    """Drive the upgraded connection with a frame pipe until either side closes."""

    pipe: Pipe

    @property
    def capabilities(self) -> frozenset[Capability]:
        return frozenset({Capability.WEBSOCKETS})

    def show(self) -> str:
        return "as websocket pipe"


@dataclass(frozen=True, eq=False)
class MappedResponseAs(ResponseAs[Any]):
    """Apply ``fn(value, metadata)`` to whatever ``inner`` produced."""

    inner: ResponseAs[Any]
    fn: MetadataMapper
    label: str = "mapped"

    @property
    def capabilities(self) -> frozenset[Capability]:
        return self.inner.capabilities

    def show(self) -> str:
        return f"{self.inner.show()} ({self.label})"


@dataclass(frozen=True, eq=False)
class ConditionalResponseAs(Generic[T]):
    """A ``from_metadata`` branch: used when ``condition(metadata)`` is true."""

    condition: Callable[[ResponseMetadata], bool]
    response_as: ResponseAs[T]


@dataclass(frozen=True, eq=False)
class ResponseAsFromMetadata(ResponseAs[Any]):
    """
    Choose a description from the status and headers.

    Branches are tried in order; the first whose condition holds is used,
    otherwise ``default``. Selection happens once, before the body is read.
    """

    default: ResponseAs[Any]
    branches: tuple[ConditionalResponseAs[Any], ...] = ()

    @property
    def capabilities(self) -> frozenset[Capability]:
        caps = set(self.default.capabilities)
        for branch in self.branches:
            caps |= branch.response_as.capabilities
        return frozenset(caps)

    def select(self, metadata: ResponseMetadata) -> ResponseAs[Any]:
        for branch in self.branches:
            if branch.condition(metadata):
                return branch.response_as
        return self.default

    def show(self) -> str:
        options = [branch.response_as.show() for branch in self.branches]
        options.append(self.default.show())
        return f"from metadata ({', '.join(options)})"


LeafResponseAs = Union[
    ResponseAsIgnore,
    ResponseAsBytes,
    ResponseAsStream,
    ResponseAsFile,
    ResponseAsWebSocket,
    ResponseAsWebSocketPipe,
]


@dataclass(frozen=True)
class ResolvedResponseAs:
    """The leaf chosen for one response and the mappers to run after it, innermost first."""

    leaf: LeafResponseAs
    mappers: tuple[MetadataMapper, ...] = ()

    def finish(self, value: Any, metadata: ResponseMetadata) -> Any:
        """Run the mappers over the value produced by the leaf."""
        for fn in self.mappers:
            try:
                value = fn(value, metadata)
            except WireformError:
                raise
            except Exception as err:
                raise DecodeError(f"Mapping the response body failed: {err}") from err
        return value


def resolve(response_as: ResponseAs[Any], metadata: ResponseMetadata) -> ResolvedResponseAs:
    """
    Walk a description against the response metadata.

    Every ``from_metadata`` node on the path is evaluated exactly once and
    no body byte is needed to do it.
    """
    mappers: list[MetadataMapper] = []
    current = response_as
    while True:
        if isinstance(current, MappedResponseAs):
            mappers.append(current.fn)
            current = current.inner
        elif isinstance(current, ResponseAsFromMetadata):
            current = current.select(metadata)
        else:
            break
    logger.debug(f"Resolved {response_as.show()} to {current.show()} for status {metadata.status}")
    return ResolvedResponseAs(leaf=current, mappers=tuple(reversed(mappers)))


def _unwrap_right(value: Any, metadata: ResponseMetadata) -> Any:
    if isinstance(value, Right):
        return value.value
    if isinstance(value, Left):
        if isinstance(value.value, Exception):
            raise value.value
        raise HttpError(value.value, metadata.status)
    return value


def _decode_text(encoding: Optional[str]) -> MetadataMapper:
    def decode(body: bytes, metadata: ResponseMetadata) -> str:
        charset = encoding or metadata.charset or DEFAULT_ENCODING
        try:
            return body.decode(charset, errors="replace")
        except LookupError:
            logger.debug(f"Unknown charset {charset!r}, falling back to {DEFAULT_ENCODING}")
            return body.decode(DEFAULT_ENCODING, errors="replace")

    return decode


def _is_success(metadata: ResponseMetadata) -> bool:
    return metadata.is_success


def _is_upgrade(metadata: ResponseMetadata) -> bool:
    return metadata.is_switching_protocols


def _as_left(value: Any, _meta: ResponseMetadata) -> Left[Any]:
    return Left(value)


def _as_right(value: Any, _meta: ResponseMetadata) -> Right[Any]:
    return Right(value)


# Constructors


def ignore() -> ResponseAs[None]:
    """Discard the body. The bytes are still drained so the connection can be reused."""
    return ResponseAsIgnore()


def as_binary_always() -> ResponseAs[bytes]:
    """Full body as bytes, whatever the status."""
    return ResponseAsBytes()


def as_binary() -> ResponseAs[Any]:
    """``Right(bytes)`` on 2xx, ``Left(text)`` otherwise."""
    return as_either(as_text_always(), as_binary_always())


def as_text_always(encoding: Optional[str] = None) -> ResponseAs[str]:
    """
    Body decoded as text, whatever the status.

    Args:
        encoding: Charset to use. Defaults to the Content-Type charset, then UTF-8.
    """
    return MappedResponseAs(ResponseAsBytes(), _decode_text(encoding), "as text")


def as_text(encoding: Optional[str] = None) -> ResponseAs[Any]:
    """``Right(text)`` on 2xx, ``Left(text)`` otherwise. The default for new requests."""
    return as_either(as_text_always(encoding), as_text_always(encoding))


def as_file_always(path: Union[str, Path]) -> ResponseAs[Path]:
    """Write the body to ``path`` whatever the status and produce the path."""
    return ResponseAsFile(Path(path))


def as_file(path: Union[str, Path]) -> ResponseAs[Any]:
    """``Right(path)`` on 2xx (body written to disk), ``Left(text)`` otherwise."""
    return as_either(as_text_always(), as_file_always(path))


def as_stream_always() -> ResponseAs[Any]:
    """
    The body as a lazy stream the caller must consume or close.

    Sync backends produce a ``BodyStream``, async backends an ``AsyncBodyStream``.
    """
    return ResponseAsStream()


def as_stream() -> ResponseAs[Any]:
    """``Right(stream)`` on 2xx, ``Left(text)`` otherwise."""
    return as_either(as_text_always(), as_stream_always())


def as_stream_always_with(consumer: Callable[[Any], Any]) -> ResponseAs[Any]:
    """Pass the body stream to ``consumer`` during the send and produce its result."""
    return ResponseAsStream(consumer)


def as_stream_with(consumer: Callable[[Any], Any]) -> ResponseAs[Any]:
    """``Right(consumer(stream))`` on 2xx, ``Left(text)`` otherwise."""
    return as_either(as_text_always(), as_stream_always_with(consumer))


def as_websocket_always(handler: Callable[[Any], Any]) -> ResponseAs[Any]:
    """Run ``handler`` with the open websocket session and produce its result."""
    return ResponseAsWebSocket(handler)


def as_websocket(handler: Callable[[Any], Any]) -> ResponseAs[Any]:
    """``Right(handler(ws))`` when the upgrade succeeds, ``Left(text)`` otherwise."""
    return from_metadata(
        MappedResponseAs(as_text_always(), _as_left, "left"),
        conditional(_is_upgrade, MappedResponseAs(as_websocket_always(handler), _as_right, "right")),
    )


def as_websocket_unsafe() -> ResponseAs[Any]:
    """The open websocket session itself. The caller must close it."""
    return ResponseAsWebSocket()


def as_websocket_pipe(pipe: Pipe) -> ResponseAs[Any]:
    """``Right(None)`` after ``pipe`` drove the session to completion, ``Left(text)`` if the upgrade failed."""
    return from_metadata(
        MappedResponseAs(as_text_always(), _as_left, "left"),
        conditional(_is_upgrade, MappedResponseAs(ResponseAsWebSocketPipe(pipe), _as_right, "right")),
    )


def as_either(on_error: ResponseAs[Any], on_success: ResponseAs[Any]) -> ResponseAs[Any]:
    """Use ``on_success`` wrapped in ``Right`` for 2xx, ``on_error`` wrapped in ``Left`` otherwise."""
    return from_metadata(
        MappedResponseAs(on_error, _as_left, "left"),
        conditional(_is_success, MappedResponseAs(on_success, _as_right, "right")),
    )


def conditional(
    condition: Callable[[ResponseMetadata], bool], response_as: ResponseAs[T]
) -> ConditionalResponseAs[T]:
    """Build a ``from_metadata`` branch."""
    return ConditionalResponseAs(condition, response_as)


def from_metadata(default: ResponseAs[Any], *branches: ConditionalResponseAs[Any]) -> ResponseAs[Any]:
    """
    Choose the description from the status code and headers.

    Example:
        from_metadata(
            as_text_always().map(parse_error),
            conditional(lambda m: m.status == 200, as_json_always(Order)),
            conditional(lambda m: m.status == 204, ignore()),
        )
    """
    return ResponseAsFromMetadata(default, tuple(branches))


def _json_parser(type_: Any) -> Callable[[str], Any]:
    if type_ is None:
        return json.loads

    from pydantic import TypeAdapter

    adapter = TypeAdapter(type_)
    return adapter.validate_json


def _deserialize(type_: Any) -> MetadataMapper:
    parse = _json_parser(type_)

    def deserialize(text: str, _meta: ResponseMetadata) -> Any:
        try:
            return Right(parse(text))
        except ValueError as err:
            # json.JSONDecodeError and pydantic.ValidationError both subclass ValueError
            return Left(DeserializationError(text, err))

    return deserialize


def as_json_always(type_: Any = None) -> ResponseAs[Any]:
    """
    Parse the body as JSON whatever the status.

    Produces ``Right(value)`` or ``Left(DeserializationError)``. With a
    ``type_`` (a pydantic model, dataclass or any annotation) the JSON is
    validated into it; otherwise plain ``json.loads`` is used.
    """
    return MappedResponseAs(as_text_always(), _deserialize(type_), "as json")


def as_json(type_: Any = None) -> ResponseAs[Any]:
    """
    Parse a 2xx body as JSON.

    Produces ``Right(value)``, ``Left(HttpError)`` for non-2xx responses or
    ``Left(DeserializationError)`` when the body does not parse.
    """

    def http_error(text: str, metadata: ResponseMetadata) -> Left[HttpError]:
        return Left(HttpError(text, metadata.status))

    return from_metadata(
        MappedResponseAs(as_text_always(), http_error, "http error"),
        conditional(_is_success, as_json_always(type_)),
    )
