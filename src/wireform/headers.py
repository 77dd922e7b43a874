"""Immutable, case-insensitive header mapping."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Union

HeaderSource = Union[Mapping[str, str], Iterable[tuple[str, str]], None]

SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "cookie",
        "set-cookie",
        "proxy-authorization",
        "x-api-key",
    }
)


class Headers(Mapping[str, str]):
    """
    Read-only header mapping with case-insensitive names.

    Duplicate names collapse to the last value written. The spelling of the
    last write is the one reported when iterating.

    Example:
        headers = Headers({"Content-Type": "text/plain"})
        headers = headers.set("content-type", "application/json")
        assert headers["CONTENT-TYPE"] == "application/json"
        assert list(headers) == ["content-type"]
    """

    __slots__ = ("_items",)

    def __init__(self, source: HeaderSource = None) -> None:
        items: dict[str, tuple[str, str]] = {}
        if source is not None:
            pairs = source.items() if isinstance(source, Mapping) else source
            for name, value in pairs:
                items[name.lower()] = (name, str(value))
        self._items = items

    def __getitem__(self, name: str) -> str:
        return self._items[name.lower()][1]

    def __iter__(self) -> Iterator[str]:
        return (original for original, _ in self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._items

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Headers):
            return {k: v for k, (_, v) in self._items.items()} == {
                k: v for k, (_, v) in other._items.items()
            }
        if isinstance(other, Mapping):
            return self == Headers(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash(frozenset((k, v) for k, (_, v) in self._items.items()))

    def __repr__(self) -> str:
        return f"Headers({dict(self.items())!r})"

    def set(self, name: str, value: str) -> Headers:
        """Return a copy with ``name`` set to ``value``, replacing any previous value."""
        return self.merge({name: value})

    def merge(self, other: HeaderSource) -> Headers:
        """Return a copy with every header of ``other`` written on top."""
        merged = Headers()
        merged._items = dict(self._items)
        for name, value in Headers(other)._items.values():
            merged._items[name.lower()] = (name, value)
        return merged

    def remove(self, name: str) -> Headers:
        """Return a copy without ``name``."""
        remaining = Headers()
        remaining._items = {k: v for k, v in self._items.items() if k != name.lower()}
        return remaining

    def show(self, redact: bool = True) -> str:
        """Render headers for logs, masking credentials unless ``redact`` is False."""
        parts = []
        for name, value in self.items():
            if redact and name.lower() in SENSITIVE_HEADERS:
                value = "***"
            parts.append(f"{name}: {value}")
        return ", ".join(parts)
