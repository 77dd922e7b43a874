"""Left/Right values produced by the default error/success split."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar, Union

L = TypeVar("L")
R = TypeVar("R")
U = TypeVar("U")


@dataclass(frozen=True)
class Left(Generic[L]):
    """Error side. For ``as_text()`` this holds the body of a non-2xx response."""

    value: L

    @property
    def is_left(self) -> bool:
        return True

    @property
    def is_right(self) -> bool:
        return False

    def map(self, fn: Callable[[Any], Any]) -> Left[L]:
        return self

    def map_left(self, fn: Callable[[L], U]) -> Left[U]:
        return Left(fn(self.value))

    def fold(self, on_left: Callable[[L], U], on_right: Callable[[Any], U]) -> U:
        return on_left(self.value)

    def get_or_else(self, default: Any) -> Any:
        return default


@dataclass(frozen=True)
class Right(Generic[R]):
    """Success side."""

    value: R

    @property
    def is_left(self) -> bool:
        return False

    @property
    def is_right(self) -> bool:
        return True

    def map(self, fn: Callable[[R], U]) -> Right[U]:
        return Right(fn(self.value))

    def map_left(self, fn: Callable[[Any], Any]) -> Right[R]:
        return self

    def fold(self, on_left: Callable[[Any], U], on_right: Callable[[R], U]) -> U:
        return on_right(self.value)

    def get_or_else(self, default: Any) -> R:
        return self.value


Either = Union[Left[L], Right[R]]
