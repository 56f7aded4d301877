"""One writer, many readers sharing a single latest value."""

from __future__ import annotations

import threading
from typing import Generic, TypeVar

T = TypeVar("T")


class _Cell(Generic[T]):
    __slots__ = ("_value", "_lock")

    def __init__(self, value: T) -> None:
        self._value = value
        self._lock = threading.Lock()

    def load(self) -> T:
        with self._lock:
            return self._value

    def store(self, value: T) -> None:
        with self._lock:
            self._value = value


class Broadcaster(Generic[T]):
    """The writing end of a broadcast value."""

    def __init__(self, cell: _Cell[T]) -> None:
        self._cell = cell

    def update(self, val: T) -> None:
        self._cell.store(val)


class Audience(Generic[T]):
    """A reading end of a broadcast value; may be shared freely."""

    def __init__(self, cell: _Cell[T]) -> None:
        self._cell = cell

    def val(self) -> T:
        return self._cell.load()


def broadcast(initial: T) -> tuple[Broadcaster[T], Audience[T]]:
    """Create a connected broadcaster and audience holding ``initial``."""
    cell = _Cell(initial)
    return Broadcaster(cell), Audience(cell)