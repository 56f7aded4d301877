"""A bounded first-in first-out queue."""

from __future__ import annotations

from collections import deque
from typing import Generic, Iterable, TypeVar

T = TypeVar("T")


class Fifo(Generic[T]):
    """FIFO holding at most ``max_len`` items."""

    def __init__(self, max_len: int) -> None:
        if max_len < 0:
            raise ValueError("max_len must not be negative")
        self.max_len = max_len
        self._inner: deque[T] = deque()

    def push(self, item: T) -> bool:
        """Append ``item``; return False if the queue is full."""
        if len(self._inner) >= self.max_len:
            return False
        self._inner.append(item)
        return True

    def pop(self) -> T | None:
        """Remove and return the oldest item, or ``None`` when empty."""
        return self._inner.popleft() if self._inner else None

    def __len__(self) -> int:
        return len(self._inner)

    def free_space(self) -> int:
        return self.max_len - len(self._inner)

    def clear(self) -> None:
        self._inner.clear()

    def drain(self, count: int) -> list[T]:
        """Remove and return up to ``count`` of the oldest items."""
        amount = min(count, len(self._inner))
        return [self._inner.popleft() for _ in range(amount)]

    def full(self) -> bool:
        return len(self._inner) == self.max_len

    def empty(self) -> bool:
        return not self._inner

    def clone_extend(self, items: Iterable[T]) -> int:
        """Append as many of ``items`` as fit; return how many were added."""
        items = list(items)
        amount = min(len(items), self.free_space())
        self._inner.extend(items[:amount])
        return amount