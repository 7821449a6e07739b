"""Channels between a connection handle and its synchronization loop."""

from __future__ import annotations

import queue
import threading
from typing import Generic, Optional, TypeVar

from nt_bridge.errors import QueueFullError

T = TypeVar("T")


class LatestValueMailbox(Generic[T]):
    """Single-slot cell holding only the newest published value.

    One writer replaces the slot; any number of readers fetch it. Nothing is
    queued, so a slow reader simply skips intermediate values.
    """

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._version = 0
        self._lock = threading.Lock()

    def publish(self, value: T) -> int:
        with self._lock:
            self._value = value
            self._version += 1
            return self._version

    def latest(self) -> T:
        with self._lock:
            return self._value

    def snapshot(self) -> tuple[int, T]:
        with self._lock:
            return self._version, self._value

    @property
    def version(self) -> int:
        with self._lock:
            return self._version


class RequestQueue(Generic[T]):
    """Bounded, thread-safe request queue that never blocks either side.

    ``offer`` raises ``QueueFullError`` instead of waiting; the rejected item
    is dropped.
    """

    def __init__(self, name: str, capacity: int, *, owner: str = "") -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.name = name
        self.owner = owner
        self._capacity = int(capacity)
        self._queue: queue.Queue[T] = queue.Queue(maxsize=self._capacity)

    @property
    def capacity(self) -> int:
        return self._capacity

    def offer(self, item: T) -> None:
        try:
            self._queue.put_nowait(item)
        except queue.Full:
            raise QueueFullError(self.name, self._capacity, self.owner) from None

    def take(self) -> Optional[T]:
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def drain(self, limit: Optional[int] = None) -> list[T]:
        items: list[T] = []
        while limit is None or len(items) < limit:
            item = self.take()
            if item is None:
                break
            items.append(item)
        return items

    def __len__(self) -> int:
        return self._queue.qsize()


__all__ = ["LatestValueMailbox", "RequestQueue"]
