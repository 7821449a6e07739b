"""Shared asyncio runtime hosting every connection loop."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Coroutine, Optional

logger = logging.getLogger(__name__)


class BridgeRuntime:
    """Owns one event loop on a daemon thread.

    Connection loops are independent tasks on that loop. ``spawn`` returns a
    ``concurrent.futures.Future`` that can be cancelled from any thread.
    """

    def __init__(self, *, name: str = "nt-bridge-runtime") -> None:
        self._name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()
        self._futures: set[concurrent.futures.Future] = set()
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._ready.clear()
        thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread = thread
        thread.start()
        self._ready.wait()

    def _run(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._loop = loop
        self._ready.set()
        try:
            loop.run_forever()
        finally:
            try:
                pending = asyncio.all_tasks(loop)
                for task in pending:
                    task.cancel()
                if pending:
                    loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            finally:
                loop.close()
                self._loop = None

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str = "") -> concurrent.futures.Future:
        """Schedule ``coro`` on the runtime loop, starting the loop if needed."""
        self.start()
        loop = self._loop
        if loop is None:
            coro.close()
            raise RuntimeError("bridge runtime is not running")
        future = asyncio.run_coroutine_threadsafe(coro, loop)
        with self._lock:
            self._futures.add(future)
        label = name or getattr(coro, "__qualname__", "task")
        future.add_done_callback(lambda fut: self._on_done(fut, label))
        return future

    def _on_done(self, future: concurrent.futures.Future, label: str) -> None:
        with self._lock:
            self._futures.discard(future)
        if future.cancelled():
            logger.debug("Task %s cancelled", label)
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Task %s stopped: %s", label, exc)

    def active_tasks(self) -> int:
        with self._lock:
            return len(self._futures)

    def shutdown(self, timeout: float = 2.0) -> None:
        """Cancel every task, stop the loop and join its thread."""
        with self._lock:
            futures = list(self._futures)
        for future in futures:
            future.cancel()
        loop = self._loop
        thread = self._thread
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(loop.stop)
        if thread is not None:
            thread.join(timeout)
        self._thread = None


__all__ = ["BridgeRuntime"]
