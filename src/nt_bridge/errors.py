"""Error taxonomy shared by the bridge core and its command layer."""

from __future__ import annotations

import logging
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BridgeError(Exception):
    """Base class for every error raised by nt_bridge."""


class UnsupportedConversion(BridgeError, TypeError):
    """Raised when a value cannot be narrowed to the requested kind."""

    def __init__(self, source: str, target: str) -> None:
        super().__init__(f"Cannot convert {source} to {target}")
        self.source = source
        self.target = target


class InvalidValueError(BridgeError, ValueError):
    """Raised when a value payload does not match its declared kind."""


class ConnectError(BridgeError):
    """The initial protocol session could not be established."""


class QueueFullError(BridgeError):
    """A bounded request queue rejected a new item."""

    def __init__(self, queue_name: str, capacity: int, owner: str = "") -> None:
        where = f" for {owner}" if owner else ""
        super().__init__(f"{queue_name} queue{where} is full (capacity {capacity})")
        self.queue_name = queue_name
        self.capacity = capacity
        self.owner = owner


class ThreadAffinityError(BridgeError):
    """An orchestrator-only operation was invoked without the orchestrator token."""


class DatalogError(BridgeError):
    """The datalog collaborator rejected an operation."""


def log_result(fn: Callable[[], T], *, context: str = "") -> T:
    """Run ``fn`` and log any bridge error before re-raising it."""

    try:
        return fn()
    except BridgeError as exc:
        if context:
            logger.error("%s: %s", context, exc)
        else:
            logger.error("%s", exc)
        raise


def log_result_consume(fn: Callable[[], T], *, context: str = "") -> Optional[T]:
    """Run ``fn``; a bridge error is logged and swallowed, returning ``None``."""

    try:
        return log_result(fn, context=context)
    except BridgeError:
        return None


__all__ = [
    "BridgeError",
    "ConnectError",
    "DatalogError",
    "InvalidValueError",
    "QueueFullError",
    "ThreadAffinityError",
    "UnsupportedConversion",
    "log_result",
    "log_result_consume",
]
