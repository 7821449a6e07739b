"""Process-scoped registry of running connections."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from nt_bridge.client.handle import ConnectionHandle
from nt_bridge.client.session import ConnectionId
from nt_bridge.orchestrator import OrchestratorToken

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Maps connection identities to their handles.

    Mutations require the orchestrator token; lookups are safe from any
    thread. The registry never stops a handle it did not remove.
    """

    def __init__(self, token: OrchestratorToken) -> None:
        self._token = token
        self._handles: dict[ConnectionId, ConnectionHandle] = {}
        self._lock = threading.Lock()

    @property
    def token(self) -> OrchestratorToken:
        return self._token

    def replace(self, token: Optional[OrchestratorToken], handle: ConnectionHandle) -> Optional[ConnectionHandle]:
        """Insert ``handle``, returning the handle it displaced (not stopped)."""
        self._token.require(token)
        with self._lock:
            previous = self._handles.get(handle.connection_id)
            self._handles[handle.connection_id] = handle
        return previous

    def remove(self, token: Optional[OrchestratorToken], connection_id: ConnectionId) -> Optional[ConnectionHandle]:
        self._token.require(token)
        with self._lock:
            return self._handles.pop(connection_id, None)

    def get(self, connection_id: ConnectionId) -> Optional[ConnectionHandle]:
        with self._lock:
            return self._handles.get(connection_id)

    def contains(self, connection_id: ConnectionId) -> bool:
        with self._lock:
            return connection_id in self._handles

    def __contains__(self, connection_id: object) -> bool:
        return isinstance(connection_id, ConnectionId) and self.contains(connection_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def ids(self) -> list[ConnectionId]:
        with self._lock:
            return list(self._handles)

    def names(self) -> list[str]:
        return [str(connection_id) for connection_id in self.ids()]

    def clear(self, token: Optional[OrchestratorToken]) -> int:
        """Stop and forget every connection; returns how many were stopped."""
        self._token.require(token)
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        for handle in handles:
            logger.info("Stopping network table client for %s", handle.connection_id)
            handle.stop()
        return len(handles)


__all__ = ["ConnectionRegistry"]
