"""Caller-facing handle for one running connection."""

from __future__ import annotations

import concurrent.futures
import logging
from collections.abc import Iterable
from typing import Callable, Optional

from nt_bridge.client.runtime import BridgeRuntime
from nt_bridge.client.session import ConnectionId, ProtocolSession, SubscriptionRequest
from nt_bridge.client.sync_loop import ConnectionChannels, SyncLoop
from nt_bridge.config import BridgeConfig
from nt_bridge.orchestrator import OrchestratorToken
from nt_bridge.shared.table import TelemetryTable

logger = logging.getLogger(__name__)

SessionFactory = Callable[[ConnectionId, BridgeConfig], ProtocolSession]


class ConnectionHandle:
    """Queues work for a connection loop and exposes its latest table.

    The handle holds no protocol state; every call returns immediately.
    """

    def __init__(
        self,
        connection_id: ConnectionId,
        channels: ConnectionChannels,
        task: concurrent.futures.Future,
    ) -> None:
        self._id = connection_id
        self._channels = channels
        self._task = task

    @property
    def connection_id(self) -> ConnectionId:
        return self._id

    def publish(self, table: TelemetryTable) -> None:
        """Queue ``table`` for transmission; raises ``QueueFullError`` when full."""
        logger.debug("Queueing %d entries for %s", len(table), self._id)
        self._channels.outbound.offer(table)

    def change_subscriptions(self, requests: Iterable[SubscriptionRequest]) -> None:
        """Queue a batch of subscription changes; raises ``QueueFullError`` when full."""
        self._channels.subscriptions.offer(list(requests))

    def poll(self) -> TelemetryTable:
        """Private copy of the most recently merged table."""
        return self._channels.latest.latest().copy()

    def stop(self) -> None:
        """Cancel the loop without waiting for in-flight protocol calls."""
        self._task.cancel()

    @property
    def running(self) -> bool:
        return not self._task.done()

    def failure(self) -> Optional[BaseException]:
        """Exception that ended the loop, if it ended with one."""
        task = self._task
        if not task.done() or task.cancelled():
            return None
        return task.exception()

    def __repr__(self) -> str:
        state = "running" if self.running else "stopped"
        return f"ConnectionHandle({self._id}, {state})"


def start_connection(
    token: OrchestratorToken,
    runtime: BridgeRuntime,
    connection_id: ConnectionId,
    *,
    config: BridgeConfig,
    session_factory: SessionFactory,
) -> ConnectionHandle:
    """Spawn a synchronization loop for ``connection_id`` and return its handle."""

    token.validate()
    label = str(connection_id)
    channels = ConnectionChannels.create(config.queue_capacity, owner=label)
    session = session_factory(connection_id, config)
    loop = SyncLoop(
        session,
        channels,
        label=label,
        cadence_s=config.cadence_s,
        log_publishes=config.log_publishes,
    )
    task = runtime.spawn(loop.run(), name=label)
    return ConnectionHandle(connection_id, channels, task)


__all__ = ["ConnectionHandle", "SessionFactory", "start_connection"]
