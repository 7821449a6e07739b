"""Per-connection synchronization loop.

Each cycle applies, in order: pending subscription changes, at most one
pending outbound table, every inbound update currently buffered by the
protocol session, and finally a merge of those updates into the accumulated
session table.  The merged table is published to the connection's
latest-value mailbox exactly once per cycle, then the loop sleeps for the
remainder of its cadence.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from nt_bridge.client.mailbox import LatestValueMailbox, RequestQueue
from nt_bridge.client.session import InboundMessage, ProtocolSession, SubscriptionRequest
from nt_bridge.errors import ConnectError
from nt_bridge.shared.table import MICROS_PER_SECOND, TableEntry, TelemetryTable, TopicPath
from nt_bridge.shared.values import TelemetryValue

logger = logging.getLogger(__name__)

DEFAULT_CADENCE_S = 0.015


@dataclass
class ConnectionChannels:
    """The three channels shared by a handle and its loop."""

    subscriptions: RequestQueue[list[SubscriptionRequest]]
    outbound: RequestQueue[TelemetryTable]
    latest: LatestValueMailbox[TelemetryTable]

    @classmethod
    def create(cls, capacity: int, *, owner: str = "") -> ConnectionChannels:
        return cls(
            subscriptions=RequestQueue("subscription", capacity, owner=owner),
            outbound=RequestQueue("publish", capacity, owner=owner),
            latest=LatestValueMailbox(TelemetryTable(0)),
        )


def pacing_delay(cadence_s: float, elapsed_s: float) -> float:
    """Sleep needed to finish a cycle on cadence, clamped to ``[0, cadence]``."""
    return min(max(cadence_s - elapsed_s, 0.0), cadence_s)


class SyncLoop:
    """Drives one protocol session and mirrors its state into a table."""

    def __init__(
        self,
        session: ProtocolSession,
        channels: ConnectionChannels,
        *,
        label: str = "",
        cadence_s: float = DEFAULT_CADENCE_S,
        log_publishes: bool = False,
        clock: Callable[[], float] = time.perf_counter,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._session = session
        self._channels = channels
        self._label = label or "connection"
        self._cadence_s = float(cadence_s)
        self._publish_level = logging.INFO if log_publishes else logging.DEBUG
        self._clock = clock
        self._sleep = sleep
        self._subscriptions: dict[str, Any] = {}
        self._published: dict[TopicPath, Any] = {}
        self._table = TelemetryTable(0)
        self._connected = False
        self._cycles = 0

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def cycles(self) -> int:
        return self._cycles

    @property
    def subscribed_topics(self) -> tuple[str, ...]:
        return tuple(self._subscriptions)

    @property
    def published_paths(self) -> tuple[TopicPath, ...]:
        return tuple(self._published)

    async def run(self) -> None:
        """Connect, then cycle until cancelled."""
        try:
            await self.connect()
            while True:
                started = self._clock()
                await self.run_cycle()
                await self._sleep(pacing_delay(self._cadence_s, self._clock() - started))
        finally:
            self._close_session()

    async def connect(self) -> None:
        logger.info("Connecting to %s", self._label)
        try:
            await self._session.connect()
        except ConnectError:
            logger.error("Failed to connect to %s", self._label)
            raise
        except Exception as exc:
            logger.error("Failed to connect to %s because %s", self._label, exc)
            raise ConnectError(f"failed to connect to {self._label}: {exc}") from exc
        self._table = TelemetryTable(self._session.server_time())
        self._connected = True
        logger.info("Connected to %s", self._label)

    async def run_cycle(self) -> TelemetryTable:
        await self.apply_subscription_changes()
        await self.apply_outbound()
        fresh = self.drain_inbound()
        snapshot = self.merge_and_publish(fresh)
        self._cycles += 1
        return snapshot

    # ---- subscriptions -----------------------------------------------------

    async def apply_subscription_changes(self) -> int:
        applied = 0
        for batch in self._channels.subscriptions.drain():
            for request in batch:
                if await self._resubscribe(request):
                    applied += 1
        return applied

    async def _resubscribe(self, request: SubscriptionRequest) -> bool:
        name = request.topic
        existing = self._subscriptions.pop(name, None)
        if existing is not None:
            try:
                await self._session.unsubscribe(existing)
            except Exception:
                logger.warning("Failed to unsubscribe %s on %s", name, self._label, exc_info=True)
        try:
            subscription = await self._session.subscribe([name], request.options)
        except Exception:
            logger.error("Failed to subscribe to %s on %s", name, self._label, exc_info=True)
            return False
        self._subscriptions[name] = subscription
        logger.info("Subscribed to %s:%s", self._label, name)
        return True

    # ---- publishes ---------------------------------------------------------

    async def apply_outbound(self) -> int:
        table = self._channels.outbound.take()
        if table is None:
            return 0
        sent = 0
        for entry in table:
            if await self._publish_entry(entry):
                sent += 1
        return sent

    async def _publish_entry(self, entry: TableEntry) -> bool:
        path = entry.path
        topic = self._published.get(path)
        if topic is None:
            try:
                topic = await self._session.publish_topic(path.to_string(), entry.value.kind)
            except Exception:
                logger.error("Failed to announce %s on %s", path, self._label, exc_info=True)
                return False
            self._published[path] = topic
        try:
            await self._session.publish_value(topic, entry.value.to_wire())
        except Exception:
            logger.error("Failed to publish %s on %s", path, self._label, exc_info=True)
            return False
        logger.log(self._publish_level, "Published to %s:%s", self._label, path)
        return True

    # ---- inbound -----------------------------------------------------------

    def drain_inbound(self) -> TelemetryTable:
        fresh = TelemetryTable(self._session.server_time())
        for name, subscription in self._subscriptions.items():
            try:
                messages = self._session.poll_messages(subscription)
            except Exception:
                logger.warning("Failed to read updates for %s on %s", name, self._label, exc_info=True)
                continue
            for message in messages:
                entry = self._entry_from_message(message)
                if entry is not None:
                    fresh.add_entry(entry)
        return fresh

    def _entry_from_message(self, message: InboundMessage) -> Optional[TableEntry]:
        try:
            value = TelemetryValue.from_wire(message.payload)
            path = TopicPath.parse(message.topic_name)
        except (TypeError, ValueError) as exc:
            logger.warning("Dropping update for %s on %s: %s", message.topic_name, self._label, exc)
            return None
        real_time_us = self._session.to_real_time(message.timestamp)
        return TableEntry(value, path, real_time_us / MICROS_PER_SECOND)

    # ---- state -------------------------------------------------------------

    def merge_and_publish(self, fresh: TelemetryTable) -> TelemetryTable:
        self._table.merge(fresh)
        snapshot = self._table.copy()
        self._channels.latest.publish(snapshot)
        return snapshot

    def _close_session(self) -> None:
        try:
            self._session.close()
        except Exception:
            logger.warning("Closing session for %s failed", self._label, exc_info=True)


__all__ = [
    "ConnectionChannels",
    "DEFAULT_CADENCE_S",
    "SyncLoop",
    "pacing_delay",
]
