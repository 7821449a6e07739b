"""Command surface: thin request/response shims over connection handles.

Every command looks a connection up by its ``ConnectionId`` in the context's
registry and forwards to the handle. Unknown connections are logged and
answered with a neutral default rather than an error.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Optional

from nt_bridge.client.handle import ConnectionHandle, SessionFactory, start_connection
from nt_bridge.client.runtime import BridgeRuntime
from nt_bridge.client.session import AddressLike, ConnectionId, ProtocolSession, SubscriptionOptions, SubscriptionRequest
from nt_bridge.config import BridgeConfig, load_bridge_config
from nt_bridge.errors import QueueFullError
from nt_bridge.orchestrator import OrchestratorToken
from nt_bridge.registry import ConnectionRegistry
from nt_bridge.shared.table import PathLike, TableEntry, TelemetryTable
from nt_bridge.shared.values import TelemetryValue

logger = logging.getLogger(__name__)


def ntcore_session_factory(connection_id: ConnectionId, config: BridgeConfig) -> ProtocolSession:
    from nt_bridge.client.ntcore_session import NtcoreSession

    return NtcoreSession(connection_id, config)


@dataclass
class BridgeContext:
    """Everything the command layer needs, owned by the orchestrator."""

    token: OrchestratorToken
    runtime: BridgeRuntime
    registry: ConnectionRegistry
    config: BridgeConfig = field(default_factory=BridgeConfig)
    session_factory: SessionFactory = ntcore_session_factory


def create_context(
    *,
    config: Optional[BridgeConfig] = None,
    session_factory: Optional[SessionFactory] = None,
    runtime: Optional[BridgeRuntime] = None,
    owner: str = "main",
) -> BridgeContext:
    token = OrchestratorToken(owner)
    return BridgeContext(
        token=token,
        runtime=runtime or BridgeRuntime(),
        registry=ConnectionRegistry(token),
        config=config or load_bridge_config(),
        session_factory=session_factory or ntcore_session_factory,
    )


def _lookup(ctx: BridgeContext, client_id: ConnectionId) -> Optional[ConnectionHandle]:
    handle = ctx.registry.get(client_id)
    if handle is None:
        logger.warning("No network table client found for %s", client_id)
    return handle


# ---- lifecycle ---------------------------------------------------------------


def start_client(ctx: BridgeContext, address: AddressLike, port: int, identity: str) -> ConnectionId:
    """Start a connection, replacing any running one with the same identity."""
    ctx.token.validate()
    client_id = ConnectionId.from_address(address, port, identity)
    previous = ctx.registry.remove(ctx.token, client_id)
    if previous is not None:
        logger.info("Stopping network table client for %s", client_id)
        previous.stop()
    logger.info("Starting network table client for %s", client_id)
    handle = start_connection(
        ctx.token,
        ctx.runtime,
        client_id,
        config=ctx.config,
        session_factory=ctx.session_factory,
    )
    ctx.registry.replace(ctx.token, handle)
    return client_id


def stop_client(ctx: BridgeContext, client_id: ConnectionId) -> bool:
    handle = ctx.registry.remove(ctx.token, client_id)
    if handle is None:
        logger.warning("No network table client found for %s", client_id)
        return False
    logger.info("Stopping network table client for %s", client_id)
    handle.stop()
    return True


def client_exists(ctx: BridgeContext, client_id: ConnectionId) -> bool:
    return ctx.registry.contains(client_id)


def connected_client_names(ctx: BridgeContext) -> list[str]:
    return ctx.registry.names()


# ---- subscriptions -----------------------------------------------------------


def subscribe_topic(
    ctx: BridgeContext,
    client_id: ConnectionId,
    topic: str,
    periodic: Optional[float] = None,
    send_all: Optional[bool] = None,
    prefix: Optional[bool] = None,
) -> bool:
    handle = _lookup(ctx, client_id)
    if handle is None:
        return False
    request = SubscriptionRequest(
        topic,
        SubscriptionOptions(periodic=periodic, send_all=send_all, prefix_match=prefix),
    )
    try:
        handle.change_subscriptions([request])
    except QueueFullError as exc:
        logger.error("Failed to subscribe to %s on %s because %s", topic, client_id, exc)
        return False
    logger.info("Subscribed to topic %s", topic)
    return True


# ---- typed publishes ---------------------------------------------------------


def publish_value(ctx: BridgeContext, client_id: ConnectionId, topic: PathLike, value: TelemetryValue) -> bool:
    handle = _lookup(ctx, client_id)
    if handle is None:
        return False
    entry = TableEntry(value, topic)
    try:
        handle.publish(TelemetryTable.from_entries(0, [entry]))
    except QueueFullError as exc:
        logger.error("Failed to publish to network table client %s because %s", client_id, exc)
        return False
    logger.info("Set %s topic %s to %s for %s", value.kind.value, entry.path, value.data, client_id)
    return True


def set_boolean_topic(ctx: BridgeContext, client_id: ConnectionId, topic: str, value: bool) -> bool:
    return publish_value(ctx, client_id, topic, TelemetryValue.boolean(value))


def set_float_topic(ctx: BridgeContext, client_id: ConnectionId, topic: str, value: float) -> bool:
    return publish_value(ctx, client_id, topic, TelemetryValue.float32(value))


def set_double_topic(ctx: BridgeContext, client_id: ConnectionId, topic: str, value: float) -> bool:
    return publish_value(ctx, client_id, topic, TelemetryValue.float64(value))


def set_int_topic(ctx: BridgeContext, client_id: ConnectionId, topic: str, value: int) -> bool:
    return publish_value(ctx, client_id, topic, TelemetryValue.integer(value))


def set_string_topic(ctx: BridgeContext, client_id: ConnectionId, topic: str, value: str) -> bool:
    return publish_value(ctx, client_id, topic, TelemetryValue.string(value))


def set_boolean_array_topic(ctx: BridgeContext, client_id: ConnectionId, topic: str, value: Iterable[bool]) -> bool:
    return publish_value(ctx, client_id, topic, TelemetryValue.boolean_array(value))


def set_float_array_topic(ctx: BridgeContext, client_id: ConnectionId, topic: str, value: Iterable[float]) -> bool:
    return publish_value(ctx, client_id, topic, TelemetryValue.float32_array(value))


def set_double_array_topic(ctx: BridgeContext, client_id: ConnectionId, topic: str, value: Iterable[float]) -> bool:
    return publish_value(ctx, client_id, topic, TelemetryValue.float64_array(value))


def set_int_array_topic(ctx: BridgeContext, client_id: ConnectionId, topic: str, value: Iterable[int]) -> bool:
    return publish_value(ctx, client_id, topic, TelemetryValue.integer_array(value))


def set_string_array_topic(ctx: BridgeContext, client_id: ConnectionId, topic: str, value: Sequence[str]) -> bool:
    return publish_value(ctx, client_id, topic, TelemetryValue.string_array(value))


# ---- polling -----------------------------------------------------------------


def poll_entries(ctx: BridgeContext, client_id: ConnectionId) -> TelemetryTable:
    handle = _lookup(ctx, client_id)
    if handle is None:
        return TelemetryTable(0)
    logger.debug("Getting subbed entries values for %s", client_id)
    return handle.poll()


def poll_entry(ctx: BridgeContext, client_id: ConnectionId, path: PathLike) -> Optional[TableEntry]:
    handle = _lookup(ctx, client_id)
    if handle is None:
        return None
    logger.debug("Getting subbed entry value for %s", client_id)
    return handle.poll().get_entry(path)


def poll_timestamp(ctx: BridgeContext, client_id: ConnectionId) -> float:
    """Server timestamp of the latest table, in seconds."""
    handle = _lookup(ctx, client_id)
    if handle is None:
        return 0.0
    return handle.poll().timestamp_seconds


__all__ = [
    "BridgeContext",
    "client_exists",
    "connected_client_names",
    "create_context",
    "ntcore_session_factory",
    "poll_entries",
    "poll_entry",
    "poll_timestamp",
    "publish_value",
    "set_boolean_array_topic",
    "set_boolean_topic",
    "set_double_array_topic",
    "set_double_topic",
    "set_float_array_topic",
    "set_float_topic",
    "set_int_array_topic",
    "set_int_topic",
    "set_string_array_topic",
    "set_string_topic",
    "start_client",
    "stop_client",
    "subscribe_topic",
]
