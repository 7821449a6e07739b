"""``ProtocolSession`` backed by the ntcore NT4 client (pyntcore)."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Callable, Optional

import ntcore

from nt_bridge.client.session import ConnectionId, InboundMessage, SubscriptionOptions
from nt_bridge.config import BridgeConfig
from nt_bridge.errors import ConnectError
from nt_bridge.shared.values import ValueKind, WireKind, WireValue

logger = logging.getLogger(__name__)

_NT = ntcore.NetworkTableType

# ntcore type -> (wire kind, element wire kind for arrays)
_INBOUND: dict[Any, tuple[WireKind, Optional[WireKind]]] = {
    _NT.kBoolean: (WireKind.BOOLEAN, None),
    _NT.kInteger: (WireKind.INTEGER, None),
    _NT.kFloat: (WireKind.F32, None),
    _NT.kDouble: (WireKind.F64, None),
    _NT.kString: (WireKind.STRING, None),
    _NT.kRaw: (WireKind.BINARY, None),
    _NT.kBooleanArray: (WireKind.ARRAY, WireKind.BOOLEAN),
    _NT.kIntegerArray: (WireKind.ARRAY, WireKind.INTEGER),
    _NT.kFloatArray: (WireKind.ARRAY, WireKind.F32),
    _NT.kDoubleArray: (WireKind.ARRAY, WireKind.F64),
    _NT.kStringArray: (WireKind.ARRAY, WireKind.STRING),
}

_MAKERS: dict[ValueKind, Callable[[Any], Any]] = {
    ValueKind.BOOLEAN: ntcore.Value.makeBoolean,
    ValueKind.INT: ntcore.Value.makeInteger,
    ValueKind.FLOAT: ntcore.Value.makeFloat,
    ValueKind.DOUBLE: ntcore.Value.makeDouble,
    ValueKind.STRING: ntcore.Value.makeString,
    ValueKind.BYTE_ARRAY: ntcore.Value.makeRaw,
    ValueKind.PROTOBUF: ntcore.Value.makeRaw,
    ValueKind.BOOLEAN_ARRAY: ntcore.Value.makeBooleanArray,
    ValueKind.INT_ARRAY: ntcore.Value.makeIntegerArray,
    ValueKind.FLOAT_ARRAY: ntcore.Value.makeFloatArray,
    ValueKind.DOUBLE_ARRAY: ntcore.Value.makeDoubleArray,
    ValueKind.STRING_ARRAY: ntcore.Value.makeStringArray,
}


def wire_from_nt(value: Any) -> Optional[WireValue]:
    """Convert an ``ntcore.Value``; ``None`` for unassigned or unknown types."""
    try:
        kind, element = _INBOUND[value.type()]
    except KeyError:
        return None
    data = value.value()
    if kind is WireKind.BINARY:
        return WireValue(kind, bytes(data))
    if element is not None:
        return WireValue(kind, tuple(WireValue(element, item) for item in data))
    return WireValue(kind, data)


def nt_from_wire(kind: ValueKind, wire: WireValue) -> Any:
    """Build an ``ntcore.Value`` for a topic announced as ``kind``."""
    if wire.kind is WireKind.ARRAY:
        payload: Any = [item.data for item in wire.data]
    else:
        payload = wire.data
    return _MAKERS[kind](payload)


def pubsub_options(options: SubscriptionOptions) -> Any:
    kwargs: dict[str, Any] = {}
    if options.periodic is not None:
        kwargs["periodic"] = float(options.periodic)
    if options.send_all is not None:
        kwargs["sendAll"] = bool(options.send_all)
    if options.prefix_match is not None:
        kwargs["prefixMatch"] = bool(options.prefix_match)
    return ntcore.PubSubOptions(**kwargs)


@dataclass
class _Subscription:
    subscriber: Any
    poller: Any
    topics: tuple[str, ...]


def _release(subscription: _Subscription) -> None:
    """Close the poller and subscriber; a generic subscriber is released by dropping it."""
    subscription.poller.close()
    close = getattr(subscription.subscriber, "close", None)
    if close is not None:
        close()
    subscription.subscriber = None


@dataclass
class _PublishedTopic:
    name: str
    kind: ValueKind
    publisher: Any


class NtcoreSession:
    """One NT4 client instance talking to one server."""

    def __init__(self, connection_id: ConnectionId, config: BridgeConfig) -> None:
        self._id = connection_id
        self._config = config
        self._inst: Any = None
        self._listener: Optional[int] = None
        self._subscriptions: list[_Subscription] = []
        self._publishers: list[_PublishedTopic] = []

    @property
    def connection_id(self) -> ConnectionId:
        return self._id

    def _instance(self) -> Any:
        if self._inst is None:
            raise ConnectError(f"session for {self._id} is not connected")
        return self._inst

    async def connect(self) -> None:
        inst = ntcore.NetworkTableInstance.create()
        self._inst = inst
        self._listener = inst.addConnectionListener(True, self._on_connection_event)
        inst.startClient4(self._id.identity)
        inst.setServer(self._id.host, self._id.port)

        deadline = time.monotonic() + self._config.connect_timeout_s
        while not inst.isConnected():
            if time.monotonic() >= deadline:
                raise ConnectError(
                    f"timed out after {self._config.connect_timeout_s:.1f}s connecting to {self._id}"
                )
            await asyncio.sleep(self._config.connect_poll_s)

    def _on_connection_event(self, event: Any) -> None:
        if event.is_(ntcore.EventFlags.kConnected):
            logger.info("NT4 server connected for %s", self._id)
        elif event.is_(ntcore.EventFlags.kDisconnected):
            logger.warning("NT4 server disconnected for %s", self._id)

    async def subscribe(self, topics: Sequence[str], options: SubscriptionOptions) -> _Subscription:
        inst = self._instance()
        names = tuple(topics)
        nt_options = pubsub_options(options)
        if options.prefix_match or len(names) != 1:
            subscriber = ntcore.MultiSubscriber(inst, list(names), nt_options)
        else:
            subscriber = inst.getTopic(names[0]).genericSubscribe(options=nt_options)
        poller = ntcore.NetworkTableListenerPoller(inst)
        poller.addListener(subscriber, ntcore.EventFlags.kValueAll)
        subscription = _Subscription(subscriber, poller, names)
        self._subscriptions.append(subscription)
        return subscription

    async def unsubscribe(self, subscription: _Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
        _release(subscription)

    async def publish_topic(self, name: str, kind: ValueKind) -> _PublishedTopic:
        inst = self._instance()
        publisher = inst.getTopic(name).genericPublish(kind.nt_type)
        topic = _PublishedTopic(name, kind, publisher)
        self._publishers.append(topic)
        return topic

    async def publish_value(self, topic: _PublishedTopic, value: WireValue) -> None:
        topic.publisher.set(nt_from_wire(topic.kind, value))

    def poll_messages(self, subscription: _Subscription) -> list[InboundMessage]:
        messages: list[InboundMessage] = []
        for event in subscription.poller.readQueue():
            data = event.data
            nt_value = getattr(data, "value", None)
            if nt_value is None:
                continue
            payload = wire_from_nt(nt_value)
            if payload is None:
                logger.debug("Skipping %s value on %s", nt_value.type(), self._id)
                continue
            messages.append(InboundMessage(data.topic.getName(), payload, int(nt_value.time())))
        return messages

    def _offset(self) -> int:
        offset = self._inst.getServerTimeOffset() if self._inst is not None else None
        return int(offset or 0)

    def server_time(self) -> int:
        return int(ntcore._now()) + self._offset()

    def to_real_time(self, timestamp: int) -> int:
        return int(timestamp) + self._offset()

    def close(self) -> None:
        inst = self._inst
        if inst is None:
            return
        try:
            for subscription in self._subscriptions:
                _release(subscription)
            if self._listener is not None:
                inst.removeListener(self._listener)
        finally:
            # generic publishers have no close(); dropping them unpublishes
            self._subscriptions.clear()
            self._publishers.clear()
            self._listener = None
            self._inst = None
            inst.stopClient()
            ntcore.NetworkTableInstance.destroy(inst)
        logger.info("Closed NT4 session for %s", self._id)


__all__ = ["NtcoreSession", "nt_from_wire", "pubsub_options", "wire_from_nt"]
