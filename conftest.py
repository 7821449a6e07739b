"""Shared fixtures: an in-memory protocol session standing in for ntcore."""

from __future__ import annotations

import itertools
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

import pytest

from nt_bridge.client.session import ConnectionId, InboundMessage, SubscriptionOptions
from nt_bridge.config import BridgeConfig
from nt_bridge.shared.values import ValueKind, WireValue


@dataclass(frozen=True)
class FakeSubscription:
    sub_id: int
    topics: tuple[str, ...]
    options: SubscriptionOptions


@dataclass
class FakeSession:
    """Records every call and serves queued inbound messages."""

    connect_error: Optional[BaseException] = None
    time_us: int = 1_000_000
    offset_us: int = 0
    fail_subscribe: set[str] = field(default_factory=set)
    fail_publish: set[str] = field(default_factory=set)
    fail_poll: bool = False
    calls: list[tuple[str, Any]] = field(default_factory=list)
    announced: list[tuple[str, ValueKind]] = field(default_factory=list)
    sent: list[tuple[str, WireValue]] = field(default_factory=list)
    live: dict[int, FakeSubscription] = field(default_factory=dict)
    pending: dict[int, list[InboundMessage]] = field(default_factory=dict)
    connected: bool = False
    closed: bool = False
    _ids: Any = field(default_factory=lambda: itertools.count(1))
    _lock: Any = field(default_factory=threading.Lock)

    async def connect(self) -> None:
        self.calls.append(("connect", None))
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def subscribe(self, topics: Sequence[str], options: SubscriptionOptions) -> FakeSubscription:
        names = tuple(topics)
        self.calls.append(("subscribe", names))
        if any(name in self.fail_subscribe for name in names):
            raise RuntimeError(f"subscribe rejected for {names}")
        sub = FakeSubscription(next(self._ids), names, options)
        with self._lock:
            self.live[sub.sub_id] = sub
        return sub

    async def unsubscribe(self, subscription: FakeSubscription) -> None:
        self.calls.append(("unsubscribe", subscription.topics))
        with self._lock:
            self.live.pop(subscription.sub_id, None)
            self.pending.pop(subscription.sub_id, None)

    async def publish_topic(self, name: str, kind: ValueKind) -> str:
        self.calls.append(("announce", name))
        self.announced.append((name, kind))
        return name

    async def publish_value(self, topic: str, value: WireValue) -> None:
        if topic in self.fail_publish:
            raise RuntimeError(f"publish rejected for {topic}")
        self.sent.append((topic, value))

    def poll_messages(self, subscription: FakeSubscription) -> list[InboundMessage]:
        if self.fail_poll:
            raise RuntimeError("poll failed")
        with self._lock:
            return self.pending.pop(subscription.sub_id, [])

    def push(self, topic: str, payload: WireValue, timestamp: int = 0) -> int:
        """Deliver an update to every live subscription matching ``topic``."""
        delivered = 0
        with self._lock:
            subs = list(self.live.values())
        for sub in subs:
            matches = any(
                topic == name or (sub.options.prefix_match and topic.startswith(name)) for name in sub.topics
            )
            if matches:
                with self._lock:
                    self.pending.setdefault(sub.sub_id, []).append(InboundMessage(topic, payload, timestamp))
                delivered += 1
        return delivered

    def server_time(self) -> int:
        return self.time_us

    def to_real_time(self, timestamp: int) -> int:
        return timestamp + self.offset_us

    def close(self) -> None:
        self.calls.append(("close", None))
        self.closed = True


class FakeSessionFactory:
    """``SessionFactory`` that remembers the sessions it built, by identity."""

    def __init__(self, **session_kwargs: Any) -> None:
        self.session_kwargs = session_kwargs
        self.sessions: dict[str, list[FakeSession]] = {}

    def __call__(self, connection_id: ConnectionId, config: BridgeConfig) -> FakeSession:
        session = FakeSession(**self.session_kwargs)
        self.sessions.setdefault(connection_id.identity, []).append(session)
        return session

    def latest(self, identity: str) -> FakeSession:
        return self.sessions[identity][-1]


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def fake_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def fast_config() -> BridgeConfig:
    return BridgeConfig(cadence_s=0.002, queue_capacity=8, connect_timeout_s=1.0, connect_poll_s=0.005)


@pytest.fixture
def make_factory():
    """Build a ``FakeSessionFactory`` whose sessions take ``**kwargs``."""
    return FakeSessionFactory
