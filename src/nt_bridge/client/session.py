"""Contract between the synchronization loop and a protocol client library."""

from __future__ import annotations

import ipaddress
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union

from nt_bridge.shared.values import ValueKind, WireValue

AddressLike = Union[str, bytes, Sequence[int], ipaddress.IPv4Address]


@dataclass(frozen=True)
class ConnectionId:
    """Identity of one connection: IPv4 address, port and client identity."""

    ip: tuple[int, int, int, int]
    port: int
    identity: str

    def __post_init__(self) -> None:
        octets = tuple(int(o) for o in self.ip)
        if len(octets) != 4 or any(not 0 <= o <= 255 for o in octets):
            raise ValueError(f"invalid IPv4 octets {self.ip!r}")
        port = int(self.port)
        if not 0 <= port <= 0xFFFF:
            raise ValueError(f"port {port} out of range")
        object.__setattr__(self, "ip", octets)
        object.__setattr__(self, "port", port)
        object.__setattr__(self, "identity", str(self.identity))

    @classmethod
    def from_address(cls, address: AddressLike, port: int, identity: str) -> ConnectionId:
        if isinstance(address, ipaddress.IPv4Address):
            parsed = address
        elif isinstance(address, (str, bytes)):
            parsed = ipaddress.IPv4Address(address)
        else:
            parsed = ipaddress.IPv4Address(bytes(int(o) for o in address))
        return cls(tuple(parsed.packed), port, identity)  # type: ignore[arg-type]

    @property
    def host(self) -> str:
        return str(ipaddress.IPv4Address(bytes(self.ip)))

    def __str__(self) -> str:
        return f"{self.host}:{self.port}:{self.identity}"

    def to_mapping(self) -> dict[str, Any]:
        return {"ip": list(self.ip), "port": self.port, "identity": self.identity}

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> ConnectionId:
        return cls(tuple(mapping["ip"]), int(mapping["port"]), str(mapping["identity"]))  # type: ignore[arg-type]


@dataclass(frozen=True)
class SubscriptionOptions:
    """Per-subscription options; ``None`` leaves the library default."""

    periodic: Optional[float] = None
    send_all: Optional[bool] = None
    prefix_match: Optional[bool] = None


@dataclass(frozen=True)
class SubscriptionRequest:
    """Subscribe (or re-subscribe) ``topic`` with ``options``.

    Requests are identified by topic name alone.
    """

    topic: str
    options: SubscriptionOptions = SubscriptionOptions()


@dataclass(frozen=True)
class InboundMessage:
    """A value update delivered by the protocol library."""

    topic_name: str
    payload: WireValue
    timestamp: int


class ProtocolSession(Protocol):
    """Operations the synchronization loop needs from a protocol client.

    Subscriptions and published topics are opaque handles owned by the
    session. ``poll_messages`` never blocks. Times are in microseconds.
    """

    async def connect(self) -> None:
        ...

    async def subscribe(self, topics: Sequence[str], options: SubscriptionOptions) -> Any:
        ...

    async def unsubscribe(self, subscription: Any) -> None:
        ...

    async def publish_topic(self, name: str, kind: ValueKind) -> Any:
        ...

    async def publish_value(self, topic: Any, value: WireValue) -> None:
        ...

    def poll_messages(self, subscription: Any) -> Sequence[InboundMessage]:
        ...

    def server_time(self) -> int:
        ...

    def to_real_time(self, timestamp: int) -> int:
        ...

    def close(self) -> None:
        ...


__all__ = [
    "AddressLike",
    "ConnectionId",
    "InboundMessage",
    "ProtocolSession",
    "SubscriptionOptions",
    "SubscriptionRequest",
]
