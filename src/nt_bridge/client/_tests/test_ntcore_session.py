"""Tests for the ntcore-backed session: value translation, connect timeout and a local server."""

from __future__ import annotations

import asyncio
import socket
import time

import pytest

ntcore = pytest.importorskip("ntcore")

from nt_bridge.client.ntcore_session import NtcoreSession, nt_from_wire, pubsub_options, wire_from_nt  # noqa: E402
from nt_bridge.client.session import ConnectionId, SubscriptionOptions  # noqa: E402
from nt_bridge.config import BridgeConfig  # noqa: E402
from nt_bridge.errors import ConnectError  # noqa: E402
from nt_bridge.shared.values import TelemetryValue, ValueKind, WireKind, WireValue  # noqa: E402


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _wait_until(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() >= deadline:
            raise TimeoutError("condition not met before timeout")
        time.sleep(0.01)


def test_scalar_values_translate_to_wire() -> None:
    assert wire_from_nt(ntcore.Value.makeDouble(1.5)) == WireValue(WireKind.F64, 1.5)
    assert wire_from_nt(ntcore.Value.makeInteger(7)) == WireValue(WireKind.INTEGER, 7)
    assert wire_from_nt(ntcore.Value.makeBoolean(True)) == WireValue(WireKind.BOOLEAN, True)
    assert wire_from_nt(ntcore.Value.makeString("hi")) == WireValue(WireKind.STRING, "hi")
    assert wire_from_nt(ntcore.Value.makeRaw(b"\x01\x02")) == WireValue(WireKind.BINARY, b"\x01\x02")


def test_array_values_translate_to_wire() -> None:
    wire = wire_from_nt(ntcore.Value.makeIntegerArray([1, 2]))
    assert TelemetryValue.from_wire(wire) == TelemetryValue.integer_array([1, 2])

    wire = wire_from_nt(ntcore.Value.makeFloatArray([0.5]))
    assert TelemetryValue.from_wire(wire) == TelemetryValue.float32_array([0.5])


class _UnassignedValue:
    def type(self):
        return ntcore.NetworkTableType.kUnassigned

    def value(self):
        return None


def test_unassigned_value_is_ignored() -> None:
    assert wire_from_nt(_UnassignedValue()) is None


def test_outbound_values_use_topic_kind() -> None:
    value = nt_from_wire(ValueKind.FLOAT, TelemetryValue.float32(0.25).to_wire())
    assert value.type() == ntcore.NetworkTableType.kFloat
    assert value.value() == pytest.approx(0.25)

    value = nt_from_wire(ValueKind.STRING_ARRAY, TelemetryValue.string_array(["a", "b"]).to_wire())
    assert value.type() == ntcore.NetworkTableType.kStringArray
    assert list(value.value()) == ["a", "b"]

    value = nt_from_wire(ValueKind.PROTOBUF, TelemetryValue.protobuf(b"\x08").to_wire())
    assert value.type() == ntcore.NetworkTableType.kRaw


def test_subscription_options_only_override_given_fields() -> None:
    options = pubsub_options(SubscriptionOptions(periodic=0.5, send_all=True, prefix_match=True))
    assert options.periodic == pytest.approx(0.5)
    assert options.sendAll is True
    assert options.prefixMatch is True

    defaults = pubsub_options(SubscriptionOptions())
    assert defaults.prefixMatch is False


def test_connect_times_out_without_server() -> None:
    config = BridgeConfig(connect_timeout_s=0.1, connect_poll_s=0.01)
    cid = ConnectionId.from_address("127.0.0.1", _free_port(), "timeout-test")
    session = NtcoreSession(cid, config)
    try:
        with pytest.raises(ConnectError):
            asyncio.run(session.connect())
    finally:
        session.close()
    # closing twice is harmless
    session.close()


@pytest.fixture
def local_server(tmp_path):
    server = ntcore.NetworkTableInstance.create()
    port = _free_port()
    server.startServer(
        persist_filename=str(tmp_path / "networktables.json"),
        listen_address="127.0.0.1",
        port3=_free_port(),
        port4=port,
    )
    yield server, port
    server.stopServer()
    ntcore.NetworkTableInstance.destroy(server)


def test_session_round_trip_against_local_server(local_server) -> None:
    server, port = local_server
    config = BridgeConfig(connect_timeout_s=5.0, connect_poll_s=0.01)
    session = NtcoreSession(ConnectionId.from_address("127.0.0.1", port, "session-test"), config)
    server_x = server.getIntegerTopic("/x").publish()
    relative = server.getIntegerTopic("a/b").subscribe(0)
    rooted = server.getIntegerTopic("/a/b").subscribe(0)

    async def exercise():
        await session.connect()
        subscription = await session.subscribe(["/x"], SubscriptionOptions(periodic=0.01))
        topic = await session.publish_topic("a/b", ValueKind.INT)
        await session.publish_value(topic, TelemetryValue.integer(5).to_wire())
        server_x.set(7)
        messages = []
        deadline = time.monotonic() + 5.0
        while not messages and time.monotonic() < deadline:
            messages.extend(session.poll_messages(subscription))
            await asyncio.sleep(0.01)
        await session.unsubscribe(subscription)
        return subscription, messages

    try:
        subscription, messages = asyncio.run(exercise())
        _wait_until(lambda: relative.get() == 5)

        assert [m.topic_name for m in messages] == ["/x"]
        assert TelemetryValue.from_wire(messages[0].payload) == TelemetryValue.integer(7)
        assert rooted.get() == 0
        assert subscription.subscriber is None
        assert len(server.getConnections()) == 1
    finally:
        session.close()

    assert session._inst is None
    _wait_until(lambda: not server.getConnections())
