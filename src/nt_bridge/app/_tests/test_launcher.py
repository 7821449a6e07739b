"""Tests for the command-line front end."""

from __future__ import annotations

import io
import json
import threading
import time

import pytest

from nt_bridge import commands
from nt_bridge.app import launcher
from nt_bridge.client.session import ConnectionId
from nt_bridge.errors import ConnectError
from nt_bridge.shared.values import WireKind, WireValue


def test_parser_defaults() -> None:
    args = launcher.build_parser().parse_args([])
    assert args.host == "127.0.0.1"
    assert args.port == 5810
    assert args.topic is None
    assert args.send_all is False
    assert args.duration == 0.0


def test_parser_collects_repeated_topics() -> None:
    args = launcher.build_parser().parse_args(["--topic", "/a", "--topic", "/b", "--prefix", "--all"])
    assert args.topic == ["/a", "/b"]
    assert args.prefix is True
    assert args.send_all is True


def test_stream_tables_writes_json_lines(fake_factory, fast_config) -> None:
    ctx = commands.create_context(config=fast_config, session_factory=fake_factory)
    try:
        client = commands.start_client(ctx, "10.0.0.2", 5810, "bot")
        commands.subscribe_topic(ctx, client, "/x")

        def feed() -> None:
            deadline = time.monotonic() + 1.0
            while time.monotonic() < deadline:
                sessions = fake_factory.sessions.get("bot")
                if sessions and sessions[-1].live:
                    sessions[-1].push("/x", WireValue(WireKind.INTEGER, 9), timestamp=2_000_000)
                    return
                time.sleep(0.005)

        feeder = threading.Thread(target=feed, daemon=True)
        feeder.start()
        out = io.StringIO()
        frames: list[int] = []
        written = launcher.stream_tables(
            ctx, client, interval=0.01, duration=0.3, out=out, on_frame=lambda: frames.append(1)
        )
        feeder.join(timeout=1.0)
    finally:
        ctx.registry.clear(ctx.token)
        ctx.runtime.shutdown()

    assert written >= 1
    assert frames
    rows = [json.loads(line) for line in out.getvalue().splitlines()]
    last = rows[-1]
    assert last["timestamp"] == 1.0
    assert last["entries"] == [
        {"value": {"type": "Int", "value": 9}, "path": "/x", "timestamp": 2.0},
    ]


def test_stream_tables_raises_connect_failure(make_factory, fast_config) -> None:
    factory = make_factory(connect_error=OSError("unreachable"))
    ctx = commands.create_context(config=fast_config, session_factory=factory)
    try:
        client = commands.start_client(ctx, "10.0.0.2", 5810, "bot")
        with pytest.raises(ConnectError):
            launcher.stream_tables(ctx, client, interval=0.01, duration=2.0, out=io.StringIO())
    finally:
        ctx.registry.clear(ctx.token)
        ctx.runtime.shutdown()


def test_stream_tables_stops_when_client_removed(fake_factory, fast_config) -> None:
    ctx = commands.create_context(config=fast_config, session_factory=fake_factory)
    ghost = ConnectionId.from_address("10.0.0.3", 5810, "ghost")
    try:
        assert launcher.stream_tables(ctx, ghost, interval=0.01, out=io.StringIO()) == 0
    finally:
        ctx.runtime.shutdown()


def test_main_runs_for_duration(monkeypatch, fake_factory, tmp_path, capsys) -> None:
    monkeypatch.setattr(commands, "ntcore_session_factory", fake_factory)
    datalog = tmp_path / "bridge.jsonl"

    code = launcher.main(
        ["--host", "10.0.0.2", "--identity", "cli", "--duration", "0.1", "--interval", "0.01", "--datalog", str(datalog)]
    )

    assert code == 0
    session = fake_factory.latest("cli")
    assert session.closed
    subscribed = [call for call in session.calls if call[0] == "subscribe"]
    assert subscribed == [("subscribe", ("/",))]
    ops = [json.loads(line)["op"] for line in datalog.read_text().splitlines()]
    assert ops[0] == "start" and ops[-1] == "finish"
    assert "append" in ops


def test_main_reports_connect_failure(monkeypatch, make_factory) -> None:
    monkeypatch.setattr(commands, "ntcore_session_factory", make_factory(connect_error=OSError("refused")))
    assert launcher.main(["--host", "10.0.0.2", "--duration", "2"]) == 1
