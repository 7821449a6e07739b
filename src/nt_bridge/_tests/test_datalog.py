"""Tests for the datalog channel and its sinks."""

from __future__ import annotations

import io
import json

import pytest

from nt_bridge.datalog import DatalogChannel, JsonLinesDatalogSink, MemoryDatalogSink, datalog_type_for
from nt_bridge.errors import DatalogError, ThreadAffinityError, UnsupportedConversion
from nt_bridge.orchestrator import OrchestratorToken
from nt_bridge.shared.table import TableEntry, TelemetryTable
from nt_bridge.shared.values import TelemetryValue, ValueKind


@pytest.fixture
def channel():
    return DatalogChannel(MemoryDatalogSink(), OrchestratorToken())


def test_datalog_type_strings() -> None:
    assert datalog_type_for(ValueKind.INT) == "int64"
    assert datalog_type_for(ValueKind.STRING_ARRAY) == "string[]"
    assert datalog_type_for(ValueKind.BYTE_ARRAY) == "raw"
    with pytest.raises(UnsupportedConversion):
        datalog_type_for(ValueKind.PROTOBUF)


def test_append_requires_started_entry(channel) -> None:
    with pytest.raises(DatalogError):
        channel.append("/x", TelemetryValue.integer(1))


def test_start_append_finish(channel) -> None:
    sink = channel.sink
    entry_id = channel.start("/ClientsConnected", ValueKind.STRING_ARRAY)
    assert channel.start("/ClientsConnected", ValueKind.STRING_ARRAY) == entry_id
    assert not channel.is_started("ClientsConnected")

    channel.append("/ClientsConnected", TelemetryValue.string_array(["a"]), timestamp_us=10)
    channel.append("/ClientsConnected", TelemetryValue.string_array([]), timestamp_us=20)
    channel.finish("/ClientsConnected")

    assert sink.entries[entry_id] == ("/ClientsConnected", "string[]", "")
    assert sink.values_for("/ClientsConnected") == [["a"], []]
    assert [r.timestamp_us for r in sink.records] == [10, 20]
    assert entry_id in sink.finished
    assert not channel.is_started("/ClientsConnected")


def test_kind_mismatch_is_rejected(channel) -> None:
    channel.start("/speed", ValueKind.DOUBLE)
    with pytest.raises(DatalogError):
        channel.append("/speed", TelemetryValue.integer(3))
    with pytest.raises(DatalogError):
        channel.start("/speed", ValueKind.INT)


def test_revoked_token_blocks_writes() -> None:
    token = OrchestratorToken()
    channel = DatalogChannel(MemoryDatalogSink(), token)
    channel.start("/x", ValueKind.BOOLEAN)
    token.revoke()
    with pytest.raises(ThreadAffinityError):
        channel.append("/x", TelemetryValue.boolean(True))


def test_log_table_mirrors_entries_under_prefix(channel) -> None:
    table = TelemetryTable.from_entries(
        0,
        [
            TableEntry(TelemetryValue.float64(1.5), "/drive/speed", 2.0),
            TableEntry(TelemetryValue.protobuf(b"\x01"), "/pose"),
            TableEntry(TelemetryValue.raw(b"\x02"), "/blob", 1.0),
        ],
    )

    written = channel.log_table(table, prefix="/NT")

    assert written == 2
    sink = channel.sink
    names = {name for name, _, _ in sink.entries.values()}
    assert names == {"/NT/drive/speed", "/NT/blob"}
    assert sink.values_for("/NT/drive/speed") == [1.5]
    assert sink.values_for("/NT/blob") == [b"\x02"]
    assert sink.records[0].timestamp_us == 2_000_000


def test_json_lines_sink_writes_one_object_per_operation() -> None:
    stream = io.StringIO()
    channel = DatalogChannel(JsonLinesDatalogSink(stream), OrchestratorToken())
    channel.start("/raw", ValueKind.BYTE_ARRAY)
    channel.append("/raw", TelemetryValue.raw(b"\x01\x02"), timestamp_us=5)
    assert channel.finish_all() == 1

    lines = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert [line["op"] for line in lines] == ["start", "append", "finish"]
    assert lines[0]["type"] == "raw"
    assert lines[1] == {"op": "append", "id": 1, "ts": 5, "value": [1, 2]}


def test_log_table_without_prefix_keeps_exact_names(channel) -> None:
    table = TelemetryTable.from_entries(
        0,
        [
            TableEntry(TelemetryValue.integer(1), "/foo", 1.0),
            TableEntry(TelemetryValue.integer(2), "foo", 1.0),
        ],
    )

    assert channel.log_table(table) == 2
    names = sorted(name for name, _, _ in channel.sink.entries.values())
    assert names == ["/foo", "foo"]
    assert channel.sink.values_for("foo") == [2]
