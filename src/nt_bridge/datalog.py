"""Datalog collaborator: typed entries recorded alongside live telemetry.

A ``DatalogSink`` is whatever actually stores records (the host's datalog, a
JSON-lines file, memory in tests). ``DatalogChannel`` sits in front of it and
checks the rules the sinks rely on: entries are started before they are
appended to, values match the entry's type, and only the orchestrator writes.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol, TextIO, Union

from nt_bridge.errors import DatalogError, UnsupportedConversion
from nt_bridge.orchestrator import OrchestratorToken
from nt_bridge.shared.table import MICROS_PER_SECOND, PathLike, TableEntry, TelemetryTable, TopicPath
from nt_bridge.shared.values import ValueKind, TelemetryValue

logger = logging.getLogger(__name__)

_DATALOG_TYPES: dict[ValueKind, str] = {
    ValueKind.BOOLEAN: "boolean",
    ValueKind.INT: "int64",
    ValueKind.FLOAT: "float",
    ValueKind.DOUBLE: "double",
    ValueKind.STRING: "string",
    ValueKind.BYTE_ARRAY: "raw",
    ValueKind.BOOLEAN_ARRAY: "boolean[]",
    ValueKind.INT_ARRAY: "int64[]",
    ValueKind.FLOAT_ARRAY: "float[]",
    ValueKind.DOUBLE_ARRAY: "double[]",
    ValueKind.STRING_ARRAY: "string[]",
}


def datalog_type_for(kind: ValueKind) -> str:
    """Datalog type string for ``kind``; protobuf payloads have none."""
    try:
        return _DATALOG_TYPES[kind]
    except KeyError:
        raise UnsupportedConversion(kind.value, "datalog type") from None


def datalog_payload(value: TelemetryValue) -> Any:
    if value.kind.is_binary:
        return bytes(value.data)
    if value.kind.is_array:
        return list(value.data)
    return value.data


class DatalogSink(Protocol):
    def start_entry(self, name: str, type_string: str, metadata: str = "") -> int:
        ...

    def append(self, entry_id: int, data: Any, timestamp_us: int) -> None:
        ...

    def finish_entry(self, entry_id: int, timestamp_us: int) -> None:
        ...


@dataclass
class DatalogRecord:
    entry_id: int
    data: Any
    timestamp_us: int


@dataclass
class MemoryDatalogSink:
    """Keeps every entry and record in memory."""

    entries: dict[int, tuple[str, str, str]] = field(default_factory=dict)
    records: list[DatalogRecord] = field(default_factory=list)
    finished: set[int] = field(default_factory=set)

    def start_entry(self, name: str, type_string: str, metadata: str = "") -> int:
        entry_id = len(self.entries) + 1
        self.entries[entry_id] = (name, type_string, metadata)
        return entry_id

    def append(self, entry_id: int, data: Any, timestamp_us: int) -> None:
        self.records.append(DatalogRecord(entry_id, data, timestamp_us))

    def finish_entry(self, entry_id: int, timestamp_us: int) -> None:
        self.finished.add(entry_id)

    def values_for(self, name: str) -> list[Any]:
        ids = {entry_id for entry_id, (entry_name, _, _) in self.entries.items() if entry_name == name}
        return [record.data for record in self.records if record.entry_id in ids]


class JsonLinesDatalogSink:
    """Writes one JSON object per start, record and finish."""

    def __init__(self, target: Union[str, Path, TextIO]) -> None:
        if isinstance(target, (str, Path)):
            self._stream: TextIO = open(target, "a", encoding="utf-8")
            self._owns_stream = True
        else:
            self._stream = target
            self._owns_stream = False
        self._next_id = 1
        self._lock = threading.Lock()

    def _write(self, payload: dict[str, Any]) -> None:
        with self._lock:
            self._stream.write(json.dumps(payload, separators=(",", ":")) + "\n")
            self._stream.flush()

    def start_entry(self, name: str, type_string: str, metadata: str = "") -> int:
        with self._lock:
            entry_id = self._next_id
            self._next_id += 1
        self._write({"op": "start", "id": entry_id, "name": name, "type": type_string, "metadata": metadata})
        return entry_id

    def append(self, entry_id: int, data: Any, timestamp_us: int) -> None:
        if isinstance(data, (bytes, bytearray)):
            data = list(data)
        self._write({"op": "append", "id": entry_id, "ts": int(timestamp_us), "value": data})

    def finish_entry(self, entry_id: int, timestamp_us: int) -> None:
        self._write({"op": "finish", "id": entry_id, "ts": int(timestamp_us)})

    def close(self) -> None:
        if self._owns_stream:
            self._stream.close()


def _now_us() -> int:
    return int(time.time() * MICROS_PER_SECOND)


@dataclass(frozen=True)
class _OpenEntry:
    entry_id: int
    kind: ValueKind


class DatalogChannel:
    """Orchestrator-only front for a ``DatalogSink``."""

    def __init__(self, sink: DatalogSink, token: OrchestratorToken) -> None:
        self._sink = sink
        self._token = token
        self._entries: dict[TopicPath, _OpenEntry] = {}

    @property
    def sink(self) -> DatalogSink:
        return self._sink

    def is_started(self, name: PathLike) -> bool:
        return TopicPath.coerce(name) in self._entries

    def start(self, name: PathLike, kind: ValueKind, metadata: str = "") -> int:
        """Start an entry; starting an already open entry returns its id."""
        self._token.validate()
        path = TopicPath.coerce(name)
        existing = self._entries.get(path)
        if existing is not None:
            if existing.kind is not kind:
                raise DatalogError(f"entry {path} already started as {existing.kind.value}")
            return existing.entry_id
        entry_id = self._sink.start_entry(path.to_string(), datalog_type_for(kind), metadata)
        self._entries[path] = _OpenEntry(entry_id, kind)
        logger.debug("Started datalog entry %s (%s)", path, datalog_type_for(kind))
        return entry_id

    def append(self, name: PathLike, value: TelemetryValue, timestamp_us: Optional[int] = None) -> None:
        self._token.validate()
        path = TopicPath.coerce(name)
        entry = self._entries.get(path)
        if entry is None:
            raise DatalogError(f"datalog entry {path} appended before it was started")
        if value.kind is not entry.kind:
            raise DatalogError(f"datalog entry {path} is {entry.kind.value}, got {value.kind.value}")
        stamp = _now_us() if timestamp_us is None else int(timestamp_us)
        self._sink.append(entry.entry_id, datalog_payload(value), stamp)

    def finish(self, name: PathLike, timestamp_us: Optional[int] = None) -> None:
        self._token.validate()
        path = TopicPath.coerce(name)
        entry = self._entries.pop(path, None)
        if entry is None:
            raise DatalogError(f"datalog entry {path} was never started")
        self._sink.finish_entry(entry.entry_id, _now_us() if timestamp_us is None else int(timestamp_us))

    def finish_all(self) -> int:
        paths = list(self._entries)
        for path in paths:
            self.finish(path)
        return len(paths)

    def log_entry(self, entry: TableEntry, *, prefix: Optional[PathLike] = None) -> None:
        """Record a polled entry, starting its datalog entry on first sight.

        Without a prefix the entry is logged under its exact topic name.
        """
        path = entry.path if prefix is None else TopicPath.coerce(prefix).joined(entry.path)
        self.start(path, entry.value.kind)
        stamp = None if entry.timestamp is None else int(entry.timestamp * MICROS_PER_SECOND)
        self.append(path, entry.value, stamp)

    def log_table(self, table: TelemetryTable, *, prefix: Optional[PathLike] = None) -> int:
        """Record every loggable entry of ``table``; returns how many were written."""
        written = 0
        for entry in table:
            try:
                self.log_entry(entry, prefix=prefix)
            except (UnsupportedConversion, DatalogError) as exc:
                logger.warning("Skipping datalog for %s: %s", entry.path, exc)
                continue
            written += 1
        return written


__all__ = [
    "DatalogChannel",
    "DatalogRecord",
    "DatalogSink",
    "JsonLinesDatalogSink",
    "MemoryDatalogSink",
    "datalog_payload",
    "datalog_type_for",
]
