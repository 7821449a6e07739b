"""Paths, entries and timestamped tables of telemetry state."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Optional, Union

from nt_bridge.shared.values import TelemetryValue

MICROS_PER_SECOND = 1_000_000


@dataclass(frozen=True)
class TopicPath:
    """Slash-delimited topic name split into its segments.

    NT4 topic names are matched exactly, so ``"a/b"`` and ``"/a/b"`` are
    different topics. ``rooted`` records the leading slash and every segment
    is kept as written, which makes ``TopicPath.parse(s).to_string() == s``
    for any string.
    """

    segments: tuple[str, ...]
    rooted: bool = True

    def __post_init__(self) -> None:
        segments = tuple(str(s) for s in self.segments)
        for segment in segments:
            if "/" in segment:
                raise ValueError(f"invalid path segment {segment!r}")
        object.__setattr__(self, "segments", segments)
        object.__setattr__(self, "rooted", bool(self.rooted))

    @classmethod
    def parse(cls, text: str) -> TopicPath:
        text = str(text)
        rooted = text.startswith("/")
        body = text[1:] if rooted else text
        return cls(tuple(body.split("/")) if body else (), rooted)

    @classmethod
    def coerce(cls, path: PathLike) -> TopicPath:
        if isinstance(path, TopicPath):
            return path
        if isinstance(path, str):
            return cls.parse(path)
        return cls(tuple(path))

    def to_string(self) -> str:
        return ("/" if self.rooted else "") + "/".join(self.segments)

    def __str__(self) -> str:
        return self.to_string()

    @property
    def name(self) -> str:
        return self.segments[-1] if self.segments else ""

    @property
    def parent(self) -> TopicPath:
        return TopicPath(self.segments[:-1], self.rooted)

    def child(self, segment: str) -> TopicPath:
        return TopicPath(self.segments + (segment,), self.rooted)

    def joined(self, other: PathLike) -> TopicPath:
        """Append ``other``'s segments below this path; a trailing slash here is absorbed."""
        tail = TopicPath.coerce(other)
        head = self.segments[:-1] if self.segments and not self.segments[-1] else self.segments
        return TopicPath(head + tail.segments, self.rooted)

    def is_under(self, prefix: PathLike) -> bool:
        other = TopicPath.coerce(prefix)
        return self.rooted == other.rooted and self.segments[: len(other.segments)] == other.segments


PathLike = Union[TopicPath, str, Iterable[str]]


@dataclass(frozen=True)
class TableEntry:
    """One value observed (or to be published) at a path."""

    value: TelemetryValue
    path: TopicPath
    timestamp: Optional[float] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", TopicPath.coerce(self.path))

    def __str__(self) -> str:
        return f"{self.path}: {self.value}"

    def to_mapping(self) -> dict[str, Any]:
        return {
            "value": self.value.to_mapping(),
            "path": self.path.to_string(),
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> TableEntry:
        raw_ts = mapping.get("timestamp")
        return cls(
            value=TelemetryValue.from_mapping(mapping["value"]),
            path=TopicPath.parse(str(mapping["path"])),
            timestamp=float(raw_ts) if raw_ts is not None else None,
        )


class TelemetryTable:
    """Snapshot of table state at a server timestamp (microseconds).

    Holds at most one entry per path. Re-inserting a path replaces the entry
    in place, so iteration follows first-insertion order.
    """

    __slots__ = ("_timestamp", "_entries", "_index")

    def __init__(self, timestamp: int = 0, entries: Iterable[TableEntry] = ()) -> None:
        self._timestamp = int(timestamp)
        self._entries: list[TableEntry] = []
        self._index: dict[TopicPath, int] = {}
        for entry in entries:
            self.add_entry(entry)

    @classmethod
    def from_entries(cls, timestamp: int, entries: Iterable[TableEntry]) -> TelemetryTable:
        return cls(timestamp, entries)

    @property
    def timestamp(self) -> int:
        return self._timestamp

    @property
    def timestamp_seconds(self) -> float:
        return self._timestamp / MICROS_PER_SECOND

    def set_timestamp(self, timestamp: int) -> None:
        self._timestamp = int(timestamp)

    def add_entry(self, entry: TableEntry) -> None:
        index = self._index.get(entry.path)
        if index is None:
            self._index[entry.path] = len(self._entries)
            self._entries.append(entry)
        else:
            self._entries[index] = entry

    def get_entry(self, path: PathLike) -> Optional[TableEntry]:
        index = self._index.get(TopicPath.coerce(path))
        return None if index is None else self._entries[index]

    def has_entry(self, path: PathLike) -> bool:
        return TopicPath.coerce(path) in self._index

    @property
    def entries(self) -> tuple[TableEntry, ...]:
        return tuple(self._entries)

    def paths(self) -> list[TopicPath]:
        return [entry.path for entry in self._entries]

    def is_empty(self) -> bool:
        return not self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TableEntry]:
        return iter(tuple(self._entries))

    def __contains__(self, path: object) -> bool:
        if isinstance(path, (TopicPath, str)):
            return self.has_entry(path)
        return False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TelemetryTable):
            return NotImplemented
        return self._timestamp == other._timestamp and self._entries == other._entries

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"TelemetryTable(timestamp={self._timestamp}, entries={len(self._entries)})"

    def __str__(self) -> str:
        lines = [f"Table at {self._timestamp}"]
        lines.extend(str(entry) for entry in self._entries)
        return "\n".join(lines)

    def update_entries(self, other: TelemetryTable) -> None:
        for entry in other._entries:
            self.add_entry(entry)

    def update_timestamp(self, other: TelemetryTable) -> None:
        self._timestamp = other._timestamp

    def merge(self, other: TelemetryTable) -> TelemetryTable:
        """Apply ``other`` on top of this table in place and return ``self``.

        Paths in ``other`` are added or replaced, paths only present here are
        kept, and the timestamp becomes ``other``'s.
        """
        self.update_entries(other)
        self.update_timestamp(other)
        return self

    def copy(self) -> TelemetryTable:
        clone = TelemetryTable(self._timestamp)
        clone._entries = list(self._entries)
        clone._index = dict(self._index)
        return clone

    def to_list(self) -> list[dict[str, Any]]:
        return [entry.to_mapping() for entry in self._entries]

    @classmethod
    def from_list(cls, items: Iterable[Mapping[str, Any]], *, timestamp: int = 0) -> TelemetryTable:
        return cls(timestamp, (TableEntry.from_mapping(item) for item in items))


__all__ = [
    "MICROS_PER_SECOND",
    "PathLike",
    "TableEntry",
    "TelemetryTable",
    "TopicPath",
]
