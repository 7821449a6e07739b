"""Value and table models shared by the connection loop and its callers."""

from .table import MICROS_PER_SECOND, TableEntry, TelemetryTable, TopicPath
from .values import TelemetryValue, ValueKind, WireKind, WireValue

__all__ = [
    "MICROS_PER_SECOND",
    "TableEntry",
    "TelemetryTable",
    "TelemetryValue",
    "TopicPath",
    "ValueKind",
    "WireKind",
    "WireValue",
]
