"""nt-bridge: NetworkTables 4 telemetry bridge.

Connections run on a shared asyncio runtime; callers talk to them through
non-blocking handles and the function-style command layer in
``nt_bridge.commands``.
"""

__version__ = "0.1.0"

from .errors import (
    BridgeError,
    ConnectError,
    DatalogError,
    InvalidValueError,
    QueueFullError,
    ThreadAffinityError,
    UnsupportedConversion,
)
from .shared import TableEntry, TelemetryTable, TelemetryValue, TopicPath, ValueKind

__all__ = [
    "BridgeError",
    "ConnectError",
    "DatalogError",
    "InvalidValueError",
    "QueueFullError",
    "TableEntry",
    "TelemetryTable",
    "TelemetryValue",
    "ThreadAffinityError",
    "TopicPath",
    "UnsupportedConversion",
    "ValueKind",
    "__version__",
]
