"""Connection side: protocol session contract, sync loop, handles and runtime.

``NtcoreSession`` is imported from ``nt_bridge.client.ntcore_session``
directly so that this package stays importable without the NT4 library.
"""

from .handle import ConnectionHandle, SessionFactory, start_connection
from .mailbox import LatestValueMailbox, RequestQueue
from .runtime import BridgeRuntime
from .session import (
    ConnectionId,
    InboundMessage,
    ProtocolSession,
    SubscriptionOptions,
    SubscriptionRequest,
)
from .sync_loop import ConnectionChannels, SyncLoop, pacing_delay

__all__ = [
    "BridgeRuntime",
    "ConnectionChannels",
    "ConnectionHandle",
    "ConnectionId",
    "InboundMessage",
    "LatestValueMailbox",
    "ProtocolSession",
    "RequestQueue",
    "SessionFactory",
    "SubscriptionOptions",
    "SubscriptionRequest",
    "SyncLoop",
    "pacing_delay",
    "start_connection",
]
