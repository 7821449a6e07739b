"""Front ends that host a bridge context."""

from .lifecycle import BridgeApp, CLIENTS_CONNECTED_ENTRY

__all__ = ["BridgeApp", "CLIENTS_CONNECTED_ENTRY"]
