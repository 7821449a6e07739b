"""Environment-derived configuration for bridge connections."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from nt_bridge.utils.env import env_bool, env_choice, env_float, env_int

DEFAULT_CADENCE_MS = 15.0
DEFAULT_QUEUE_CAPACITY = 255
DEFAULT_CONNECT_TIMEOUT_MS = 30_000.0
DEFAULT_CONNECT_POLL_MS = 50.0
NT4_DEFAULT_PORT = 5810

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class BridgeConfig:
    """Resolved tunables shared by every connection the bridge starts."""

    cadence_s: float = DEFAULT_CADENCE_MS / 1000.0
    queue_capacity: int = DEFAULT_QUEUE_CAPACITY
    connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_MS / 1000.0
    connect_poll_s: float = DEFAULT_CONNECT_POLL_MS / 1000.0
    debug: bool = False
    log_publishes: bool = False
    log_level: str = "INFO"


def load_bridge_config(env: Optional[Mapping[str, str]] = None) -> BridgeConfig:
    """Resolve ``NT_BRIDGE_*`` variables into a ``BridgeConfig``.

    ``env`` defaults to ``os.environ``. Malformed numbers fall back to their
    defaults; cadence and queue capacity are clamped to sane minimums.
    """

    cadence_ms = max(1.0, float(env_float("NT_BRIDGE_CADENCE_MS", DEFAULT_CADENCE_MS, env)))
    capacity = max(1, int(env_int("NT_BRIDGE_QUEUE_CAPACITY", DEFAULT_QUEUE_CAPACITY, env)))
    timeout_ms = max(0.0, float(env_float("NT_BRIDGE_CONNECT_TIMEOUT_MS", DEFAULT_CONNECT_TIMEOUT_MS, env)))
    poll_ms = max(1.0, float(env_float("NT_BRIDGE_CONNECT_POLL_MS", DEFAULT_CONNECT_POLL_MS, env)))
    debug = env_bool("NT_BRIDGE_DEBUG", False, env)
    log_publishes = env_bool("NT_BRIDGE_LOG_PUBLISHES", False, env)
    log_level = env_choice("NT_BRIDGE_LOG_LEVEL", LOG_LEVELS, "DEBUG" if debug else "INFO", env)

    return BridgeConfig(
        cadence_s=cadence_ms / 1000.0,
        queue_capacity=capacity,
        connect_timeout_s=timeout_ms / 1000.0,
        connect_poll_s=poll_ms / 1000.0,
        debug=debug,
        log_publishes=log_publishes,
        log_level=log_level,
    )


__all__ = [
    "BridgeConfig",
    "LOG_LEVELS",
    "NT4_DEFAULT_PORT",
    "load_bridge_config",
]
