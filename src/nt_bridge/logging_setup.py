"""Process-level logging setup for bridge front ends."""

from __future__ import annotations

import logging

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"

_QUIET_LOGGERS = ("asyncio",)


def configure_logging(level: str = "INFO", *, debug: bool = False) -> None:
    """Install the process log format and bridge logger levels.

    The root logger stays at ``level`` so third-party libraries do not flood
    the output; ``debug`` only lowers the ``nt_bridge`` loggers.
    """

    root_level = getattr(logging, str(level).upper(), logging.INFO)
    if debug and root_level < logging.INFO:
        root_level = logging.INFO
    logging.basicConfig(level=root_level, format=LOG_FORMAT)
    bridge_logger = logging.getLogger("nt_bridge")
    bridge_logger.setLevel(logging.DEBUG if debug else root_level)
    if debug:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.INFO)


__all__ = ["LOG_FORMAT", "configure_logging"]
