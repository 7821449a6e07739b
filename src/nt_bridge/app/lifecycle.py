"""Host lifecycle hooks: init, once per frame, and close."""

from __future__ import annotations

import logging
from typing import Optional

from nt_bridge import commands
from nt_bridge.commands import BridgeContext
from nt_bridge.datalog import DatalogChannel
from nt_bridge.errors import log_result_consume
from nt_bridge.shared.values import TelemetryValue, ValueKind

logger = logging.getLogger(__name__)

CLIENTS_CONNECTED_ENTRY = "/ClientsConnected"


class BridgeApp:
    """Ties a bridge context to the host's frame loop.

    ``per_frame`` records which connections are registered into the datalog
    entry ``/ClientsConnected``. ``close`` tears every connection down and
    revokes the orchestrator token, so late commands fail loudly.
    """

    def __init__(self, context: BridgeContext, datalog: Optional[DatalogChannel] = None) -> None:
        self.context = context
        self.datalog = datalog
        self._initialized = False
        self._closed = False
        self.frames = 0

    def init(self) -> None:
        self.context.token.validate()
        if self._initialized:
            return
        self.context.runtime.start()
        if self.datalog is not None:
            self.datalog.start(CLIENTS_CONNECTED_ENTRY, ValueKind.STRING_ARRAY)
        self._initialized = True
        logger.info("Bridge initialised")

    def per_frame(self) -> None:
        if not self._initialized:
            self.init()
        names = commands.connected_client_names(self.context)
        datalog = self.datalog
        if datalog is not None:
            log_result_consume(
                lambda: datalog.append(CLIENTS_CONNECTED_ENTRY, TelemetryValue.string_array(names)),
                context="datalog append failed",
            )
        self.frames += 1

    def close(self) -> None:
        if self._closed:
            return
        ctx = self.context
        if self.datalog is not None:
            finished = log_result_consume(self.datalog.finish_all, context="datalog finish failed")
            logger.debug("Finished %s datalog entries", finished)
        stopped = ctx.registry.clear(ctx.token)
        ctx.runtime.shutdown()
        ctx.token.revoke()
        self._closed = True
        logger.info("Bridge closed (%d connections stopped)", stopped)

    def __enter__(self) -> BridgeApp:
        self.init()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = ["BridgeApp", "CLIENTS_CONNECTED_ENTRY"]
