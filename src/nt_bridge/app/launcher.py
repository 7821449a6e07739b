"""
Command-line front end: connect to an NT4 server and stream the table.

Each poll that observes a new server timestamp is printed to stdout as one
JSON line ``{"timestamp": <seconds>, "entries": [...]}``.
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import socket
import sys
import time
from typing import Callable, Optional, Sequence, TextIO

from nt_bridge import commands
from nt_bridge.app.lifecycle import BridgeApp
from nt_bridge.client.session import ConnectionId
from nt_bridge.commands import BridgeContext
from nt_bridge.config import NT4_DEFAULT_PORT, load_bridge_config
from nt_bridge.datalog import DatalogChannel, JsonLinesDatalogSink
from nt_bridge.errors import BridgeError
from nt_bridge.logging_setup import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nt-bridge", description="Mirror NetworkTables topics to stdout")
    parser.add_argument("--host", default="127.0.0.1", help="NT4 server host or IPv4 address")
    parser.add_argument("--port", type=int, default=NT4_DEFAULT_PORT, help="NT4 server port")
    parser.add_argument("--identity", default="nt-bridge", help="Client identity announced to the server")
    parser.add_argument(
        "--topic",
        action="append",
        default=None,
        help="Topic to subscribe to (repeatable; defaults to every topic under /)",
    )
    parser.add_argument("--periodic", type=float, default=None, help="Requested update period in seconds")
    parser.add_argument("--all", dest="send_all", action="store_true", help="Request every value change")
    parser.add_argument("--prefix", action="store_true", help="Treat topics as prefixes")
    parser.add_argument("--interval", type=float, default=0.1, help="Seconds between polls")
    parser.add_argument("--duration", type=float, default=0.0, help="Stop after this many seconds (0 = run forever)")
    parser.add_argument("--datalog", default=None, help="Append a JSON-lines datalog to this file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def resolve_host(host: str) -> str:
    """IPv4 address for ``host``; connection identities are IPv4 only."""
    return socket.gethostbyname(host)


def stream_tables(
    ctx: BridgeContext,
    client_id: ConnectionId,
    *,
    interval: float,
    duration: float = 0.0,
    out: TextIO = sys.stdout,
    on_frame: Optional[Callable[[], None]] = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Poll ``client_id`` until ``duration`` elapses or its loop dies.

    Returns how many tables were written.
    """

    started = clock()
    last_timestamp: Optional[int] = None
    written = 0
    while True:
        if on_frame is not None:
            on_frame()
        handle = ctx.registry.get(client_id)
        if handle is None:
            logger.warning("Connection %s is no longer registered", client_id)
            break
        failure = handle.failure()
        if failure is not None:
            raise failure
        if not handle.running:
            break
        table = commands.poll_entries(ctx, client_id)
        if table.timestamp != last_timestamp and not table.is_empty():
            last_timestamp = table.timestamp
            out.write(json.dumps({"timestamp": table.timestamp_seconds, "entries": table.to_list()}) + "\n")
            out.flush()
            written += 1
        if duration > 0 and clock() - started >= duration:
            break
        sleep(max(interval, 0.0))
    return written


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config = load_bridge_config()
    if args.debug:
        config = dataclasses.replace(config, debug=True, log_level="DEBUG")
    configure_logging(config.log_level, debug=config.debug)

    ctx = commands.create_context(config=config)
    sink = JsonLinesDatalogSink(args.datalog) if args.datalog else None
    datalog = DatalogChannel(sink, ctx.token) if sink is not None else None
    app = BridgeApp(ctx, datalog)
    topics = args.topic or ["/"]
    prefix = True if args.topic is None else (args.prefix or None)

    try:
        with app:
            client_id = commands.start_client(ctx, resolve_host(args.host), args.port, args.identity)
            for topic in topics:
                commands.subscribe_topic(
                    ctx,
                    client_id,
                    topic,
                    periodic=args.periodic,
                    send_all=args.send_all or None,
                    prefix=prefix,
                )
            stream_tables(
                ctx,
                client_id,
                interval=args.interval,
                duration=args.duration,
                on_frame=app.per_frame,
            )
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    except (BridgeError, OSError, ValueError) as exc:
        logger.error("nt-bridge failed: %s", exc)
        return 1
    finally:
        if sink is not None:
            sink.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
