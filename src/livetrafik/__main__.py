"""Command-line entry point: ``python -m livetrafik``."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from typing import Any

from livetrafik import __version__
from livetrafik.config import RelayConfig
from livetrafik.exceptions import RelayConfigError
from livetrafik.runtime import RelayRuntime

_logger = logging.getLogger("livetrafik")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="livetrafik",
        description="Relay Supabase Realtime vehicle feeds to local websocket subscribers.",
    )
    parser.add_argument("--host", help="Bind address (env LIVETRAFIK_HOST)")
    parser.add_argument("--port", type=int, help="Bind port (env LIVETRAFIK_PORT)")
    parser.add_argument("--channels", help="Comma-separated channel list (env SUPABASE_CHANNEL)")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


async def _serve(config: RelayConfig) -> None:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    async with RelayRuntime(config):
        await stop.wait()
        _logger.info("Shutdown requested")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, Any] = {}
    if args.host:
        overrides["host"] = args.host
    if args.port is not None:
        overrides["port"] = args.port
    if args.channels:
        overrides["channels"] = args.channels

    try:
        config = RelayConfig.from_env(**overrides)
    except RelayConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    asyncio.run(_serve(config))
    return 0


if __name__ == "__main__":
    sys.exit(main())
