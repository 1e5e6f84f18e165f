#!/usr/bin/env python3
# tools/identd.py
"""
Standalone ident service.

Runs the ident listener outside of an IRC multiplexer, answering for a
static set of connections declared in config/ident.yml, and provides a
small client for poking at a running ident server.

Usage:
  python tools/identd.py serve
  python tools/identd.py serve --port 11300 --config-dir config
  python tools/identd.py query 40123 6697 --host 127.0.0.1 --port 11300
"""

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Any

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from components.network.connection_registry import ConnectionRegistry
from components.network.ident_module import IdentModule
from components.network.servers.ident_server import IdentListener
from components.protocols.ident.ident_protocol import LINE_TERMINATOR
from components.security.logging_system import configure_logging, get_logger
from config.config_loader import ConfigLoader

STANDALONE_CONSUMER = "identd-standalone"


async def load_registry(connections: list[dict[str, Any]]) -> ConnectionRegistry:
    """Build a registry from the `registry.connections` config list."""
    registry = ConnectionRegistry()
    for entry in connections:
        await registry.track(
            local_ip=str(entry["local_ip"]),
            local_port=int(entry["local_port"]),
            remote_ip=str(entry["remote_ip"]),
            remote_port=int(entry["remote_port"]),
            identity=str(entry["identity"]),
            network=str(entry.get("network", "")),
        )
    return registry


class IdentService:
    """Runs one listener with a permanent consumer until a signal arrives."""

    def __init__(self, config: dict[str, Any]):
        self.config = config
        # Must be created after configure_logging()
        self.logger = get_logger(__name__, device="identd_cli")
        self.module: IdentModule | None = None
        self._shutdown_event = asyncio.Event()

    def setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, self._shutdown_event.set)

    async def start(self) -> bool:
        registry = await load_registry(self.config["registry"]["connections"])
        listener = IdentListener.from_config(self.config, registry)
        self.module = IdentModule(listener)

        if not await self.module.on_irc_connecting(STANDALONE_CONSUMER):
            for line in self.module.on_client_login():
                self.logger.error(line)
            return False

        for line in self.module.handle_command("status", is_admin=True):
            self.logger.info(line)
        return True

    async def stop(self) -> None:
        if self.module is not None:
            await self.module.shutdown()

    async def run(self) -> int:
        try:
            self.setup_signal_handlers()
            if not await self.start():
                return 1
            self.logger.info("Ident service running. Press Ctrl+C to stop.")
            await self._shutdown_event.wait()
        finally:
            await self.stop()
        return 0


async def query(host: str, port: int, local_port: int, remote_port: int, timeout: float) -> str:
    """Send one ident query and return the reply line."""
    reader, writer = await asyncio.wait_for(
        asyncio.open_connection(host, port), timeout=timeout
    )
    try:
        writer.write(f"{local_port}, {remote_port}".encode() + LINE_TERMINATOR)
        await writer.drain()
        reply = await asyncio.wait_for(reader.readline(), timeout=timeout)
        return reply.decode("utf-8", errors="replace").rstrip("\r\n")
    finally:
        writer.close()
        await writer.wait_closed()


def create_parser():
    """Create argument parser with all commands."""
    parser = argparse.ArgumentParser(
        description="Standalone RFC 1413 ident service",
        epilog="""
Examples:
  # Serve the connections listed in config/ident.yml
  python tools/identd.py serve

  # Ask a running server who owns 40123 -> 6697
  python tools/identd.py query 40123 6697 --port 11300
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config-dir",
        default="config",
        help="Directory holding ident.yml",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    serve_parser = subparsers.add_parser("serve", help="Run the ident listener")
    serve_parser.add_argument("--host", default=None, help="Override bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Override bind port")
    serve_parser.add_argument("--log-dir", default=None, help="Write JSON logs here")
    serve_parser.add_argument("--log-level", default=None, help="DEBUG, INFO, ...")

    query_parser = subparsers.add_parser("query", help="Query an ident server")
    query_parser.add_argument("local_port", type=int, help="Port on the queried host")
    query_parser.add_argument("remote_port", type=int, help="Port on the querying host")
    query_parser.add_argument("--host", default="127.0.0.1", help="Ident server address")
    query_parser.add_argument("--port", type=int, default=113, help="Ident server port")
    query_parser.add_argument("--timeout", type=float, default=5.0, help="Seconds")

    return parser


def apply_overrides(config: dict[str, Any], args: argparse.Namespace) -> dict[str, Any]:
    """Fold command-line overrides into the loaded config."""
    if args.host is not None:
        config["ident"]["host"] = args.host
    if args.port is not None:
        config["ident"]["port"] = args.port
    if args.log_dir is not None:
        config["logging"]["log_dir"] = args.log_dir
    if args.log_level is not None:
        config["logging"]["level"] = args.log_level
    return config


async def main(argv: list[str] | None = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "serve":
            config = apply_overrides(ConfigLoader(args.config_dir).load_all(), args)
            log_cfg = config["logging"]
            configure_logging(
                log_dir=log_cfg["log_dir"] if log_cfg["json"] else None,
                level=log_cfg["level"],
            )
            return await IdentService(config).run()

        elif args.command == "query":
            print(await query(
                args.host, args.port, args.local_port, args.remote_port, args.timeout
            ))
            return 0

        else:
            parser.print_help()
            return 2

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130
    except (OSError, TimeoutError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
