"""Command-line entry point: load config, configure logging, serve the agent."""

from __future__ import annotations

import argparse
import logging
import sys

import uvicorn

from api.app import create_app
from api.version import version_string
from profiler.config import ConfigError, ProfilerConfig, load_config
from utils.logging_setup import configure_logging, reset_logging

logger = logging.getLogger(__name__)

SERVICE_NAME = "memprof-agent"


def parse_listen_addr(addr: str) -> tuple[str, int]:
    """Split ``host:port``; an empty host (``":8080"``) binds all interfaces."""
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ValueError(f"listen address {addr!r} must look like host:port")
    return host or "0.0.0.0", int(port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run the runtime memory-profiling agent and its query API."
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML or JSON configuration file (default: built-in defaults).",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version information and exit.",
    )
    return parser


def serve(config: ProfilerConfig) -> None:
    host, port = parse_listen_addr(config.metrics_listen_addr)
    app = create_app(config, service_tag=SERVICE_NAME)
    logger.info("api: HTTP server starting addr=%s:%d", host, port)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_config=None,
        timeout_graceful_shutdown=config.shutdown_grace_period_sec,
    )
    logger.info("api: shutdown complete")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.version:
        print(f"{SERVICE_NAME} {version_string()}")
        return 0

    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"failed to load config: {exc}", file=sys.stderr)
        return 1

    configure_logging(SERVICE_NAME, config.log_level)
    logger.info("api: starting %s %s", SERVICE_NAME, version_string())
    try:
        serve(config)
    finally:
        # Flushes buffered CloudWatch events.
        reset_logging()
    return 0


if __name__ == "__main__":
    sys.exit(main())
