"""Relay server CLI entry point.

This module is invoked when running `python -m src.relay`.
It provides command-line argument parsing for the relay server.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from src.relay.config import RelayConfig, ServerConfig
from src.relay.errors import MissingCredential
from src.relay.server import run_server


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the relay.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Realtime relay - bridges browser WebSockets to the realtime API"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("configs/relay.yaml"),
        help="Path to relay configuration YAML file (default: configs/relay.yaml)",
    )
    parser.add_argument("--host", type=str, help="Override bind hostname from config")
    parser.add_argument("--port", type=int, help="Override listen port from config")
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override log level from config",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Entry point for the relay server.

    Configuration precedence: CLI > ENV (including .env) > YAML > defaults.
    Exits with status 1 on invalid configuration or a missing credential.
    """
    args = parse_args(argv)
    load_dotenv()

    try:
        config = RelayConfig.load(args.config)

        server_overrides: dict[str, object] = {}
        if args.host:
            server_overrides["host"] = args.host
        if args.port is not None:
            server_overrides["port"] = args.port
        if server_overrides:
            config.server = ServerConfig.model_validate(
                {**config.server.model_dump(), **server_overrides}
            )
        if args.log_level:
            config.log_level = args.log_level
    except Exception as e:
        print(f"Error: Failed to load configuration: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.log_level)
    logger = logging.getLogger(__name__)

    try:
        config.require_credential()
    except MissingCredential as e:
        logger.critical(str(e))
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    logger.info(
        "Starting relay server",
        extra={
            "host": config.server.host,
            "port": config.server.port,
            "dev": config.dev,
            "model": config.upstream.model,
        },
    )

    try:
        asyncio.run(run_server(config))
    except KeyboardInterrupt:
        logger.info("Relay server interrupted")


if __name__ == "__main__":
    main()
