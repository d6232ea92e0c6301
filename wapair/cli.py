"""CLI interface for wapair."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

import uvicorn
import yaml

from wapair.api.app import create_app
from wapair.core.config import Config, load_config
from wapair.core.logging import setup_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(description="wapair - WhatsApp device linking service")
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (defaults are used when omitted)",
    )
    parser.add_argument(
        "--env-file",
        type=str,
        default=".env",
        help="Path to a .env file loaded before config expansion (default: .env)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="API server host (overrides api.host)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="API server port (overrides api.port)",
    )
    return parser


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Apply command-line overrides on top of the loaded config."""
    if args.host:
        config.api.host = args.host
    if args.port:
        config.api.port = args.port
    if args.verbose:
        config.logging.level = "DEBUG"
    return config


async def run_server(config: Config) -> None:
    """Start the FastAPI server and wait for a shutdown signal."""
    app = create_app(config)

    uvicorn_config = uvicorn.Config(
        app,
        host=config.api.host,
        port=config.api.port,
        log_level="debug" if config.logging.level.upper() == "DEBUG" else "info",
        log_config=None,
    )
    server = uvicorn.Server(uvicorn_config)

    # Setup signal handlers for graceful shutdown
    stop_event = asyncio.Event()

    def signal_handler() -> None:
        stop_event.set()

    loop = asyncio.get_running_loop()
    loop.add_signal_handler(signal.SIGINT, signal_handler)
    loop.add_signal_handler(signal.SIGTERM, signal_handler)

    # Run server in background task
    server_task = asyncio.create_task(server.serve())
    stop_task = asyncio.create_task(stop_event.wait())

    try:
        # uvicorn may exit on its own (startup failure or its own signal handling)
        await asyncio.wait([server_task, stop_task], return_when=asyncio.FIRST_COMPLETED)
        if stop_event.is_set():
            logger.info("Shutdown signal received, stopping...")
    finally:
        stop_task.cancel()
        server.should_exit = True
        await server_task


async def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    config = load_config(args.config, env_file=args.env_file)
    config = apply_overrides(config, args)

    setup_logging(
        level=config.logging.level,
        directory=config.logging.directory,
        max_size_mb=config.logging.max_size_mb,
        backup_count=config.logging.backup_count,
    )
    logger.info(f"Starting wapair on {config.api.host}:{config.api.port}")

    await run_server(config)


def run() -> None:
    """Entry point for the ``wapair`` console script."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except yaml.YAMLError as e:
        print(f"Invalid YAML in configuration: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Startup failed: {e} (re-run with -v for details)", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    run()
