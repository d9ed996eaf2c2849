"""
Command-line entry point for running one JMX pipe.

Loads the configuration, sets up logging, loads the configured connector
and runs the pipe until SIGINT or SIGTERM, writing one JSON record per line
to stdout.

Examples:
    jmx-pipe --config config/pipe.yaml
    jmx-pipe --config config/pipe.yaml --log-level DEBUG --log-format json
    jmx-pipe --config config/pipe.yaml --validate-only
    python -m jmx_pipe --config config/pipe.yaml
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from .adapters.core import load_connector
from .adapters.output import JsonLinesOutputSink
from .adapters.pipe import JmxPipe
from .common.config import PipeSettings, load_settings
from .common.exceptions import ConfigurationError
from .common.logging_setup import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jmx-pipe",
        description="Poll a remote management registry and emit its values as JSON lines",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --config pipe.yaml                     # Run the pipe
  %(prog)s --config pipe.yaml --log-format json   # Structured logs on stderr
  %(prog)s --config pipe.yaml --validate-only     # Check the configuration and exit
        """,
    )
    parser.add_argument("--config", required=True, help="Path to the pipe configuration (YAML or JSON)")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides the configuration)",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        choices=["pretty", "json"],
        help="Log output format (overrides the configuration)",
    )
    parser.add_argument(
        "--validate-only", action="store_true", help="Only validate configuration and exit"
    )
    return parser


async def run_pipe(settings: PipeSettings, logger: logging.Logger) -> bool:
    """Run the pipe until a shutdown signal arrives.

    Returns:
        False when the pipe terminated before any shutdown signal
    """
    connector = load_connector(settings.connector_class, settings.connector_options, logger)
    pipe = JmxPipe(settings, connector=connector, sink=JsonLinesOutputSink(sys.stdout), logger=logger)

    stop_event = asyncio.Event()

    def signal_handler():
        logger.info("Received shutdown signal")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            asyncio.get_running_loop().add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda *_: signal_handler())

    logger.info(f"Starting JMX pipe for {settings.host}:{settings.port}")
    stopped_by_signal = True
    async with pipe:
        waiter = asyncio.create_task(stop_event.wait())
        done, _ = await asyncio.wait({waiter, pipe.task}, return_when=asyncio.FIRST_COMPLETED)
        if waiter not in done:
            waiter.cancel()
            stopped_by_signal = False
            logger.error("JMX pipe terminated unexpectedly")

    logger.info("JMX pipe stopped")
    return stopped_by_signal


def main(argv: Optional[List[str]] = None) -> int:
    """Run the command line; returns the process exit status."""
    args = build_parser().parse_args(argv)

    logger = setup_logging(level=args.log_level or "INFO", log_format=args.log_format or "pretty")

    config_path = Path(args.config).resolve()
    try:
        settings = load_settings(config_path)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}", extra={"config_path": str(config_path), "error": e.to_dict()})
        return 1

    logger = setup_logging(
        name=settings.logger.name,
        level=args.log_level or settings.logger.level,
        log_format=args.log_format or settings.logger.format,
    )

    if args.validate_only:
        logger.info(
            "Configuration validation passed",
            extra={"queries": len(settings.queries), "subscriptions": len(settings.subscriptions)},
        )
        return 0

    if not settings.connector_class:
        logger.error("connector_class is required to run the pipe")
        return 1

    try:
        if not asyncio.run(run_pipe(settings, logger)):
            return 1
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}", extra={"error": e.to_dict()})
        return 1
    except KeyboardInterrupt:
        pass
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
