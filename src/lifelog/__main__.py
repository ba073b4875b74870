"""
Lifelog Runner Entry Point

Starts the lifelog core:
- Event store (DuckDB index)
- Drivers from the registration table
- Scheduler for automatic drivers

Usage:
    python -m lifelog
    python -m lifelog --run spotify          # manual run, then keep running
    python -m lifelog --run spotify --once   # manual run, then exit
"""

import argparse
import logging
import signal
import sys
import threading

from lifelog import __version__
from lifelog.config import Config, ConfigError
from lifelog.errors import LifelogError, StorageError
from lifelog.runtime import LifelogRuntime
from lifelog.services.logger import cleanup_logging, setup_logging

logger = logging.getLogger("lifelog.main")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="lifelog", description="Personal activity log indexer")
    parser.add_argument("--config", help="YAML config file (overrides LIFELOG_CONFIG)")
    parser.add_argument(
        "--run",
        action="append",
        default=[],
        metavar="DRIVER_ID",
        help="Run a driver immediately after startup (repeatable)",
    )
    parser.add_argument("--once", action="store_true", help="Exit after the --run drivers finish")
    parser.add_argument("--log-level", help="Override the configured log level")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    overrides = {"log_level": args.log_level} if args.log_level else None
    try:
        config = Config(config_file=args.config, overrides=overrides)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    logger_service = setup_logging(config.get_logging_config())

    logger.info("=" * 60)
    logger.info(f"Lifelog {__version__} Starting")
    logger.info("=" * 60)
    logger.info(f"Data dir: {config.data_dir}")
    logger.info(f"Raw dir: {config.raw_dir}")
    logger.info(f"Index: {config.db_path}")

    runtime = LifelogRuntime.from_config(config, recent_logs=logger_service.recent)
    try:
        runtime.start()
    except StorageError:
        cleanup_logging()
        return 1

    exit_code = 0
    for driver_id in args.run:
        try:
            result = runtime.run_source(driver_id)
            logger.info(result["message"])
        except LifelogError as e:
            logger.error(f"Run of '{driver_id}' failed: {e}")
            exit_code = 1

    if not args.once:
        shutdown_event = threading.Event()

        def signal_handler(sig, frame):
            logger.info(f"Received signal {sig}, shutting down...")
            shutdown_event.set()

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        logger.info("Running. Press Ctrl+C to stop.")
        while not shutdown_event.wait(1.0):
            pass

    logger.info("Cleaning up...")
    runtime.stop()
    cleanup_logging()
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
