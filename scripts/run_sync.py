#!/usr/bin/env python3
"""
Watermark synchronization entry point.

Runs synchronization cycles that copy new source rows into the destination:
- Resolves the current watermark from the destination index
- Queries the source for rows above it
- Emits one event per row to the configured sink

Without a schedule the cycle runs exactly once. With ``schedule.expression``
set, cycles run on that cron schedule until SIGINT/SIGTERM.

Usage:
    python scripts/run_sync.py [--config CONFIG_PATH] [--once]
"""

import argparse
import signal
import sys

from watermark_sync.app import build_scheduler
from watermark_sync.errors import ConfigurationError, ResolverAbortLimitExceeded
from watermark_sync.utils.config_loader import ConfigLoader
from watermark_sync.utils.logging_config import configure_logging, get_logger

log = get_logger(__name__)


def main():
    """Main entry point for the synchronizer."""
    parser = argparse.ArgumentParser(description="Watermark-based incremental synchronization")
    parser.add_argument("--config", type=str, help="Path to configuration file", default=None)
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle even if a schedule is configured",
    )
    args = parser.parse_args()

    try:
        loader = ConfigLoader()
        config = loader.load_config(args.config)
        loader.validate_config(config)

        configure_logging(
            log_level=config.logging.log_level,
            json_logs=config.logging.json_logs,
            log_file=config.logging.log_file,
            destination_client_logging=config.destination.client_logging,
        )

        if args.once:
            config.schedule.expression = None

        scheduler = build_scheduler(config)
    except ConfigurationError as e:
        log.error("startup_failed", error=str(e))
        sys.exit(2)

    def _handle_signal(signum, _frame):
        log.info("shutdown_signal_received", signal=signal.Signals(signum).name)
        scheduler.request_stop()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        outcome = scheduler.run()
    except ResolverAbortLimitExceeded as e:
        log.error("synchronizer_stopped", error=str(e))
        sys.exit(1)

    if outcome is None:
        sys.exit(0)
    sys.exit(0 if outcome.success else 1)


if __name__ == "__main__":
    main()
