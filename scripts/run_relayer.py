#!/usr/bin/env python3
"""
Run one anchoring pass: hash unanchored ratings and submit their skills.

Meant to be scheduled (cron or similar). Exit codes:
    0  pass completed, including "nothing to do" and "another pass is running"
    1  unexpected error
    2  missing or invalid configuration

Usage:
    python scripts/run_relayer.py [--log-level DEBUG] [--init-db]
"""
from __future__ import annotations

import argparse
import logging
import signal
import threading

from skillanchor.app.config import LOG_LEVELS, load_settings
from skillanchor.app.domain.errors import ConfigurationError
from skillanchor.app.services.relayer import run_relayer

logger = logging.getLogger("skillanchor.relayer")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_stop = threading.Event()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Anchor pending skill ratings on chain.")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        help="Logging level (default: LOG_LEVEL from the environment or .env, else INFO)",
    )
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create missing tables before the pass",
    )
    return parser.parse_args(argv)


def _request_stop(signum, frame) -> None:
    logger.warning(
        "Received %s; finishing the current submission, then stopping",
        signal.Signals(signum).name,
    )
    _stop.set()


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        logging.basicConfig(level=args.log_level or "INFO", format=LOG_FORMAT)
        logger.error("Configuration error: %s", exc)
        return 2
    logging.basicConfig(level=args.log_level or settings.log_level, format=LOG_FORMAT)
    signal.signal(signal.SIGTERM, _request_stop)
    signal.signal(signal.SIGINT, _request_stop)

    try:
        logger.info("Starting relayer pass")
        report = run_relayer(settings, stop_requested=_stop.is_set, create_tables=args.init_db)
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        return 2
    except Exception:
        logger.exception("Relayer pass failed")
        return 1

    if report is not None:
        summary = report.to_dict()
        summary.pop("outcomes")
        logger.info("Relayer pass completed: %s", summary)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
