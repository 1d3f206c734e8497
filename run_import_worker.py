"""
F31 - Import worker for the account relationship importer.

Drains the import queue: every confirmed import is claimed, applied row by
row, and marked finished.  Runs forever by default, polling the queue every
IMPORT_WORKER_POLL_SECONDS; with ``--once`` it makes a single pass and
exits, which suits cron.

Run exactly as many worker processes as your database tolerates; with
SQLite one process (with a small ``--concurrency``) is the sensible limit.

ENVIRONMENT VARIABLES:
  The worker reads the same settings as the web app (SECRET_KEY,
  DATABASE_URL, LOCAL_DOMAIN, IMPORT_*).  Both must use the same
  DATABASE_URL.

USAGE
=====
  # Keep running, polling for confirmed imports
  python run_import_worker.py

  # Single pass (cron)
  python run_import_worker.py --once

  # Three imports at a time, at most 10 per pass, with debug logging
  python run_import_worker.py --once --concurrency 3 --max-jobs 10 --verbose

EXIT CODES
==========
  0 - Success (the queue was drained, even if individual rows failed)
  1 - Fatal error (e.g. unable to create app context, database unreachable)
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from datetime import datetime, timezone


# ---------------------------------------------------------------------------
# Argument parsing (done before app import so --help works without Flask)
# ---------------------------------------------------------------------------


def _parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Apply confirmed account relationship imports.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--once",
        action="store_true",
        default=False,
        help="Make a single pass over the queue and exit.",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Imports processed in parallel (default: IMPORT_WORKER_CONCURRENCY).",
    )
    parser.add_argument(
        "--max-jobs",
        type=int,
        default=None,
        help="Stop a pass after this many imports.",
    )
    parser.add_argument(
        "--poll-seconds",
        type=float,
        default=None,
        help="Seconds to sleep between passes (default: IMPORT_WORKER_POLL_SECONDS).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=False,
        help="Enable DEBUG-level logging output.",
    )
    return parser.parse_args()


# ---------------------------------------------------------------------------
# Logging setup (before Flask to capture early errors)
# ---------------------------------------------------------------------------


def _configure_logging(verbose: bool) -> logging.Logger:
    """Configure root logger for the worker.

    Args:
        verbose: If True, set level to DEBUG; otherwise INFO.

    Returns:
        A logger instance named after this module.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        stream=sys.stdout,
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )
    return logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def main() -> int:
    """Run the worker.

    Returns:
        Integer exit code: 0 for success, 1 for fatal error.
    """
    args = _parse_args()
    logger = _configure_logging(args.verbose)

    run_start = datetime.now(timezone.utc)
    logger.info("=== run_import_worker.py started at %s ===", run_start.isoformat())

    try:
        from relimport import create_app

        flask_app = create_app()
    except Exception:
        logger.exception("FATAL: Failed to create Flask application.")
        return 1

    totals = {"claimed": 0, "completed": 0, "failed": 0}

    with flask_app.app_context():
        from relimport.imports.worker import run_pending_imports

        poll_seconds = args.poll_seconds
        if poll_seconds is None:
            poll_seconds = flask_app.config.get("IMPORT_WORKER_POLL_SECONDS", 5)

        try:
            while True:
                try:
                    stats = run_pending_imports(
                        max_jobs=args.max_jobs,
                        concurrency=args.concurrency,
                    )
                except Exception:
                    logger.exception("FATAL: Worker pass failed.")
                    return 1
                for key in totals:
                    totals[key] += stats[key]

                if args.once:
                    break
                time.sleep(poll_seconds)
        except KeyboardInterrupt:
            logger.info("Interrupted; shutting down.")

    _log_summary(logger, run_start, **totals)
    return 0


def _log_summary(
    logger: logging.Logger,
    run_start: datetime,
    claimed: int,
    completed: int,
    failed: int,
) -> None:
    """Emit a summary log line at the end of a run."""
    run_end = datetime.now(timezone.utc)
    logger.info(
        "=== Run complete: claimed=%d  completed=%d  failed=%d  total_elapsed=%.1fs  ended=%s ===",
        claimed,
        completed,
        failed,
        (run_end - run_start).total_seconds(),
        run_end.isoformat(),
    )


# ---------------------------------------------------------------------------
# Script entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
