"""
CLI entry point for MarketWatch.

Usage:
    # Create the job table
    python -m marketwatch.cli init-db

    # Run one market watcher cycle
    python -m marketwatch.cli scan

    # Drain up to 10 pending jobs
    python -m marketwatch.cli work --max-jobs 10

    # Fail jobs stuck in PROCESSING
    python -m marketwatch.cli reap

    # Run watcher, workers and reaper until Ctrl+C
    python -m marketwatch.cli run

    # Serve the HTTP API
    python -m marketwatch.cli serve --port 8000
"""

import argparse
import logging
import time

from marketwatch.core.config import settings
from marketwatch.shared.logging import configure_logging

logger = logging.getLogger(__name__)


def cmd_init_db(args: argparse.Namespace) -> None:
    """Create the job table and its indexes."""
    from marketwatch.interfaces.anomaly.dependencies import get_job_store

    get_job_store().init_schema()
    logger.info("Job store ready at %s", settings.database_url)


def cmd_scan(args: argparse.Namespace) -> None:
    """Run one watcher cycle."""
    from marketwatch.interfaces.anomaly.dependencies import (
        build_scan_market_use_case,
        get_job_store,
    )

    get_job_store().init_schema()
    result = build_scan_market_use_case().run_cycle()
    if result.error:
        logger.error("Scan failed: %s", result.error)
        return
    logger.info(
        "Scan: scanned=%d candidates=%d enqueued=%d duplicates=%d failures=%d (%.1fs)",
        result.scanned,
        result.candidates,
        result.enqueued,
        result.duplicates,
        result.failures,
        result.duration_seconds,
    )


def cmd_work(args: argparse.Namespace) -> None:
    """Process pending jobs until the queue is empty or --max-jobs is hit."""
    from marketwatch.interfaces.anomaly.dependencies import (
        build_process_job_use_case,
        get_job_store,
        worker_id_for,
    )

    get_job_store().init_schema()
    worker = build_process_job_use_case(worker_id_for(0))
    processed = 0
    while args.max_jobs is None or processed < args.max_jobs:
        outcome = worker.execute()
        if outcome is None:
            break
        processed += 1
        logger.info(
            "%s | %s | score=%s | fallback=%s | alert=%s",
            outcome.job.symbol,
            outcome.status.value,
            outcome.job.final_risk_score,
            outcome.used_fallback,
            outcome.alert.kind.value if outcome.alert else "-",
        )
    logger.info("Processed %d job(s).", processed)


def cmd_reap(args: argparse.Namespace) -> None:
    """Fail jobs whose claim is older than the stale timeout."""
    from marketwatch.interfaces.anomaly.dependencies import (
        build_reap_stale_jobs_use_case,
        get_job_store,
    )

    get_job_store().init_schema()
    result = build_reap_stale_jobs_use_case().execute()
    logger.info(
        "Reaped %d job(s) older than %.0fs.", result.failed, result.older_than_seconds
    )


def cmd_run(args: argparse.Namespace) -> None:
    """Start every pipeline loop (runs in foreground)."""
    from marketwatch.interfaces.anomaly.dependencies import (
        build_pipeline_scheduler,
        get_job_store,
    )

    get_job_store().init_schema()
    scheduler = build_pipeline_scheduler()
    scheduler.start()
    logger.info("Pipeline running (%s). Press Ctrl+C to stop.", scheduler.task_names())

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutting down pipeline...")
    finally:
        scheduler.stop(wait=True)


def cmd_serve(args: argparse.Namespace) -> None:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    logger.info("Starting API at http://%s:%d", args.host, args.port)
    uvicorn.run("marketwatch.main:app", host=args.host, port=args.port, reload=False)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="MarketWatch anomaly pipeline CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init-db", help="Create the job table")
    init_parser.set_defaults(func=cmd_init_db)

    scan_parser = subparsers.add_parser("scan", help="Run one market watcher cycle")
    scan_parser.set_defaults(func=cmd_scan)

    work_parser = subparsers.add_parser("work", help="Process pending analysis jobs")
    work_parser.add_argument(
        "--max-jobs", type=int, default=None, dest="max_jobs",
        help="Stop after this many jobs (default: until the queue is empty)",
    )
    work_parser.set_defaults(func=cmd_work)

    reap_parser = subparsers.add_parser("reap", help="Fail stale PROCESSING jobs")
    reap_parser.set_defaults(func=cmd_reap)

    run_parser = subparsers.add_parser(
        "run", help="Run watcher, workers and reaper until interrupted"
    )
    run_parser.set_defaults(func=cmd_run)

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument(
        "--port", type=int, default=8000, help="Port for the API (default 8000)"
    )
    serve_parser.set_defaults(func=cmd_serve)

    return parser


def main() -> None:
    configure_logging(level=settings.log_level)
    args = build_parser().parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
