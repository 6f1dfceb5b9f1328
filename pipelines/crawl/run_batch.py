"""Run one crawl batch from the command line (cron-friendly).

Usage: python -m pipelines.crawl.run_batch --frequency daily
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from app.config import settings
from app.core.database import DatabaseUnavailableError, dispose_database, init_database
from app.services.dependencies import build_crawl_pipeline, get_repositories, reset_dependencies
from pipelines.crawl import SCHEDULED_FREQUENCIES, CrawlError
from pipelines.crawl.pipeline import BatchSummary, CrawlPipeline

logger = logging.getLogger("pipelines.crawl.run_batch")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Crawl all active sources for one frequency.")
    parser.add_argument(
        "--frequency",
        choices=[frequency.value for frequency in SCHEDULED_FREQUENCIES],
        required=True,
        help="Which trigger to run (daily or hourly).",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Optional path for the JSON batch summary (defaults to stdout).",
    )
    return parser.parse_args(argv)


def run(argv: Sequence[str] | None = None, *, pipeline: CrawlPipeline | None = None) -> BatchSummary:
    args = parse_args(argv)
    owns_resources = pipeline is None
    if owns_resources:
        if not settings.database_url:
            logger.warning("crawl.batch.memory_store", extra={"hint": "set DATABASE_URL"})
        init_database()
        pipeline = build_crawl_pipeline(get_repositories())
    try:
        summary = pipeline.run_batch(args.frequency)
    finally:
        if owns_resources:
            reset_dependencies()
            dispose_database()

    payload = json.dumps(summary.as_dict(), indent=2)
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(payload + "\n", encoding="utf-8")
    else:
        sys.stdout.write(payload + "\n")
    return summary


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for `python -m pipelines.crawl.run_batch`."""
    logging.basicConfig(level=getattr(logging, settings.log_level.upper()))
    try:
        run(argv)
    except (CrawlError, DatabaseUnavailableError) as exc:
        logger.error("crawl.batch.aborted", extra={"code": exc.code, "error": str(exc)})
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
