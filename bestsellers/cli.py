"""
Command line entry point.

Usage:
    bestsellers backfill [--lists hardcover-fiction,audio-fiction] [--since 2020-01-01] [--dry-run]
    bestsellers update [--force] [--verbose]
    bestsellers stats

Exit status is 0 on success and 1 when a checkpoint failed, the API key
is missing or the daily quota ran out.
"""

import argparse
import asyncio
import json
import sys
from datetime import date
from typing import List, Optional

import structlog

from bestsellers.config.logging import configure_logging
from bestsellers.database.connection import close_database, get_db, init_database
from bestsellers.exceptions import BestsellersError, QuotaExceeded
from bestsellers.ingestion.jobs import run_backfill, run_update
from bestsellers.ingestion.orchestrators import RunReport
from bestsellers.serving.queries import BestsellerQueries

logger = structlog.get_logger(__name__)


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a YYYY-MM-DD date: {value!r}")


def _parse_lists(value: str) -> List[str]:
    return [name.strip() for name in value.split(",") if name.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bestsellers",
        description="Mirror the NYT Best Sellers lists into a local database",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    # Accept --verbose after the subcommand too
    verbose = argparse.ArgumentParser(add_help=False)
    verbose.add_argument("--verbose", "-v", action="store_true", default=argparse.SUPPRESS)

    commands = parser.add_subparsers(dest="command", required=True)

    backfill = commands.add_parser("backfill", parents=[verbose], help="Fetch the full weekly history")
    backfill.add_argument("--lists", type=_parse_lists, default=None,
                          help="Comma-separated encoded list names")
    backfill.add_argument("--since", type=_parse_date, default=None,
                          help="Skip editions before this date (YYYY-MM-DD)")
    backfill.add_argument("--dry-run", action="store_true",
                          help="Show what would be fetched without calling the API")

    update = commands.add_parser("update", parents=[verbose], help="Fetch the current edition of every list")
    update.add_argument("--force", action="store_true",
                        help="Write even when the edition is already stored")

    commands.add_parser("stats", help="Print store statistics as JSON")
    return parser


def _print_report(report: RunReport) -> None:
    print(f"\n{report.sync_type.value.upper()} SUMMARY")
    print(f"  Lists processed:   {report.lists_processed}")
    if report.planned:
        print(f"  Snapshots planned: {sum(len(d) for d in report.planned.values())}")
        return
    print(f"  Succeeded:         {report.checkpoints_succeeded}")
    print(f"  Skipped:           {report.checkpoints_skipped}")
    print(f"  Failed:            {report.checkpoints_failed}")
    print(f"  Rankings added:    {report.rankings_added}")
    print(f"  Books created:     {report.books_created}")
    print(f"  API calls:         {report.api_calls}")
    print(f"  Duration:          {report.duration_seconds:.1f}s")
    for error in report.errors:
        print(f"  ERROR {error}")


async def _stats() -> dict:
    await init_database(create_tables=True)
    try:
        async with get_db() as db:
            return await BestsellerQueries(db).stats()
    finally:
        await close_database()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging("DEBUG" if args.verbose else None)

    try:
        if args.command == "backfill":
            report = asyncio.run(run_backfill(args.lists, args.since, args.dry_run))
        elif args.command == "update":
            report = asyncio.run(run_update(force=args.force))
        else:
            print(json.dumps(asyncio.run(_stats()), indent=2, default=str))
            return 0
    except QuotaExceeded as e:
        logger.error("Run aborted", error=str(e))
        return 1
    except (ValueError, BestsellersError) as e:
        logger.error("Fatal error", error=str(e), error_type=type(e).__name__)
        return 1

    _print_report(report)
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
