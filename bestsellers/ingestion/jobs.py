"""
Ingestion jobs

One-call entry points shared by the command line and the Prefect flows.
Each job opens the store (creating the schema on first use), runs one
orchestrator and releases the HTTP client and the engine afterwards.
"""

from datetime import date
from typing import Iterable, Optional

import structlog

from bestsellers.database.connection import close_database, get_session_factory, init_database
from bestsellers.ingestion.client import create_books_api_client
from bestsellers.ingestion.orchestrators import BackfillOrchestrator, RunReport, UpdateOrchestrator

logger = structlog.get_logger(__name__)


async def run_backfill(
    lists: Optional[Iterable[str]] = None,
    since: Optional[date] = None,
    dry_run: bool = False,
) -> RunReport:
    """
    Backfill history for all lists, or only the ones named.

    Raises:
        ValueError: The API key is not configured (not checked on a dry run)
        QuotaExceeded: The daily budget ran out mid-run
    """
    await init_database(create_tables=True)
    try:
        session_factory = get_session_factory()
        if dry_run:
            logger.info("DRY RUN: no API calls or writes will be made")
            return await BackfillOrchestrator(None, session_factory).run(
                lists=lists, since=since, dry_run=True
            )

        async with create_books_api_client() as client:
            return await BackfillOrchestrator(client, session_factory).run(lists=lists, since=since)
    finally:
        await close_database()


async def run_update(force: bool = False) -> RunReport:
    """
    Fetch the current edition of every stored list.

    Raises:
        ValueError: The API key is not configured
        QuotaExceeded: The daily budget ran out mid-run
    """
    await init_database(create_tables=True)
    try:
        async with create_books_api_client() as client:
            return await UpdateOrchestrator(client, get_session_factory()).run(force=force)
    finally:
        await close_database()
