"""
Prefect Workflow Orchestration - Bestseller Sync

Scheduled wrappers around the ingestion jobs:
- daily_update: current edition of every stored list, once a day
- historical_backfill: full weekly history, resumable with since

Retries are off at every level; reruns only add what is missing.
"""

from datetime import date
from typing import List, Optional

from prefect import flow, task, get_run_logger

from bestsellers.config.logging import configure_logging
from bestsellers.exceptions import QuotaExceeded
from bestsellers.ingestion.jobs import run_backfill, run_update


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="update_current_editions",
    description="Fetch the current edition of every stored list",
    retries=0,
)
async def update_current_editions(force: bool = False) -> dict:
    logger = get_run_logger()

    report = await run_update(force=force)
    logger.info(
        f"Update complete: {report.checkpoints_succeeded} succeeded, "
        f"{report.checkpoints_skipped} skipped, {report.checkpoints_failed} failed"
    )
    return report.model_dump(mode="json")


@task(
    name="backfill_history",
    description="Fetch weekly history for the selected lists",
    retries=0,
)
async def backfill_history(
    lists: Optional[List[str]] = None,
    since: Optional[date] = None,
) -> dict:
    logger = get_run_logger()

    report = await run_backfill(lists=lists, since=since)
    logger.info(
        f"Backfill complete: {report.rankings_added} rankings added "
        f"across {report.lists_processed} lists, {report.api_calls} API calls"
    )
    return report.model_dump(mode="json")


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="daily_update",
    description="Daily incremental sync of the bestseller lists",
    retries=0,
)
async def daily_update(force: bool = False) -> dict:
    """
    Daily incremental sync.

    Fails the flow run when any list failed, so the scheduler surfaces it.
    """
    configure_logging()
    logger = get_run_logger()

    result = await update_current_editions(force=force)
    if result["checkpoints_failed"]:
        for error in result["errors"]:
            logger.error(error)
        raise RuntimeError(f"{result['checkpoints_failed']} list(s) failed to update")
    return result


@flow(
    name="historical_backfill",
    description="Weekly history backfill, resumable across days",
    retries=0,
)
async def historical_backfill(
    lists: Optional[List[str]] = None,
    since: Optional[date] = None,
) -> dict:
    """
    Historical backfill.

    Returns early when the daily quota runs out. Pass ``since`` on the
    next run to skip the editions already stored.
    """
    configure_logging()
    logger = get_run_logger()

    try:
        return await backfill_history(lists=lists, since=since)
    except QuotaExceeded as e:
        logger.warning(f"{e}; resume tomorrow")
        return {"status": "quota_exhausted", "error": str(e)}


if __name__ == "__main__":
    import asyncio

    asyncio.run(daily_update())
