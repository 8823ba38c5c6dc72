"""
Ingestion Orchestrators

Compose the fetch client, resolver, ranking writer, catalog and ledger into
complete runs:

- BackfillOrchestrator: weekly checkpoints across each list's known range
- UpdateOrchestrator: the current edition of every known list, once per day

Each checkpoint is one transaction. A failed checkpoint is rolled back,
written to the ledger as an error and the run moves on; checkpoints that
already committed stay committed. QuotaExceeded ends the run.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from functools import partial
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bestsellers.database.models import BestsellerList, Ranking, SyncStatus, SyncType
from bestsellers.exceptions import BestsellersError, QuotaExceeded
from bestsellers.ingestion.catalog import ListCatalog
from bestsellers.ingestion.client import BooksApiClient
from bestsellers.ingestion.ledger import SyncLedger
from bestsellers.ingestion.rankings import RankingWriter
from bestsellers.ingestion.resolver import BookResolver
from bestsellers.ingestion.schemas import ListSnapshot

logger = structlog.get_logger(__name__)

CHECKPOINT_INTERVAL = timedelta(days=7)


def weekly_checkpoints(
    oldest: Optional[date],
    newest: Optional[date],
    since: Optional[date] = None,
) -> List[date]:
    """
    Publish dates to fetch for a list, one per week, both ends inclusive.

    Starts at ``since`` when it is later than ``oldest``. Returns an empty
    list when the range is unknown.
    """
    if oldest is None or newest is None:
        return []

    current = max(oldest, since) if since else oldest
    dates = []
    while current <= newest:
        dates.append(current)
        current += CHECKPOINT_INTERVAL
    return dates


@dataclass
class CheckpointResult:
    """Outcome of one snapshot ingestion"""
    list_name_encoded: str
    published_date: Optional[date]
    status: SyncStatus
    books_seen: int = 0
    books_created: int = 0
    rankings_added: int = 0
    rankings_skipped: int = 0
    error_message: Optional[str] = None


class RunReport(BaseModel):
    """Summary of an orchestrator run"""
    sync_type: SyncType
    started_at: datetime
    completed_at: Optional[datetime] = None
    lists_processed: int = 0
    checkpoints_succeeded: int = 0
    checkpoints_skipped: int = 0
    checkpoints_failed: int = 0
    books_seen: int = 0
    books_created: int = 0
    rankings_added: int = 0
    rankings_skipped: int = 0
    api_calls: int = 0
    errors: List[str] = Field(default_factory=list)
    planned: Dict[str, List[date]] = Field(default_factory=dict)

    def add(self, result: CheckpointResult) -> None:
        if result.status == SyncStatus.SUCCESS:
            self.checkpoints_succeeded += 1
        elif result.status == SyncStatus.SKIPPED:
            self.checkpoints_skipped += 1
        else:
            self.checkpoints_failed += 1
            self.errors.append(
                f"{result.list_name_encoded} {result.published_date or 'current'}: {result.error_message}"
            )
        self.books_seen += result.books_seen
        self.books_created += result.books_created
        self.rankings_added += result.rankings_added
        self.rankings_skipped += result.rankings_skipped

    @property
    def duration_seconds(self) -> float:
        end = self.completed_at or datetime.utcnow()
        return (end - self.started_at).total_seconds()

    @property
    def exit_code(self) -> int:
        """Non-zero when any checkpoint failed"""
        return 1 if self.checkpoints_failed else 0


class _SnapshotIngestor:
    """Checkpoint write path shared by both orchestrators"""

    sync_type: SyncType

    def __init__(
        self,
        client: Optional[BooksApiClient],
        session_factory: async_sessionmaker[AsyncSession],
        catalog: Optional[ListCatalog] = None,
        resolver: Optional[BookResolver] = None,
        rankings: Optional[RankingWriter] = None,
        ledger: Optional[SyncLedger] = None,
    ):
        self.client = client
        self.session_factory = session_factory
        self.catalog = catalog or ListCatalog()
        self.resolver = resolver or BookResolver()
        self.rankings = rankings or RankingWriter()
        self.ledger = ledger or SyncLedger()

    async def _already_ingested(
        self, session: AsyncSession, list_id: int, published_date: date
    ) -> bool:
        count = await session.scalar(
            select(func.count(Ranking.ranking_id)).where(
                Ranking.list_id == list_id,
                Ranking.published_date == published_date,
            )
        )
        return bool(count)

    async def _write_snapshot(
        self,
        session: AsyncSession,
        list_row: BestsellerList,
        snapshot: ListSnapshot,
    ) -> CheckpointResult:
        result = CheckpointResult(
            list_name_encoded=list_row.list_name_encoded,
            published_date=snapshot.published_date,
            status=SyncStatus.SUCCESS,
        )
        created_before = self.resolver.created

        for record in snapshot.books:
            book_id = await self.resolver.resolve(session, record)
            result.books_seen += 1

            inserted = await self.rankings.record(
                session,
                list_row.list_id,
                book_id,
                snapshot.published_date,
                record.to_observation(snapshot.bestsellers_date),
            )
            if inserted:
                result.rankings_added += 1
            else:
                result.rankings_skipped += 1

        result.books_created = self.resolver.created - created_before

        # Nothing new: the edition was already mirrored
        if result.rankings_added == 0 and result.rankings_skipped:
            result.status = SyncStatus.SKIPPED

        await self.ledger.append(
            session,
            self.sync_type,
            result.status,
            list_name_encoded=list_row.list_name_encoded,
            published_date=snapshot.published_date,
            records_added=result.rankings_added,
            records_skipped=result.rankings_skipped,
        )
        return result

    async def _record_skip(
        self,
        session: AsyncSession,
        list_row: BestsellerList,
        published_date: Optional[date],
        reason: str,
    ) -> CheckpointResult:
        await self.ledger.append(
            session,
            self.sync_type,
            SyncStatus.SKIPPED,
            list_name_encoded=list_row.list_name_encoded,
            published_date=published_date,
            error_message=reason,
        )
        return CheckpointResult(
            list_name_encoded=list_row.list_name_encoded,
            published_date=published_date,
            status=SyncStatus.SKIPPED,
            error_message=reason,
        )

    async def _record_failure(
        self,
        list_row: BestsellerList,
        published_date: Optional[date],
        error: Exception,
    ) -> CheckpointResult:
        async with self.session_factory() as session:
            async with session.begin():
                await self.ledger.append(
                    session,
                    self.sync_type,
                    SyncStatus.ERROR,
                    list_name_encoded=list_row.list_name_encoded,
                    published_date=published_date,
                    error_message=str(error),
                )
        return CheckpointResult(
            list_name_encoded=list_row.list_name_encoded,
            published_date=published_date,
            status=SyncStatus.ERROR,
            error_message=str(error),
        )

    async def _ingest_checkpoint(
        self,
        list_row: BestsellerList,
        fetch: Callable[[], Awaitable[Optional[ListSnapshot]]],
        target_date: Optional[date] = None,
        skip_if_present: bool = False,
    ) -> CheckpointResult:
        """
        Fetch one snapshot and write it in a single transaction.

        Raises:
            QuotaExceeded: After the failure has been written to the ledger
        """
        try:
            snapshot = await fetch()

            async with self.session_factory() as session:
                async with session.begin():
                    if snapshot is None:
                        result = await self._record_skip(
                            session, list_row, target_date, "No data in response"
                        )
                    elif skip_if_present and await self._already_ingested(
                        session, list_row.list_id, snapshot.published_date
                    ):
                        result = await self._record_skip(
                            session, list_row, snapshot.published_date,
                            "Already have data for this date",
                        )
                    else:
                        result = await self._write_snapshot(session, list_row, snapshot)

        except QuotaExceeded as e:
            logger.error("Daily quota exhausted", list=list_row.list_name_encoded, error=str(e))
            await self._record_failure(list_row, target_date, e)
            raise
        except (BestsellersError, SQLAlchemyError, ValidationError) as e:
            logger.error(
                "Checkpoint failed",
                list=list_row.list_name_encoded,
                date=str(target_date) if target_date else "current",
                error=str(e),
                error_type=type(e).__name__,
            )
            return await self._record_failure(list_row, target_date, e)

        logger.info(
            "Checkpoint ingested",
            list=list_row.list_name_encoded,
            published_date=str(result.published_date) if result.published_date else None,
            status=result.status.value,
            rankings_added=result.rankings_added,
            rankings_skipped=result.rankings_skipped,
        )
        return result

    def _finish(self, report: RunReport) -> RunReport:
        report.completed_at = datetime.utcnow()
        if self.client is not None:
            report.api_calls = self.client.rate_limiter.call_count

        logger.info(
            f"{self.sync_type.value.capitalize()} complete: "
            f"{report.checkpoints_succeeded} succeeded, "
            f"{report.checkpoints_skipped} skipped, "
            f"{report.checkpoints_failed} failed",
            lists=report.lists_processed,
            rankings_added=report.rankings_added,
            books_created=report.books_created,
            api_calls=report.api_calls,
            duration_seconds=round(report.duration_seconds, 1),
        )
        return report


class BackfillOrchestrator(_SnapshotIngestor):
    """
    Full-history backfill.

    Example:
        orchestrator = BackfillOrchestrator(client, session_factory)
        report = await orchestrator.run(lists=["hardcover-fiction"], since=date(2024, 1, 1))
    """

    sync_type = SyncType.BACKFILL

    async def _plan(
        self,
        lists: Optional[Iterable[str]],
        since: Optional[date],
        report: RunReport,
    ) -> RunReport:
        """Dry run: checkpoints for lists already in the store, no API calls."""
        async with self.session_factory() as session:
            rows = await self.catalog.all(session)

        wanted = set(lists) if lists else None
        for row in rows:
            if wanted is not None and row.list_name_encoded not in wanted:
                continue
            dates = weekly_checkpoints(row.oldest_published_date, row.newest_published_date, since)
            report.planned[row.list_name_encoded] = dates
            report.lists_processed += 1
            logger.info(
                "Would fetch snapshots",
                list=row.list_name_encoded,
                snapshots=len(dates),
                first_dates=[d.isoformat() for d in dates[:5]],
            )

        report.completed_at = datetime.utcnow()
        return report

    async def run(
        self,
        lists: Optional[Iterable[str]] = None,
        since: Optional[date] = None,
        dry_run: bool = False,
    ) -> RunReport:
        """
        Sync the list catalog, then ingest every weekly checkpoint.

        Args:
            lists: Encoded list names to restrict the run to
            since: Skip checkpoints before this date
            dry_run: Plan only; no API calls and no writes
        """
        report = RunReport(sync_type=self.sync_type, started_at=datetime.utcnow())
        lists = list(lists) if lists else None

        if dry_run:
            return await self._plan(lists, since, report)

        descriptors = await self.client.fetch_list_names()
        async with self.session_factory() as session:
            async with session.begin():
                await self.catalog.sync(session, descriptors)

        targets = [d for d in descriptors if lists is None or d.list_name_encoded in lists]
        if lists:
            missing = set(lists) - {d.list_name_encoded for d in targets}
            if missing:
                logger.warning("Requested lists not in remote catalog", lists=sorted(missing))

        if not targets:
            logger.warning("No lists to fetch")
            return self._finish(report)

        logger.info("Starting backfill", lists=len(targets), since=str(since) if since else None)

        try:
            for descriptor in targets:
                async with self.session_factory() as session:
                    list_row = await self.catalog.get(session, descriptor.list_name_encoded)

                dates = weekly_checkpoints(
                    list_row.oldest_published_date, list_row.newest_published_date, since
                )
                logger.info(
                    "Fetching history",
                    list=list_row.list_name_encoded,
                    oldest=str(list_row.oldest_published_date),
                    newest=str(list_row.newest_published_date),
                    snapshots=len(dates),
                )

                for checkpoint in dates:
                    result = await self._ingest_checkpoint(
                        list_row,
                        partial(self.client.fetch_list_snapshot, list_row.list_name_encoded, checkpoint),
                        target_date=checkpoint,
                    )
                    report.add(result)
                report.lists_processed += 1
        finally:
            self._finish(report)

        return report


class UpdateOrchestrator(_SnapshotIngestor):
    """
    Incremental daily update: one call per known list.

    Example:
        report = await UpdateOrchestrator(client, session_factory).run()
    """

    sync_type = SyncType.UPDATE

    async def run(self, force: bool = False) -> RunReport:
        """
        Ingest the current edition of every stored list.

        Args:
            force: Write even when the edition is already in the store
        """
        report = RunReport(sync_type=self.sync_type, started_at=datetime.utcnow())

        async with self.session_factory() as session:
            rows = await self.catalog.all(session)

        if not rows:
            logger.warning("No lists in the store; run a backfill first")
            return self._finish(report)

        logger.info("Updating lists", lists=len(rows), force=force)

        try:
            for list_row in rows:
                result = await self._ingest_checkpoint(
                    list_row,
                    partial(self.client.fetch_current_snapshot, list_row.list_name_encoded),
                    skip_if_present=not force,
                )
                report.add(result)
                report.lists_processed += 1
        finally:
            self._finish(report)

        return report
