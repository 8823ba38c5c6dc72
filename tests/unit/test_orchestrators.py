"""
Unit Tests - Backfill and Update Orchestrators
"""
from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from bestsellers.database.models import Book, Ranking, SyncLog, SyncStatus, SyncType
from bestsellers.exceptions import QuotaExceeded
from bestsellers.ingestion.catalog import ListCatalog
from bestsellers.ingestion.orchestrators import (
    BackfillOrchestrator,
    UpdateOrchestrator,
    weekly_checkpoints,
)
from bestsellers.ingestion.rankings import RankingWriter
from bestsellers.ingestion.schemas import ListDescriptor

from tests.conftest import catalog_entry, catalog_payload, make_book


async def rankings_on(session_factory, published_date: date) -> int:
    async with session_factory() as session:
        return await session.scalar(
            select(func.count(Ranking.ranking_id)).where(Ranking.published_date == published_date)
        )


async def sync_log(session_factory):
    async with session_factory() as session:
        return list((await session.execute(select(SyncLog).order_by(SyncLog.sync_id))).scalars())


async def store_catalog(session_factory, *entries) -> None:
    async with session_factory() as session:
        async with session.begin():
            await ListCatalog().sync(session, [ListDescriptor.model_validate(e) for e in entries])


class BrokenRankingWriter(RankingWriter):
    """Fails the write of one (published date, rank) position"""

    def __init__(self, published_date: date, rank: int):
        super().__init__()
        self.broken = (published_date, rank)

    async def record(self, session, list_id, book_id, published_date, observation):
        if (published_date, observation.rank) == self.broken:
            raise OperationalError("INSERT INTO rankings", {}, Exception("disk I/O error"))
        return await super().record(session, list_id, book_id, published_date, observation)


class TestWeeklyCheckpoints:
    """Tests for weekly_checkpoints"""

    def test_inclusive_weekly_range(self):
        """Test both bounds are included in 7-day steps"""
        assert weekly_checkpoints(date(2024, 1, 1), date(2024, 1, 22)) == [
            date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22),
        ]

    def test_since_moves_start(self):
        """Test a later since replaces the oldest date"""
        assert weekly_checkpoints(date(2024, 1, 1), date(2024, 1, 22), since=date(2024, 1, 15)) == [
            date(2024, 1, 15), date(2024, 1, 22),
        ]

    def test_earlier_since_ignored(self):
        """Test since before the list existed has no effect"""
        assert weekly_checkpoints(date(2024, 1, 1), date(2024, 1, 8), since=date(2020, 1, 1)) == [
            date(2024, 1, 1), date(2024, 1, 8),
        ]

    def test_unknown_range(self):
        """Test missing bounds yield no checkpoints"""
        assert weekly_checkpoints(None, date(2024, 1, 8)) == []
        assert weekly_checkpoints(date(2024, 1, 8), None) == []
        assert weekly_checkpoints(date(2024, 1, 8), date(2024, 1, 1)) == []


class TestBackfillOrchestrator:
    """Tests for BackfillOrchestrator"""

    @pytest.mark.asyncio
    async def test_full_backfill(self, fiction_api, make_client, session_factory, sleep_recorder):
        """Test catalog sync and every weekly edition are ingested"""
        async with make_client() as client:
            report = await BackfillOrchestrator(client, session_factory).run()

        assert fiction_api.paths == [
            "lists/names.json",
            "lists/2024-01-01/hardcover-fiction.json",
            "lists/2024-01-08/hardcover-fiction.json",
            "lists/2024-01-15/hardcover-fiction.json",
            "lists/2024-01-22/hardcover-fiction.json",
        ]
        assert sleep_recorder.calls == [12.0] * 5
        assert report.checkpoints_succeeded == 4
        assert report.rankings_added == 7
        assert report.books_seen == 7
        assert report.api_calls == 5
        assert report.exit_code == 0

        async with session_factory() as session:
            assert await session.scalar(select(func.count(Book.book_id))) == 3

        entries = await sync_log(session_factory)
        assert [e.status for e in entries] == [SyncStatus.SUCCESS] * 4
        assert all(e.sync_type == SyncType.BACKFILL for e in entries)
        assert entries[1].published_date == date(2024, 1, 8)
        assert entries[1].records_added == 3

    @pytest.mark.asyncio
    async def test_failed_checkpoint_is_isolated(self, fiction_api, make_client, session_factory):
        """Test one failing date leaves an error record, no rankings, and the run continues"""
        fiction_api.add("lists/2024-01-08/hardcover-fiction.json", {"fault": "boom"}, status_code=500)

        async with make_client() as client:
            report = await BackfillOrchestrator(client, session_factory).run()

        assert report.checkpoints_succeeded == 3
        assert report.checkpoints_failed == 1
        assert report.exit_code == 1
        assert "2024-01-08" in report.errors[0]

        assert await rankings_on(session_factory, date(2024, 1, 8)) == 0
        assert await rankings_on(session_factory, date(2024, 1, 1)) == 2
        assert await rankings_on(session_factory, date(2024, 1, 22)) == 1

        failures = [e for e in await sync_log(session_factory) if e.status == SyncStatus.ERROR]
        assert len(failures) == 1
        assert failures[0].published_date == date(2024, 1, 8)
        assert failures[0].list_name_encoded == "hardcover-fiction"
        assert "500" in failures[0].error_message

    @pytest.mark.asyncio
    async def test_store_failure_mid_checkpoint_rolls_back_that_date_only(
        self, fiction_api, fiction_week_books, make_client, session_factory
    ):
        """Test a write failure after some books leaves nothing of that date behind"""
        fiction_api.add_snapshot("hardcover-fiction", date(2024, 1, 8), fiction_week_books[date(2024, 1, 8)] + [
            make_book(4, "9781649374042", "Fourth Wing", "Rebecca Yarros"),
        ])

        async with make_client() as client:
            report = await BackfillOrchestrator(
                client, session_factory, rankings=BrokenRankingWriter(date(2024, 1, 8), 4)
            ).run()

        assert report.checkpoints_succeeded == 3
        assert report.checkpoints_failed == 1
        assert report.rankings_added == 4
        assert report.books_created == 3

        assert await rankings_on(session_factory, date(2024, 1, 8)) == 0
        assert await rankings_on(session_factory, date(2024, 1, 1)) == 2
        assert await rankings_on(session_factory, date(2024, 1, 15)) == 1
        assert await rankings_on(session_factory, date(2024, 1, 22)) == 1

        async with session_factory() as session:
            assert await session.scalar(select(func.count(Book.book_id))) == 3
            assert await session.scalar(
                select(func.count(Book.book_id)).where(Book.primary_isbn13 == "9781649374042")
            ) == 0

        entries = await sync_log(session_factory)
        assert [e.status for e in entries] == [
            SyncStatus.SUCCESS, SyncStatus.ERROR, SyncStatus.SUCCESS, SyncStatus.SUCCESS,
        ]
        assert entries[1].published_date == date(2024, 1, 8)
        assert "disk I/O error" in entries[1].error_message

    @pytest.mark.asyncio
    async def test_rerun_skips_instead_of_failing(self, seeded_store, make_client):
        """Test re-ingesting stored editions adds nothing and reports skipped"""
        async with make_client() as client:
            report = await BackfillOrchestrator(client, seeded_store).run()

        assert report.rankings_added == 0
        assert report.rankings_skipped == 7
        assert report.checkpoints_failed == 0
        assert report.checkpoints_skipped == 4
        assert report.exit_code == 0

        async with seeded_store() as session:
            assert await session.scalar(select(func.count(Ranking.ranking_id))) == 7
            assert await session.scalar(select(func.count(Book.book_id))) == 3

    @pytest.mark.asyncio
    async def test_filters_lists_and_since(self, fiction_api, make_client, session_factory):
        """Test only the requested lists and dates are fetched"""
        fiction_api.add("lists/names.json", catalog_payload(
            catalog_entry("hardcover-fiction", "Hardcover Fiction"),
            catalog_entry("audio-fiction", "Audio Fiction"),
        ))

        async with make_client() as client:
            report = await BackfillOrchestrator(client, session_factory).run(
                lists=["hardcover-fiction", "no-such-list"], since=date(2024, 1, 15)
            )

        assert fiction_api.paths == [
            "lists/names.json",
            "lists/2024-01-15/hardcover-fiction.json",
            "lists/2024-01-22/hardcover-fiction.json",
        ]
        assert report.lists_processed == 1

        async with session_factory() as session:
            stored = [row.list_name_encoded for row in await ListCatalog().all(session)]
        assert stored == ["audio-fiction", "hardcover-fiction"]

    @pytest.mark.asyncio
    async def test_empty_snapshot_recorded_as_skipped(self, fake_api, make_client, session_factory):
        """Test dates with no books are skipped, not failed"""
        fake_api.add("lists/names.json", catalog_payload(
            catalog_entry("audio-fiction", "Audio Fiction", oldest="2024-01-01", newest="2024-01-01"),
        ))
        fake_api.add("lists/2024-01-01/audio-fiction.json", {"status": "OK", "results": {"books": []}})

        async with make_client() as client:
            report = await BackfillOrchestrator(client, session_factory).run()

        assert report.checkpoints_skipped == 1
        assert report.exit_code == 0
        entry = (await sync_log(session_factory))[0]
        assert entry.status == SyncStatus.SKIPPED
        assert entry.published_date == date(2024, 1, 1)
        assert entry.error_message == "No data in response"

    @pytest.mark.asyncio
    async def test_quota_aborts_run(self, fiction_api, make_client, session_factory):
        """Test the daily ceiling stops the run and keeps committed work"""
        async with make_client(max_calls_per_day=2) as client:
            with pytest.raises(QuotaExceeded):
                await BackfillOrchestrator(client, session_factory).run()

        assert len(fiction_api.requests) == 2
        assert await rankings_on(session_factory, date(2024, 1, 1)) == 2

        entries = await sync_log(session_factory)
        assert [e.status for e in entries] == [SyncStatus.SUCCESS, SyncStatus.ERROR]
        assert entries[1].published_date == date(2024, 1, 8)
        assert "Daily API limit reached" in entries[1].error_message

    @pytest.mark.asyncio
    async def test_dry_run_makes_no_calls_or_writes(self, fake_api, make_client, session_factory):
        """Test dry run plans from stored lists only"""
        await store_catalog(
            session_factory,
            catalog_entry("hardcover-fiction", "Hardcover Fiction"),
            catalog_entry("audio-fiction", "Audio Fiction", oldest="2024-01-15", newest="2024-01-22"),
        )

        async with make_client() as client:
            report = await BackfillOrchestrator(client, session_factory).run(
                lists=["hardcover-fiction"], dry_run=True
            )

        assert fake_api.requests == []
        assert report.planned == {
            "hardcover-fiction": [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22)],
        }
        assert await sync_log(session_factory) == []

    @pytest.mark.asyncio
    async def test_dry_run_without_client(self, session_factory):
        """Test dry run needs no API client"""
        await store_catalog(session_factory, catalog_entry("audio-fiction", "Audio Fiction"))

        report = await BackfillOrchestrator(None, session_factory).run(since=date(2024, 1, 10), dry_run=True)

        assert report.planned == {"audio-fiction": [date(2024, 1, 10), date(2024, 1, 17)]}


class TestUpdateOrchestrator:
    """Tests for UpdateOrchestrator"""

    @pytest.fixture
    def current_api(self, fake_api):
        fake_api.add_snapshot("hardcover-fiction", date(2024, 1, 22), [
            make_book(1, "9780385548960", "Lessons in Chemistry", "Bonnie Garmus"),
            make_book(2, "9781476730772", "The Midnight Library", "Matt Haig"),
        ], key="current")
        return fake_api

    @pytest.mark.asyncio
    async def test_update_then_skip(self, current_api, make_client, session_factory):
        """Test a second update of the same edition writes nothing but still calls the API"""
        await store_catalog(session_factory, catalog_entry("hardcover-fiction", "Hardcover Fiction"))

        async with make_client() as client:
            first = await UpdateOrchestrator(client, session_factory).run()
            second = await UpdateOrchestrator(client, session_factory).run()

        assert first.checkpoints_succeeded == 1
        assert first.rankings_added == 2
        assert second.checkpoints_skipped == 1
        assert second.rankings_added == 0
        assert current_api.paths == ["lists/current/hardcover-fiction.json"] * 2

        entries = await sync_log(session_factory)
        assert [e.status for e in entries] == [SyncStatus.SUCCESS, SyncStatus.SKIPPED]
        assert all(e.sync_type == SyncType.UPDATE for e in entries)
        assert entries[1].published_date == date(2024, 1, 22)
        assert entries[1].error_message == "Already have data for this date"

    @pytest.mark.asyncio
    async def test_force_writes_new_entries(self, current_api, make_client, session_factory):
        """Test force ingests the edition even when it is already stored"""
        await store_catalog(session_factory, catalog_entry("hardcover-fiction", "Hardcover Fiction"))

        async with make_client() as client:
            await UpdateOrchestrator(client, session_factory).run()
            current_api.add_snapshot("hardcover-fiction", date(2024, 1, 22), [
                make_book(1, "9780385548960", "Lessons in Chemistry", "Bonnie Garmus"),
                make_book(2, "9781476730772", "The Midnight Library", "Matt Haig"),
                make_book(3, "9780593321201", "Tomorrow, and Tomorrow", "Gabrielle Zevin"),
            ], key="current")
            forced = await UpdateOrchestrator(client, session_factory).run(force=True)

        assert forced.checkpoints_succeeded == 1
        assert forced.rankings_added == 1
        assert forced.rankings_skipped == 2
        assert await rankings_on(session_factory, date(2024, 1, 22)) == 3

    @pytest.mark.asyncio
    async def test_one_call_per_list(self, fake_api, make_client, session_factory):
        """Test each stored list is fetched once and failures do not stop the others"""
        await store_catalog(
            session_factory,
            catalog_entry("hardcover-fiction", "Hardcover Fiction"),
            catalog_entry("audio-fiction", "Audio Fiction"),
        )
        fake_api.add_snapshot("hardcover-fiction", date(2024, 1, 22), [
            make_book(1, "9780385548960", "Lessons in Chemistry"),
        ], key="current")

        async with make_client() as client:
            report = await UpdateOrchestrator(client, session_factory).run()

        assert fake_api.paths == [
            "lists/current/audio-fiction.json",
            "lists/current/hardcover-fiction.json",
        ]
        assert report.lists_processed == 2
        assert report.checkpoints_failed == 1
        assert report.checkpoints_succeeded == 1
        assert report.exit_code == 1

        failure = (await sync_log(session_factory))[0]
        assert failure.status == SyncStatus.ERROR
        assert failure.list_name_encoded == "audio-fiction"
        assert failure.published_date is None

    @pytest.mark.asyncio
    async def test_no_lists(self, fake_api, make_client, session_factory):
        """Test an empty store makes no calls"""
        async with make_client() as client:
            report = await UpdateOrchestrator(client, session_factory).run()

        assert fake_api.requests == []
        assert report.lists_processed == 0
        assert report.exit_code == 0
