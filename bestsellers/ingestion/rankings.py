"""
Ranking Upsert

Insert-if-absent for (list, book, published date) observations. The
uniqueness constraint in the store decides what is a duplicate; re-running
an ingestion window is expected and reported as skipped, not failed.
"""

from datetime import date

import structlog
from sqlalchemy import insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bestsellers.database.models import Ranking
from bestsellers.exceptions import DuplicateWrite
from bestsellers.ingestion.schemas import RankingObservation

logger = structlog.get_logger(__name__)

_CONFLICT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


class RankingWriter:
    """Writes ranking rows and counts inserted versus duplicate attempts"""

    def __init__(self):
        self.inserted = 0
        self.skipped = 0

    async def _insert(
        self,
        session: AsyncSession,
        list_id: int,
        book_id: int,
        published_date: date,
        observation: RankingObservation,
    ) -> None:
        """
        Insert one row.

        Raises:
            DuplicateWrite: The store already holds this (list, book, date)
        """
        values = {
            "list_id": list_id,
            "book_id": book_id,
            "published_date": published_date,
            "bestsellers_date": observation.bestsellers_date,
            "rank": observation.rank,
            "rank_last_week": observation.rank_last_week,
            "weeks_on_list": observation.weeks_on_list,
            "asterisk": observation.asterisk,
            "dagger": observation.dagger,
        }

        conflict_insert = _CONFLICT_INSERTS.get(session.get_bind().dialect.name)
        if conflict_insert is not None:
            stmt = conflict_insert(Ranking).values(**values).on_conflict_do_nothing(
                index_elements=["list_id", "book_id", "published_date"]
            )
            result = await session.execute(stmt)
            if result.rowcount == 0:
                raise DuplicateWrite(list_id, book_id, published_date)
            return

        try:
            async with session.begin_nested():
                await session.execute(insert(Ranking).values(**values))
        except IntegrityError as e:
            raise DuplicateWrite(list_id, book_id, published_date) from e

    async def record(
        self,
        session: AsyncSession,
        list_id: int,
        book_id: int,
        published_date: date,
        observation: RankingObservation,
    ) -> bool:
        """
        Record an observation.

        Returns:
            True if a row was inserted, False if it already existed
        """
        try:
            await self._insert(session, list_id, book_id, published_date, observation)
        except DuplicateWrite as e:
            self.skipped += 1
            logger.debug("Ranking already recorded", reason=str(e))
            return False

        self.inserted += 1
        return True
