"""
List Catalog Sync

Mirrors the remote list catalog into the ``lists`` table. Lists dropped by
the remote side stay in place because stored rankings still reference them.
"""

from typing import Iterable

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bestsellers.database.models import BestsellerList
from bestsellers.exceptions import NotFound
from bestsellers.ingestion.schemas import ListDescriptor

logger = structlog.get_logger(__name__)


class ListCatalog:
    """Insert-or-refresh of list metadata keyed by encoded name"""

    async def sync(self, session: AsyncSession, descriptors: Iterable[ListDescriptor]) -> int:
        """
        Upsert one row per descriptor inside the caller's transaction.

        Returns:
            Number of descriptors written
        """
        existing = {
            row.list_name_encoded: row
            for row in (await session.execute(select(BestsellerList))).scalars()
        }

        written = 0
        for descriptor in descriptors:
            row = existing.get(descriptor.list_name_encoded)
            if row is None:
                row = BestsellerList(list_name_encoded=descriptor.list_name_encoded)
                session.add(row)
                existing[descriptor.list_name_encoded] = row

            row.display_name = descriptor.display_name
            row.list_name = descriptor.list_name
            row.oldest_published_date = descriptor.oldest_published_date
            row.newest_published_date = descriptor.newest_published_date
            row.updated = descriptor.updated
            written += 1

        await session.flush()
        logger.info("List catalog synced", lists=written, known=len(existing))
        return written

    async def get(self, session: AsyncSession, list_name_encoded: str) -> BestsellerList:
        """
        Raises:
            NotFound: No list with this encoded name
        """
        row = (await session.execute(
            select(BestsellerList).where(BestsellerList.list_name_encoded == list_name_encoded)
        )).scalar_one_or_none()
        if row is None:
            raise NotFound("List", list_name_encoded)
        return row

    async def all(self, session: AsyncSession) -> list:
        """Every stored list, ordered by display name."""
        return list((await session.execute(
            select(BestsellerList).order_by(BestsellerList.display_name)
        )).scalars())
