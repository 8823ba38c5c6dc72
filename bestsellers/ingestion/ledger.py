"""
Sync Ledger

Append-only audit trail: one row per ingestion attempt. There is no update
or delete path.
"""

from datetime import date, datetime
from typing import Dict, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bestsellers.database.models import SyncLog, SyncStatus, SyncType

logger = structlog.get_logger(__name__)


class SyncLedger:
    """Writes and summarizes sync_log rows"""

    async def append(
        self,
        session: AsyncSession,
        sync_type: SyncType,
        status: SyncStatus,
        list_name_encoded: Optional[str] = None,
        published_date: Optional[date] = None,
        records_added: int = 0,
        records_skipped: int = 0,
        error_message: Optional[str] = None,
    ) -> SyncLog:
        entry = SyncLog(
            sync_type=sync_type,
            list_name_encoded=list_name_encoded,
            sync_date=datetime.utcnow(),
            published_date=published_date,
            records_added=records_added,
            records_skipped=records_skipped,
            status=status,
            error_message=error_message,
        )
        session.add(entry)
        await session.flush()

        logger.debug(
            "Sync recorded",
            sync_type=sync_type.value,
            list=list_name_encoded,
            published_date=str(published_date) if published_date else None,
            status=status.value,
        )
        return entry

    async def status_counts(self, session: AsyncSession) -> Dict[str, int]:
        """Number of ledger rows per outcome."""
        rows = await session.execute(
            select(SyncLog.status, func.count(SyncLog.sync_id)).group_by(SyncLog.status)
        )
        counts = {status.value: 0 for status in SyncStatus}
        for status, count in rows:
            counts[SyncStatus(status).value] = count
        return counts
