"""
Statistics API Endpoint
"""

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from bestsellers.database.connection import get_db_dependency
from bestsellers.serving.queries import BestsellerQueries

router = APIRouter()


class StoreStats(BaseModel):
    lists_count: int
    books_count: int
    rankings_count: int
    unique_dates: int
    oldest_date: Optional[date]
    newest_date: Optional[date]
    successful_syncs: int
    failed_syncs: int
    last_sync: Optional[datetime]


class TopBook(BaseModel):
    title: str
    author: Optional[str]
    max_weeks: Optional[int]
    lists_appeared: int


class StatsResponse(BaseModel):
    stats: StoreStats
    top_books_by_longevity: List[TopBook]


@router.get("", response_model=StatsResponse)
async def get_stats(
    db: AsyncSession = Depends(get_db_dependency),
) -> StatsResponse:
    """Store-wide counts and the ten longest-running books."""
    return StatsResponse.model_validate(await BestsellerQueries(db).stats())
