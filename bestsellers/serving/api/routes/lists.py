"""
Lists API Endpoints

Catalog of bestseller lists and their ranked editions.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from bestsellers.database.connection import get_db_dependency
from bestsellers.serving.queries import BestsellerQueries

router = APIRouter()


class ListSummary(BaseModel):
    """Bestseller list with edition counts"""
    list_id: int
    list_name_encoded: str
    display_name: str
    oldest_published_date: Optional[date]
    newest_published_date: Optional[date]
    updated: Optional[str]
    total_editions: int
    latest_edition: Optional[date]


class ListsResponse(BaseModel):
    count: int
    lists: List[ListSummary]


class RankedBook(BaseModel):
    """One position of an edition"""
    rank: int
    rank_last_week: Optional[int]
    weeks_on_list: Optional[int]
    published_date: date
    bestsellers_date: Optional[date]
    title: str
    author: Optional[str]
    publisher: Optional[str]
    description: Optional[str]
    price: Optional[str]
    primary_isbn13: Optional[str]
    primary_isbn10: Optional[str]
    book_image: Optional[str]
    amazon_product_url: Optional[str]


class EditionResponse(BaseModel):
    list: str
    list_name_encoded: str
    published_date: Optional[date]
    count: int
    books: List[RankedBook]


class EditionDate(BaseModel):
    published_date: date
    books_count: int


class DatesResponse(BaseModel):
    list: str
    list_name_encoded: str
    count: int
    dates: List[EditionDate]


@router.get("", response_model=ListsResponse)
async def list_lists(
    db: AsyncSession = Depends(get_db_dependency),
) -> ListsResponse:
    """All mirrored lists, ordered by display name."""
    return ListsResponse.model_validate(await BestsellerQueries(db).lists())


@router.get("/{list_name_encoded}/current", response_model=EditionResponse)
async def get_current_edition(
    list_name_encoded: str,
    db: AsyncSession = Depends(get_db_dependency),
) -> EditionResponse:
    """Most recent edition stored for a list."""
    return EditionResponse.model_validate(await BestsellerQueries(db).current(list_name_encoded))


@router.get("/{list_name_encoded}/history", response_model=EditionResponse)
async def get_edition(
    list_name_encoded: str,
    published_date: Optional[date] = Query(None, alias="date"),
    db: AsyncSession = Depends(get_db_dependency),
) -> EditionResponse:
    """Edition of a list on a given publish date (latest when omitted)."""
    return EditionResponse.model_validate(await BestsellerQueries(db).history(list_name_encoded, published_date))


@router.get("/{list_name_encoded}/dates", response_model=DatesResponse)
async def get_edition_dates(
    list_name_encoded: str,
    db: AsyncSession = Depends(get_db_dependency),
) -> DatesResponse:
    """Publish dates available for a list, newest first."""
    return DatesResponse.model_validate(await BestsellerQueries(db).dates(list_name_encoded))
