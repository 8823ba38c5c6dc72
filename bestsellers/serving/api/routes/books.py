"""
Books API Endpoints

Book lookup by ISBN and title/author search.
"""

from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from bestsellers.database.connection import get_db_dependency
from bestsellers.serving.queries import BestsellerQueries

router = APIRouter()


class BookRecord(BaseModel):
    """Stored book"""
    book_id: int
    primary_isbn13: Optional[str]
    primary_isbn10: Optional[str]
    title: str
    author: Optional[str]
    publisher: Optional[str]
    description: Optional[str]
    price: Optional[str]
    book_image: Optional[str]
    book_image_width: Optional[int]
    book_image_height: Optional[int]
    amazon_product_url: Optional[str]
    book_review_link: Optional[str]
    created_date: datetime
    updated_date: datetime


class IsbnPair(BaseModel):
    isbn13: Optional[str]
    isbn10: Optional[str]


class ListAppearance(BaseModel):
    list_name: str
    list_name_encoded: str
    published_date: date
    bestsellers_date: Optional[date]
    rank: int
    rank_last_week: Optional[int]
    weeks_on_list: Optional[int]


class BookDetailResponse(BaseModel):
    book: BookRecord
    isbns: List[IsbnPair]
    ranking_history: List[ListAppearance]
    total_appearances: int


class SearchHit(BaseModel):
    book_id: int
    title: str
    author: Optional[str]
    publisher: Optional[str]
    description: Optional[str]
    primary_isbn13: Optional[str]
    primary_isbn10: Optional[str]
    book_image: Optional[str]
    lists_count: int
    max_weeks_on_list: Optional[int]
    first_appearance: Optional[date]
    last_appearance: Optional[date]


class SearchResponse(BaseModel):
    query: str
    count: int
    books: List[SearchHit]


@router.get("/search", response_model=SearchResponse)
async def search_books(
    q: str = Query(..., min_length=1, description="Title or author fragment"),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db_dependency),
) -> SearchResponse:
    """Search books by title or author."""
    return SearchResponse.model_validate(await BestsellerQueries(db).search(q, limit))


@router.get("/{isbn}", response_model=BookDetailResponse)
async def get_book(
    isbn: str,
    db: AsyncSession = Depends(get_db_dependency),
) -> BookDetailResponse:
    """Book details and ranking history by ISBN-13 or ISBN-10."""
    return BookDetailResponse.model_validate(await BestsellerQueries(db).book(isbn))
