"""
Read-only queries over the mirrored store.

Every method returns plain dictionaries shaped for the JSON API. Unknown
lists and ISBNs raise NotFound.
"""

from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, distinct, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from bestsellers.database.models import (
    BestsellerList,
    Book,
    BookIsbn,
    Ranking,
    SyncLog,
    SyncStatus,
)
from bestsellers.exceptions import NotFound

BOOK_COLUMNS = (
    Book.title,
    Book.author,
    Book.publisher,
    Book.description,
    Book.price,
    Book.primary_isbn13,
    Book.primary_isbn10,
    Book.book_image,
    Book.amazon_product_url,
)


class BestsellerQueries:
    """Query service bound to one session"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _list(self, list_name_encoded: str) -> BestsellerList:
        row = (await self.session.execute(
            select(BestsellerList).where(BestsellerList.list_name_encoded == list_name_encoded)
        )).scalar_one_or_none()
        if row is None:
            raise NotFound("List", list_name_encoded)
        return row

    async def _latest_date(self, list_id: int) -> Optional[date]:
        return await self.session.scalar(
            select(func.max(Ranking.published_date)).where(Ranking.list_id == list_id)
        )

    async def lists(self) -> Dict[str, Any]:
        """All lists with edition counts."""
        editions = (
            select(
                Ranking.list_id,
                func.count(distinct(Ranking.published_date)).label("total_editions"),
                func.max(Ranking.published_date).label("latest_edition"),
            )
            .group_by(Ranking.list_id)
            .subquery()
        )
        rows = await self.session.execute(
            select(BestsellerList, editions.c.total_editions, editions.c.latest_edition)
            .outerjoin(editions, editions.c.list_id == BestsellerList.list_id)
            .order_by(BestsellerList.display_name)
        )

        lists = [
            {
                "list_id": row.list_id,
                "list_name_encoded": row.list_name_encoded,
                "display_name": row.display_name,
                "oldest_published_date": row.oldest_published_date,
                "newest_published_date": row.newest_published_date,
                "updated": row.updated,
                "total_editions": total_editions or 0,
                "latest_edition": latest_edition,
            }
            for row, total_editions, latest_edition in rows
        ]
        return {"count": len(lists), "lists": lists}

    async def history(self, list_name_encoded: str, published_date: Optional[date] = None) -> Dict[str, Any]:
        """Ranked books of one edition; the latest edition when no date is given."""
        bestseller_list = await self._list(list_name_encoded)
        target = published_date or await self._latest_date(bestseller_list.list_id)

        if target is None:
            return {
                "list": bestseller_list.display_name,
                "list_name_encoded": list_name_encoded,
                "published_date": None,
                "count": 0,
                "books": [],
            }

        rows = await self.session.execute(
            select(
                Ranking.rank,
                Ranking.rank_last_week,
                Ranking.weeks_on_list,
                Ranking.published_date,
                Ranking.bestsellers_date,
                *BOOK_COLUMNS,
            )
            .join(Book, Ranking.book_id == Book.book_id)
            .where(
                Ranking.list_id == bestseller_list.list_id,
                Ranking.published_date == target,
            )
            .order_by(Ranking.rank)
        )
        books = [dict(row._mapping) for row in rows]

        return {
            "list": bestseller_list.display_name,
            "list_name_encoded": list_name_encoded,
            "published_date": target,
            "count": len(books),
            "books": books,
        }

    async def current(self, list_name_encoded: str) -> Dict[str, Any]:
        return await self.history(list_name_encoded)

    async def dates(self, list_name_encoded: str) -> Dict[str, Any]:
        """Editions available for a list, newest first."""
        bestseller_list = await self._list(list_name_encoded)
        rows = await self.session.execute(
            select(Ranking.published_date, func.count(Ranking.ranking_id).label("books_count"))
            .where(Ranking.list_id == bestseller_list.list_id)
            .group_by(Ranking.published_date)
            .order_by(Ranking.published_date.desc())
        )
        dates = [dict(row._mapping) for row in rows]
        return {
            "list": bestseller_list.display_name,
            "list_name_encoded": list_name_encoded,
            "count": len(dates),
            "dates": dates,
        }

    async def book(self, isbn: str) -> Dict[str, Any]:
        """Book details, alternate ISBNs and ranking history."""
        book = (await self.session.execute(
            select(Book)
            .where(or_(Book.primary_isbn13 == isbn, Book.primary_isbn10 == isbn))
            .order_by(Book.book_id)
            .limit(1)
        )).scalar_one_or_none()

        if book is None:
            # Editions sold under another ISBN
            book = (await self.session.execute(
                select(Book)
                .join(BookIsbn, BookIsbn.book_id == Book.book_id)
                .where(or_(BookIsbn.isbn13 == isbn, BookIsbn.isbn10 == isbn))
                .order_by(Book.book_id)
                .limit(1)
            )).scalar_one_or_none()

        if book is None:
            raise NotFound("Book", isbn)

        isbns = await self.session.execute(
            select(BookIsbn.isbn13, BookIsbn.isbn10).where(BookIsbn.book_id == book.book_id)
        )
        rankings = await self.session.execute(
            select(
                BestsellerList.display_name.label("list_name"),
                BestsellerList.list_name_encoded,
                Ranking.published_date,
                Ranking.bestsellers_date,
                Ranking.rank,
                Ranking.rank_last_week,
                Ranking.weeks_on_list,
            )
            .join(BestsellerList, Ranking.list_id == BestsellerList.list_id)
            .where(Ranking.book_id == book.book_id)
            .order_by(Ranking.published_date.desc(), Ranking.rank)
        )
        history = [dict(row._mapping) for row in rankings]

        return {
            "book": {
                column.key: getattr(book, column.key)
                for column in Book.__table__.columns
            },
            "isbns": [dict(row._mapping) for row in isbns],
            "ranking_history": history,
            "total_appearances": len(history),
        }

    async def search(self, term: str, limit: int = 50) -> Dict[str, Any]:
        """Title or author substring search."""
        pattern = f"%{term}%"
        max_weeks = func.max(Ranking.weeks_on_list).label("max_weeks_on_list")
        last_appearance = func.max(Ranking.published_date).label("last_appearance")

        rows = await self.session.execute(
            select(
                Book.book_id,
                Book.title,
                Book.author,
                Book.publisher,
                Book.description,
                Book.primary_isbn13,
                Book.primary_isbn10,
                Book.book_image,
                func.count(distinct(Ranking.list_id)).label("lists_count"),
                max_weeks,
                func.min(Ranking.published_date).label("first_appearance"),
                last_appearance,
            )
            .outerjoin(Ranking, Ranking.book_id == Book.book_id)
            .where(or_(Book.title.ilike(pattern), Book.author.ilike(pattern)))
            .group_by(Book.book_id)
            .order_by(desc(max_weeks), desc(last_appearance))
            .limit(limit)
        )
        books = [dict(row._mapping) for row in rows]
        return {"query": term, "count": len(books), "books": books}

    async def stats(self) -> Dict[str, Any]:
        """Store-wide counts and the longest-running books."""
        scalar = self.session.scalar
        stats = {
            "lists_count": await scalar(select(func.count(BestsellerList.list_id))),
            "books_count": await scalar(select(func.count(Book.book_id))),
            "rankings_count": await scalar(select(func.count(Ranking.ranking_id))),
            "unique_dates": await scalar(select(func.count(distinct(Ranking.published_date)))),
            "oldest_date": await scalar(select(func.min(Ranking.published_date))),
            "newest_date": await scalar(select(func.max(Ranking.published_date))),
            "successful_syncs": await scalar(
                select(func.count(SyncLog.sync_id)).where(SyncLog.status == SyncStatus.SUCCESS)
            ),
            "failed_syncs": await scalar(
                select(func.count(SyncLog.sync_id)).where(SyncLog.status == SyncStatus.ERROR)
            ),
            "last_sync": await scalar(
                select(func.max(SyncLog.sync_date)).where(SyncLog.status == SyncStatus.SUCCESS)
            ),
        }

        max_weeks = func.max(Ranking.weeks_on_list).label("max_weeks")
        rows = await self.session.execute(
            select(
                Book.title,
                Book.author,
                max_weeks,
                func.count(distinct(Ranking.list_id)).label("lists_appeared"),
            )
            .join(Ranking, Ranking.book_id == Book.book_id)
            .group_by(Book.book_id)
            .order_by(desc(max_weeks))
            .limit(10)
        )
        top_books: List[Dict[str, Any]] = [dict(row._mapping) for row in rows]

        return {"stats": stats, "top_books_by_longevity": top_books}
