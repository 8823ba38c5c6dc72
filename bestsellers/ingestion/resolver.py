"""
Book Identity Resolver

Maps a remote book record to a local Book row:
- Match on primary ISBN-13, then primary ISBN-10
- Matched rows take the incoming descriptive fields (last write wins)
- Unmatched records become new rows, with their alternate ISBNs attached

Records carrying neither ISBN cannot be matched and always create a new
row, so the same identifierless work ingested twice yields two books.
"""

from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bestsellers.database.models import Book, BookIsbn
from bestsellers.ingestion.schemas import RemoteBook

logger = structlog.get_logger(__name__)

DESCRIPTIVE_FIELDS = (
    "title",
    "author",
    "publisher",
    "description",
    "price",
    "book_image",
    "book_image_width",
    "book_image_height",
    "amazon_product_url",
    "book_review_link",
)


class BookResolver:
    """Find-or-create for books, with counters for run reporting"""

    def __init__(self):
        self.created = 0
        self.updated = 0

    async def _find(self, session: AsyncSession, record: RemoteBook) -> Optional[Book]:
        if record.primary_isbn13:
            book = (await session.execute(
                select(Book).where(Book.primary_isbn13 == record.primary_isbn13).limit(1)
            )).scalar_one_or_none()
            if book is not None:
                return book

        if record.primary_isbn10:
            return (await session.execute(
                select(Book).where(Book.primary_isbn10 == record.primary_isbn10).limit(1)
            )).scalar_one_or_none()

        return None

    async def resolve(self, session: AsyncSession, record: RemoteBook) -> int:
        """
        Return the id of the Book this record describes, creating it if needed.

        Runs inside the caller's transaction; nothing is committed here.
        """
        now = datetime.utcnow()
        book = await self._find(session, record)

        if book is not None:
            for name in DESCRIPTIVE_FIELDS:
                setattr(book, name, getattr(record, name))
            book.updated_date = now
            await session.flush()
            self.updated += 1
            logger.debug("Book updated", book_id=book.book_id, title=record.title)
            return book.book_id

        book = Book(
            primary_isbn13=record.primary_isbn13,
            primary_isbn10=record.primary_isbn10,
            created_date=now,
            updated_date=now,
            **{name: getattr(record, name) for name in DESCRIPTIVE_FIELDS},
        )
        session.add(book)
        await session.flush()

        for alias in record.isbns:
            session.add(BookIsbn(book_id=book.book_id, isbn13=alias.isbn13, isbn10=alias.isbn10))
        if record.isbns:
            await session.flush()

        self.created += 1
        if not record.has_identifier:
            logger.warning("Book has no ISBN, created without dedup", book_id=book.book_id, title=record.title)
        else:
            logger.debug("Book created", book_id=book.book_id, title=record.title)
        return book.book_id
