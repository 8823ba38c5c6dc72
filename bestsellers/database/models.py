"""
Database Models - Bestseller Mirror Schema

Relational mirror of the Books API:

- BestsellerList: catalog of ranking categories
- Book: deduplicated works, keyed by either primary ISBN
- BookIsbn: alternate ISBN pairs a book has been sold under
- Ranking: one book at one position on one list for one publish date
- SyncLog: append-only audit trail of ingestion attempts
"""

from datetime import datetime, date
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# ENUMERATIONS
# =============================================================================

class SyncType(str, Enum):
    """Kind of ingestion run"""
    BACKFILL = "backfill"
    UPDATE = "update"


class SyncStatus(str, Enum):
    """Outcome of one ingestion attempt"""
    SUCCESS = "success"
    SKIPPED = "skipped"
    ERROR = "error"


def _enum_values(enum_cls) -> List[str]:
    # Persist "success", not "SUCCESS"
    return [member.value for member in enum_cls]


# =============================================================================
# CATALOG
# =============================================================================

class BestsellerList(Base):
    """
    Bestseller List

    One row per remote list. Rows are inserted or refreshed by catalog sync
    and never deleted, so rankings always keep their list.
    """
    __tablename__ = "lists"

    list_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    list_name_encoded: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    list_name: Mapped[Optional[str]] = mapped_column(String(200))
    oldest_published_date: Mapped[Optional[date]] = mapped_column(Date)
    newest_published_date: Mapped[Optional[date]] = mapped_column(Date)
    updated: Mapped[Optional[str]] = mapped_column(String(20))  # WEEKLY / MONTHLY

    rankings: Mapped[List["Ranking"]] = relationship(back_populates="bestseller_list")

    __table_args__ = (
        Index("idx_lists_encoded", "list_name_encoded"),
    )


# =============================================================================
# BOOKS
# =============================================================================

class Book(Base):
    """
    Book

    Matched by primary ISBN-13, then ISBN-10. Descriptive columns follow the
    most recent observation.
    """
    __tablename__ = "books"

    book_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    primary_isbn13: Mapped[Optional[str]] = mapped_column(String(13))
    primary_isbn10: Mapped[Optional[str]] = mapped_column(String(10))

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    author: Mapped[Optional[str]] = mapped_column(String(500))
    publisher: Mapped[Optional[str]] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text)
    price: Mapped[Optional[str]] = mapped_column(String(20))
    book_image: Mapped[Optional[str]] = mapped_column(String(1000))
    book_image_width: Mapped[Optional[int]] = mapped_column(Integer)
    book_image_height: Mapped[Optional[int]] = mapped_column(Integer)
    amazon_product_url: Mapped[Optional[str]] = mapped_column(String(1000))
    book_review_link: Mapped[Optional[str]] = mapped_column(String(1000))

    # First and last observation
    created_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    isbns: Mapped[List["BookIsbn"]] = relationship(
        back_populates="book", cascade="all, delete-orphan"
    )
    rankings: Mapped[List["Ranking"]] = relationship(back_populates="book")

    __table_args__ = (
        Index("idx_books_isbn13", "primary_isbn13"),
        Index("idx_books_isbn10", "primary_isbn10"),
    )


class BookIsbn(Base):
    """Alternate ISBN pair (other editions or formats of the same book)"""
    __tablename__ = "isbns"

    isbn_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    book_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("books.book_id", ondelete="CASCADE"), nullable=False
    )
    isbn13: Mapped[Optional[str]] = mapped_column(String(13))
    isbn10: Mapped[Optional[str]] = mapped_column(String(10))

    book: Mapped["Book"] = relationship(back_populates="isbns")

    __table_args__ = (
        Index("idx_isbns_isbn13", "isbn13"),
        Index("idx_isbns_isbn10", "isbn10"),
        Index("idx_isbns_book", "book_id"),
    )


# =============================================================================
# RANKINGS
# =============================================================================

class Ranking(Base):
    """
    Ranking Observation

    At most one row per (list, book, published date).
    """
    __tablename__ = "rankings"

    ranking_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    list_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("lists.list_id", ondelete="CASCADE"), nullable=False
    )
    book_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("books.book_id", ondelete="CASCADE"), nullable=False
    )
    published_date: Mapped[date] = mapped_column(Date, nullable=False)
    bestsellers_date: Mapped[Optional[date]] = mapped_column(Date)

    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    rank_last_week: Mapped[Optional[int]] = mapped_column(Integer)
    weeks_on_list: Mapped[Optional[int]] = mapped_column(Integer)
    asterisk: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    dagger: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    bestseller_list: Mapped["BestsellerList"] = relationship(back_populates="rankings")
    book: Mapped["Book"] = relationship(back_populates="rankings")

    __table_args__ = (
        UniqueConstraint("list_id", "book_id", "published_date", name="uq_rankings_list_book_date"),
        Index("idx_rankings_list", "list_id"),
        Index("idx_rankings_date", "published_date"),
        Index("idx_rankings_book", "book_id"),
        Index("idx_rankings_list_date", "list_id", "published_date"),
    )


# =============================================================================
# SYNC LEDGER
# =============================================================================

class SyncLog(Base):
    """
    Sync Record

    One row per ingestion attempt. Rows are only ever inserted.
    """
    __tablename__ = "sync_log"

    sync_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sync_type: Mapped[SyncType] = mapped_column(
        SQLEnum(SyncType, values_callable=_enum_values), nullable=False
    )
    list_name_encoded: Mapped[Optional[str]] = mapped_column(String(200))  # None = all lists
    sync_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    published_date: Mapped[Optional[date]] = mapped_column(Date)
    records_added: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    records_skipped: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[SyncStatus] = mapped_column(
        SQLEnum(SyncStatus, values_callable=_enum_values), nullable=False
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("idx_sync_log_type", "sync_type"),
        Index("idx_sync_log_date", "sync_date"),
    )
