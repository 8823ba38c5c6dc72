"""
Error taxonomy shared by the ingestion pipeline and the query service.
"""

from typing import Optional


class BestsellersError(Exception):
    """Base class for all application errors"""


class RemoteError(BestsellersError):
    """The Books API answered with a non-success status, or could not be reached."""

    def __init__(self, status_code: Optional[int], reason: str, url: Optional[str] = None):
        self.status_code = status_code
        self.reason = reason
        self.url = url
        if status_code is None:
            message = f"API request failed: {reason}"
        else:
            message = f"API request failed: {status_code} {reason}"
        super().__init__(message)


class QuotaExceeded(BestsellersError):
    """The daily call budget is spent. Aborts the whole run."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Daily API limit reached ({limit} requests)")


class DuplicateWrite(BestsellersError):
    """A ranking for the same (list, book, published date) already exists."""

    def __init__(self, list_id: int, book_id: int, published_date):
        self.list_id = list_id
        self.book_id = book_id
        self.published_date = published_date
        super().__init__(
            f"Ranking already exists: list={list_id} book={book_id} date={published_date}"
        )


class NotFound(BestsellersError):
    """A query referenced a list or book that is not in the store."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")
