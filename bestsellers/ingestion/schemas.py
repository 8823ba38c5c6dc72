"""
Books API Payload Models

Pydantic models for the JSON envelopes returned by the remote API.
Unknown fields are ignored so additions on the remote side do not break
ingestion.
"""

from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class RemoteIsbn(BaseModel):
    """Alternate ISBN pair listed under a book"""
    model_config = ConfigDict(extra="ignore")

    isbn13: Optional[str] = None
    isbn10: Optional[str] = None

    @field_validator("isbn13", "isbn10", mode="before")
    @classmethod
    def blank_isbn(cls, v: Any) -> Any:
        return _blank_to_none(v)


class RankingObservation(BaseModel):
    """Position data for one book on one list edition"""
    rank: int
    rank_last_week: Optional[int] = None
    weeks_on_list: Optional[int] = None
    asterisk: bool = False
    dagger: bool = False
    bestsellers_date: Optional[date] = None


class RemoteBook(BaseModel):
    """One entry of ``results.books``"""
    model_config = ConfigDict(extra="ignore")

    rank: int
    rank_last_week: Optional[int] = None
    weeks_on_list: Optional[int] = None
    asterisk: bool = False
    dagger: bool = False

    primary_isbn13: Optional[str] = None
    primary_isbn10: Optional[str] = None

    title: str = ""
    author: Optional[str] = None
    publisher: Optional[str] = None
    description: Optional[str] = None
    price: Optional[str] = None
    book_image: Optional[str] = None
    book_image_width: Optional[int] = None
    book_image_height: Optional[int] = None
    amazon_product_url: Optional[str] = None
    book_review_link: Optional[str] = None

    isbns: List[RemoteIsbn] = Field(default_factory=list)

    @field_validator("primary_isbn13", "primary_isbn10", mode="before")
    @classmethod
    def blank_isbn(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("asterisk", "dagger", mode="before")
    @classmethod
    def default_flags(cls, v: Any) -> Any:
        return False if v is None else v

    @field_validator("title", mode="before")
    @classmethod
    def default_title(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("price", mode="before")
    @classmethod
    def price_as_text(cls, v: Any) -> Any:
        # Served as "0.00" or as a bare number depending on the endpoint
        if v is None:
            return None
        return str(v)

    @field_validator("isbns", mode="before")
    @classmethod
    def default_isbns(cls, v: Any) -> Any:
        return [] if v is None else v

    @property
    def has_identifier(self) -> bool:
        return bool(self.primary_isbn13 or self.primary_isbn10)

    def to_observation(self, bestsellers_date: Optional[date] = None) -> RankingObservation:
        return RankingObservation(
            rank=self.rank,
            rank_last_week=self.rank_last_week,
            weeks_on_list=self.weeks_on_list,
            asterisk=self.asterisk,
            dagger=self.dagger,
            bestsellers_date=bestsellers_date,
        )


class ListSnapshot(BaseModel):
    """``results`` of a per-date or current list request"""
    model_config = ConfigDict(extra="ignore")

    list_name_encoded: Optional[str] = None
    display_name: Optional[str] = None
    published_date: date
    bestsellers_date: Optional[date] = None
    books: List[RemoteBook] = Field(default_factory=list)

    @field_validator("bestsellers_date", mode="before")
    @classmethod
    def blank_date(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @classmethod
    def from_envelope(cls, payload: Dict[str, Any]) -> Optional["ListSnapshot"]:
        """
        Parse ``{"results": {...}}``.

        Returns None when the envelope carries no books, which the remote
        side does for dates before a list existed.
        """
        results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(results, dict) or not results.get("books"):
            return None
        return cls.model_validate(results)


class ListDescriptor(BaseModel):
    """One entry of the ``lists/names`` catalog"""
    model_config = ConfigDict(extra="ignore")

    list_name_encoded: str
    display_name: str
    list_name: Optional[str] = None
    oldest_published_date: Optional[date] = None
    newest_published_date: Optional[date] = None
    updated: Optional[str] = None

    @field_validator("oldest_published_date", "newest_published_date", mode="before")
    @classmethod
    def blank_date(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @classmethod
    def from_envelope(cls, payload: Dict[str, Any]) -> List["ListDescriptor"]:
        results = payload.get("results") if isinstance(payload, dict) else None
        return [cls.model_validate(item) for item in results or []]
