"""
Test Suite Configuration
"""
from datetime import date, timedelta
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from bestsellers.config import Settings, get_settings
from bestsellers.database.connection import build_engine, build_session_factory, create_schema
from bestsellers.ingestion.client import BooksApiClient, RateLimiter

BASE_URL = "https://books.test/svc/books/v3"
API_KEY = "test-key"


# =============================================================================
# REMOTE API FAKES
# =============================================================================

def make_book(
    rank: int,
    isbn13: Optional[str],
    title: str,
    author: str = "Some Author",
    isbn10: Optional[str] = None,
    weeks_on_list: int = 1,
    **extra: Any,
) -> Dict[str, Any]:
    """One ``results.books`` entry as the remote API serves it"""
    book = {
        "rank": rank,
        "rank_last_week": 0,
        "weeks_on_list": weeks_on_list,
        "asterisk": 0,
        "dagger": 0,
        "primary_isbn10": isbn10 or "",
        "primary_isbn13": isbn13 or "",
        "publisher": "Scribner",
        "description": f"Description of {title}",
        "price": "0.00",
        "title": title,
        "author": author,
        "book_image": f"https://images.test/{isbn13}.jpg",
        "book_image_width": 330,
        "book_image_height": 500,
        "amazon_product_url": f"https://amazon.test/dp/{isbn10 or isbn13}",
        "book_review_link": "",
        "isbns": [{"isbn10": isbn10 or "", "isbn13": isbn13 or ""}] if isbn13 else [],
    }
    book.update(extra)
    return book


def snapshot_payload(
    published_date: date,
    books: List[Dict[str, Any]],
    list_name_encoded: str = "hardcover-fiction",
) -> Dict[str, Any]:
    return {
        "status": "OK",
        "num_results": len(books),
        "results": {
            "list_name": "Hardcover Fiction",
            "list_name_encoded": list_name_encoded,
            "display_name": "Hardcover Fiction",
            "bestsellers_date": (published_date - timedelta(days=13)).isoformat(),
            "published_date": published_date.isoformat(),
            "books": books,
        },
    }


def catalog_entry(
    list_name_encoded: str,
    display_name: str,
    oldest: str = "2024-01-01",
    newest: str = "2024-01-22",
) -> Dict[str, Any]:
    return {
        "list_name": display_name,
        "display_name": display_name,
        "list_name_encoded": list_name_encoded,
        "oldest_published_date": oldest,
        "newest_published_date": newest,
        "updated": "WEEKLY",
    }


def catalog_payload(*entries: Dict[str, Any]) -> Dict[str, Any]:
    return {"status": "OK", "num_results": len(entries), "results": list(entries)}


class FakeBooksApi:
    """
    Routes requests by path relative to the API root.

    Unknown paths answer 404. Every request is kept for assertions.
    """

    def __init__(self):
        self.routes: Dict[str, tuple] = {}
        self.requests: List[httpx.Request] = []

    def add(self, path: str, payload: Any = None, status_code: int = 200) -> None:
        self.routes[path] = (status_code, payload)

    def add_snapshot(self, list_name_encoded: str, published: date, books, key: Optional[str] = None) -> None:
        self.add(
            f"lists/{key or published.isoformat()}/{list_name_encoded}.json",
            snapshot_payload(published, books, list_name_encoded),
        )

    @property
    def paths(self) -> List[str]:
        return [self._path(r) for r in self.requests]

    def _path(self, request: httpx.Request) -> str:
        return request.url.path.split("/svc/books/v3/", 1)[-1]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status_code, payload = self.routes.get(self._path(request), (404, {"fault": "not found"}))
        return httpx.Response(status_code, json=payload)


class SleepRecorder:
    """Stands in for asyncio.sleep"""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def test_settings(monkeypatch, tmp_path) -> Settings:
    """Fresh settings per test, pointing at a throwaway store"""
    monkeypatch.setenv("APP_ENV", "testing")
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "bestsellers.db"))
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("NYT_API_KEY", raising=False)
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """SQLite store with the schema applied"""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_api() -> FakeBooksApi:
    return FakeBooksApi()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_client(fake_api, sleep_recorder):
    """Factory for clients wired to the fake API with a no-wait limiter"""
    def factory(max_calls_per_day: int = 500, interval_seconds: float = 12.0) -> BooksApiClient:
        limiter = RateLimiter(interval_seconds, max_calls_per_day, sleep=sleep_recorder)
        client = BooksApiClient(
            API_KEY,
            rate_limiter=limiter,
            base_url=BASE_URL,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(fake_api)),
        )
        return client

    return factory


@pytest.fixture
def fiction_week_books():
    """Four weeks of a two-book list; the second week adds a third title"""
    return {
        date(2024, 1, 1): [
            make_book(1, "9781476730772", "The Midnight Library", "Matt Haig", isbn10="1476730776"),
            make_book(2, "9780593321201", "Tomorrow, and Tomorrow", "Gabrielle Zevin"),
        ],
        date(2024, 1, 8): [
            make_book(1, "9780593321201", "Tomorrow, and Tomorrow", "Gabrielle Zevin", weeks_on_list=2),
            make_book(2, "9781476730772", "The Midnight Library", "Matt Haig", isbn10="1476730776",
                      weeks_on_list=2),
            make_book(3, "9780385548960", "Lessons in Chemistry", "Bonnie Garmus"),
        ],
        date(2024, 1, 15): [
            make_book(1, "9780385548960", "Lessons in Chemistry", "Bonnie Garmus", weeks_on_list=2),
        ],
        date(2024, 1, 22): [
            make_book(1, "9780385548960", "Lessons in Chemistry", "Bonnie Garmus", weeks_on_list=3),
        ],
    }


@pytest.fixture
def fiction_api(fake_api, fiction_week_books) -> FakeBooksApi:
    """Fake API serving one list with four weekly editions"""
    fake_api.add("lists/names.json", catalog_payload(
        catalog_entry("hardcover-fiction", "Hardcover Fiction"),
    ))
    for published, books in fiction_week_books.items():
        fake_api.add_snapshot("hardcover-fiction", published, books)
    return fake_api


@pytest_asyncio.fixture
async def seeded_store(fiction_api, make_client, session_factory):
    """Store after a full backfill of the fiction list"""
    from bestsellers.ingestion.orchestrators import BackfillOrchestrator

    async with make_client() as client:
        report = await BackfillOrchestrator(client, session_factory).run()
    assert report.checkpoints_failed == 0
    return session_factory
