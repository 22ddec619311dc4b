from unittest.mock import AsyncMock, MagicMock

import pytest

from booktracker.book import BookRecord, BookSource
from booktracker.book_search import BookSearchService
from booktracker.database import SQLiteBookStore
from booktracker.services.google_books_service import GoogleBooksService


@pytest.fixture
def store(tmp_path, request):
    # A fresh database file per test
    db_file = str(tmp_path / f"test_{request.node.name}.db")
    store = SQLiteBookStore(db_file)
    store.initialize()
    return store


@pytest.fixture
def catalog():
    catalog = MagicMock(spec=GoogleBooksService)
    catalog.search = AsyncMock(return_value=[])
    catalog.search_by_isbn = AsyncMock(return_value=None)
    catalog.get_by_id = AsyncMock(return_value=None)
    catalog.close = AsyncMock()
    return catalog


@pytest.fixture
def service(store, catalog):
    return BookSearchService(store, catalog)


def make_external(external_id, title, authors=None, isbn13=None, isbn10=None, **extra):
    """An external catalog record as the Google Books client returns it."""
    return BookRecord(
        id=external_id,
        external_id=external_id,
        title=title,
        authors=authors if authors is not None else [],
        isbn13=isbn13,
        isbn10=isbn10,
        source=BookSource.EXTERNAL,
        **extra,
    )


@pytest.fixture
def external_book():
    return make_external
