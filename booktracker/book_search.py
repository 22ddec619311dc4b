import logging
from typing import List, Optional

from booktracker.book import BookRecord, BookSource
from booktracker.normalization import dedupe_records
from booktracker.services.google_books_service import GoogleBooksAPIError, GoogleBooksService
from booktracker.store import BookStore, StoreError
from booktracker.validators import ISBNValidator, TextValidator

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 20


class BookSearchService:
    """Hybrid book search: the persisted store first, then Google Books.

    External results are written through to the store so later searches
    find them locally. Catalog failures never reach the caller of
    `search_books`; it degrades to whatever the store returned.
    """

    def __init__(self, store: BookStore, catalog: GoogleBooksService) -> None:
        self.store = store
        self.catalog = catalog

    # ------------------------- Search ------------------------- #
    async def search_books(
        self,
        query: str,
        max_results: int = DEFAULT_MAX_RESULTS,
        include_external: bool = True,
    ) -> List[BookRecord]:
        if TextValidator.is_blank(query) or max_results <= 0:
            return []

        local_results = self._search_local(query, max_results)

        if len(local_results) >= max_results or not include_external:
            return local_results[:max_results]

        try:
            remaining = max_results - len(local_results)
            external_results = await self.catalog.search(query, remaining)
            cached_results = [self.cache_external_record(r) for r in external_results]
            combined = dedupe_records(local_results + cached_results)
            return combined[:max_results]
        except (GoogleBooksAPIError, StoreError) as e:
            logger.warning(f"External search failed for '{query}', returning local results only: {e}")
            return local_results[:max_results]

    def _search_local(self, query: str, limit: int) -> List[BookRecord]:
        try:
            return self.store.find_by_text(query, limit)
        except StoreError as e:
            logger.error(f"Local book search error: {e}")
            return []

    # ------------------------- Write-through cache ------------------------- #
    def cache_external_record(self, record: BookRecord) -> BookRecord:
        """Persist an external record unless it is already stored.

        Returns the stored record, or the input tagged external when the
        store fails.
        """
        try:
            existing = self.store.find_by_identifiers(
                external_id=record.external_id,
                isbn13=record.isbn13,
                isbn10=record.isbn10,
            )
            if existing is not None:
                return existing
            return self.store.insert(record)
        except StoreError as e:
            logger.error(f"Error caching book '{record.title}': {e}")
            return record.with_source(BookSource.EXTERNAL)

    # ------------------------- Single lookups ------------------------- #
    async def search_by_isbn(self, isbn: str) -> Optional[BookRecord]:
        clean_isbn = ISBNValidator.clean(isbn)
        if not ISBNValidator.is_valid_shape(clean_isbn):
            logger.info(f"Ignoring malformed ISBN: {isbn!r}")
            return None

        local_book = self.store.find_by_identifiers(isbn13=clean_isbn, isbn10=clean_isbn)
        if local_book is not None:
            return local_book

        try:
            external_book = await self.catalog.search_by_isbn(clean_isbn)
        except GoogleBooksAPIError as e:
            logger.error(f"ISBN search error for {clean_isbn}: {e}")
            return None

        if external_book is None:
            return None
        return self.cache_external_record(external_book)

    async def get_book_by_external_id(self, external_id: str) -> Optional[BookRecord]:
        if TextValidator.is_blank(external_id):
            return None

        local_book = self.store.find_by_identifiers(external_id=external_id.strip())
        if local_book is not None:
            return local_book

        try:
            external_book = await self.catalog.get_by_id(external_id)
        except GoogleBooksAPIError as e:
            logger.error(f"Google Books lookup failed for {external_id}: {e}")
            return None

        if external_book is None:
            return None
        return self.cache_external_record(external_book)

    def get_book_by_id(self, book_id: str) -> Optional[BookRecord]:
        """Direct store lookup; store errors propagate."""
        return self.store.find_by_id(book_id)

    def get_popular_books(self, limit: int = DEFAULT_MAX_RESULTS) -> List[BookRecord]:
        """Most recently added books, for the empty search state."""
        try:
            return self.store.list_recent(limit)
        except StoreError as e:
            logger.error(f"Get popular books error: {e}")
            return []
