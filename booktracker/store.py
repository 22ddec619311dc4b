from typing import List, Optional, Protocol

from booktracker.book import BookRecord


class StoreError(Exception):
    """Raised when the persisted book store cannot complete an operation."""
    pass


class BookStore(Protocol):
    """Capabilities the search service needs from the persisted catalog."""

    def find_by_identifiers(
        self,
        *,
        id: Optional[str] = None,
        external_id: Optional[str] = None,
        isbn13: Optional[str] = None,
        isbn10: Optional[str] = None,
    ) -> Optional[BookRecord]:
        """Return the first record matching any of the given identifiers."""
        ...

    def find_by_text(self, query: str, limit: int) -> List[BookRecord]:
        """Title substring or exact author term match, best matches first."""
        ...

    def insert(self, record: BookRecord) -> BookRecord:
        """Persist a record under a new id, or return the existing duplicate."""
        ...

    def find_by_id(self, id: str) -> Optional[BookRecord]:
        ...

    def list_recent(self, limit: int) -> List[BookRecord]:
        ...
