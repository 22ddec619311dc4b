from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional


UNKNOWN_AUTHOR = "Unknown Author"
UNKNOWN_TITLE = "Unknown Title"


def _json_list(value: Any) -> List[str]:
    # SQLite stores list columns as JSON strings
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return [value] if value else []
    return list(value) if isinstance(value, list) else []


class BookSource(str, Enum):
    """Where a returned record instance came from."""
    PERSISTED = "persisted"
    EXTERNAL = "external"


@dataclass
class BookRecord:
    """A single book in canonical, source-agnostic form."""
    id: str
    title: str
    authors: List[str] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    external_id: Optional[str] = None
    published_date: Optional[date] = None
    page_count: Optional[int] = None
    description: Optional[str] = None
    cover_url: Optional[str] = None
    isbn10: Optional[str] = None
    isbn13: Optional[str] = None
    source: BookSource = BookSource.PERSISTED
    created_at: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.display_authors} ({self.source.value})"

    @property
    def display_authors(self) -> str:
        return ", ".join(self.authors) if self.authors else UNKNOWN_AUTHOR

    def with_source(self, source: BookSource) -> "BookRecord":
        return replace(self, source=source)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "title": self.title,
            "authors": list(self.authors),
            "categories": list(self.categories),
            "published_date": self.published_date.isoformat() if self.published_date else None,
            "page_count": self.page_count,
            "description": self.description,
            "cover_url": self.cover_url,
            "isbn10": self.isbn10,
            "isbn13": self.isbn13,
            "source": self.source.value,
        }

    @staticmethod
    def from_row(row: Dict[str, Any]) -> "BookRecord":
        """Build a persisted record from a `books` table row."""
        published = row.get("published_date")
        if isinstance(published, str):
            try:
                published = date.fromisoformat(published)
            except ValueError:
                published = None

        return BookRecord(
            id=row["id"],
            title=row["title"],
            authors=_json_list(row.get("authors")),
            categories=_json_list(row.get("categories")),
            external_id=row.get("google_id"),
            published_date=published,
            page_count=row.get("page_count"),
            description=row.get("description"),
            cover_url=row.get("cover_url"),
            isbn10=row.get("isbn10"),
            isbn13=row.get("isbn13"),
            source=BookSource.PERSISTED,
            created_at=row.get("created_at"),
        )
