"""Book Tracker - Search Package

This package contains the book search-and-cache modules including:
- API endpoints (api.py)
- Search orchestration (book_search.py)
- CLI interface (main.py)
- Data models (book.py)
- Store interface and SQLite layer (store.py, database.py)
- Normalization and deduplication helpers (normalization.py, validators.py)
"""

__version__ = "1.0.0"
