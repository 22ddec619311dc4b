import json
import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from booktracker.book import BookRecord
from booktracker.config import settings
from booktracker.store import StoreError

logger = logging.getLogger(__name__)


def _py_lower(value):
    # SQLite's lower() only folds ASCII
    return value.lower() if isinstance(value, str) else value


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection to the SQLite database file."""
    conn = sqlite3.connect(db_file or settings.data_file)
    conn.row_factory = sqlite3.Row
    conn.create_function("py_lower", 1, _py_lower, deterministic=True)
    return conn


def create_tables(db_file: Optional[str] = None) -> None:
    """Create the required tables if they do not exist yet."""
    conn = get_db_connection(db_file)
    try:
        cursor = conn.cursor()
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS books (
                id TEXT PRIMARY KEY,
                google_id TEXT UNIQUE,
                title TEXT NOT NULL,
                authors TEXT NOT NULL DEFAULT '[]',
                categories TEXT NOT NULL DEFAULT '[]',
                published_date TEXT,
                page_count INTEGER,
                description TEXT,
                cover_url TEXT,
                isbn10 TEXT UNIQUE,
                isbn13 TEXT UNIQUE,
                created_at TEXT NOT NULL
            )
        """)

        # API usage tracking
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS api_usage_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                api_name TEXT NOT NULL,
                endpoint TEXT NOT NULL,
                success BOOLEAN NOT NULL,
                response_time_ms INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_title ON books(title)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_books_created_at ON books(created_at)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_api_usage_logs_api_name ON api_usage_logs(api_name)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_api_usage_logs_created_at ON api_usage_logs(created_at)")
        conn.commit()
    finally:
        conn.close()


def initialize_database(db_file: Optional[str] = None) -> None:
    """Initialize the database, creating tables when needed."""
    create_tables(db_file)


class SQLiteBookStore:
    """Persisted book catalog on SQLite."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file or settings.data_file

    def initialize(self) -> None:
        try:
            initialize_database(self.db_file)
        except sqlite3.Error as e:
            raise StoreError(f"Could not initialize book store: {e}") from e

    def _fetch_all(self, sql: str, params: tuple = ()) -> List[BookRecord]:
        try:
            conn = get_db_connection(self.db_file)
        except sqlite3.Error as e:
            raise StoreError(f"Could not open book store: {e}") from e
        try:
            rows = conn.execute(sql, params).fetchall()
            return [BookRecord.from_row(dict(row)) for row in rows]
        except sqlite3.Error as e:
            raise StoreError(f"Book store query failed: {e}") from e
        finally:
            conn.close()

    def _fetch_one(self, sql: str, params: tuple = ()) -> Optional[BookRecord]:
        rows = self._fetch_all(sql, params)
        return rows[0] if rows else None

    def find_by_id(self, id: str) -> Optional[BookRecord]:
        return self._fetch_one("SELECT * FROM books WHERE id = ?", (id,))

    def find_by_identifiers(
        self,
        *,
        id: Optional[str] = None,
        external_id: Optional[str] = None,
        isbn13: Optional[str] = None,
        isbn10: Optional[str] = None,
    ) -> Optional[BookRecord]:
        clauses = []
        params: List[Any] = []
        for column, value in (("id", id), ("google_id", external_id), ("isbn13", isbn13), ("isbn10", isbn10)):
            if value:
                clauses.append(f"{column} = ?")
                params.append(value)
        if not clauses:
            return None

        sql = f"SELECT * FROM books WHERE {' OR '.join(clauses)} ORDER BY created_at ASC LIMIT 1"
        return self._fetch_one(sql, tuple(params))

    def find_by_text(self, query: str, limit: int) -> List[BookRecord]:
        """Search by title substring or exact author term.

        Exact (case-insensitive) title matches come first, then the most
        recently created books.
        """
        needle = query.strip().lower()
        if not needle or limit <= 0:
            return []

        # Each whitespace-separated term, plus the whole query for full names
        terms = list(dict.fromkeys(needle.split() + [needle]))
        placeholders = ", ".join("?" for _ in terms)
        sql = f"""
            SELECT * FROM books
            WHERE instr(py_lower(title), ?) > 0
               OR EXISTS (
                    SELECT 1 FROM json_each(books.authors) AS author
                    WHERE py_lower(author.value) IN ({placeholders})
               )
            ORDER BY (py_lower(title) = ?) DESC, created_at DESC, rowid DESC
            LIMIT ?
        """
        return self._fetch_all(sql, (needle, *terms, needle, limit))

    def list_recent(self, limit: int) -> List[BookRecord]:
        return self._fetch_all(
            "SELECT * FROM books ORDER BY created_at DESC, rowid DESC LIMIT ?", (limit,)
        )

    def insert(self, record: BookRecord) -> BookRecord:
        """Insert under a new id; an existing row with the same identifiers is returned instead."""
        book_id = uuid.uuid4().hex
        values = (
            book_id,
            record.external_id,
            record.title,
            json.dumps(list(record.authors), ensure_ascii=False),
            json.dumps(list(record.categories), ensure_ascii=False),
            record.published_date.isoformat() if record.published_date else None,
            record.page_count,
            record.description,
            record.cover_url,
            record.isbn10,
            record.isbn13,
            _utc_now(),
        )

        try:
            conn = get_db_connection(self.db_file)
        except sqlite3.Error as e:
            raise StoreError(f"Could not open book store: {e}") from e
        try:
            conn.execute(
                """
                INSERT INTO books (id, google_id, title, authors, categories, published_date, page_count,
                                   description, cover_url, isbn10, isbn13, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                values,
            )
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            existing = self.find_by_identifiers(
                external_id=record.external_id, isbn13=record.isbn13, isbn10=record.isbn10
            )
            if existing is None:
                raise StoreError(f"Could not insert book '{record.title}'")
            logger.info(f"Book already stored, reusing id={existing.id}")
            return existing
        except sqlite3.Error as e:
            raise StoreError(f"Could not insert book '{record.title}': {e}") from e
        finally:
            conn.close()

        stored = self.find_by_id(book_id)
        if stored is None:
            raise StoreError(f"Inserted book {book_id} could not be read back")
        return stored

    def ping(self) -> bool:
        try:
            conn = get_db_connection(self.db_file)
            try:
                conn.execute("SELECT 1")
            finally:
                conn.close()
            return True
        except sqlite3.Error:
            return False


class ApiUsageLog:
    """Per-call log of external API usage, used for the daily quota."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file or settings.data_file

    def record(self, api_name: str, endpoint: str, success: bool, response_time_ms: int = 0) -> None:
        try:
            conn = get_db_connection(self.db_file)
        except sqlite3.Error as e:
            logger.error(f"Failed to log API usage: {e}")
            return
        try:
            conn.execute(
                """
                INSERT INTO api_usage_logs (api_name, endpoint, success, response_time_ms)
                VALUES (?, ?, ?, ?)
                """,
                (api_name, endpoint, success, response_time_ms),
            )
            conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to log API usage: {e}")
        finally:
            conn.close()

    def _query_one(self, sql: str, params: tuple) -> Optional[sqlite3.Row]:
        try:
            conn = get_db_connection(self.db_file)
        except sqlite3.Error as e:
            raise StoreError(f"Could not open usage log: {e}") from e
        try:
            return conn.execute(sql, params).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Usage log query failed: {e}") from e
        finally:
            conn.close()

    def daily_usage(self, api_name: str) -> int:
        """Successful calls made today (UTC)."""
        row = self._query_one(
            """
            SELECT COUNT(*) FROM api_usage_logs
            WHERE api_name = ? AND success = 1 AND date(created_at) = date('now')
            """,
            (api_name,),
        )
        return row[0] if row else 0

    def summary(self, api_name: str, days: int = 30) -> Dict[str, Any]:
        row = self._query_one(
            """
            SELECT COUNT(*) AS total_calls,
                   SUM(CASE WHEN success = 1 THEN 1 ELSE 0 END) AS successful_calls,
                   AVG(response_time_ms) AS avg_response_time
            FROM api_usage_logs
            WHERE api_name = ? AND created_at >= datetime('now', ?)
            """,
            (api_name, f"-{days} days"),
        )

        total = row["total_calls"] or 0
        successful = row["successful_calls"] or 0
        return {
            "total_calls": total,
            "successful_calls": successful,
            "success_rate": (successful / total * 100) if total > 0 else 0,
            "avg_response_time_ms": row["avg_response_time"] or 0,
        }
