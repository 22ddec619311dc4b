import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from booktracker.book import BookRecord, BookSource, UNKNOWN_TITLE
from booktracker.config import ConfigurationError, settings
from booktracker.database import ApiUsageLog
from booktracker.normalization import best_cover_url, extract_isbns, parse_published_date
from booktracker.services.http_client import OptimizedHTTPClient
from booktracker.store import StoreError
from booktracker.validators import ISBNValidator

logger = logging.getLogger(__name__)

API_NAME = "google_books"
# Upstream cap on maxResults
MAX_RESULTS_LIMIT = 40


class GoogleBooksAPIError(Exception):
    """Custom exception for Google Books API errors"""
    pass


class RateLimitExceeded(GoogleBooksAPIError):
    """Exception raised when rate limit is exceeded"""
    pass


class CatalogTimeout(GoogleBooksAPIError):
    """Exception raised when a request runs past its deadline"""
    pass


class GoogleBooksService:
    """Service for interacting with Google Books API"""

    base_url = "https://www.googleapis.com/books/v1/volumes"

    def __init__(
        self,
        api_key: Optional[str] = None,
        http_client: Optional[OptimizedHTTPClient] = None,
        timeout: Optional[float] = None,
        usage_log: Optional[ApiUsageLog] = None,
    ):
        self.api_key = api_key or settings.google_books_api_key
        if not self.api_key:
            raise ConfigurationError("GOOGLE_BOOKS_API_KEY environment variable is required")

        self.timeout = timeout if timeout is not None else settings.google_books_timeout
        self.daily_limit = settings.google_books_daily_limit
        self.http_client = http_client or OptimizedHTTPClient(timeout=self.timeout)
        self.usage_log = usage_log

    def _check_rate_limit(self) -> None:
        """Raise if the daily quota is used up"""
        if self.usage_log is None:
            return
        try:
            current_usage = self.usage_log.daily_usage(API_NAME)
        except StoreError as e:
            # Quota accounting is best effort, like usage logging
            logger.warning(f"Could not read API usage, skipping quota check: {e}")
            return
        if current_usage >= self.daily_limit:
            logger.warning(f"Daily rate limit exceeded: {current_usage}/{self.daily_limit}")
            raise RateLimitExceeded("Daily rate limit exceeded")

    def _log_api_usage(self, endpoint: str, success: bool, response_time_ms: int = 0) -> None:
        if self.usage_log is not None:
            self.usage_log.record(API_NAME, endpoint, success, response_time_ms)

    async def _get(self, url: str, endpoint: str, params: Dict[str, Any]) -> httpx.Response:
        """Issue one GET bounded by the request timeout.

        Returns the response for 200 and 404; raises for everything else.
        """
        self._check_rate_limit()
        params = {**params, "key": self.api_key}
        start_time = time.time()

        try:
            response = await asyncio.wait_for(
                self.http_client.get(url, params=params), timeout=self.timeout
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            self._log_api_usage(endpoint, False)
            logger.error(f"Google Books request timed out after {self.timeout}s")
            raise CatalogTimeout(f"Google Books API request timed out after {self.timeout:g} seconds") from e
        except httpx.HTTPError as e:
            self._log_api_usage(endpoint, False)
            logger.error(f"Google Books request failed: {e}")
            raise GoogleBooksAPIError(f"Google Books API unreachable: {e}") from e

        response_time_ms = int((time.time() - start_time) * 1000)

        if response.status_code == 200:
            self._log_api_usage(endpoint, True, response_time_ms)
            return response

        self._log_api_usage(endpoint, False, response_time_ms)
        if response.status_code == 429:
            logger.warning("Rate limit exceeded for Google Books API")
            raise RateLimitExceeded("Google Books API rate limit exceeded")
        if response.status_code == 404:
            return response
        logger.error(f"API request failed: {response.status_code}")
        raise GoogleBooksAPIError(f"Google Books API error: {response.status_code}")

    def _parse_volume(self, item: Dict[str, Any]) -> BookRecord:
        """Normalize one Google Books volume into a BookRecord"""
        volume_info = item.get("volumeInfo") or {}
        isbn10, isbn13 = extract_isbns(volume_info.get("industryIdentifiers"))

        page_count = volume_info.get("pageCount")
        if not isinstance(page_count, int) or isinstance(page_count, bool) or page_count < 0:
            page_count = None

        authors = volume_info.get("authors")
        categories = volume_info.get("categories")

        return BookRecord(
            id=item.get("id", ""),
            external_id=item.get("id") or None,
            title=volume_info.get("title") or UNKNOWN_TITLE,
            authors=[str(a) for a in authors] if isinstance(authors, list) else [],
            categories=[str(c) for c in categories] if isinstance(categories, list) else [],
            published_date=parse_published_date(volume_info.get("publishedDate")),
            page_count=page_count,
            description=volume_info.get("description"),
            cover_url=best_cover_url(volume_info.get("imageLinks")),
            isbn10=isbn10,
            isbn13=isbn13,
            source=BookSource.EXTERNAL,
        )

    async def search(self, query: str, max_results: int = 20) -> List[BookRecord]:
        """
        Search for books using a text query

        Args:
            query: Search query (title, author, `isbn:` prefix, etc.)
            max_results: Maximum number of results to return (1-40)

        Returns:
            List of BookRecord objects tagged as external

        Raises:
            CatalogTimeout, RateLimitExceeded, GoogleBooksAPIError
        """
        if not query or not query.strip():
            logger.warning("Empty search query provided")
            return []

        params = {
            "q": query.strip(),
            "maxResults": max(1, min(max_results, MAX_RESULTS_LIMIT)),
            "printType": "books",
            "projection": "full",
        }
        response = await self._get(self.base_url, "volumes", params)
        if response.status_code != 200:
            return []

        try:
            data = response.json()
            items = data.get("items") or []
            books = [self._parse_volume(item) for item in items if item.get("id")]
        except (ValueError, TypeError, AttributeError) as e:
            logger.error(f"Failed to parse search response for '{query}': {e}")
            raise GoogleBooksAPIError("Malformed Google Books response") from e

        logger.info(f"Found {len(books)} books for query: {query}")
        return books

    async def search_by_isbn(self, isbn: str) -> Optional[BookRecord]:
        """Look up a single book by ISBN; errors propagate to the caller"""
        clean_isbn = ISBNValidator.clean(isbn)
        if not clean_isbn:
            logger.warning("Empty ISBN provided")
            return None

        results = await self.search(f"isbn:{clean_isbn}", 1)
        if not results:
            logger.info(f"Book not found in Google Books: ISBN {clean_isbn}")
            return None
        return results[0]

    async def get_by_id(self, external_id: str) -> Optional[BookRecord]:
        """Fetch one volume by its Google Books id; None when missing or timed out"""
        if not external_id or not external_id.strip():
            return None

        try:
            response = await self._get(f"{self.base_url}/{external_id.strip()}", "volumes/id", {})
        except CatalogTimeout:
            return None

        if response.status_code != 200:
            logger.info(f"Volume not found in Google Books: {external_id}")
            return None

        try:
            return self._parse_volume(response.json())
        except (ValueError, TypeError, AttributeError) as e:
            logger.error(f"Failed to parse volume {external_id}: {e}")
            raise GoogleBooksAPIError("Malformed Google Books response") from e

    def get_usage_stats(self) -> Dict[str, Any]:
        """Get current API usage statistics"""
        summary: Dict[str, Any] = {}
        try:
            daily_usage = self.usage_log.daily_usage(API_NAME) if self.usage_log else 0
            if self.usage_log is not None:
                summary = self.usage_log.summary(API_NAME)
        except StoreError as e:
            logger.error(f"Failed to read API usage: {e}")
            daily_usage = 0
        stats: Dict[str, Any] = {
            "daily_calls_used": daily_usage,
            "daily_limit": self.daily_limit,
            "calls_remaining": max(0, self.daily_limit - daily_usage),
            "usage_percentage": (daily_usage / self.daily_limit) * 100 if self.daily_limit else 0,
            "api_key_configured": bool(self.api_key),
            "tracking_enabled": self.usage_log is not None,
        }
        stats.update(summary)
        return stats

    async def close(self) -> None:
        await self.http_client.close()
