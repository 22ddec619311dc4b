import logging
from typing import Optional

import httpx

from booktracker.config import settings

logger = logging.getLogger(__name__)


class OptimizedHTTPClient:
    """Pooled async HTTP client shared by the external catalog services"""

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        # Connection limits for better performance
        limits = httpx.Limits(
            max_keepalive_connections=20,
            max_connections=100,
            keepalive_expiry=30.0
        )

        # A single overall deadline per request
        total = timeout if timeout is not None else settings.google_books_timeout
        self.timeout = httpx.Timeout(total, connect=min(5.0, total))

        self._client = httpx.AsyncClient(
            limits=limits,
            timeout=self.timeout,
            follow_redirects=True,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def get(self, url: str, **kwargs) -> httpx.Response:
        """Async GET request using the connection pool"""
        return await self._client.get(url, **kwargs)

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def close(self):
        """Close the underlying HTTP client"""
        await self._client.aclose()
        logger.debug("HTTP client closed")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
