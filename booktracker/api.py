import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from booktracker.book import BookRecord
from booktracker.book_search import BookSearchService
from booktracker.config import settings
from booktracker.database import ApiUsageLog, SQLiteBookStore
from booktracker.services.google_books_service import GoogleBooksService
from booktracker.store import StoreError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Build the services once at startup; a missing API key fails before any client is opened
    logging.basicConfig(level=settings.log_level)
    store = SQLiteBookStore(settings.data_file)
    store.initialize()
    catalog = GoogleBooksService(
        timeout=settings.google_books_timeout, usage_log=ApiUsageLog(settings.data_file)
    )
    app.state.store = store
    app.state.catalog = catalog
    app.state.search_service = BookSearchService(store, catalog)
    try:
        yield
    finally:
        await catalog.close()


app = FastAPI(title=f"{settings.app_name} API", version=settings.app_version, lifespan=lifespan)

# Compress responses larger than 1KB
app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Dependencies ---
def get_search_service(request: Request) -> BookSearchService:
    return request.app.state.search_service


def get_book_store(request: Request) -> SQLiteBookStore:
    return request.app.state.store


def get_catalog(request: Request) -> GoogleBooksService:
    return request.app.state.catalog


# --- Models ---
class BookModel(BaseModel):
    """A search result as exposed to the web client"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    external_id: str | None = None
    title: str
    authors: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    published_date: str | None = None
    page_count: int | None = None
    description: str | None = None
    cover_url: str | None = None
    isbn10: str | None = None
    isbn13: str | None = None
    source: str

    @classmethod
    def from_record(cls, record: BookRecord) -> "BookModel":
        return cls.model_validate(record.to_dict())


class SearchResponse(BaseModel):
    query: str
    results: List[BookModel]
    count: int


class APIUsageStatsResponse(BaseModel):
    google_books: Dict[str, Any]


# --- Health check ---
@app.get("/health")
async def health(store: SQLiteBookStore = Depends(get_book_store)):
    """Lightweight health endpoint: a quick database ping plus feature flags."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "db": store.ping(),
        "services": {
            "google_books": settings.enable_google_books,
        },
    }


# --- Search ---
@app.get("/api/search", response_model=SearchResponse)
async def search_books(
    q: Optional[str] = Query(None, description="Search query"),
    max_results: int = Query(settings.default_max_results, ge=1, le=40, alias="maxResults"),
    include_external: bool = Query(settings.enable_google_books, alias="includeExternal"),
    service: BookSearchService = Depends(get_search_service),
):
    """Search the local catalog, topped up from Google Books."""
    if not q:
        raise HTTPException(status_code=400, detail="Query parameter required")

    try:
        results = await service.search_books(q, max_results=max_results, include_external=include_external)
    except Exception:
        logger.exception("Search API error")
        raise HTTPException(status_code=500, detail="Search failed")

    return SearchResponse(
        query=q,
        results=[BookModel.from_record(r) for r in results],
        count=len(results),
    )


@app.get("/api/books/popular", response_model=List[BookModel])
def get_popular_books(
    limit: int = Query(20, ge=1, le=100),
    service: BookSearchService = Depends(get_search_service),
):
    """Recently added books, shown before the user types a query."""
    return [BookModel.from_record(r) for r in service.get_popular_books(limit)]


@app.get("/api/books/isbn/{isbn}", response_model=BookModel)
async def get_book_by_isbn(isbn: str, service: BookSearchService = Depends(get_search_service)):
    try:
        book = await service.search_by_isbn(isbn)
    except StoreError:
        logger.exception("ISBN lookup error")
        raise HTTPException(status_code=500, detail="Lookup failed")
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found.")
    return BookModel.from_record(book)


@app.get("/api/books/external/{external_id}", response_model=BookModel)
async def get_book_by_external_id(external_id: str, service: BookSearchService = Depends(get_search_service)):
    try:
        book = await service.get_book_by_external_id(external_id)
    except StoreError:
        logger.exception("External id lookup error")
        raise HTTPException(status_code=500, detail="Lookup failed")
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found.")
    return BookModel.from_record(book)


@app.get("/api/books/{book_id}", response_model=BookModel)
def get_book(book_id: str, service: BookSearchService = Depends(get_search_service)):
    try:
        book = service.get_book_by_id(book_id)
    except StoreError:
        logger.exception("Get book by id error")
        raise HTTPException(status_code=500, detail="Lookup failed")
    if book is None:
        raise HTTPException(status_code=404, detail="Book not found.")
    return BookModel.from_record(book)


# --- API usage statistics ---
@app.get("/admin/api-usage", response_model=APIUsageStatsResponse)
def get_api_usage_stats(catalog: GoogleBooksService = Depends(get_catalog)):
    """Google Books usage counters."""
    return APIUsageStatsResponse(google_books=catalog.get_usage_stats())
