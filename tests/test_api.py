from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from booktracker.api import app, get_book_store, get_catalog, get_search_service
from booktracker.book import BookRecord
from booktracker.config import ConfigurationError, settings
from booktracker.database import ApiUsageLog
from booktracker.services.google_books_service import GoogleBooksService, RateLimitExceeded
from booktracker.store import StoreError


@pytest.fixture
def client(service, store, catalog):
    # Inject test doubles instead of running the startup lifespan
    app.dependency_overrides[get_search_service] = lambda: service
    app.dependency_overrides[get_book_store] = lambda: store
    app.dependency_overrides[get_catalog] = lambda: catalog
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _local(store, title, **kwargs):
    return store.insert(BookRecord(id="", title=title, authors=["Frank Herbert"], **kwargs))


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["db"] is True


def test_search_returns_query_results_and_count(client, store, catalog, external_book):
    _local(store, "Dune", isbn13="9780441013593")
    catalog.search.return_value = [external_book("vol-2", "Dune Messiah", ["Frank Herbert"])]

    response = client.get("/api/search", params={"q": "dune", "maxResults": 5})

    assert response.status_code == 200
    body = response.json()
    assert body["query"] == "dune"
    assert body["count"] == 2
    assert [r["title"] for r in body["results"]] == ["Dune", "Dune Messiah"]
    first = body["results"][0]
    assert first["isbn13"] == "9780441013593"
    assert first["source"] == "persisted"
    assert "externalId" in first and "coverUrl" in first and "publishedDate" in first
    assert first["categories"] == []
    assert body["results"][1]["externalId"] == "vol-2"


def test_search_include_external_false(client, store, catalog):
    _local(store, "Dune")
    response = client.get("/api/search", params={"q": "dune", "includeExternal": "false"})
    assert response.status_code == 200
    assert response.json()["count"] == 1
    catalog.search.assert_not_awaited()


def test_search_requires_query(client):
    assert client.get("/api/search").status_code == 400
    assert client.get("/api/search", params={"q": ""}).status_code == 400


def test_search_blank_query_is_empty_success(client, catalog):
    response = client.get("/api/search", params={"q": "   "})
    assert response.status_code == 200
    assert response.json() == {"query": "   ", "results": [], "count": 0}


def test_search_rejects_out_of_range_max_results(client):
    assert client.get("/api/search", params={"q": "dune", "maxResults": 0}).status_code == 422
    assert client.get("/api/search", params={"q": "dune", "maxResults": 41}).status_code == 422


def test_search_degrades_when_catalog_rate_limited(client, store, catalog):
    _local(store, "Dune")
    catalog.search.side_effect = RateLimitExceeded("rate limited")
    response = client.get("/api/search", params={"q": "dune"})
    assert response.status_code == 200
    assert response.json()["count"] == 1


def test_search_internal_failure_is_500(client, service, monkeypatch):
    async def explode(*args, **kwargs):
        raise RuntimeError("unexpected")

    monkeypatch.setattr(service, "search_books", explode)
    response = client.get("/api/search", params={"q": "dune"})
    assert response.status_code == 500
    assert response.json()["detail"] == "Search failed"


def test_get_book_by_id(client, store):
    stored = _local(store, "Dune")
    response = client.get(f"/api/books/{stored.id}")
    assert response.status_code == 200
    assert response.json()["id"] == stored.id

    assert client.get("/api/books/missing").status_code == 404


def test_get_book_by_id_store_failure(client, service, monkeypatch):
    def broken(book_id):
        raise StoreError("db down")

    monkeypatch.setattr(service, "get_book_by_id", broken)
    assert client.get("/api/books/anything").status_code == 500


def test_get_book_by_isbn(client, store):
    stored = _local(store, "Clean Code", isbn13="9780132350884")
    response = client.get("/api/books/isbn/978-0-13-235088-4")
    assert response.status_code == 200
    assert response.json()["id"] == stored.id

    assert client.get("/api/books/isbn/9780000000002").status_code == 404


def test_get_book_by_external_id(client, catalog, external_book):
    catalog.get_by_id.return_value = external_book("vol-1", "Dune", ["Frank Herbert"])
    response = client.get("/api/books/external/vol-1")
    assert response.status_code == 200
    assert response.json()["externalId"] == "vol-1"
    assert response.json()["source"] == "persisted"


def test_popular_books(client, store):
    _local(store, "Old")
    _local(store, "New", isbn10="0000000000")
    response = client.get("/api/books/popular", params={"limit": 1})
    assert response.status_code == 200
    assert [b["title"] for b in response.json()] == ["New"]


def test_api_usage_stats(client, catalog):
    catalog.get_usage_stats.return_value = {"daily_calls_used": 3, "daily_limit": 1000}
    response = client.get("/admin/api-usage")
    assert response.status_code == 200
    assert response.json()["google_books"]["daily_calls_used"] == 3


def test_api_usage_stats_without_usage_table(client, tmp_path):
    catalog = GoogleBooksService(api_key="test-key", usage_log=ApiUsageLog(str(tmp_path / "empty.db")))
    app.dependency_overrides[get_catalog] = lambda: catalog

    response = client.get("/admin/api-usage")
    assert response.status_code == 200
    assert response.json()["google_books"]["daily_calls_used"] == 0


def test_startup_without_api_key_opens_no_http_client(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "google_books_api_key", None)
    monkeypatch.setattr(settings, "data_file", str(tmp_path / "startup.db"))
    with patch("booktracker.services.google_books_service.OptimizedHTTPClient") as mock_client:
        with pytest.raises(ConfigurationError):
            with TestClient(app):
                pass
    mock_client.assert_not_called()


def test_shutdown_closes_catalog_client(monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "google_books_api_key", "test-key")
    monkeypatch.setattr(settings, "data_file", str(tmp_path / "startup.db"))
    with TestClient(app) as test_client:
        assert test_client.get("/health").json()["db"] is True
        catalog = app.state.catalog
        assert not catalog.http_client.is_closed
    assert catalog.http_client.is_closed
