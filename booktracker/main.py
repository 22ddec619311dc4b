import asyncio
import logging
import subprocess
import sys
from typing import Awaitable, Callable, Optional, TypeVar

import typer
from rich.console import Console

from booktracker.book_search import BookSearchService
from booktracker.config import ConfigurationError, settings
from booktracker.database import ApiUsageLog, SQLiteBookStore
from booktracker.services.google_books_service import GoogleBooksService
from booktracker.store import StoreError
from booktracker.ui_helpers import print_book_detail, print_book_list, set_output_mode

T = TypeVar("T")

console = Console(stderr=True)

app = typer.Typer(help="Book Tracker CLI")


def build_search_service(db_file: Optional[str] = None) -> BookSearchService:
    """Wire the SQLite store and Google Books client together."""
    db_file = db_file or settings.data_file
    store = SQLiteBookStore(db_file)
    store.initialize()
    catalog = GoogleBooksService(usage_log=ApiUsageLog(db_file))
    return BookSearchService(store, catalog)


def _run(action: Callable[[BookSearchService], Awaitable[T]]) -> T:
    try:
        service = build_search_service()
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/] {e}")
        raise typer.Exit(code=1)
    except StoreError as e:
        console.print(f"[bold red]Database error:[/] {e}")
        raise typer.Exit(code=1)

    async def runner() -> T:
        try:
            return await action(service)
        finally:
            await service.catalog.close()

    try:
        return asyncio.run(runner())
    except StoreError as e:
        console.print(f"[bold red]Database error:[/] {e}")
        raise typer.Exit(code=1)


@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Global CLI options (output mode, logging)."""
    logging.basicConfig(level=logging.DEBUG if verbose else settings.log_level)
    if output:
        set_output_mode(output)


@app.command("search")
def cli_search(
    query: str = typer.Argument(..., help="Search query"),
    limit: int = typer.Option(settings.default_max_results, "--limit", "-l", help="Maximum number of results"),
    local_only: bool = typer.Option(False, "--local-only", help="Do not query Google Books"),
):
    """Search stored books, topped up from Google Books."""
    async def action(service: BookSearchService):
        return await service.search_books(query, max_results=limit, include_external=not local_only)

    print_book_list(_run(action))


@app.command("isbn")
def cli_isbn(isbn: str = typer.Argument(..., help="ISBN-10 or ISBN-13, hyphens allowed")):
    """Find a book by ISBN."""
    async def action(service: BookSearchService):
        return await service.search_by_isbn(isbn)

    book = _run(action)
    if book is None:
        print(f"Book with ISBN {isbn} not found.")
        return
    print_book_detail(book)


@app.command("show")
def cli_show(book_id: str = typer.Argument(..., help="Stored book id")):
    """Show a stored book by id."""
    async def action(service: BookSearchService):
        return service.get_book_by_id(book_id)

    book = _run(action)
    if book is None:
        print(f"Book with id {book_id} not found.")
        return
    print_book_detail(book)


@app.command("popular")
def cli_popular(limit: int = typer.Option(20, "--limit", "-l", help="Maximum number of books")):
    """List the most recently added books."""
    async def action(service: BookSearchService):
        return service.get_popular_books(limit)

    print_book_list(_run(action))


@app.command("serve")
def cli_serve(reload: bool = typer.Option(False, "--reload", help="Reload on code changes")):
    """Start the HTTP API with uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    print(f"Starting API on http://{host}:{port}/")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "booktracker.api:app",
        "--host", host,
        "--port", str(port),
    ]
    if reload:
        args.append("--reload")
    try:
        subprocess.run(args, check=False)
    except FileNotFoundError:
        console.print("[bold red]Error:[/] `uvicorn` could not be started. Make sure it is installed.")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
