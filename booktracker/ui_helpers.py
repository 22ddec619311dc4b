import os
import json
from typing import Iterable, List

from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from booktracker.book import BookRecord

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "BOOKTRACKER_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, "plain").lower()


def _year(book: BookRecord) -> str:
    return str(book.published_date.year) if book.published_date else ""


def print_book_list(books: Iterable[BookRecord]) -> None:
    """Print search results in the current output mode.
    - plain: 'Title by Authors (year) [source] id' lines, or 'No books found.'
    - json: JSON array of records
    - rich: Rich table
    """
    books: List[BookRecord] = list(books)
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps([b.to_dict() for b in books], ensure_ascii=False))
        return

    if not books:
        print("No books found.")
        return

    if mode == "rich":
        table = Table(title="📚 Books", show_lines=True, header_style="bold cyan")
        table.add_column("Title", style="white")
        table.add_column("Authors", style="white")
        table.add_column("Year", style="dim", no_wrap=True)
        table.add_column("ISBN", style="magenta", no_wrap=True)
        table.add_column("Source", style="green", no_wrap=True)
        for b in books:
            table.add_row(b.title, b.display_authors, _year(b), b.isbn13 or b.isbn10 or "", b.source.value)
        _console.print(table)
    else:
        for b in books:
            year = f" ({_year(b)})" if b.published_date else ""
            print(f"{b.title} by {b.display_authors}{year} [{b.source.value}] {b.id}")


def print_book_detail(book: BookRecord) -> None:
    mode = get_output_mode()

    if mode == "json":
        print(json.dumps(book.to_dict(), ensure_ascii=False))
    elif mode == "rich":
        lines = [
            f"[bold]Title:[/] {book.title}",
            f"[bold]Authors:[/] {book.display_authors}",
            f"[bold]Published:[/] {book.published_date.isoformat() if book.published_date else '-'}",
            f"[bold]Pages:[/] {book.page_count or '-'}",
            f"[bold]Categories:[/] {', '.join(book.categories) or '-'}",
            f"[bold]ISBN-13:[/] {book.isbn13 or '-'}",
            f"[bold]ISBN-10:[/] {book.isbn10 or '-'}",
            f"[bold]Source:[/] {book.source.value}",
        ]
        _console.print(Panel.fit("\n".join(lines), title="📖 Book", border_style="blue"))
    else:
        print(f"Title: {book.title}")
        print(f"Authors: {book.display_authors}")
        if book.published_date:
            print(f"Published: {book.published_date.isoformat()}")
        if book.categories:
            print(f"Categories: {', '.join(book.categories)}")
        if book.isbn13:
            print(f"ISBN-13: {book.isbn13}")
        if book.isbn10:
            print(f"ISBN-10: {book.isbn10}")
        print(f"ID: {book.id}")
        print(f"Source: {book.source.value}")
