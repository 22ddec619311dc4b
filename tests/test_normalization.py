from datetime import date

import pytest

from booktracker.book import BookRecord, BookSource
from booktracker.normalization import (
    best_cover_url,
    dedupe_records,
    extract_isbns,
    parse_published_date,
    secure_url,
)
from booktracker.validators import ISBNValidator


@pytest.mark.parametrize("raw, expected", [
    ("1965", date(1965, 1, 1)),
    ("1965-06", date(1965, 6, 1)),
    ("1965-06-15", date(1965, 6, 15)),
    ("2001-09-11T00:00:00Z", date(2001, 9, 11)),
])
def test_parse_published_date_formats(raw, expected):
    assert parse_published_date(raw) == expected


@pytest.mark.parametrize("raw", ["not-a-date", "", None, "1965-13", "1965-02-30", "65", "June 1965"])
def test_parse_published_date_invalid_is_absent(raw):
    assert parse_published_date(raw) is None


def test_secure_url_rewrites_http():
    assert secure_url("http://example.com/cover.jpg") == "https://example.com/cover.jpg"
    assert secure_url("https://example.com/cover.jpg") == "https://example.com/cover.jpg"
    assert secure_url("HTTP://example.com/cover.jpg") == "https://example.com/cover.jpg"
    assert secure_url("Http://example.com/cover.jpg") == "https://example.com/cover.jpg"
    assert secure_url(None) is None


def test_best_cover_url_prefers_largest():
    links = {
        "thumbnail": "http://books.google.com/thumb",
        "medium": "http://books.google.com/medium",
        "small": "http://books.google.com/small",
    }
    assert best_cover_url(links) == "https://books.google.com/medium"
    assert best_cover_url({"thumbnail": "http://books.google.com/thumb"}) == "https://books.google.com/thumb"
    assert best_cover_url({}) is None
    assert best_cover_url(None) is None


def test_extract_isbns_first_of_each_type_wins():
    identifiers = [
        {"type": "OTHER", "identifier": "UOM:39015"},
        {"type": "ISBN_13", "identifier": "9780441013593"},
        {"type": "ISBN_10", "identifier": "0441013597"},
        {"type": "ISBN_13", "identifier": "9999999999999"},
    ]
    assert extract_isbns(identifiers) == ("0441013597", "9780441013593")
    assert extract_isbns(None) == (None, None)


def _record(id, title="Dune", authors=None, **kwargs):
    return BookRecord(id=id, title=title, authors=authors or ["Frank Herbert"], **kwargs)


def test_dedupe_same_isbn13_keeps_first_seen():
    first = _record("a", title="Dune", isbn13="9780441013593")
    second = _record("b", title="Dune (Deluxe)", isbn13="9780441013593", source=BookSource.EXTERNAL)
    assert dedupe_records([first, second]) == [first]


def test_dedupe_matches_on_title_and_authors_case_insensitively():
    first = _record("a", title="Dune", authors=["Frank Herbert"])
    second = _record("b", title="DUNE", authors=["frank herbert"], external_id="vol1")
    assert dedupe_records([first, second]) == [first]


def test_dedupe_keeps_distinct_books():
    books = [
        _record("a", title="Dune", external_id="vol1"),
        _record("b", title="Dune Messiah", external_id="vol2"),
        _record("c", title="Children of Dune", isbn10="0441104029"),
    ]
    assert dedupe_records(books) == books


def test_dedupe_same_title_different_authors_are_distinct():
    first = _record("a", title="Collected Poems", authors=["W. B. Yeats"])
    second = _record("b", title="Collected Poems", authors=["Sylvia Plath"])
    assert len(dedupe_records([first, second])) == 2


def test_isbn_clean_strips_hyphens_and_spaces():
    assert ISBNValidator.clean("978-0-13-235088-4") == "9780132350884"
    assert ISBNValidator.clean(" 0 13 235088 2 ") == "0132350882"
    assert ISBNValidator.clean(None) == ""


@pytest.mark.parametrize("isbn, valid", [
    ("9780132350884", True),
    ("013235088X", True),
    ("013235088x", True),
    ("12345", False),
    ("97801323508AB", False),
    ("", False),
])
def test_isbn_shape(isbn, valid):
    assert ISBNValidator.is_valid_shape(isbn) is valid
