"""Helpers that turn heterogeneous catalog data into canonical records
and remove duplicates from merged result sets."""

import re
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from booktracker.book import BookRecord

_YEAR = re.compile(r"^(\d{4})$")
_YEAR_MONTH = re.compile(r"^(\d{4})-(\d{2})$")
_FULL_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:[T ].*)?$")

# Largest variant first
COVER_PREFERENCE = ("large", "medium", "small", "thumbnail")


def parse_published_date(value: Optional[str]) -> Optional[date]:
    """Parse `YYYY`, `YYYY-MM` or `YYYY-MM-DD` into a date.

    Missing parts default to the first month/day. Anything unparseable or
    out of range gives None.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()

    match = _YEAR.match(text)
    if match:
        parts = (int(match.group(1)), 1, 1)
    else:
        match = _YEAR_MONTH.match(text) or _FULL_DATE.match(text)
        if not match:
            return None
        groups = [int(g) for g in match.groups()]
        parts = (groups[0], groups[1], groups[2] if len(groups) > 2 else 1)

    try:
        return date(*parts)
    except ValueError:
        return None


def secure_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    if url[:5].lower() == "http:":
        return "https:" + url[5:]
    return url


def best_cover_url(image_links: Optional[Dict[str, Any]]) -> Optional[str]:
    if not image_links:
        return None
    for key in COVER_PREFERENCE:
        url = image_links.get(key)
        if url:
            return secure_url(url)
    return None


def extract_isbns(identifiers: Optional[Iterable[Dict[str, Any]]]) -> Tuple[Optional[str], Optional[str]]:
    """Return (isbn10, isbn13); the first identifier of each type wins."""
    isbn10 = None
    isbn13 = None
    for identifier in identifiers or []:
        kind = identifier.get("type")
        value = identifier.get("identifier")
        if not value:
            continue
        if kind == "ISBN_10" and isbn10 is None:
            isbn10 = value
        elif kind == "ISBN_13" and isbn13 is None:
            isbn13 = value
    return isbn10, isbn13


def identity_keys(record: BookRecord) -> List[str]:
    keys = []
    if record.external_id:
        keys.append(f"external:{record.external_id}")
    if record.isbn13:
        keys.append(f"isbn13:{record.isbn13}")
    if record.isbn10:
        keys.append(f"isbn10:{record.isbn10}")
    title_author = f"{record.title.lower()}|{', '.join(record.authors).lower()}"
    keys.append(f"title:{title_author}")
    return keys


def dedupe_records(records: Iterable[BookRecord]) -> List[BookRecord]:
    """Drop records sharing any identity key with an earlier one."""
    seen = set()
    deduped = []
    for record in records:
        keys = identity_keys(record)
        if any(key in seen for key in keys):
            continue
        seen.update(keys)
        deduped.append(record)
    return deduped
