import re
from typing import Optional


class ISBNValidator:
    """Lenient ISBN handling for lookups.

    Only separators are stripped; the checksum is not verified because
    catalog data regularly carries ISBNs with bad check digits.
    """

    _SEPARATORS = re.compile(r"[-\s]")

    @staticmethod
    def clean(raw: Optional[str]) -> str:
        if raw is None:
            return ""
        return ISBNValidator._SEPARATORS.sub("", raw)

    @staticmethod
    def is_valid_shape(isbn: str) -> bool:
        """ISBN-10: 9 digits then a digit or 'X'. ISBN-13: 13 digits."""
        if not isbn:
            return False
        s = isbn.upper()
        if len(s) == 10:
            return s[:9].isdigit() and (s[9].isdigit() or s[9] == "X")
        if len(s) == 13:
            return s.isdigit()
        return False


class TextValidator:
    """Basic checks for free-text search input."""

    @staticmethod
    def is_blank(text: Optional[str]) -> bool:
        return text is None or not text.strip()
