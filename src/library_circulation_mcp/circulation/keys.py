"""Natural key normalization for ISBNs and student numbers.

Barcode scanners and hand typing produce the same key in several shapes:
``978-0-306-40615-7``, ``978 0306 406157``, ``9780306406157``. Lookups
compare normalized forms on both sides, in Python for input and in SQL for
stored values.
"""

import re
from typing import Any

from sqlalchemy import func
from sqlalchemy.sql.elements import ColumnElement

ISBN_SUFFIX_LENGTH = 10

_NOISE = re.compile(r"[\s\-]+")


def normalize_key(value: Any) -> str:
    if value is None:
        return ""
    return _NOISE.sub("", str(value)).upper()


def isbn_suffix(normalized: str) -> str | None:
    """Trailing fragment used for the last-resort ISBN match."""
    if len(normalized) < ISBN_SUFFIX_LENGTH:
        return None
    return normalized[-ISBN_SUFFIX_LENGTH:]


def normalized_column(column: ColumnElement[Any]) -> ColumnElement[str]:
    """SQL mirror of ``normalize_key`` for stored values."""
    stripped = func.replace(func.replace(func.replace(column, " ", ""), "-", ""), "\t", "")
    return func.upper(func.coalesce(stripped, ""))
