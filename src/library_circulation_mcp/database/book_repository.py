"""
Book repository: catalog reads used by circulation.

ISBN resolution tries progressively looser matches:
1. Exact string match on the trimmed input
2. Normalized match (whitespace and hyphens removed, upper-cased)
3. Normalized substring match
4. Match on the trailing ten characters of the normalized key

Steps 3 and 4 are fuzzy. A fuzzy step succeeds only when it finds exactly
one book; several candidates raise ``ambiguous_isbn`` instead of guessing.
"""

import logging

from sqlalchemy import select

from ..circulation.keys import isbn_suffix, normalize_key, normalized_column
from ..errors import InvalidInputError
from ..models import Book, BookCreate, KeyMatch
from .repository import BaseRepository
from .schema import Book as BookDB
from .session import mcp_safe_query

logger = logging.getLogger(__name__)


class BookRepository(BaseRepository[BookDB, BookCreate, Book]):
    @property
    def model_class(self) -> type[BookDB]:
        return BookDB

    @property
    def response_schema(self) -> type[Book]:
        return Book

    def _candidates(self, condition, limit: int) -> list[BookDB]:
        query = select(BookDB).where(condition).order_by(BookDB.id).limit(limit)
        return list(
            mcp_safe_query(
                self.session,
                lambda s: s.execute(query).scalars().all(),
                "Failed to look up book by ISBN",
            )
        )

    def _single_fuzzy(self, condition, isbn: str) -> BookDB | None:
        candidates = self._candidates(condition, limit=2)
        if len(candidates) > 1:
            raise InvalidInputError(
                f"ISBN {isbn!r} matches more than one book",
                code="ambiguous_isbn",
                details={"isbn": isbn, "book_ids": [book.id for book in candidates]},
            )
        return candidates[0] if candidates else None

    def find_by_isbn(self, isbn: str) -> tuple[BookDB, KeyMatch] | None:
        """Resolve an ISBN as typed or scanned to a single book."""
        raw = isbn.strip()
        normalized = normalize_key(raw)
        if not normalized:
            return None

        exact = self._candidates(BookDB.isbn == raw, limit=1)
        if exact:
            return exact[0], KeyMatch.EXACT

        stored = normalized_column(BookDB.isbn)
        same = self._candidates(stored == normalized, limit=1)
        if same:
            return same[0], KeyMatch.NORMALIZED

        book = self._single_fuzzy(stored.contains(normalized, autoescape=True), raw)
        if book is None:
            suffix = isbn_suffix(normalized)
            if suffix is not None and suffix != normalized:
                book = self._single_fuzzy(stored.endswith(suffix, autoescape=True), raw)

        if book is not None:
            logger.info("ISBN %r fuzzy-matched book %s (%r)", raw, book.id, book.isbn)
            return book, KeyMatch.FUZZY
        return None
