"""Exceptions raised by the search and rating layers."""
from enum import Enum
from typing import Optional


class BookSearchError(Exception):
    """Base class for all booksearch errors."""


class SearchFailedError(BookSearchError):
    """Both the primary and the fallback remote search failed."""

    def __init__(self, query, reason: str = "remote search unavailable"):
        self.query = query
        self.reason = reason
        super().__init__(f"Search failed for {query!r}: {reason}")


class ValidationReason(Enum):
    """Why a rating submission was rejected."""
    MISSING_USERNAME = "missing_username"
    MISSING_ISBN = "missing_isbn"
    MISSING_SCORE = "missing_score"
    SCORE_OUT_OF_RANGE = "score_out_of_range"


class RatingValidationError(BookSearchError):
    """An incomplete or out-of-range rating submission."""

    def __init__(self, reason: ValidationReason, field: Optional[str] = None):
        self.reason = reason
        self.field = field
        detail = f" ({field})" if field else ""
        super().__init__(f"Invalid rating: {reason.value}{detail}")
