"""Client-side filters over lists of books.

All filters are stable: the output keeps the relative order of the input.
"""
import logging
from typing import List, Optional, Iterable

from booksearch.models import (
    Book,
    SearchQuery,
    FreeText,
    TitleOnly,
    AuthorOnly,
    AuthorWithYearRange,
)

logger = logging.getLogger(__name__)


def _contains(value: Optional[str], needle: str) -> bool:
    return value is not None and needle in value.lower()


def filter_by_title(books: Iterable[Book], term: Optional[str]) -> List[Book]:
    """
    Keep books whose title contains ``term`` (case-insensitive).

    Books without a title never match. A blank term keeps everything.
    """
    books = list(books)
    if not term or not term.strip():
        return books

    needle = term.strip().lower()
    filtered = [book for book in books if _contains(book.title, needle)]
    logger.debug(f"Title filter '{term}': {len(books)} -> {len(filtered)}")
    return filtered


def filter_by_author(books: Iterable[Book], term: Optional[str]) -> List[Book]:
    """Keep books whose author contains ``term`` (case-insensitive)."""
    books = list(books)
    if not term or not term.strip():
        return books

    needle = term.strip().lower()
    filtered = [book for book in books if _contains(book.author, needle)]
    logger.debug(f"Author filter '{term}': {len(books)} -> {len(filtered)}")
    return filtered


def filter_free_text(books: Iterable[Book], term: Optional[str]) -> List[Book]:
    """Keep books whose title OR author contains ``term``."""
    books = list(books)
    if not term or not term.strip():
        return books

    needle = term.strip().lower()
    return [
        book for book in books
        if _contains(book.title, needle) or _contains(book.author, needle)
    ]


def filter_by_year_range(
    books: Iterable[Book],
    year_from: Optional[int] = None,
    year_to: Optional[int] = None
) -> List[Book]:
    """
    Keep books published within [year_from, year_to].

    Either bound may be None for an open range; with both None the filter
    is a no-op. While a range is active, books whose publish year is
    missing or not a number are dropped.
    """
    books = list(books)
    if year_from is None and year_to is None:
        return books

    filtered = []
    for book in books:
        year = book.year
        if year is None:
            continue
        if year_from is not None and year < year_from:
            continue
        if year_to is not None and year > year_to:
            continue
        filtered.append(book)

    logger.debug(f"Year filter {year_from}-{year_to}: {len(books)} -> {len(filtered)}")
    return filtered


def apply_query_filters(books: Iterable[Book], query: SearchQuery) -> List[Book]:
    """Apply every filter implied by ``query``."""
    if isinstance(query, TitleOnly):
        return filter_by_title(books, query.term)
    if isinstance(query, AuthorOnly):
        return filter_by_author(books, query.term)
    if isinstance(query, AuthorWithYearRange):
        by_author = filter_by_author(books, query.term)
        return filter_by_year_range(by_author, query.year_from, query.year_to)
    if isinstance(query, FreeText):
        return filter_free_text(books, query.term)
    raise TypeError(f"Unknown query type: {type(query).__name__}")


def deduplicate_books(books: Iterable[Book]) -> List[Book]:
    """
    Remove duplicate books (by Book equality), keeping the first occurrence.

    Args:
        books: Books in display order

    Returns:
        Deduplicated list of books
    """
    seen = set()
    unique_books = []

    for book in books:
        if book not in seen:
            seen.add(book)
            unique_books.append(book)

    return unique_books
