"""Parse the search box mini-language into structured queries.

Recognized forms, in order of precedence:

    title-only:<text>              -> TitleOnly
    author:<text> ... year:<range> -> AuthorWithYearRange
    author:<text>                  -> AuthorOnly
    ... year:<range> ...           -> AuthorWithYearRange with an empty author
    anything else                  -> FreeText

A year range is ``A-B``, ``A-``, ``-B`` or ``A`` (same as ``A-A``).
"""
import re
import logging
from typing import Optional, Tuple

from booksearch.models import (
    SearchQuery,
    FreeText,
    TitleOnly,
    AuthorOnly,
    AuthorWithYearRange,
)

logger = logging.getLogger(__name__)

TITLE_ONLY_PREFIX = "title-only:"
AUTHOR_PREFIX = "author:"
YEAR_TOKEN = re.compile(r"year:(\S*)")
# Years are unsigned ASCII digits; "+1950", "1_950" and negative years are rejected
SINGLE_YEAR = re.compile(r"[0-9]+")
YEAR_RANGE = re.compile(r"([0-9]*)-([0-9]*)")

YearBounds = Tuple[Optional[int], Optional[int]]


def parse_year_range(text: str) -> Optional[YearBounds]:
    """
    Parse the part after ``year:``.

    Args:
        text: Range text such as "1950-1970", "1950-", "-1970" or "1950"

    Returns:
        (year_from, year_to) with None for an open end, or None if the
        text is not a valid range
    """
    text = text.strip()
    if not text:
        return None, None

    if SINGLE_YEAR.fullmatch(text):
        year = int(text)
        return year, year

    match = YEAR_RANGE.fullmatch(text)
    if match is None:
        return None
    start, end = match.groups()
    return (int(start) if start else None), (int(end) if end else None)


def parse_query(raw: Optional[str]) -> Optional[SearchQuery]:
    """
    Parse a raw query string.

    Args:
        raw: Text typed by the user

    Returns:
        A SearchQuery variant, or None for a blank query (the caller should
        go back to its default view)
    """
    if raw is None:
        return None

    query = raw.strip()
    if not query:
        return None

    if query.startswith(TITLE_ONLY_PREFIX):
        return TitleOnly(query[len(TITLE_ONLY_PREFIX):].strip())

    year_match = YEAR_TOKEN.search(query)

    if query.startswith(AUTHOR_PREFIX):
        remainder = query[len(AUTHOR_PREFIX):]
        if year_match is None:
            return AuthorOnly(remainder.strip())
        author = " ".join(YEAR_TOKEN.sub(" ", remainder).split())
        return _with_year_range(author, year_match.group(1), query)

    if year_match is not None:
        return _with_year_range("", year_match.group(1), query)

    return FreeText(query)


def _with_year_range(author: str, range_text: str, query: str) -> AuthorWithYearRange:
    bounds = parse_year_range(range_text)
    if bounds is None:
        logger.warning(f"Ignoring malformed year range {range_text!r} in query: {query}")
        return AuthorWithYearRange(author)
    year_from, year_to = bounds
    return AuthorWithYearRange(author, year_from, year_to)


def format_year_range(year_from: Optional[int], year_to: Optional[int]) -> str:
    """Inverse of parse_year_range for the non-negative years it produces."""
    start = "" if year_from is None else str(year_from)
    end = "" if year_to is None else str(year_to)
    if not start and not end:
        return ""
    return f"{start}-{end}"


def format_query(query: SearchQuery) -> str:
    """Build the canonical query string that parses back to ``query``."""
    if isinstance(query, TitleOnly):
        return f"{TITLE_ONLY_PREFIX}{query.term}"
    if isinstance(query, AuthorOnly):
        return f"{AUTHOR_PREFIX}{query.term}"
    if isinstance(query, AuthorWithYearRange):
        year = f"year:{format_year_range(query.year_from, query.year_to)}"
        if query.term:
            return f"{AUTHOR_PREFIX}{query.term} {year}"
        return year
    if isinstance(query, FreeText):
        return query.term
    raise TypeError(f"Unknown query type: {type(query).__name__}")


def describe_query(query: SearchQuery) -> str:
    """Short human-readable label for a result heading."""
    if isinstance(query, TitleOnly):
        return f"Title: {query.term}"
    if isinstance(query, AuthorOnly):
        return f"Author: {query.term}"
    if isinstance(query, AuthorWithYearRange):
        years = format_year_range(query.year_from, query.year_to) or "any year"
        if query.term:
            return f"Author: {query.term} ({years})"
        return f"Published: {years}"
    return f"Results for \"{query.term}\""
