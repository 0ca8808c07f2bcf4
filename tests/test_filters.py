"""Tests for client-side filters."""
import pytest

from booksearch.filters import (
    filter_by_title,
    filter_by_author,
    filter_free_text,
    filter_by_year_range,
    apply_query_filters,
    deduplicate_books,
)
from booksearch.models import Book, FreeText, TitleOnly, AuthorOnly, AuthorWithYearRange


def make_books():
    return [
        Book("The Hobbit", "J.R.R. Tolkien", isbn="1", publish_year="1937"),
        Book("The Fellowship of the Ring", "J.R.R. Tolkien", isbn="2", publish_year="1954"),
        Book("The Silmarillion", "J.R.R. Tolkien", isbn="3", publish_year="1977"),
        Book("Tolkien: A Biography", "Humphrey Carpenter", isbn="4", publish_year="1977"),
        Book(None, "Anonymous", isbn="5", publish_year="1950"),
        Book("Hobbit Companion", None, isbn="6", publish_year="circa 1960"),
        Book("Farmer Giles", "J.R.R. Tolkien", isbn="7", publish_year=None),
        Book("The Two Towers", "J.R.R. Tolkien", isbn="8", publish_year=" 1954 "),
    ]


def isbns(books):
    return [book.isbn for book in books]


def test_filter_by_title_case_insensitive():
    assert isbns(filter_by_title(make_books(), "HOBBIT")) == ["1", "6"]


def test_filter_by_title_skips_missing_titles():
    """A book without title never matches and never raises."""
    assert "5" not in isbns(filter_by_title(make_books(), "a"))


def test_filter_by_author():
    assert isbns(filter_by_author(make_books(), "tolkien")) == ["1", "2", "3", "7", "8"]


def test_blank_term_keeps_everything():
    books = make_books()
    assert filter_by_title(books, "  ") == books
    assert filter_by_author(books, None) == books


def test_free_text_matches_title_or_author():
    assert isbns(filter_free_text(make_books(), "tolkien")) == ["1", "2", "3", "4", "7", "8"]


def test_filter_by_title_is_idempotent():
    books = make_books()
    once = filter_by_title(books, "the")
    assert filter_by_title(once, "the") == once


@pytest.mark.parametrize("term", ["the", "tolkien", "hobbit", "zzz"])
def test_filters_preserve_input_order(term):
    """Every filter returns a subsequence of its input."""
    books = make_books()
    positions = {book.isbn: i for i, book in enumerate(books)}
    for result in (
        filter_by_title(books, term),
        filter_by_author(books, term),
        filter_free_text(books, term),
        filter_by_year_range(books, 1900, 2000),
    ):
        order = [positions[book.isbn] for book in result]
        assert order == sorted(order)


@pytest.mark.parametrize("year_from,year_to,matches", [
    (1950, 1970, True),
    (1950, None, True),
    (None, 1970, True),
    (1950, 1950, True),
    (1951, 1970, False),
    (1900, 1949, False),
])
def test_year_range_boundaries(year_from, year_to, matches):
    book = Book("Some Book", "Someone", isbn="x", publish_year="1950")
    assert (filter_by_year_range([book], year_from, year_to) == [book]) is matches


def test_year_range_drops_non_numeric_years():
    """Missing or non-numeric years are excluded while a range is active."""
    result = filter_by_year_range(make_books(), 1900, 2000)
    assert isbns(result) == ["1", "2", "3", "4", "5", "8"]


def test_open_year_range_is_noop():
    books = make_books()
    assert filter_by_year_range(books) == books


def test_apply_query_filters():
    books = make_books()
    assert isbns(apply_query_filters(books, TitleOnly("hobbit"))) == ["1", "6"]
    assert isbns(apply_query_filters(books, AuthorOnly("carpenter"))) == ["4"]
    assert isbns(apply_query_filters(books, FreeText("hobbit"))) == ["1", "6"]
    assert isbns(apply_query_filters(books, AuthorWithYearRange("Tolkien", 1950, 1970))) == ["2", "8"]
    assert isbns(apply_query_filters(books, AuthorWithYearRange("", 1977, 1977))) == ["3", "4"]


def test_deduplicate_books_keeps_first():
    """Duplicates by identity are removed, first occurrence wins."""
    books = [
        Book("Book A", "X", isbn="1"),
        Book("Book B", "Y", isbn="2"),
        Book("Book A again", "X", isbn="1"),
        Book("No ISBN", "Z", id=7),
        Book("No ISBN again", "Z", id=7),
    ]

    unique = deduplicate_books(books)

    assert [book.title for book in unique] == ["Book A", "Book B", "No ISBN"]


def test_deduplicate_books_agrees_with_equality():
    """Dedup keeps exactly the books that compare unequal."""
    with_isbn = Book("A", "X", isbn="1", id=5)
    by_id = Book("A", "X", id=5)
    same_isbn = Book("A", "X", isbn="1", id=9)

    unique = deduplicate_books([with_isbn, by_id, same_isbn])

    assert unique == [with_isbn, by_id]
    assert with_isbn != by_id
    assert with_isbn == same_isbn
