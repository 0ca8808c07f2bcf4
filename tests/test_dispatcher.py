"""Tests for search dispatch and fallback."""
import asyncio
import threading
from dataclasses import replace

import pytest

from booksearch.dispatcher import SearchDispatcher
from booksearch.errors import SearchFailedError
from booksearch.models import Book, Rating, FreeText, TitleOnly, AuthorOnly, AuthorWithYearRange
from booksearch.navigation import NavigationContext, SEARCH, ADVANCED_SEARCH, FEATURED, FREE, NEW
from booksearch.ratings import RatingAggregator, InMemoryRatingStore

CATALOG = [
    Book("The Hobbit", "J.R.R. Tolkien", isbn="1", publish_year="1937"),
    Book("The Fellowship of the Ring", "J.R.R. Tolkien", isbn="2", publish_year="1954"),
    Book("The Return of the King", "J.R.R. Tolkien", isbn="3", publish_year="1955"),
    Book("The Silmarillion", "J.R.R. Tolkien", isbn="4", publish_year="1977"),
    Book("Hobbit Lore", "Hobbit Fan Club", isbn="5", publish_year="1960"),
    Book("Tolkien and the Hobbits", "Someone Else", isbn="6", publish_year="1965"),
]


def contains(value, term):
    return value is not None and term.lower() in value.lower()


class FakeCatalog:
    """In-memory async catalog; methods named in ``failing`` return None."""

    def __init__(self, books=CATALOG, failing=()):
        self.books = list(books)
        self.failing = set(failing)
        self.calls = []

    def _answer(self, name, result):
        self.calls.append(name)
        if name in self.failing:
            return None
        return [replace(book) for book in result]

    async def all_books(self):
        return self._answer("all_books", self.books)

    async def search(self, query):
        return self._answer("search", [
            b for b in self.books if contains(b.title, query) or contains(b.author, query)
        ])

    async def search_title(self, title):
        return self._answer("search_title", [b for b in self.books if contains(b.title, title)])

    async def search_author(self, author):
        return self._answer("search_author", [b for b in self.books if contains(b.author, author)])

    async def search_author_year(self, author, year=None):
        return self._answer("search_author_year", [
            b for b in self.books
            if contains(b.author, author) and (year is None or b.year == year)
        ])

    async def featured(self):
        return self._answer("featured", self.books[:2])

    async def free(self):
        return self._answer("free", self.books[2:4])

    async def new_releases(self):
        return self._answer("new_releases", self.books[4:])


class BlockingCatalog:
    """Synchronous catalog, like BookCatalogClient."""

    def __init__(self):
        self.calls = []

    def search(self, query):
        self.calls.append("search")
        return [b for b in CATALOG if contains(b.title, query) or contains(b.author, query)]


def isbns(books):
    return [book.isbn for book in books]


def test_author_with_year_range_uses_author_search_then_filters():
    """author:Tolkien year:1950-1970 -> author search, narrowed by year."""
    catalog = FakeCatalog()
    dispatcher = SearchDispatcher(catalog)

    result = asyncio.run(dispatcher.search("author:Tolkien year:1950-1970"))

    assert result.query == AuthorWithYearRange("Tolkien", 1950, 1970)
    assert catalog.calls == ["search_author"]
    assert isbns(result.books) == ["2", "3"]
    assert result.section == ADVANCED_SEARCH
    assert not result.used_fallback
    assert isbns(dispatcher.navigation.get(ADVANCED_SEARCH)) == ["2", "3"]


def test_single_year_uses_author_year_endpoint():
    catalog = FakeCatalog()
    result = asyncio.run(SearchDispatcher(catalog).execute(AuthorWithYearRange("Tolkien", 1954, 1954)))

    assert catalog.calls == ["search_author_year"]
    assert isbns(result.books) == ["2"]


def test_year_only_filters_full_catalog():
    catalog = FakeCatalog()
    result = asyncio.run(SearchDispatcher(catalog).search("year:1960-"))

    assert catalog.calls == ["all_books"]
    assert isbns(result.books) == [b.isbn for b in CATALOG if b.year >= 1960]


def test_title_only_falls_back_to_free_text_and_filters():
    """When the title endpoint fails, author-only matches are filtered out."""
    catalog = FakeCatalog(failing={"search_title"})
    dispatcher = SearchDispatcher(catalog)

    result = asyncio.run(dispatcher.search("title-only:Hobbit"))

    assert catalog.calls == ["search_title", "search"]
    assert result.used_fallback
    assert isbns(result.books) == ["1", "5", "6"]
    assert all("hobbit" in b.title.lower() for b in result.books)
    assert result.section == SEARCH


def test_author_fallback_filters_by_author():
    catalog = FakeCatalog(failing={"search_author"})
    result = asyncio.run(SearchDispatcher(catalog).execute(AuthorOnly("hobbit")))

    assert result.used_fallback
    assert isbns(result.books) == ["5"]


def test_year_query_fallback_applies_full_filter_chain():
    catalog = FakeCatalog(failing={"search_author"})
    result = asyncio.run(SearchDispatcher(catalog).execute(AuthorWithYearRange("Tolkien", 1950, 1960)))

    assert catalog.calls == ["search_author", "search"]
    assert isbns(result.books) == ["2", "3"]


def test_total_failure_raises_and_leaves_navigation_untouched():
    catalog = FakeCatalog(failing={"search_title", "search"})
    navigation = NavigationContext()
    navigation.put(SEARCH, [CATALOG[0]])
    dispatcher = SearchDispatcher(catalog, navigation)

    with pytest.raises(SearchFailedError) as excinfo:
        asyncio.run(dispatcher.execute(TitleOnly("Hobbit")))

    assert excinfo.value.query == TitleOnly("Hobbit")
    assert isbns(navigation.get(SEARCH)) == ["1"]


def test_empty_result_is_success():
    result = asyncio.run(SearchDispatcher(FakeCatalog()).execute(FreeText("nothing like this")))
    assert result.books == []
    assert not result.used_fallback


def test_blank_query_returns_none():
    catalog = FakeCatalog()
    assert asyncio.run(SearchDispatcher(catalog).search("   ")) is None
    assert catalog.calls == []


def test_same_query_twice_gives_same_results():
    dispatcher = SearchDispatcher(FakeCatalog())
    first = asyncio.run(dispatcher.search("tolkien"))
    second = asyncio.run(dispatcher.search("tolkien"))
    assert isbns(first.books) == isbns(second.books)


def test_blocking_client_runs_in_thread():
    catalog = BlockingCatalog()
    result = asyncio.run(SearchDispatcher(catalog).execute(FreeText("silmarillion")))

    assert catalog.calls == ["search"]
    assert isbns(result.books) == ["4"]


def test_results_are_enriched_with_ratings():
    store = InMemoryRatingStore([
        Rating("alice", "2", 5, 5, 5, 5, 5),
        Rating("bob", "2", 3, 3, 3, 3, 3),
    ])
    dispatcher = SearchDispatcher(FakeCatalog(), ratings=RatingAggregator(store))

    result = asyncio.run(dispatcher.execute(TitleOnly("fellowship")))

    assert result.books[0].average_rating == 4.0
    assert result.books[0].review_count == 2


def test_late_response_is_marked_stale():
    """A slow older search doesn't overwrite a newer one."""

    class SlowFirstCatalog(FakeCatalog):
        async def search(self, query):
            if query == "slow":
                await asyncio.sleep(0.05)
            return await super().search(query if query != "slow" else "hobbit")

    dispatcher = SearchDispatcher(SlowFirstCatalog())

    async def run():
        return await asyncio.gather(
            dispatcher.execute(FreeText("slow")),
            dispatcher.execute(FreeText("silmarillion")),
        )

    slow, fast = asyncio.run(run())

    assert slow.stale
    assert not fast.stale
    assert isbns(dispatcher.navigation.get(SEARCH)) == ["4"]


def test_load_collections():
    catalog = FakeCatalog(failing={"free"})
    dispatcher = SearchDispatcher(catalog)

    loaded = asyncio.run(dispatcher.load_collections())

    assert set(loaded) == {FEATURED, NEW}
    assert isbns(dispatcher.navigation.get(FEATURED)) == ["1", "2"]
    assert dispatcher.navigation.get(FREE) == []


def test_load_collection_failure_raises():
    dispatcher = SearchDispatcher(FakeCatalog(failing={"featured"}))
    with pytest.raises(SearchFailedError):
        asyncio.run(dispatcher.load_collection(FEATURED))


def test_reset_clears_navigation():
    dispatcher = SearchDispatcher(FakeCatalog())
    asyncio.run(dispatcher.load_collection(NEW))

    dispatcher.reset()

    assert dispatcher.navigation.sections() == []


def test_enrichment_runs_off_the_event_loop_in_one_lookup():
    """A blocking rating store is queried once, from a worker thread."""

    class RecordingStore(InMemoryRatingStore):
        def __init__(self, ratings):
            super().__init__(ratings)
            self.lookups = []

        def ratings_for(self, isbn):
            raise AssertionError("enrichment should use the batched lookup")

        def ratings_for_books(self, isbns):
            self.lookups.append((sorted(isbns), threading.get_ident()))
            return super().ratings_for_books(isbns)

    store = RecordingStore([Rating("alice", "1", 4, 4, 4, 4, 4)])
    dispatcher = SearchDispatcher(FakeCatalog(), ratings=RatingAggregator(store))

    async def run():
        loop_thread = threading.get_ident()
        result = await dispatcher.execute(FreeText("tolkien"))
        return loop_thread, result

    loop_thread, result = asyncio.run(run())

    assert len(store.lookups) == 1
    looked_up, worker_thread = store.lookups[0]
    assert looked_up == ["1", "2", "3", "4", "6"]
    assert worker_thread != loop_thread
    assert result.books[0].average_rating == 4.0
