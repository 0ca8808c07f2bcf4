"""Route parsed queries to the catalog, with a client-side fallback.

For each query the dispatcher first calls the narrowest catalog endpoint
for that query type. If the call fails it runs the general free-text
search instead and narrows the result locally with the filters the query
implies. Only when that also fails does the caller see an error.
"""
import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from booksearch.errors import SearchFailedError
from booksearch.filters import apply_query_filters, deduplicate_books
from booksearch.models import (
    Book,
    SearchQuery,
    FreeText,
    TitleOnly,
    AuthorOnly,
    AuthorWithYearRange,
)
from booksearch.navigation import (
    NavigationContext,
    FEATURED,
    FREE,
    NEW,
    SEARCH,
    ADVANCED_SEARCH,
)
from booksearch.query import parse_query, format_query

logger = logging.getLogger(__name__)

# Catalog client method behind each curated section
COLLECTION_ENDPOINTS = {
    FEATURED: "featured",
    FREE: "free",
    NEW: "new_releases",
}


@dataclass
class SearchResult:
    """Outcome of one dispatched query."""
    query: SearchQuery
    books: List[Book]
    section: str
    used_fallback: bool = False
    # True when a newer request for the same section finished first
    stale: bool = False


def section_for(query: SearchQuery) -> str:
    if isinstance(query, AuthorWithYearRange):
        return ADVANCED_SEARCH
    return SEARCH


class SearchDispatcher:
    """Runs searches against a catalog client and records results.

    ``client`` may be an AsyncBookCatalogClient or a blocking
    BookCatalogClient; blocking calls are moved to a worker thread.
    """

    def __init__(self, client, navigation: Optional[NavigationContext] = None, ratings=None):
        """
        Args:
            client: Catalog client (sync or async)
            navigation: Where result lists are recorded
            ratings: Optional RatingAggregator used to fill in book ratings
        """
        self.client = client
        self.navigation = navigation if navigation is not None else NavigationContext()
        self.ratings = ratings

    async def _call(self, name: str, *args) -> Optional[List[Book]]:
        method = getattr(self.client, name)
        if inspect.iscoroutinefunction(method):
            return await method(*args)
        return await asyncio.to_thread(method, *args)

    async def _enrich(self, books: List[Book]):
        # The rating store is blocking (psycopg2), so keep it off the event loop
        if self.ratings is not None and books:
            await asyncio.to_thread(self.ratings.enrich, books)

    async def search(self, raw: str, section: Optional[str] = None) -> Optional[SearchResult]:
        """
        Parse and run a raw query.

        Returns:
            The result, or None for a blank query (show the default view)
        """
        query = parse_query(raw)
        if query is None:
            return None
        return await self.execute(query, section)

    async def execute(self, query: SearchQuery, section: Optional[str] = None) -> SearchResult:
        """
        Run a parsed query.

        Args:
            query: Parsed query
            section: Navigation section to record the results under;
                defaults to "search", or "advancedSearch" for year queries

        Returns:
            SearchResult with the books in catalog order

        Raises:
            SearchFailedError: primary and fallback calls both failed
        """
        section = section or section_for(query)
        token = self.navigation.begin(section)
        used_fallback = False

        books = await self._primary(query)
        if books is None:
            logger.warning(f"Primary search failed for {format_query(query)!r}, falling back")
            used_fallback = True
            books = await self._fallback(query)
            if books is None:
                logger.error(f"Fallback search failed for {format_query(query)!r}")
                raise SearchFailedError(query, "catalog service unavailable")

        books = deduplicate_books(books)
        await self._enrich(books)

        stored = self.navigation.put(section, books, token=token)
        logger.info(f"Search {format_query(query)!r}: {len(books)} books")
        return SearchResult(query, books, section, used_fallback, stale=not stored)

    async def _primary(self, query: SearchQuery) -> Optional[List[Book]]:
        if isinstance(query, FreeText):
            return await self._call("search", query.term)

        if isinstance(query, TitleOnly):
            return await self._call("search_title", query.term)

        if isinstance(query, AuthorOnly):
            return await self._call("search_author", query.term)

        if isinstance(query, AuthorWithYearRange):
            # The catalog only filters author + single year; anything else
            # is narrowed here
            if not query.term:
                books = await self._call("all_books")
            elif query.year_from is not None and query.year_from == query.year_to:
                books = await self._call("search_author_year", query.term, query.year_from)
            else:
                books = await self._call("search_author", query.term)
            if books is None:
                return None
            return apply_query_filters(books, query)

        raise TypeError(f"Unknown query type: {type(query).__name__}")

    async def _fallback(self, query: SearchQuery) -> Optional[List[Book]]:
        books = await self._call("search", query.term)
        if books is None:
            return None
        return apply_query_filters(books, query)

    async def load_collection(self, section: str) -> List[Book]:
        """
        Load a curated section (featured, free, new) into the navigation context.

        Raises:
            KeyError: unknown section
            SearchFailedError: the catalog call failed
        """
        endpoint = COLLECTION_ENDPOINTS[section]
        token = self.navigation.begin(section)

        books = await self._call(endpoint)
        if books is None:
            raise SearchFailedError(section, f"could not load '{section}'")

        await self._enrich(books)
        self.navigation.put(section, books, token=token)
        return books

    async def load_collections(
        self,
        sections: Iterable[str] = (FEATURED, FREE, NEW)
    ) -> Dict[str, List[Book]]:
        """
        Load several sections in parallel.

        Returns:
            Books per section that loaded; failures are logged and left out
        """
        sections = list(sections)
        results = await asyncio.gather(
            *(self.load_collection(section) for section in sections),
            return_exceptions=True
        )

        loaded = {}
        for section, result in zip(sections, results):
            if isinstance(result, SearchFailedError):
                logger.error(f"Section '{section}' unavailable: {result.reason}")
            elif isinstance(result, BaseException):
                raise result
            else:
                loaded[section] = result
        return loaded

    def reset(self):
        """Drop all cached sections, e.g. after logging out."""
        self.navigation.clear()
