"""Async HTTP client for the catalog service."""
import asyncio
import httpx
from typing import List, Optional, Dict, Any
import logging

from booksearch.models import Book
from booksearch.parse import parse_books_response

logger = logging.getLogger(__name__)


class AsyncBookCatalogClient:
    """Async client for catalog searches and curated collections.

    Mirrors BookCatalogClient: None means the call failed, a list (possibly
    empty) means it succeeded.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080/api",
        timeout: int = 10,
        max_concurrent: int = 5,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize async client.

        Args:
            base_url: Service root
            timeout: Request timeout
            max_concurrent: Maximum concurrent requests
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.semaphore = asyncio.Semaphore(max_concurrent)

        # Create async HTTP client
        self.client = httpx.AsyncClient(
            base_url=self.base_url, timeout=timeout, transport=transport
        )

    async def _get_books(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None
    ) -> Optional[List[Book]]:
        """
        GET a catalog endpoint and parse the books in the response.

        Args:
            path: Path below the base URL
            params: Query parameters

        Returns:
            Parsed books or None on any failure
        """
        # Use semaphore to limit concurrency
        async with self.semaphore:
            try:
                logger.info(f"Async request: {path} {params or ''}")
                response = await self.client.get(path, params=params)

                if response.status_code == 200:
                    return parse_books_response(response.json())
                else:
                    logger.warning(f"Status {response.status_code} for {path}")
                    return None

            except httpx.HTTPError as e:
                logger.error(f"Async request failed: {e}")
                return None
            except ValueError as e:
                logger.error(f"Invalid JSON from {path}: {e}")
                return None

    async def all_books(self) -> Optional[List[Book]]:
        return await self._get_books("/books")

    async def search(self, query: str) -> Optional[List[Book]]:
        return await self._get_books("/books/search", {"q": query})

    async def search_title(self, title: str) -> Optional[List[Book]]:
        return await self._get_books("/books/search/title", {"q": title})

    async def search_author(self, author: str) -> Optional[List[Book]]:
        return await self._get_books("/books/search/author", {"q": author})

    async def search_author_year(
        self,
        author: str,
        year: Optional[int] = None
    ) -> Optional[List[Book]]:
        params = {"author": author}
        if year is not None:
            params["year"] = year
        return await self._get_books("/books/search/author-year", params)

    async def category(self, name: str) -> Optional[List[Book]]:
        return await self._get_books("/books/category", {"name": name})

    async def featured(self) -> Optional[List[Book]]:
        return await self._get_books("/books/featured")

    async def free(self) -> Optional[List[Book]]:
        return await self._get_books("/books/free")

    async def new_releases(self) -> Optional[List[Book]]:
        return await self._get_books("/books/new-releases")

    async def top_rated(self) -> Optional[List[Book]]:
        return await self._get_books("/books/top-rated")

    async def most_reviewed(self) -> Optional[List[Book]]:
        return await self._get_books("/books/most-reviewed")

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
