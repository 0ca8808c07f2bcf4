"""HTTP clients for the catalog and rating services with resilience patterns."""
import time
import random
import requests
from typing import Optional, Dict, Any, List
import logging

from booksearch.models import Book, Rating, RatingStatistics
from booksearch.parse import (
    parse_books_response,
    parse_ratings_response,
    parse_statistics,
    rating_to_payload,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8080/api"


class ServiceClient:
    """Shared request plumbing: timeouts, retries, and backoff."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: int = 10,
        max_retries: int = 3,
        base_backoff: float = 1.0
    ):
        """
        Initialize client.

        Args:
            base_url: Service root, e.g. http://localhost:8080/api
            timeout: Request timeout in seconds
            max_retries: Maximum number of retry attempts
            base_backoff: Base delay for exponential backoff
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_backoff = base_backoff

        # Create session for connection pooling
        self.session = requests.Session()

    def _make_request_with_retry(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None
    ) -> Optional[Any]:
        """
        Make HTTP request with retry logic.

        Args:
            method: HTTP method
            path: Path below the base URL
            params: Query parameters
            json: JSON request body

        Returns:
            Decoded response body or None if all retries exhausted
        """
        url = f"{self.base_url}{path}"

        for attempt in range(self.max_retries):
            try:
                logger.info(f"Request attempt {attempt + 1}/{self.max_retries}: {method} {url}")

                response = self.session.request(
                    method,
                    url,
                    params=params,
                    json=json,
                    timeout=self.timeout
                )

                if 200 <= response.status_code < 300:
                    logger.info(f"Success: {response.status_code}")
                    return response.json() if response.content else {}

                elif response.status_code == 429:
                    # Rate limited - must retry with backoff
                    logger.warning(f"Rate limited (429) on attempt {attempt + 1}")
                    if attempt < self.max_retries - 1:
                        self._backoff(attempt)
                        continue

                elif response.status_code >= 500:
                    # Server error - retryable
                    logger.warning(f"Server error ({response.status_code}) on attempt {attempt + 1}")
                    if attempt < self.max_retries - 1:
                        self._backoff(attempt)
                        continue

                elif response.status_code >= 400:
                    # Client error - don't retry
                    logger.error(f"Client error ({response.status_code}): {response.text}")
                    return None

            except requests.exceptions.Timeout:
                logger.warning(f"Timeout on attempt {attempt + 1}")
                if attempt < self.max_retries - 1:
                    self._backoff(attempt)
                    continue

            except requests.exceptions.ConnectionError as e:
                logger.warning(f"Connection error on attempt {attempt + 1}: {e}")
                if attempt < self.max_retries - 1:
                    self._backoff(attempt)
                    continue

            except ValueError as e:
                logger.error(f"Invalid JSON from {url}: {e}")
                return None

        logger.error(f"All {self.max_retries} attempts failed")
        return None

    def _backoff(self, attempt: int):
        """
        Sleep with exponential backoff and jitter.

        Args:
            attempt: Current attempt number (0-indexed)
        """
        # Exponential backoff: base * 2^attempt
        delay = self.base_backoff * (2 ** attempt)

        # Add jitter: random value between 0 and delay
        jitter = random.uniform(0, delay)
        total_delay = delay + jitter

        logger.info(f"Backing off for {total_delay:.2f} seconds")
        time.sleep(total_delay)

    def close(self):
        """Close the session."""
        self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class BookCatalogClient(ServiceClient):
    """Blocking client for the book catalog endpoints.

    Every method returns None when the service could not be reached, and a
    (possibly empty) list of books otherwise.
    """

    def _books(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[List[Book]]:
        response = self._make_request_with_retry("GET", path, params=params)
        if response is None:
            return None
        return parse_books_response(response)

    def all_books(self) -> Optional[List[Book]]:
        return self._books("/books")

    def search(self, query: str) -> Optional[List[Book]]:
        """Free-text search over title and author."""
        return self._books("/books/search", {"q": query})

    def search_title(self, title: str) -> Optional[List[Book]]:
        return self._books("/books/search/title", {"q": title})

    def search_author(self, author: str) -> Optional[List[Book]]:
        return self._books("/books/search/author", {"q": author})

    def search_author_year(self, author: str, year: Optional[int] = None) -> Optional[List[Book]]:
        params = {"author": author}
        if year is not None:
            params["year"] = year
        return self._books("/books/search/author-year", params)

    def category(self, name: str) -> Optional[List[Book]]:
        return self._books("/books/category", {"name": name})

    def featured(self) -> Optional[List[Book]]:
        return self._books("/books/featured")

    def free(self) -> Optional[List[Book]]:
        return self._books("/books/free")

    def new_releases(self) -> Optional[List[Book]]:
        return self._books("/books/new-releases")

    def top_rated(self) -> Optional[List[Book]]:
        return self._books("/books/top-rated")

    def most_reviewed(self) -> Optional[List[Book]]:
        return self._books("/books/most-reviewed")


class RatingServiceClient(ServiceClient):
    """Blocking client for the remote rating endpoints."""

    def add_rating(self, rating: Rating) -> bool:
        """Submit (insert or overwrite) a rating. Returns True if accepted."""
        response = self._make_request_with_retry(
            "POST", "/ratings/add", json=rating_to_payload(rating)
        )
        return response is not None and bool(response.get("success", True))

    def ratings_for_book(self, isbn: str) -> Optional[List[Rating]]:
        response = self._make_request_with_retry("GET", f"/ratings/book/{isbn}")
        if response is None:
            return None
        return parse_ratings_response(response)

    def user_ratings(self, username: str) -> Optional[List[Rating]]:
        response = self._make_request_with_retry("GET", f"/ratings/user/{username}")
        if response is None:
            return None
        return parse_ratings_response(response)

    def statistics(self, isbn: str) -> Optional[RatingStatistics]:
        response = self._make_request_with_retry("GET", f"/ratings/book/{isbn}/statistics")
        if response is None:
            return None
        return parse_statistics(isbn, response)

    def average(self, isbn: str) -> Optional[float]:
        """Average rating, or None when the book has no ratings (or on failure)."""
        response = self._make_request_with_retry("GET", f"/ratings/book/{isbn}/average")
        if isinstance(response, dict):
            response = response.get("averageRating")
        if isinstance(response, (int, float)) and not isinstance(response, bool):
            return float(response)
        return None

    def delete_rating(self, username: str, isbn: str) -> bool:
        response = self._make_request_with_retry(
            "DELETE", f"/ratings/user/{username}/book/{isbn}"
        )
        return response is not None and bool(response.get("success", True))
