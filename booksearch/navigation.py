"""Snapshots of the last result list shown in each section.

Used to answer "which list does this book belong to?" when the user steps
to the next or previous book from a detail view.
"""
import itertools
import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from booksearch.models import Book

logger = logging.getLogger(__name__)

FEATURED = "featured"
FREE = "free"
NEW = "new"
SEARCH = "search"
ADVANCED_SEARCH = "advancedSearch"

# Sections are searched in this order when resolving a book
SECTION_PRIORITY = (FEATURED, FREE, NEW, SEARCH, ADVANCED_SEARCH)


class NavigationContext:
    """Named, ordered, copy-on-write book lists.

    Snapshots are stored as tuples and only ever replaced whole, as is the
    mapping holding them, so a reader never sees a half-written list. Writers that run asynchronously should
    take a token from ``begin()`` and pass it to ``put()``; a write carrying
    a token older than the newest one issued for that section is dropped.
    """

    def __init__(self):
        self._snapshots: Dict[str, Tuple[Book, ...]] = {}
        self._latest: Dict[str, int] = {}
        self._sequence = itertools.count(1)
        self._lock = threading.Lock()

    def begin(self, section: str) -> int:
        """Issue a request token for a load that will write ``section``."""
        with self._lock:
            token = next(self._sequence)
            self._latest[section] = token
            return token

    def is_current(self, section: str, token: int) -> bool:
        with self._lock:
            return self._latest.get(section) == token

    def put(self, section: str, books: Iterable[Book], token: Optional[int] = None) -> bool:
        """
        Replace a section's snapshot with a copy of ``books``.

        Args:
            section: Section name
            books: Books in display order
            token: Token from begin(); None writes unconditionally

        Returns:
            True if the snapshot was stored, False if it was stale
        """
        snapshot = tuple(books)
        with self._lock:
            if token is not None and self._latest.get(section) != token:
                logger.info(f"Discarding stale results for '{section}' (request {token})")
                return False
            # Readers iterate the mapping without the lock; swap in a new one
            self._snapshots = {**self._snapshots, section: snapshot}
        logger.debug(f"Cached {len(snapshot)} books under '{section}'")
        return True

    def get(self, section: str) -> List[Book]:
        return list(self._snapshots.get(section, ()))

    def sections(self) -> List[str]:
        """Known sections in resolution order."""
        snapshots = self._snapshots
        ordered = [name for name in SECTION_PRIORITY if name in snapshots]
        ordered.extend(name for name in snapshots if name not in SECTION_PRIORITY)
        return ordered

    def resolve(self, book: Book) -> Tuple[Optional[str], List[Book]]:
        """
        Find the list a book was shown in.

        Returns:
            (section, books) for the first section containing the book, or
            (None, [book]) when no section does
        """
        snapshots = self._snapshots
        for section in self.sections():
            snapshot = snapshots.get(section, ())
            if book in snapshot:
                return section, list(snapshot)
        return None, [book]

    def neighbours(self, book: Book) -> Tuple[Optional[Book], Optional[Book]]:
        """Previous and next book around ``book`` in its resolved list."""
        _, books = self.resolve(book)
        index = books.index(book)
        previous = books[index - 1] if index > 0 else None
        following = books[index + 1] if index + 1 < len(books) else None
        return previous, following

    def clear(self):
        """Forget every snapshot and invalidate in-flight loads."""
        with self._lock:
            self._snapshots = {}
            self._latest = {}
        logger.info("Navigation context cleared")
