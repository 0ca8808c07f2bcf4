"""Rating storage contract and aggregate statistics.

A rating store is any object with these methods (``Database`` and
``InMemoryRatingStore`` both qualify):

    get(username, isbn) -> Optional[Rating]
    save(rating) -> Rating          insert, or overwrite the (username, isbn) row
    remove(username, isbn) -> bool
    ratings_for(isbn) -> List[Rating]
    ratings_for_books(isbns) -> Dict[str, List[Rating]]   one lookup for many books
    user_ratings(username) -> List[Rating]
    all_ratings() -> List[Rating]
"""
import logging
from collections import defaultdict
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from booksearch.errors import RatingValidationError, ValidationReason
from booksearch.models import (
    Book,
    Rating,
    RatingStatistics,
    ReviewSummary,
    SCORE_FIELDS,
    empty_distribution,
    round_half_up,
)

logger = logging.getLogger(__name__)

MIN_SCORE = 1
MAX_SCORE = 5


def validate_rating(rating: Rating):
    """
    Reject incomplete or out-of-range submissions.

    Raises:
        RatingValidationError: with the first problem found
    """
    if not rating.username:
        raise RatingValidationError(ValidationReason.MISSING_USERNAME, "username")
    if not rating.isbn:
        raise RatingValidationError(ValidationReason.MISSING_ISBN, "isbn")

    for name, score in rating.scores.items():
        if score is None:
            raise RatingValidationError(ValidationReason.MISSING_SCORE, name)
        if isinstance(score, bool) or not isinstance(score, int) or not MIN_SCORE <= score <= MAX_SCORE:
            raise RatingValidationError(ValidationReason.SCORE_OUT_OF_RANGE, name)


def _newest_first(ratings: Iterable[Rating]) -> List[Rating]:
    return sorted(ratings, key=lambda r: r.created_at or datetime.min, reverse=True)


class InMemoryRatingStore:
    """Rating store backed by a dict keyed on (username, isbn)."""

    def __init__(self, ratings: Iterable[Rating] = ()):
        self._ratings: Dict[Tuple[str, str], Rating] = {}
        for rating in ratings:
            self.save(rating)

    def get(self, username: str, isbn: str) -> Optional[Rating]:
        return self._ratings.get((username.strip().lower(), isbn.strip()))

    def save(self, rating: Rating) -> Rating:
        stored = replace(rating)
        self._ratings[(stored.username, stored.isbn)] = stored
        return stored

    def remove(self, username: str, isbn: str) -> bool:
        return self._ratings.pop((username.strip().lower(), isbn.strip()), None) is not None

    def ratings_for(self, isbn: str) -> List[Rating]:
        isbn = isbn.strip()
        return _newest_first(r for r in self._ratings.values() if r.isbn == isbn)

    def ratings_for_books(self, isbns: Iterable[str]) -> Dict[str, List[Rating]]:
        wanted = {isbn.strip() for isbn in isbns}
        grouped = defaultdict(list)
        for rating in _newest_first(self._ratings.values()):
            if rating.isbn in wanted:
                grouped[rating.isbn].append(rating)
        return dict(grouped)

    def user_ratings(self, username: str) -> List[Rating]:
        username = username.strip().lower()
        return _newest_first(r for r in self._ratings.values() if r.username == username)

    def all_ratings(self) -> List[Rating]:
        return list(self._ratings.values())

    def __len__(self):
        return len(self._ratings)


class RatingAggregator:
    """Computes per-book statistics and rankings from a rating store."""

    def __init__(self, store, min_ratings_for_ranking: int = 2):
        """
        Args:
            store: Rating store (see module docstring)
            min_ratings_for_ranking: Books with fewer ratings are left out of top_rated
        """
        self.store = store
        self.min_ratings_for_ranking = min_ratings_for_ranking

    # --- writes ---------------------------------------------------------

    def upsert(self, rating: Rating) -> Rating:
        """
        Store a rating, replacing the user's previous rating for the book.

        The average is recomputed from the five scores and the timestamp
        refreshed.

        Raises:
            RatingValidationError: nothing is stored
        """
        validate_rating(rating)
        rating = replace(
            rating,
            average=round_half_up(sum(rating.scores.values()) / len(SCORE_FIELDS)),
            created_at=datetime.now(),
        )

        existing = self.store.get(rating.username, rating.isbn)
        saved = self.store.save(rating)
        action = "Updated" if existing else "Added"
        logger.info(f"{action} rating {saved.average} for {saved.isbn} by {saved.username}")
        return saved

    def delete(self, username: str, isbn: str) -> bool:
        """Remove a rating. Returns False if there was nothing to remove."""
        removed = self.store.remove(username, isbn)
        if removed:
            logger.info(f"Deleted rating for {isbn} by {username}")
        return removed

    # --- reads ----------------------------------------------------------

    def ratings_for(self, isbn: str) -> List[Rating]:
        return self.store.ratings_for(isbn)

    def user_ratings(self, username: str) -> List[Rating]:
        return self.store.user_ratings(username)

    def rating_of(self, username: str, isbn: str) -> Optional[Rating]:
        return self.store.get(username, isbn)

    def average_for(self, isbn: str) -> Optional[float]:
        """Mean of the ratings' averages to 2 decimals, None if unrated."""
        averages = [r.average for r in self.store.ratings_for(isbn) if r.average is not None]
        if not averages:
            return None
        return round_half_up(sum(averages) / len(averages))

    def statistics_for(self, isbn: str) -> RatingStatistics:
        """
        Full statistics for one book.

        An unrated book gets a zero-valued object: no average, no ratings,
        an empty star histogram.
        """
        return self._statistics(isbn, self.store.ratings_for(isbn))

    def _statistics(self, isbn: str, ratings: Iterable[Rating]) -> RatingStatistics:
        ratings = [r for r in ratings if r.average is not None]
        if not ratings:
            return RatingStatistics(isbn=isbn)

        count = len(ratings)
        distribution = empty_distribution()
        for rating in ratings:
            stars = rating.star_rating
            if stars:
                distribution[stars] += 1

        def mean_of(name: str) -> Optional[float]:
            # Imported rows may carry an average without the sub-scores
            values = [getattr(r, name) for r in ratings if getattr(r, name) is not None]
            if not values:
                return None
            return round_half_up(sum(values) / len(values))

        stats = RatingStatistics(
            isbn=isbn,
            average_rating=mean_of("average"),
            total_ratings=count,
            star_distribution=distribution,
            average_style=mean_of("style"),
            average_content=mean_of("content"),
            average_pleasantness=mean_of("pleasantness"),
            average_originality=mean_of("originality"),
            average_edition=mean_of("edition"),
        )
        logger.debug(f"Statistics for {isbn}: {stats.average_rating} over {count} ratings")
        return stats

    def _grouped(self) -> Dict[str, List[float]]:
        grouped = defaultdict(list)
        for rating in self.store.all_ratings():
            if rating.average is not None:
                grouped[rating.isbn].append(rating.average)
        return grouped

    def top_rated(self, limit: int = 10) -> List[str]:
        """
        ISBNs by mean rating, highest first.

        Books below the minimum rating count are excluded; ties go to the
        book with more ratings.
        """
        ranked = [
            (sum(averages) / len(averages), len(averages), isbn)
            for isbn, averages in self._grouped().items()
            if len(averages) >= self.min_ratings_for_ranking
        ]
        ranked.sort(key=lambda entry: (-entry[0], -entry[1], entry[2]))
        return [isbn for _, _, isbn in ranked[:limit]]

    def most_reviewed(self, limit: int = 10) -> List[str]:
        """ISBNs by number of ratings, ties broken by mean rating."""
        ranked = [
            (len(averages), sum(averages) / len(averages), isbn)
            for isbn, averages in self._grouped().items()
        ]
        ranked.sort(key=lambda entry: (-entry[0], -entry[1], entry[2]))
        return [isbn for _, _, isbn in ranked[:limit]]

    def enrich(self, books: Iterable[Book]) -> None:
        """
        Set average_rating and review_count on each book in place.

        Reads the ratings for all the books with a single store lookup.
        Blocking; async callers run it in a worker thread.
        """
        books = [book for book in books if book.isbn]
        if not books:
            return
        grouped = self.store.ratings_for_books({book.isbn for book in books})
        for book in books:
            stats = self._statistics(book.isbn, grouped.get(book.isbn.strip(), []))
            book.average_rating = stats.average_rating
            book.review_count = stats.total_ratings

    def review_summary(self, top: int = 5) -> ReviewSummary:
        """Catalog-wide figures for an overview page."""
        ratings = [r for r in self.store.all_ratings() if r.average is not None]
        if not ratings:
            return ReviewSummary()

        distribution = empty_distribution()
        for rating in ratings:
            stars = rating.star_rating
            if stars:
                distribution[stars] += 1

        return ReviewSummary(
            total_ratings=len(ratings),
            ratings_with_review=sum(1 for r in ratings if r.review),
            total_users=len({r.username for r in ratings}),
            average_rating=round_half_up(sum(r.average for r in ratings) / len(ratings)),
            star_distribution=distribution,
            most_reviewed=self.most_reviewed(top),
        )
