"""Data models for books, ratings and parsed search queries."""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Dict, Union

SCORE_FIELDS = ("style", "content", "pleasantness", "originality", "edition")
STAR_BUCKETS = (1, 2, 3, 4, 5)


def round_half_up(value: float, places: int = 2) -> float:
    """Round like a person would: 2.345 -> 2.35, 3.5 -> 4."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def empty_distribution() -> Dict[int, int]:
    return {stars: 0 for stars in STAR_BUCKETS}


@dataclass(eq=False)
class Book:
    """Catalog book. Identity is the ISBN, or the numeric id when no ISBN is known."""
    title: Optional[str]
    author: Optional[str]
    isbn: Optional[str] = None
    id: Optional[int] = None
    description: Optional[str] = None
    publish_year: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    price: Optional[float] = None
    is_free: bool = False
    is_new: bool = False
    publisher: Optional[str] = None
    language: Optional[str] = None
    pages: Optional[int] = None
    # Filled in after the fact from rating data, never sent back to the catalog
    average_rating: Optional[float] = None
    review_count: int = 0

    @property
    def identity(self):
        """Key used for equality, hashing and de-duplication."""
        if self.isbn:
            return ("isbn", self.isbn)
        return ("id", self.id)

    def __eq__(self, other):
        if not isinstance(other, Book):
            return NotImplemented
        return self.identity == other.identity

    def __hash__(self):
        return hash(self.identity)

    @property
    def year(self) -> Optional[int]:
        """Publication year as an int, or None when missing or not numeric."""
        if not self.publish_year:
            return None
        try:
            return int(self.publish_year.strip())
        except ValueError:
            return None

    @property
    def author_str(self) -> str:
        return self.author or "Unknown"


@dataclass
class Rating:
    """One user's rating of one book."""
    username: str
    isbn: str
    style: Optional[int] = None
    content: Optional[int] = None
    pleasantness: Optional[int] = None
    originality: Optional[int] = None
    edition: Optional[int] = None
    review: Optional[str] = None
    average: Optional[float] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        self.username = (self.username or "").strip().lower()
        self.isbn = (self.isbn or "").strip()
        if self.review is not None and not self.review.strip():
            self.review = None
        elif self.review is not None:
            self.review = self.review.strip()
        if self.average is None and self.is_complete:
            self.average = round_half_up(sum(self.scores.values()) / len(SCORE_FIELDS))

    @property
    def scores(self) -> Dict[str, Optional[int]]:
        return {name: getattr(self, name) for name in SCORE_FIELDS}

    @property
    def is_complete(self) -> bool:
        return all(score is not None for score in self.scores.values())

    @property
    def star_rating(self) -> int:
        """Whole stars for this rating: average rounded half-up into [1, 5], 0 if unrated."""
        if self.average is None or self.average <= 0:
            return 0
        stars = int(round_half_up(self.average, 0))
        return max(1, min(5, stars))

    @property
    def quality_label(self) -> str:
        if self.average is None or self.average <= 0:
            return "Not rated"
        if self.average >= 4.5:
            return "Excellent"
        if self.average >= 4.0:
            return "Very good"
        if self.average >= 3.5:
            return "Good"
        if self.average >= 3.0:
            return "Fair"
        if self.average >= 2.5:
            return "Sufficient"
        if self.average >= 2.0:
            return "Mediocre"
        return "Poor"


@dataclass
class RatingStatistics:
    """Aggregate rating figures for a single ISBN."""
    isbn: str
    average_rating: Optional[float] = None
    total_ratings: int = 0
    star_distribution: Dict[int, int] = field(default_factory=empty_distribution)
    average_style: Optional[float] = None
    average_content: Optional[float] = None
    average_pleasantness: Optional[float] = None
    average_originality: Optional[float] = None
    average_edition: Optional[float] = None

    @property
    def has_ratings(self) -> bool:
        return self.total_ratings > 0


@dataclass
class ReviewSummary:
    """Catalog-wide rating figures."""
    total_ratings: int = 0
    ratings_with_review: int = 0
    total_users: int = 0
    average_rating: Optional[float] = None
    star_distribution: Dict[int, int] = field(default_factory=empty_distribution)
    most_reviewed: List[str] = field(default_factory=list)


# --- Parsed search queries -------------------------------------------------

@dataclass(frozen=True)
class FreeText:
    """Match title OR author."""
    term: str


@dataclass(frozen=True)
class TitleOnly:
    term: str


@dataclass(frozen=True)
class AuthorOnly:
    term: str


@dataclass(frozen=True)
class AuthorWithYearRange:
    """Author filter (may be empty) plus inclusive, possibly open, year bounds."""
    term: str
    year_from: Optional[int] = None
    year_to: Optional[int] = None

    @property
    def has_year_bounds(self) -> bool:
        return self.year_from is not None or self.year_to is not None


SearchQuery = Union[FreeText, TitleOnly, AuthorOnly, AuthorWithYearRange]
