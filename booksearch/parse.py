"""Parse and normalize catalog and rating service responses."""
import logging
from datetime import datetime
from typing import Dict, Any, List, Optional

from booksearch.models import Book, Rating, RatingStatistics, empty_distribution

logger = logging.getLogger(__name__)

# JSON keys of the rating breakdown, by star count
BREAKDOWN_KEYS = {
    5: "fiveStars",
    4: "fourStars",
    3: "threeStars",
    2: "twoStars",
    1: "oneStar",
}


def _optional_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _optional_float(value) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


def parse_book(item: Dict[str, Any]) -> Optional[Book]:
    """
    Parse a single book from the catalog service.

    Args:
        item: One book object from a catalog response

    Returns:
        Book object or None if the item has no usable identity
    """
    try:
        isbn = (item.get("isbn") or "").strip() or None
        book_id = _optional_int(item.get("id"))
        if isbn is None and book_id is None:
            return None

        publish_year = item.get("publishYear")
        if publish_year is not None:
            publish_year = str(publish_year)

        return Book(
            title=item.get("title"),
            author=item.get("author"),
            isbn=isbn,
            id=book_id,
            description=item.get("description"),
            publish_year=publish_year,
            category=item.get("category"),
            image_url=item.get("imageUrl"),
            price=_optional_float(item.get("price")),
            is_free=bool(item.get("isFree", False)),
            is_new=bool(item.get("isNew", False)),
            publisher=item.get("publisher"),
            language=item.get("language"),
            pages=_optional_int(item.get("pages")),
        )
    except (AttributeError, TypeError, ValueError) as e:
        # Log but don't crash - one bad record shouldn't sink a result page
        logger.warning(f"Failed to parse book: {e}")
        return None


def parse_books_response(response_json: Any) -> Optional[List[Book]]:
    """
    Parse a catalog response into books.

    The catalog answers with a bare JSON array; a wrapping object with a
    ``books`` key is accepted as well.

    Args:
        response_json: Decoded response body

    Returns:
        List of Book objects (empty if no items found), or None if the body
        is not a list or an object, which callers treat as a failed request
    """
    if isinstance(response_json, dict):
        items = response_json.get("books") or []
    elif response_json is None or isinstance(response_json, list):
        items = response_json or []
    else:
        logger.warning(f"Unexpected catalog response: {type(response_json).__name__}")
        return None

    if not isinstance(items, list):
        logger.warning(f"Unexpected 'books' value: {type(items).__name__}")
        return None

    books = []
    for item in items:
        book = parse_book(item) if isinstance(item, dict) else None
        if book:
            books.append(book)

    return books


def _parse_timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        logger.warning(f"Unparseable rating timestamp: {value}")
        return None


def parse_rating(item: Dict[str, Any]) -> Optional[Rating]:
    """Parse one rating record; None if it lacks a username or ISBN."""
    try:
        if not item.get("username") or not item.get("isbn"):
            return None
        return Rating(
            username=item["username"],
            isbn=item["isbn"],
            style=_optional_int(item.get("style")),
            content=_optional_int(item.get("content")),
            pleasantness=_optional_int(item.get("pleasantness")),
            originality=_optional_int(item.get("originality")),
            edition=_optional_int(item.get("edition")),
            review=item.get("review"),
            average=_optional_float(item.get("average")),
            created_at=_parse_timestamp(item.get("data")),
        )
    except (AttributeError, TypeError, ValueError) as e:
        logger.warning(f"Failed to parse rating: {e}")
        return None


def parse_ratings_response(response_json: Dict[str, Any]) -> List[Rating]:
    """Parse the ``ratings`` list of a rating service response."""
    ratings = []
    for item in response_json.get("ratings") or []:
        rating = parse_rating(item)
        if rating:
            ratings.append(rating)
    return ratings


def parse_statistics(isbn: str, response_json: Dict[str, Any]) -> RatingStatistics:
    """
    Parse a statistics response.

    A response without ratings yields the zero-valued statistics object.
    """
    total = _optional_int(response_json.get("totalRatings")) or 0
    if total == 0:
        return RatingStatistics(isbn=isbn)

    breakdown = response_json.get("ratingBreakdown") or {}
    distribution = empty_distribution()
    for stars, key in BREAKDOWN_KEYS.items():
        distribution[stars] = _optional_int(breakdown.get(key)) or 0

    return RatingStatistics(
        isbn=isbn,
        average_rating=_optional_float(response_json.get("averageRating")),
        total_ratings=total,
        star_distribution=distribution,
        average_style=_optional_float(breakdown.get("averageStyle")),
        average_content=_optional_float(breakdown.get("averageContent")),
        average_pleasantness=_optional_float(breakdown.get("averagePleasantness")),
        average_originality=_optional_float(breakdown.get("averageOriginality")),
        average_edition=_optional_float(breakdown.get("averageEdition")),
    )


def rating_to_payload(rating: Rating) -> Dict[str, Any]:
    """Request body for submitting a rating."""
    payload = {"username": rating.username, "isbn": rating.isbn}
    payload.update(rating.scores)
    if rating.review:
        payload["review"] = rating.review
    return payload


def book_to_dict(book: Book) -> Dict[str, Any]:
    """Plain dict for JSON output."""
    return {
        "isbn": book.isbn,
        "id": book.id,
        "title": book.title,
        "author": book.author,
        "publish_year": book.publish_year,
        "category": book.category,
        "average_rating": book.average_rating,
        "review_count": book.review_count,
    }
