#!/usr/bin/env python3
"""Book Explorer CLI - catalog search and ratings."""
import argparse
import asyncio
import sys
import json
import logging
from typing import Optional

import psycopg2
from tabulate import tabulate
from booksearch.client import BookCatalogClient
from booksearch.async_client import AsyncBookCatalogClient
from booksearch.config import Config
from booksearch.database import Database
from booksearch.dispatcher import SearchDispatcher
from booksearch.errors import BookSearchError
from booksearch.models import Rating, STAR_BUCKETS
from booksearch.navigation import FEATURED, FREE, NEW
from booksearch.parse import book_to_dict
from booksearch.query import describe_query
from booksearch.ratings import RatingAggregator

logger = logging.getLogger(__name__)


def setup_database(config: Config) -> Database:
    """Initialize database."""
    db = Database(config.DATABASE_URL)
    db.init_schema()
    return db


async def run_search(dispatcher: SearchDispatcher, args):
    if args.command == "search":
        result = await dispatcher.search(args.query)
        if result is None:
            print("Empty query - nothing to search")
            return
        heading = describe_query(result.query)
        if result.used_fallback:
            heading += " (filtered locally)"
        print(f"\n{heading} ({len(result.books)})")
        display_books(result.books, args.format)
    else:
        books = await dispatcher.load_collection(args.section)
        display_books(books, args.format)


def optional_database(config: Config) -> Optional[Database]:
    """Database for rating enrichment, or None if PostgreSQL can't be reached."""
    try:
        return setup_database(config)
    except psycopg2.OperationalError as e:
        logger.warning(f"Ratings unavailable, searching without them: {e}")
        return None


def search_books(args, config: Config):
    """Search the catalog, or load a curated section."""
    db = optional_database(config)
    ratings = RatingAggregator(db, config.MIN_RATINGS_FOR_RANKING) if db is not None else None

    try:
        if args.use_async:
            async def run():
                async with AsyncBookCatalogClient(
                    base_url=config.CATALOG_BASE_URL,
                    timeout=config.DEFAULT_TIMEOUT,
                    max_concurrent=config.MAX_CONCURRENT_REQUESTS
                ) as client:
                    await run_search(SearchDispatcher(client, ratings=ratings), args)

            asyncio.run(run())
        else:
            with BookCatalogClient(
                base_url=config.CATALOG_BASE_URL,
                timeout=config.DEFAULT_TIMEOUT,
                max_retries=config.DEFAULT_MAX_RETRIES
            ) as client:
                asyncio.run(run_search(SearchDispatcher(client, ratings=ratings), args))

    finally:
        if db is not None:
            db.close()


def display_books(books, format_type: str):
    """Display books in specified format."""
    if format_type == "table":
        headers = ["ISBN", "Title", "Author", "Year", "Rating"]
        rows = [
            [
                book.isbn or book.id,
                (book.title or "")[:50] + "..." if len(book.title or "") > 50 else book.title,
                book.author_str[:30] + "..." if len(book.author_str) > 30 else book.author_str,
                book.publish_year or "Unknown",
                f"{book.average_rating:.2f} ({book.review_count})" if book.average_rating is not None else "-"
            ]
            for book in books
        ]
        print("\n" + tabulate(rows, headers=headers, tablefmt="grid"))

    elif format_type == "json":
        print(json.dumps([book_to_dict(book) for book in books], indent=2))

    elif format_type == "compact":
        for i, book in enumerate(books, 1):
            print(f"{i}. {book.title} - {book.author_str}")


def show_statistics(args, config: Config):
    """Show rating statistics for one book."""
    with setup_database(config) as db:
        stats = RatingAggregator(db, config.MIN_RATINGS_FOR_RANKING).statistics_for(args.isbn)

        print("\n" + "=" * 50)
        print(f"RATINGS FOR {args.isbn}")
        print("=" * 50)
        if not stats.has_ratings:
            print("No ratings yet")
            print("=" * 50 + "\n")
            return

        print(f"Average rating: {stats.average_rating:.2f} ({stats.total_ratings} ratings)")
        rows = [
            ["Style", stats.average_style],
            ["Content", stats.average_content],
            ["Pleasantness", stats.average_pleasantness],
            ["Originality", stats.average_originality],
            ["Edition", stats.average_edition],
        ]
        print(tabulate(rows, headers=["Criterion", "Average"], tablefmt="simple"))
        print()
        for stars in reversed(STAR_BUCKETS):
            print(f"{'★' * stars:<5} {stats.star_distribution[stars]}")
        print("=" * 50 + "\n")


def show_ranking(args, config: Config):
    """Show top-rated or most-reviewed ISBNs."""
    with setup_database(config) as db:
        ratings = RatingAggregator(db, config.MIN_RATINGS_FOR_RANKING)
        if args.command == "top":
            isbns = ratings.top_rated(args.limit)
        else:
            isbns = ratings.most_reviewed(args.limit)

        rows = []
        for position, isbn in enumerate(isbns, 1):
            stats = ratings.statistics_for(isbn)
            rows.append([position, isbn, stats.average_rating, stats.total_ratings])
        print("\n" + tabulate(rows, headers=["#", "ISBN", "Average", "Ratings"], tablefmt="grid"))


def show_summary(args, config: Config):
    """Show catalog-wide rating figures."""
    with setup_database(config) as db:
        summary = RatingAggregator(db, config.MIN_RATINGS_FOR_RANKING).review_summary()

        print("\n" + "=" * 50)
        print("RATING SUMMARY")
        print("=" * 50)
        print(f"Total ratings: {summary.total_ratings}")
        print(f"Ratings with a review: {summary.ratings_with_review}")
        print(f"Users: {summary.total_users}")
        print(f"Global average: {summary.average_rating if summary.average_rating is not None else '-'}")
        for stars in reversed(STAR_BUCKETS):
            print(f"{'★' * stars:<5} {summary.star_distribution[stars]}")
        if summary.most_reviewed:
            print(f"Most reviewed: {', '.join(summary.most_reviewed)}")
        print("=" * 50 + "\n")


def rate_book(args, config: Config):
    """Add or replace a rating."""
    with setup_database(config) as db:
        rating = Rating(
            username=args.username,
            isbn=args.isbn,
            style=args.style,
            content=args.content,
            pleasantness=args.pleasantness,
            originality=args.originality,
            edition=args.edition,
            review=args.review,
        )
        saved = RatingAggregator(db, config.MIN_RATINGS_FOR_RANKING).upsert(rating)
        print(f"✅ Saved rating {saved.average:.2f} ({saved.quality_label}) for {saved.isbn}")


def unrate_book(args, config: Config):
    """Delete a rating."""
    with setup_database(config) as db:
        if RatingAggregator(db).delete(args.username, args.isbn):
            print(f"✅ Deleted rating for {args.isbn}")
        else:
            print(f"No rating by {args.username} for {args.isbn}")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Book Explorer - catalog search and ratings CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Free-text search over title and author
  %(prog)s search "hobbit"

  # Author within a year range
  %(prog)s search "author:Tolkien year:1950-1970" --format compact

  # Curated section
  %(prog)s collection featured

  # Ratings
  %(prog)s rate alice 9780261103344 5 4 5 4 3 --review "Loved it"
  %(prog)s stats 9780261103344
  %(prog)s top --limit 5
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Search command
    search_parser = subparsers.add_parser("search", help="Search for books")
    search_parser.add_argument("query", help="Query: text, title-only:, author:, year:")
    search_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")
    search_parser.add_argument("--async", dest="use_async", action="store_true", help="Use async client")

    # Collection command
    collection_parser = subparsers.add_parser("collection", help="Show a curated section")
    collection_parser.add_argument("section", choices=[FEATURED, FREE, NEW])
    collection_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")
    collection_parser.add_argument("--async", dest="use_async", action="store_true", help="Use async client")

    # Stats command
    stats_parser = subparsers.add_parser("stats", help="Rating statistics for a book")
    stats_parser.add_argument("isbn")

    # Ranking commands
    for name, help_text in (("top", "Top-rated books"), ("most-reviewed", "Most-reviewed books")):
        ranking_parser = subparsers.add_parser(name, help=help_text)
        ranking_parser.add_argument("--limit", type=int, default=10, help="Max results (default: 10)")

    subparsers.add_parser("summary", help="Catalog-wide rating summary")

    # Rate command
    rate_parser = subparsers.add_parser("rate", help="Add or replace a rating")
    rate_parser.add_argument("username")
    rate_parser.add_argument("isbn")
    for criterion in ("style", "content", "pleasantness", "originality", "edition"):
        rate_parser.add_argument(criterion, type=int, help=f"{criterion} score (1-5)")
    rate_parser.add_argument("--review", help="Optional review text")

    unrate_parser = subparsers.add_parser("unrate", help="Delete a rating")
    unrate_parser.add_argument("username")
    unrate_parser.add_argument("isbn")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = Config()

    # Configure logging
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    commands = {
        "search": search_books,
        "collection": search_books,
        "stats": show_statistics,
        "top": show_ranking,
        "most-reviewed": show_ranking,
        "summary": show_summary,
        "rate": rate_book,
        "unrate": unrate_book,
    }

    try:
        commands[args.command](args, config)

    except KeyboardInterrupt:
        logger.info("\n⚠️  Interrupted by user")
        sys.exit(0)
    except BookSearchError as e:
        logger.error(f"❌ {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"❌ Error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
