"""PostgreSQL rating store."""
import psycopg2
from psycopg2 import pool
from typing import Dict, Iterable, List, Optional
import logging

from booksearch.models import Rating

logger = logging.getLogger(__name__)

RATING_COLUMNS = """
    username, isbn, style, content, pleasantness, originality, edition,
    review, average, created_at
"""


def _row_to_rating(row) -> Rating:
    (username, isbn, style, content, pleasantness,
     originality, edition, review, average, created_at) = row
    return Rating(
        username=username,
        isbn=isbn,
        style=style,
        content=content,
        pleasantness=pleasantness,
        originality=originality,
        edition=edition,
        review=review,
        average=float(average) if average is not None else None,
        created_at=created_at,
    )


class Database:
    """PostgreSQL database with connection pooling, used as a rating store."""

    def __init__(self, connection_string: str, min_conn: int = 1, max_conn: int = 10):
        """
        Initialize database connection pool.

        Args:
            connection_string: PostgreSQL connection string
            min_conn: Minimum connections in pool
            max_conn: Maximum connections in pool
        """
        self.connection_pool = psycopg2.pool.SimpleConnectionPool(
            min_conn,
            max_conn,
            connection_string
        )
        logger.info("Database connection pool created successfully")

    def init_schema(self):
        """Create database tables if they don't exist."""
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS ratings (
                        id SERIAL PRIMARY KEY,
                        username VARCHAR(255) NOT NULL,
                        isbn VARCHAR(32) NOT NULL,
                        style SMALLINT NOT NULL CHECK (style BETWEEN 1 AND 5),
                        content SMALLINT NOT NULL CHECK (content BETWEEN 1 AND 5),
                        pleasantness SMALLINT NOT NULL CHECK (pleasantness BETWEEN 1 AND 5),
                        originality SMALLINT NOT NULL CHECK (originality BETWEEN 1 AND 5),
                        edition SMALLINT NOT NULL CHECK (edition BETWEEN 1 AND 5),
                        average NUMERIC(3, 2) NOT NULL,
                        review TEXT,
                        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                        UNIQUE (username, isbn)
                    )
                """)

                cur.execute("""
                    CREATE INDEX IF NOT EXISTS idx_ratings_isbn
                    ON ratings (isbn)
                """)

                conn.commit()
                logger.info("Database schema initialized successfully")

        finally:
            self.connection_pool.putconn(conn)

    def _fetch(self, where: str = "", params: tuple = ()) -> List[Rating]:
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT {RATING_COLUMNS} FROM ratings {where} ORDER BY created_at DESC",
                    params
                )
                return [_row_to_rating(row) for row in cur.fetchall()]
        finally:
            self.connection_pool.putconn(conn)

    def get(self, username: str, isbn: str) -> Optional[Rating]:
        """Get one user's rating of a book."""
        ratings = self._fetch(
            "WHERE username = %s AND isbn = %s",
            (username.strip().lower(), isbn.strip())
        )
        return ratings[0] if ratings else None

    def save(self, rating: Rating) -> Rating:
        """
        Insert a rating, or overwrite the existing one for (username, isbn).

        Args:
            rating: Validated rating

        Returns:
            The stored rating
        """
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute(f"""
                    INSERT INTO ratings (
                        username, isbn, style, content, pleasantness,
                        originality, edition, review, average, created_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, CURRENT_TIMESTAMP)
                    ON CONFLICT (username, isbn) DO UPDATE SET
                        style = EXCLUDED.style,
                        content = EXCLUDED.content,
                        pleasantness = EXCLUDED.pleasantness,
                        originality = EXCLUDED.originality,
                        edition = EXCLUDED.edition,
                        review = EXCLUDED.review,
                        average = EXCLUDED.average,
                        created_at = CURRENT_TIMESTAMP
                    RETURNING {RATING_COLUMNS}
                """, (
                    rating.username, rating.isbn, rating.style, rating.content,
                    rating.pleasantness, rating.originality, rating.edition,
                    rating.review, rating.average
                ))
                row = cur.fetchone()
                conn.commit()
                return _row_to_rating(row)
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Failed to save rating: {e}")
            raise
        finally:
            self.connection_pool.putconn(conn)

    def remove(self, username: str, isbn: str) -> bool:
        """Delete a rating. Returns True if a row was removed."""
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("""
                    DELETE FROM ratings
                    WHERE username = %s AND isbn = %s
                """, (username.strip().lower(), isbn.strip()))
                deleted = cur.rowcount
                conn.commit()
                return deleted > 0
        finally:
            self.connection_pool.putconn(conn)

    def ratings_for(self, isbn: str) -> List[Rating]:
        return self._fetch("WHERE isbn = %s", (isbn.strip(),))

    def user_ratings(self, username: str) -> List[Rating]:
        return self._fetch("WHERE username = %s", (username.strip().lower(),))

    def ratings_for_books(self, isbns: Iterable[str]) -> Dict[str, List[Rating]]:
        """Ratings for several books in one query, grouped by ISBN."""
        wanted = sorted({isbn.strip() for isbn in isbns})
        if not wanted:
            return {}

        grouped: Dict[str, List[Rating]] = {}
        for rating in self._fetch("WHERE isbn = ANY(%s)", (wanted,)):
            grouped.setdefault(rating.isbn, []).append(rating)
        return grouped

    def all_ratings(self) -> List[Rating]:
        return self._fetch()

    def close(self):
        """Close all connections in the pool."""
        if self.connection_pool:
            self.connection_pool.closeall()
            logger.info("Database connection pool closed")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
