"""
SQLite database for blog posts.

This module provides a simple SQLite-based persistence layer for posts. A
single ``BlogDatabase`` handle is created at startup and shared by all
requests; every operation opens its own short-lived connection.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import DuplicateSlugError
from .utils import generate_slug


# Default database path
DEFAULT_DB_PATH = Path("data/blog.db")

_POST_COLUMNS = (
    "title", "excerpt", "content", "featured_image", "author",
    "category", "tags", "featured", "published",
)


def _ensure_db_dir(db_path: Path) -> None:
    """Ensure the database directory exists."""
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _deserialize_datetime(s: str) -> Optional[datetime]:
    """Deserialize ISO format string to datetime."""
    if not s:
        return None
    return datetime.fromisoformat(s)


class BlogDatabase:
    """
    SQLite database for post persistence.

    Thread-safe: SQLite handles concurrent access with WAL mode.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        _ensure_db_dir(self.db_path)
        self._init_db()

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper settings."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS posts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    slug TEXT UNIQUE,
                    excerpt TEXT,
                    content TEXT,
                    featured_image TEXT,
                    author TEXT,
                    category TEXT,
                    tags TEXT,
                    featured BOOLEAN DEFAULT 0,
                    published BOOLEAN DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_posts_created_at
                ON posts(created_at DESC)
            """)

    def list_published(
        self,
        search: Optional[str] = None,
        category: Optional[str] = None,
        featured_only: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        List published posts, newest first.

        Args:
            search: Substring matched against title, content and excerpt
            category: Exact category to filter on
            featured_only: Restrict to featured posts
        """
        query = "SELECT * FROM posts WHERE published = 1"
        params: List[Any] = []

        if search:
            query += " AND (title LIKE ? OR content LIKE ? OR excerpt LIKE ?)"
            term = f"%{search}%"
            params.extend([term, term, term])

        if category:
            query += " AND category = ?"
            params.append(category)

        if featured_only:
            query += " AND featured = 1"

        query += " ORDER BY created_at DESC, id DESC"

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_dict(row) for row in rows]

    def list_featured(self, limit: int = 3) -> List[Dict[str, Any]]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM posts WHERE published = 1 AND featured = 1 "
                "ORDER BY created_at DESC, id DESC LIMIT ?",
                (limit,),
            ).fetchall()
            return [self._row_to_dict(row) for row in rows]

    def get_published_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM posts WHERE slug = ? AND published = 1", (slug,)
            ).fetchone()
            return self._row_to_dict(row) if row else None

    def list_categories(self) -> List[str]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT DISTINCT category FROM posts "
                "WHERE published = 1 AND category IS NOT NULL AND category != '' "
                "ORDER BY category"
            ).fetchall()
            return [row["category"] for row in rows]

    def list_all(self) -> List[Dict[str, Any]]:
        """List every post including drafts, newest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM posts ORDER BY created_at DESC, id DESC"
            ).fetchall()
            return [self._row_to_dict(row) for row in rows]

    def get_post(self, post_id: int) -> Optional[Dict[str, Any]]:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM posts WHERE id = ?", (post_id,)).fetchone()
            return self._row_to_dict(row) if row else None

    def create_post(self, data: Dict[str, Any]) -> Tuple[int, str]:
        """
        Insert a post and return its id and slug.

        Raises:
            DuplicateSlugError: Another post already has the derived slug
        """
        slug = generate_slug(data["title"])
        now = _utcnow()
        values = [self._column_value(data, column) for column in _POST_COLUMNS]

        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    f"INSERT INTO posts (slug, {', '.join(_POST_COLUMNS)}, created_at, updated_at) "
                    f"VALUES (?, {', '.join('?' for _ in _POST_COLUMNS)}, ?, ?)",
                    [slug, *values, now, now],
                )
                return cursor.lastrowid, slug
        except sqlite3.IntegrityError as exc:
            raise DuplicateSlugError(f"A post with slug '{slug}' already exists") from exc

    def update_post(self, post_id: int, data: Dict[str, Any]) -> Optional[str]:
        """
        Replace every editable field of a post and refresh its slug.

        Returns:
            The new slug, or None if the post does not exist
        """
        slug = generate_slug(data["title"])
        assignments = ", ".join(f"{column} = ?" for column in _POST_COLUMNS)
        values = [self._column_value(data, column) for column in _POST_COLUMNS]

        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    f"UPDATE posts SET slug = ?, {assignments}, updated_at = ? WHERE id = ?",
                    [slug, *values, _utcnow(), post_id],
                )
                if cursor.rowcount == 0:
                    return None
                return slug
        except sqlite3.IntegrityError as exc:
            raise DuplicateSlugError(f"A post with slug '{slug}' already exists") from exc

    def delete_post(self, post_id: int) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM posts WHERE id = ?", (post_id,))
            return cursor.rowcount > 0

    @staticmethod
    def _column_value(data: Dict[str, Any], column: str) -> Any:
        value = data.get(column)
        if column in ("featured", "published"):
            return 1 if value else 0
        return value

    def _row_to_dict(self, row: sqlite3.Row) -> Dict[str, Any]:
        """Convert a database row to a post dictionary."""
        return {
            "id": row["id"],
            "title": row["title"],
            "slug": row["slug"],
            "excerpt": row["excerpt"],
            "content": row["content"],
            "featured_image": row["featured_image"],
            "author": row["author"],
            "category": row["category"],
            "tags": row["tags"],
            "featured": bool(row["featured"]),
            "published": bool(row["published"]),
            "created_at": _deserialize_datetime(row["created_at"]),
            "updated_at": _deserialize_datetime(row["updated_at"]),
        }
