"""SQLite database operations for FeedWatcher."""

import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from .config import config
from .models import Article, DownloadedArticle, Feed, FeedLog


class FeedStore(Protocol):
    """The persistence operations the feed refresh pipeline depends on."""

    def get_active_feeds(self) -> list[Feed]: ...

    def get_last_update(self, feed_id: int) -> Optional[datetime]: ...

    def upsert_article(self, feed_id: int, article: DownloadedArticle) -> None: ...

    def update_feed_icon(self, feed_id: int, icon: str) -> None: ...

    def append_feed_log(
        self, feed_id: int, time: datetime, success: bool, message: Optional[str] = None
    ) -> None: ...


class Database:
    """SQLite database interface for FeedWatcher.

    Implements FeedStore. A single connection is shared between threads and
    guarded by a lock.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize database connection.

        Args:
            db_path: Path to the SQLite database file. Defaults to the
                configured FEEDWATCHER_DB_PATH
        """
        self.db_path = db_path or config.DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        return self._conn

    def _init_db(self) -> None:
        """Create tables if they don't exist."""
        with self._lock:
            conn = self._get_conn()
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS feeds (
                    id INTEGER PRIMARY KEY,
                    url TEXT NOT NULL UNIQUE,
                    title TEXT NOT NULL,
                    kind TEXT NOT NULL DEFAULT 'rss',
                    disabled BOOLEAN NOT NULL DEFAULT FALSE,
                    icon TEXT,
                    html_url TEXT
                );

                CREATE TABLE IF NOT EXISTS articles (
                    id INTEGER PRIMARY KEY,
                    feed_id INTEGER NOT NULL,
                    article_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL DEFAULT '',
                    link TEXT,
                    published TIMESTAMP NOT NULL,
                    FOREIGN KEY (feed_id) REFERENCES feeds(id) ON DELETE CASCADE,
                    UNIQUE (feed_id, article_id)
                );

                CREATE TABLE IF NOT EXISTS feed_logs (
                    id INTEGER PRIMARY KEY,
                    feed_id INTEGER NOT NULL,
                    time TIMESTAMP NOT NULL,
                    success BOOLEAN NOT NULL,
                    message TEXT,
                    FOREIGN KEY (feed_id) REFERENCES feeds(id) ON DELETE CASCADE
                );

                CREATE INDEX IF NOT EXISTS feed_logs_feed_time ON feed_logs (feed_id, time);
            """)
            conn.commit()

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    # Feed operations

    def add_feed(self, feed: Feed) -> Feed:
        """Add a new feed subscription.

        Args:
            feed: Feed object to add (id will be ignored)

        Returns:
            Feed object with assigned id
        """
        with self._lock:
            conn = self._get_conn()
            cursor = conn.execute(
                """
                INSERT INTO feeds (url, title, kind, disabled, icon, html_url)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (feed.url, feed.title, feed.kind, feed.disabled, feed.icon, feed.html_url),
            )
            conn.commit()
        feed.id = cursor.lastrowid
        return feed

    def get_feed(self, feed_id: int) -> Optional[Feed]:
        """Get a feed by id, or None if not found."""
        with self._lock:
            row = self._get_conn().execute("SELECT * FROM feeds WHERE id = ?", (feed_id,)).fetchone()
        return self._row_to_feed(row) if row else None

    def get_feed_by_url(self, url: str) -> Optional[Feed]:
        """Get a feed by URL, or None if not found."""
        with self._lock:
            row = self._get_conn().execute("SELECT * FROM feeds WHERE url = ?", (url,)).fetchone()
        return self._row_to_feed(row) if row else None

    def list_feeds(self) -> list[Feed]:
        """List all subscribed feeds, including disabled ones."""
        with self._lock:
            rows = self._get_conn().execute("SELECT * FROM feeds ORDER BY title").fetchall()
        return [self._row_to_feed(row) for row in rows]

    def get_active_feeds(self) -> list[Feed]:
        """List feeds that aren't disabled."""
        with self._lock:
            rows = self._get_conn().execute(
                "SELECT * FROM feeds WHERE disabled = 0 ORDER BY title"
            ).fetchall()
        return [self._row_to_feed(row) for row in rows]

    def update_feed(self, feed: Feed) -> None:
        """Update an existing feed.

        Args:
            feed: Feed object with updated fields
        """
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                """
                UPDATE feeds
                SET url = ?, title = ?, kind = ?, disabled = ?, icon = ?, html_url = ?
                WHERE id = ?
                """,
                (feed.url, feed.title, feed.kind, feed.disabled, feed.icon, feed.html_url, feed.id),
            )
            conn.commit()

    def update_feed_icon(self, feed_id: int, icon: str) -> None:
        """Set a feed's icon."""
        with self._lock:
            conn = self._get_conn()
            conn.execute("UPDATE feeds SET icon = ? WHERE id = ?", (icon, feed_id))
            conn.commit()

    def set_feed_disabled(self, feed_id: int, disabled: bool) -> bool:
        """Enable or disable a feed.

        Returns:
            True if the feed was updated, False if not found
        """
        with self._lock:
            conn = self._get_conn()
            cursor = conn.execute(
                "UPDATE feeds SET disabled = ? WHERE id = ?", (disabled, feed_id)
            )
            conn.commit()
        return cursor.rowcount > 0

    def remove_feed(self, feed_id: int) -> bool:
        """Remove a feed with its articles and log.

        Returns:
            True if feed was removed, False if not found
        """
        with self._lock:
            conn = self._get_conn()
            conn.execute("DELETE FROM articles WHERE feed_id = ?", (feed_id,))
            conn.execute("DELETE FROM feed_logs WHERE feed_id = ?", (feed_id,))
            cursor = conn.execute("DELETE FROM feeds WHERE id = ?", (feed_id,))
            conn.commit()
        return cursor.rowcount > 0

    def _row_to_feed(self, row: sqlite3.Row) -> Feed:
        """Convert a database row to a Feed object."""
        return Feed(
            id=row["id"],
            url=row["url"],
            title=row["title"],
            kind=row["kind"],
            disabled=bool(row["disabled"]),
            icon=row["icon"],
            html_url=row["html_url"],
        )

    # Article operations

    def upsert_article(self, feed_id: int, article: DownloadedArticle) -> None:
        """Insert an article, or update it if the feed already has its article_id.

        Args:
            feed_id: The feed the article belongs to
            article: The downloaded article
        """
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                """
                INSERT INTO articles (feed_id, article_id, title, content, link, published)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (feed_id, article_id) DO UPDATE SET
                    title = excluded.title,
                    content = excluded.content,
                    link = excluded.link,
                    published = excluded.published
                """,
                (
                    feed_id,
                    article.article_id,
                    article.title,
                    article.content,
                    article.link,
                    _format_datetime(article.published),
                ),
            )
            conn.commit()

    def get_article_by_article_id(self, feed_id: int, article_id: str) -> Optional[Article]:
        """Get a feed's article by its external id, or None if not found."""
        with self._lock:
            row = self._get_conn().execute(
                "SELECT * FROM articles WHERE feed_id = ? AND article_id = ?",
                (feed_id, article_id),
            ).fetchone()
        return self._row_to_article(row) if row else None

    def list_articles(self, feed_id: Optional[int] = None) -> list[Article]:
        """List articles, newest first.

        Args:
            feed_id: If provided, only return articles from this feed

        Returns:
            List of Article objects
        """
        query = "SELECT * FROM articles WHERE 1=1"
        params: list = []

        if feed_id is not None:
            query += " AND feed_id = ?"
            params.append(feed_id)

        query += " ORDER BY published DESC, id DESC"
        with self._lock:
            rows = self._get_conn().execute(query, params).fetchall()
        return [self._row_to_article(row) for row in rows]

    def count_articles(self, feed_id: Optional[int] = None) -> int:
        """Count stored articles, optionally for one feed."""
        query = "SELECT COUNT(*) FROM articles"
        params: list = []
        if feed_id is not None:
            query += " WHERE feed_id = ?"
            params.append(feed_id)
        with self._lock:
            return self._get_conn().execute(query, params).fetchone()[0]

    def _row_to_article(self, row: sqlite3.Row) -> Article:
        """Convert a database row to an Article object."""
        return Article(
            id=row["id"],
            feed_id=row["feed_id"],
            article_id=row["article_id"],
            title=row["title"],
            content=row["content"],
            link=row["link"],
            published=self._parse_datetime(row["published"]),
        )

    # Feed log operations

    def append_feed_log(
        self, feed_id: int, time: datetime, success: bool, message: Optional[str] = None
    ) -> None:
        """Record a refresh attempt for a feed."""
        with self._lock:
            conn = self._get_conn()
            conn.execute(
                "INSERT INTO feed_logs (feed_id, time, success, message) VALUES (?, ?, ?, ?)",
                (feed_id, _format_datetime(time), success, message),
            )
            conn.commit()

    def get_last_update(self, feed_id: int) -> Optional[datetime]:
        """Get the time of the most recent refresh attempt for a feed."""
        with self._lock:
            row = self._get_conn().execute(
                "SELECT time FROM feed_logs WHERE feed_id = ? ORDER BY time DESC LIMIT 1",
                (feed_id,),
            ).fetchone()
        return self._parse_datetime(row["time"]) if row else None

    def get_feed_logs(self, feed_id: Optional[int] = None) -> list[FeedLog]:
        """List refresh log entries, oldest first.

        Args:
            feed_id: If provided, only return entries for this feed
        """
        query = "SELECT * FROM feed_logs"
        params: list = []
        if feed_id is not None:
            query += " WHERE feed_id = ?"
            params.append(feed_id)
        query += " ORDER BY time, id"
        with self._lock:
            rows = self._get_conn().execute(query, params).fetchall()
        return [self._row_to_feed_log(row) for row in rows]

    def _row_to_feed_log(self, row: sqlite3.Row) -> FeedLog:
        """Convert a database row to a FeedLog object."""
        return FeedLog(
            id=row["id"],
            feed_id=row["feed_id"],
            time=self._parse_datetime(row["time"]),
            success=bool(row["success"]),
            message=row["message"],
        )

    @staticmethod
    def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
        """Parse a datetime string from the database."""
        if value is None:
            return None
        try:
            return datetime.fromisoformat(value)
        except (ValueError, TypeError):
            return None


def _format_datetime(value: datetime) -> str:
    """Format a datetime for storage as a sortable UTC ISO-8601 string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")
