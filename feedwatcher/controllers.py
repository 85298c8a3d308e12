"""Business logic controllers for FeedWatcher."""

from typing import Optional

from .db import Database
from .downloader import FeedDownloader, RefreshResult
from .models import Article, Feed, FeedLog
from .opml import OpmlFeed, build_opml


class FeedNotFoundError(Exception):
    """Raised when a feed is not found."""

    def __init__(self, feed_id: int):
        self.feed_id = feed_id
        super().__init__(f"Feed {feed_id} not found")


class FeedAlreadyExistsError(Exception):
    """Raised when trying to subscribe to a URL that is already subscribed."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Feed with URL '{url}' already exists")


def get_feed(db: Database, feed_id: int) -> Feed:
    """Get a feed by id.

    Raises:
        FeedNotFoundError: If feed not found
    """
    feed = db.get_feed(feed_id)
    if not feed:
        raise FeedNotFoundError(feed_id)
    return feed


def add_feed(
    db: Database,
    url: str,
    title: Optional[str] = None,
    kind: str = "rss",
    downloader: Optional[FeedDownloader] = None,
) -> Feed:
    """Subscribe to a feed.

    If no title is given the feed is downloaded once to read its title and
    home page link.

    Args:
        db: Database instance
        url: Feed URL
        title: Optional feed title
        kind: Feed format family hint
        downloader: Downloader used when the title must be looked up

    Returns:
        The created Feed

    Raises:
        FeedAlreadyExistsError: If a feed with the same URL exists
        DownloadError: If the title must be looked up and the feed can't be downloaded
    """
    if db.get_feed_by_url(url):
        raise FeedAlreadyExistsError(url)

    html_url = None
    if not title:
        downloaded = (downloader or FeedDownloader()).download_feed(url, resolve_icon=False)
        title = downloaded.title
        html_url = downloaded.link

    feed = Feed(id=None, url=url, title=title, kind=kind, html_url=html_url)
    return db.add_feed(feed)


def remove_feed(db: Database, feed_id: int) -> Feed:
    """Unsubscribe from a feed, deleting its articles and log.

    Raises:
        FeedNotFoundError: If feed not found
    """
    feed = get_feed(db, feed_id)
    db.remove_feed(feed_id)
    return feed


def set_feed_disabled(db: Database, feed_id: int, disabled: bool) -> Feed:
    """Enable or disable a feed.

    Disabled feeds are skipped by refreshes.

    Raises:
        FeedNotFoundError: If feed not found
    """
    feed = get_feed(db, feed_id)
    if feed.disabled != disabled:
        db.set_feed_disabled(feed_id, disabled)
        feed.disabled = disabled
    return feed


def refresh_feed(db: Database, downloader: FeedDownloader, feed_id: int) -> RefreshResult:
    """Refresh one feed immediately, regardless of when it was last updated.

    Raises:
        FeedNotFoundError: If feed not found
    """
    feed = get_feed(db, feed_id)
    results = downloader.refresh_feeds(db, 0, feeds=[feed])
    if not results:
        return RefreshResult(feed=feed, success=False, error="Feed is disabled")
    return results[0]


def get_articles(
    db: Database,
    feed_id: Optional[int] = None,
) -> tuple[list[Article], dict[int, str]]:
    """Get articles with an optional feed filter.

    Returns:
        Tuple of (articles list, feed_id -> feed title mapping)

    Raises:
        FeedNotFoundError: If feed_id provided but not found
    """
    if feed_id is not None:
        get_feed(db, feed_id)

    articles = db.list_articles(feed_id=feed_id)
    feed_titles = {f.id: f.title for f in db.list_feeds()}

    return articles, feed_titles


def get_feed_log(db: Database, feed_id: Optional[int] = None) -> list[FeedLog]:
    """Get refresh log entries, for one feed or all feeds.

    Raises:
        FeedNotFoundError: If feed_id provided but not found
    """
    if feed_id is not None:
        get_feed(db, feed_id)

    return db.get_feed_logs(feed_id)


def import_feeds(db: Database, feeds: list[OpmlFeed]) -> list[Feed]:
    """Subscribe to imported feeds, skipping URLs that are already subscribed.

    Returns:
        List of feeds that were added
    """
    added = []
    seen_urls: set[str] = set()

    for entry in feeds:
        if entry.url in seen_urls or db.get_feed_by_url(entry.url):
            continue
        seen_urls.add(entry.url)

        feed = Feed(id=None, url=entry.url, title=entry.title or entry.url, html_url=entry.html_url)
        added.append(db.add_feed(feed))

    return added


def export_feeds(db: Database) -> str:
    """Export all subscriptions as an OPML document."""
    return build_opml(db.list_feeds())
