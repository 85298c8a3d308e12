"""Tests for controllers."""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from feedwatcher.controllers import (
    FeedAlreadyExistsError,
    FeedNotFoundError,
    add_feed,
    export_feeds,
    get_articles,
    get_feed,
    get_feed_log,
    import_feeds,
    refresh_feed,
    remove_feed,
    set_feed_disabled,
)
from feedwatcher.db import Database
from feedwatcher.downloader import DownloadError, FeedDownloader
from feedwatcher.models import DownloadedArticle, DownloadedFeed
from feedwatcher.opml import OpmlFeed, parse_opml


FEED_URL = "https://example.com/feed.xml"

SAMPLE_FEED = """<?xml version="1.0"?>
<rss version="2.0">
  <channel>
    <title>Example</title>
    <link>https://example.com/</link>
    <item><title>Post</title><link>https://example.com/post</link></item>
  </channel>
</rss>
"""


def _article(article_id="a-1") -> DownloadedArticle:
    return DownloadedArticle(
        article_id=article_id,
        title="Post",
        content="",
        published=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


class TestAddFeed:
    """Tests for add_feed controller."""

    def test_add_feed_with_title(self, db: Database):
        """Test adding a feed without downloading it."""
        downloader = Mock()

        feed = add_feed(db, FEED_URL, title="My Feed", downloader=downloader)

        assert feed.id is not None
        assert feed.title == "My Feed"
        assert feed.kind == "rss"
        downloader.download_feed.assert_not_called()

    def test_add_feed_reads_title(self, db: Database):
        """Test that a missing title is read from the feed."""
        downloader = Mock()
        downloader.download_feed.return_value = DownloadedFeed(
            title="Downloaded Title", link="https://example.com/"
        )

        feed = add_feed(db, FEED_URL, downloader=downloader)

        assert feed.title == "Downloaded Title"
        assert feed.html_url == "https://example.com/"
        downloader.download_feed.assert_called_once_with(FEED_URL, resolve_icon=False)

    def test_add_feed_download_error(self, db: Database):
        """Test that download errors propagate and nothing is stored."""
        downloader = Mock()
        downloader.download_feed.side_effect = DownloadError("Unable to download feed")

        with pytest.raises(DownloadError):
            add_feed(db, FEED_URL, downloader=downloader)

        assert db.list_feeds() == []

    def test_add_duplicate_feed(self, db: Database):
        """Test that adding the same URL twice raises an error."""
        add_feed(db, FEED_URL, title="First")

        with pytest.raises(FeedAlreadyExistsError) as exc_info:
            add_feed(db, FEED_URL, title="Second")

        assert exc_info.value.url == FEED_URL


class TestGetFeed:
    """Tests for get_feed controller."""

    def test_get_existing(self, db: Database):
        """Test getting a feed that exists."""
        feed = add_feed(db, FEED_URL, title="Example")
        assert get_feed(db, feed.id).url == FEED_URL

    def test_get_missing(self, db: Database):
        """Test that a missing feed raises an error."""
        with pytest.raises(FeedNotFoundError) as exc_info:
            get_feed(db, 42)

        assert exc_info.value.feed_id == 42
        assert str(exc_info.value) == "Feed 42 not found"


class TestRemoveFeed:
    """Tests for remove_feed controller."""

    def test_remove_feed(self, db: Database):
        """Test removing a feed and its articles."""
        feed = add_feed(db, FEED_URL, title="Example")
        db.upsert_article(feed.id, _article())

        removed = remove_feed(db, feed.id)

        assert removed.id == feed.id
        assert db.get_feed(feed.id) is None
        assert db.count_articles() == 0

    def test_remove_missing_feed(self, db: Database):
        """Test removing a feed that does not exist."""
        with pytest.raises(FeedNotFoundError):
            remove_feed(db, 999)


class TestSetFeedDisabled:
    """Tests for set_feed_disabled controller."""

    def test_disable_and_enable(self, db: Database):
        """Test toggling a feed's disabled flag."""
        feed = add_feed(db, FEED_URL, title="Example")

        assert set_feed_disabled(db, feed.id, True).disabled is True
        assert db.get_active_feeds() == []

        assert set_feed_disabled(db, feed.id, False).disabled is False
        assert len(db.get_active_feeds()) == 1

    def test_missing_feed(self, db: Database):
        """Test disabling a feed that does not exist."""
        with pytest.raises(FeedNotFoundError):
            set_feed_disabled(db, 999, True)


class TestRefreshFeed:
    """Tests for refresh_feed controller."""

    def test_refresh_single_feed(self, db: Database, fetcher):
        """Test that one feed is refreshed regardless of min_delay."""
        feed = add_feed(db, FEED_URL, title="Example")
        db.append_feed_log(feed.id, datetime.now(timezone.utc), True)
        fetcher.add(FEED_URL, SAMPLE_FEED)
        downloader = FeedDownloader(fetcher, Mock(resolve=Mock(return_value=None)))

        result = refresh_feed(db, downloader, feed.id)

        assert result.success
        assert result.articles == 1
        assert db.count_articles(feed.id) == 1
        assert len(db.get_feed_logs(feed.id)) == 2

    def test_refresh_disabled_feed(self, db: Database, fetcher):
        """Test that a disabled feed is not downloaded."""
        feed = add_feed(db, FEED_URL, title="Example")
        set_feed_disabled(db, feed.id, True)

        result = refresh_feed(db, FeedDownloader(fetcher), feed.id)

        assert not result.success
        assert result.error == "Feed is disabled"
        assert fetcher.calls == []

    def test_refresh_missing_feed(self, db: Database, fetcher):
        """Test refreshing a feed that does not exist."""
        with pytest.raises(FeedNotFoundError):
            refresh_feed(db, FeedDownloader(fetcher), 999)


class TestGetArticles:
    """Tests for get_articles controller."""

    def test_get_all_articles(self, db: Database):
        """Test getting all articles with feed titles."""
        feed = add_feed(db, FEED_URL, title="Example")
        db.upsert_article(feed.id, _article())

        articles, feed_titles = get_articles(db)

        assert len(articles) == 1
        assert feed_titles == {feed.id: "Example"}

    def test_filter_by_feed(self, db: Database):
        """Test filtering articles by feed."""
        first = add_feed(db, FEED_URL, title="Example")
        second = add_feed(db, "https://other.example.com/rss", title="Other")
        db.upsert_article(first.id, _article("one"))
        db.upsert_article(second.id, _article("two"))

        articles, _ = get_articles(db, feed_id=second.id)

        assert [a.article_id for a in articles] == ["two"]

    def test_filter_by_missing_feed(self, db: Database):
        """Test filtering by a feed that does not exist."""
        with pytest.raises(FeedNotFoundError):
            get_articles(db, feed_id=999)


class TestGetFeedLog:
    """Tests for get_feed_log controller."""

    def test_get_log(self, db: Database):
        """Test reading a feed's refresh log."""
        feed = add_feed(db, FEED_URL, title="Example")
        db.append_feed_log(feed.id, datetime.now(timezone.utc), False, "HTTP 404")

        [entry] = get_feed_log(db, feed.id)

        assert entry.message == "HTTP 404"
        assert not entry.success

    def test_missing_feed(self, db: Database):
        """Test reading the log of a feed that does not exist."""
        with pytest.raises(FeedNotFoundError):
            get_feed_log(db, 999)


class TestImportExport:
    """Tests for OPML import and export controllers."""

    def test_import_skips_existing_and_duplicates(self, db: Database):
        """Test that already subscribed and repeated URLs are skipped."""
        add_feed(db, FEED_URL, title="Existing")
        entries = [
            OpmlFeed(url=FEED_URL, title="Existing again"),
            OpmlFeed(url="https://new.example.com/rss", title="New"),
            OpmlFeed(url="https://new.example.com/rss", title="New again"),
            OpmlFeed(url="https://untitled.example.com/rss"),
        ]

        added = import_feeds(db, entries)

        assert [f.title for f in added] == ["New", "https://untitled.example.com/rss"]
        assert len(db.list_feeds()) == 3

    def test_export_round_trip(self, db: Database):
        """Test that exported subscriptions can be imported again."""
        add_feed(db, FEED_URL, title="Example")
        feed = add_feed(db, "https://other.example.com/rss", title="Other")
        feed.html_url = "https://other.example.com/"
        db.update_feed(feed)

        entries = parse_opml(export_feeds(db))

        assert {e.url for e in entries} == {FEED_URL, "https://other.example.com/rss"}
        other = next(e for e in entries if e.title == "Other")
        assert other.html_url == "https://other.example.com/"
