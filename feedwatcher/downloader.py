"""Feed downloading and refresh logic for FeedWatcher."""

import logging
from concurrent.futures import Executor, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Generic, Iterable, Iterator, Optional, TypeVar, Union
from urllib.parse import urljoin, urlparse

from .db import FeedStore
from .fetcher import FetchError, HttpFetcher
from .icons import IconResolver
from .identity import identify_article
from .models import DownloadedArticle, DownloadedFeed, Feed
from .rss import ParsedFeed, ParsedItem, UnparseableFeedError, parse_feed_document
from .sanitizer import sanitize

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class FeedState(Enum):
    """Stages of a single feed's refresh."""

    IDLE = "idle"
    FETCHING = "fetching"
    PARSING = "parsing"
    PERSISTING = "persisting"
    LOGGED_SUCCESS = "logged-success"
    LOGGED_FAILURE = "logged-failure"


@dataclass
class Settled(Generic[T, R]):
    """The outcome of one task: either a value or the error it raised."""

    item: T
    value: Optional[R] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def settle(executor: Executor, fn: Callable[[T], R], items: Iterable[T]) -> Iterator[Settled[T, R]]:
    """Run fn for every item and yield each outcome as it completes.

    A task that raises produces a Settled with its error; it never cancels
    or interrupts the other tasks.
    """
    futures = {executor.submit(fn, item): item for item in items}

    for future in as_completed(futures):
        item = futures[future]
        try:
            value = future.result()
        except Exception as e:
            outcome = Settled(item, error=e)
        else:
            outcome = Settled(item, value=value)
        yield outcome


@dataclass
class RefreshResult:
    """Result of refreshing a single feed."""

    feed: Feed
    success: bool
    articles: int = 0
    error: Optional[str] = None
    state: FeedState = FeedState.IDLE


class FeedDownloader:
    """Downloads feeds and stores their articles."""

    def __init__(
        self,
        fetcher: Optional[HttpFetcher] = None,
        icon_resolver: Optional[IconResolver] = None,
    ):
        self.fetcher = fetcher or HttpFetcher()
        self.icon_resolver = icon_resolver or IconResolver(self.fetcher)

    def download_feed(self, url: str, resolve_icon: bool = True) -> DownloadedFeed:
        """Download a feed and normalize it.

        Args:
            url: URL of the feed document
            resolve_icon: Whether to look for the feed's icon

        Returns:
            DownloadedFeed with sanitized articles

        Raises:
            DownloadError: If the feed cannot be fetched or parsed
        """
        try:
            _enter(url, FeedState.FETCHING)
            response = self.fetcher.fetch(url)
            if response.status != 200:
                raise DownloadError(f"Error downloading feed {url}: HTTP {response.status}")

            _enter(url, FeedState.PARSING)
            parsed = parse_feed_document(response.content, response.url or url)
        except (FetchError, UnparseableFeedError) as e:
            logger.warning(f"Error downloading feed {url}: {e}")
            raise DownloadError(f"Unable to download feed {url}: {e}", cause=e) from e

        icon = self._resolve_icon(parsed) if resolve_icon else None
        now = datetime.now(timezone.utc)
        articles = [self._to_article(item, parsed, now) for item in parsed.items]

        logger.debug(f"Processed feed {url} ({len(articles)} articles)")
        return DownloadedFeed(
            title=parsed.title or url,
            link=parsed.link,
            icon=icon,
            articles=articles,
        )

    def refresh_feeds(
        self,
        store: FeedStore,
        min_delay: Union[timedelta, float] = 0,
        feeds: Optional[list[Feed]] = None,
        now: Optional[datetime] = None,
    ) -> list[RefreshResult]:
        """Refresh all active feeds that haven't been updated recently.

        Each due feed is downloaded in its own task. A feed's failure is
        recorded in its log and never affects the other feeds. Exactly one
        log entry is appended per attempted feed.

        Args:
            store: Where feeds are read from and articles written to
            min_delay: Minimum time since a feed's last update, as a timedelta
                or seconds
            feeds: Feeds to consider instead of the store's active feeds
            now: The reference time for min_delay, defaults to now

        Returns:
            List of RefreshResult for each attempted feed
        """
        logger.info("Refreshing feeds...")
        if not isinstance(min_delay, timedelta):
            min_delay = timedelta(seconds=min_delay)
        now = now or datetime.now(timezone.utc)

        if feeds is None:
            feeds = store.get_active_feeds()
        due = [feed for feed in feeds if not feed.disabled and _is_due(store, feed, now, min_delay)]

        results: list[RefreshResult] = []
        if due:
            with ThreadPoolExecutor(max_workers=len(due), thread_name_prefix="feed") as executor:
                for outcome in settle(executor, self._download_for_refresh, due):
                    results.append(self._record(store, outcome))

        succeeded = sum(1 for result in results if result.success)
        logger.info(f"Finished refreshing feeds ({succeeded}/{len(results)} succeeded)")
        return results

    def _download_for_refresh(self, feed: Feed) -> DownloadedFeed:
        logger.debug(f"Starting feed {feed.title}")
        return self.download_feed(feed.url, resolve_icon=not feed.icon)

    def _record(self, store: FeedStore, outcome: Settled[Feed, DownloadedFeed]) -> RefreshResult:
        """Persist a settled download and append its log entry."""
        feed = outcome.item
        error = outcome.error

        if outcome.ok:
            downloaded = outcome.value
            try:
                _enter(feed.url, FeedState.PERSISTING)
                self._persist(store, feed, downloaded)
                store.append_feed_log(feed.id, datetime.now(timezone.utc), True)
                _enter(feed.url, FeedState.LOGGED_SUCCESS)
                return RefreshResult(
                    feed=feed,
                    success=True,
                    articles=len(downloaded.articles),
                    state=FeedState.LOGGED_SUCCESS,
                )
            except Exception as e:
                logger.warning(f"Error storing feed {feed.url}: {e}")
                error = e

        message = str(error) or type(error).__name__
        try:
            store.append_feed_log(feed.id, datetime.now(timezone.utc), False, message)
        except Exception:
            logger.exception(f"Error logging refresh failure for {feed.url}")
        _enter(feed.url, FeedState.LOGGED_FAILURE)

        return RefreshResult(
            feed=feed,
            success=False,
            error=message,
            state=FeedState.LOGGED_FAILURE,
        )

    @staticmethod
    def _persist(store: FeedStore, feed: Feed, downloaded: DownloadedFeed) -> None:
        if downloaded.icon:
            store.update_feed_icon(feed.id, downloaded.icon)
            logger.debug(f"Updated icon for {feed.url}")

        for article in downloaded.articles:
            store.upsert_article(feed.id, article)

    def _resolve_icon(self, parsed: ParsedFeed) -> Optional[str]:
        try:
            return self.icon_resolver.resolve(parsed)
        except Exception as e:
            logger.warning(f"Error getting icon for {parsed.title}: {e}")
            return None

    @staticmethod
    def _to_article(item: ParsedItem, parsed: ParsedFeed, now: datetime) -> DownloadedArticle:
        content = item.content or item.summary or ""
        link = item.link
        if link and not _is_absolute_http(link) and _is_absolute_http(parsed.link):
            link = urljoin(parsed.link, link)
        base_link = link if _is_absolute_http(link) else parsed.link

        return DownloadedArticle(
            article_id=identify_article(item),
            title=item.title or "Untitled",
            content=sanitize(content, base_link),
            link=link,
            published=item.published or now,
        )


def _is_due(store: FeedStore, feed: Feed, now: datetime, min_delay: timedelta) -> bool:
    """Return True if a feed's last update is older than min_delay."""
    try:
        last_update = store.get_last_update(feed.id)
    except Exception as e:
        logger.warning(f"Error reading last update for {feed.url}: {e}")
        return True

    logger.debug(f"Last update for {feed.title}: {last_update}")
    if last_update is None:
        return True

    if last_update.tzinfo is None:
        last_update = last_update.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    if now - last_update >= min_delay:
        return True

    logger.debug(f"Skipping feed {feed.title}")
    return False


def _is_absolute_http(url: Optional[str]) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _enter(url: str, state: FeedState) -> None:
    logger.debug(f"{url}: {state.value}")


class DownloadError(Exception):
    """Raised when a single feed cannot be downloaded or parsed."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        self.cause = cause
        super().__init__(message)
