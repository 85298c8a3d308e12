"""Feed icon discovery for FeedWatcher."""

import base64
import logging
from typing import Callable, Iterable, Optional, TypeVar
from urllib.parse import urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup

from .fetcher import FetchError, HttpFetcher
from .rss import ParsedFeed

logger = logging.getLogger(__name__)

T = TypeVar("T")

Step = Callable[[], Optional[T]]


def first_success(steps: Iterable[Step]) -> Optional[T]:
    """Run steps in order and return the first non-None result.

    A step that raises is logged and treated as if it returned None.
    """
    for step in steps:
        try:
            result = step()
        except Exception as e:
            logger.debug(f"Icon step {getattr(step, '__name__', step)} failed: {e}")
            continue
        if result is not None:
            return result
    return None


class IconResolver:
    """Finds a feed's icon and downloads it as a data URL."""

    def __init__(self, fetcher: HttpFetcher):
        self.fetcher = fetcher

    def resolve(self, feed: ParsedFeed) -> Optional[str]:
        """Get the icon for a feed as a data URL.

        Tries, in order: the icon named by the feed itself, a <link rel="icon">
        on the feed's home page, and /favicon.ico at the feed's origin.

        Args:
            feed: The parsed feed

        Returns:
            A data: URL, or None if no icon could be found or downloaded
        """
        url = self.find_icon_url(feed)
        if not url:
            return None

        logger.debug(f"Getting icon data for {url}")
        try:
            return self._download(url)
        except FetchError as e:
            logger.warning(f"Error downloading icon {url}: {e}")
            return None

    def find_icon_url(self, feed: ParsedFeed) -> Optional[str]:
        """Get the icon URL for a feed, or None if no step finds one."""

        def feed_icon():
            return self._from_feed_icon(feed)

        def page_link():
            return self._from_page_link(feed)

        def favicon():
            return self._from_favicon(feed)

        return first_success([feed_icon, page_link, favicon])

    def _from_feed_icon(self, feed: ParsedFeed) -> Optional[str]:
        if not _is_valid_url(feed.icon):
            return None

        logger.debug(f"Trying feed image URL {feed.icon} for icon")
        if self._head_ok(feed.icon):
            logger.debug(f"Using feed icon {feed.icon} for {feed.title}")
            return feed.icon
        return None

    def _from_page_link(self, feed: ParsedFeed) -> Optional[str]:
        origin = _origin(feed.link)
        if not origin:
            return None

        logger.debug(f"Looking in content of {origin} for icon")
        response = self.fetcher.fetch(origin)
        soup = BeautifulSoup(response.content, "html.parser")
        icon_link = soup.select_one('link[rel*="icon"][href]')
        if not icon_link:
            return None

        icon_url = urljoin(origin + "/", icon_link["href"].strip())

        # Try https by default
        for scheme in ("https", "http"):
            candidate = urlunparse(urlparse(icon_url)._replace(scheme=scheme))
            if self._head_ok(candidate):
                logger.debug(f"Using link {candidate} for {feed.title}")
                return candidate
        return None

    def _from_favicon(self, feed: ParsedFeed) -> Optional[str]:
        origin = _origin(feed.link)
        if not origin:
            return None

        favicon = f"{origin}/favicon.ico"
        response = self.fetcher.fetch(favicon, method="HEAD")
        if response.status == 200 and response.headers.get("content-length") != "0":
            logger.debug(f"Using favicon {favicon} for {feed.title}")
            return favicon
        return None

    def _head_ok(self, url: str) -> bool:
        response = self.fetcher.fetch(url, method="HEAD")
        return response.status == 200

    def _download(self, url: str) -> Optional[str]:
        response = self.fetcher.fetch(url)
        if response.status != 200 or not response.content:
            logger.warning(f"Error downloading icon {url}: HTTP {response.status}")
            return None

        content_type = response.headers.get("content-type") or "application/octet-stream"
        encoded = base64.b64encode(response.content).decode("ascii")
        return f"data:{content_type};base64,{encoded}"


def _is_valid_url(url: Optional[str]) -> bool:
    """Return True if url is an absolute http(s) URL."""
    if not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _origin(url: Optional[str]) -> Optional[str]:
    if not _is_valid_url(url):
        return None
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"
