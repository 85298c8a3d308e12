"""Data models for FeedWatcher."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class Feed:
    """Represents a subscribed feed."""

    id: Optional[int]
    url: str
    title: str
    kind: str = "rss"
    disabled: bool = False
    icon: Optional[str] = None
    html_url: Optional[str] = None


@dataclass
class DownloadedArticle:
    """An article produced by downloading a feed, not yet persisted."""

    article_id: str
    title: str
    content: str
    published: datetime
    link: Optional[str] = None


@dataclass
class DownloadedFeed:
    """The normalized result of downloading a feed."""

    title: str
    link: Optional[str]
    icon: Optional[str] = None
    articles: list[DownloadedArticle] = field(default_factory=list)


@dataclass
class Article:
    """Represents a stored feed article."""

    id: Optional[int]
    feed_id: int
    article_id: str
    title: str
    content: str
    published: datetime
    link: Optional[str] = None


@dataclass
class FeedLog:
    """One refresh attempt for a feed."""

    id: Optional[int]
    feed_id: int
    time: datetime
    success: bool
    message: Optional[str] = None
