"""RSS/Atom/RDF feed parsing for FeedWatcher."""

import calendar
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

import feedparser


class FeedFormat(Enum):
    """Supported feed document formats."""

    ATOM = "atom"
    RDF = "rdf"
    RSS = "rss"


@dataclass
class ParsedItem:
    """A single entry of a parsed feed, before normalization."""

    guid: Optional[str] = None
    title: Optional[str] = None
    link: Optional[str] = None
    summary: Optional[str] = None
    content: Optional[str] = None
    published: Optional[datetime] = None


@dataclass
class ParsedFeed:
    """A format-agnostic view of a feed document."""

    format: FeedFormat
    title: Optional[str] = None
    link: Optional[str] = None
    icon: Optional[str] = None
    items: list[ParsedItem] = field(default_factory=list)


@dataclass
class AtomDocument:
    """A document with a root <feed> element."""

    data: Any


@dataclass
class RdfDocument:
    """A document with a root <rdf:RDF> element (RSS 1.0)."""

    data: Any


@dataclass
class RssDocument:
    """A document with a root <rss> or bare <channel> element."""

    data: Any


FeedDocument = Union[AtomDocument, RdfDocument, RssDocument]

_DOCUMENT_TYPES = {
    FeedFormat.ATOM: AtomDocument,
    FeedFormat.RDF: RdfDocument,
    FeedFormat.RSS: RssDocument,
}

# Comments are matched so that markup inside them is skipped
_MARKUP = re.compile(r"<!--.*?-->|<([A-Za-z_][\w.\-]*(?::[A-Za-z_][\w.\-]*)?)", re.DOTALL)


def parse_feed_document(document: Union[str, bytes], url: Optional[str] = None) -> ParsedFeed:
    """Parse a raw feed document into a ParsedFeed.

    Args:
        document: The feed body as text or bytes
        url: The URL the document was downloaded from, used to resolve
            relative links

    Returns:
        ParsedFeed with the feed's title, link, icon hint and items

    Raises:
        UnparseableFeedError: If the document is empty or isn't Atom, RDF or RSS
    """
    return extract(load_document(document, url))


def load_document(document: Union[str, bytes], url: Optional[str] = None) -> FeedDocument:
    """Detect a document's format and parse it into the matching variant.

    Relative links in the document are resolved against its xml:base, or
    against url when it has none.
    """
    feed_format = detect_format(document)

    response_headers = {"content-location": url} if url else None
    parsed = feedparser.parse(document, response_headers=response_headers)
    if parsed.bozo and not parsed.entries and not parsed.feed:
        raise UnparseableFeedError(f"Failed to parse feed: {parsed.bozo_exception}")

    return _DOCUMENT_TYPES[feed_format](parsed)


def detect_format(document: Union[str, bytes]) -> FeedFormat:
    """Determine a feed's format from its root element.

    Raises:
        UnparseableFeedError: If the document is empty or the root element
            isn't a known feed element
    """
    if isinstance(document, bytes):
        document = document.decode("utf-8", errors="replace")

    document = document.lstrip("\ufeff")
    if not document.strip():
        raise UnparseableFeedError("empty body")

    root = _root_element(document)
    if root is None:
        raise UnparseableFeedError("Document has no root element")

    local_name = root.split(":")[-1]
    if local_name == "feed":
        return FeedFormat.ATOM
    if local_name == "RDF":
        return FeedFormat.RDF
    if local_name in ("rss", "channel"):
        return FeedFormat.RSS

    raise UnparseableFeedError(f"Unsupported document type <{root}>")


def extract(document: FeedDocument) -> ParsedFeed:
    """Read feed and item fields out of a parsed document variant."""
    if isinstance(document, AtomDocument):
        return _extract_atom(document)
    if isinstance(document, RdfDocument):
        return _extract_rdf(document)
    if isinstance(document, RssDocument):
        return _extract_rss(document)
    raise TypeError(f"Unknown feed document {type(document).__name__}")


def _extract_atom(document: AtomDocument) -> ParsedFeed:
    feed = document.data.feed

    items = []
    for entry in document.data.entries:
        items.append(
            ParsedItem(
                guid=_text(entry.get("id")),
                title=_title(entry),
                link=_text(entry.get("link")),
                summary=entry.get("summary"),
                content=_entry_content(entry),
                published=_parse_entry_date(entry, ["updated_parsed", "published_parsed"]),
            )
        )

    return ParsedFeed(
        format=FeedFormat.ATOM,
        title=_title(feed),
        link=_atom_link(feed),
        icon=_text(feed.get("icon")) or _text(feed.get("logo")),
        items=items,
    )


def _extract_rdf(document: RdfDocument) -> ParsedFeed:
    feed = document.data.feed

    items = []
    for entry in document.data.entries:
        # feedparser stores the item's rdf:about attribute as its id
        items.append(
            ParsedItem(
                guid=_text(entry.get("id")),
                title=_title(entry),
                link=_text(entry.get("link")),
                summary=entry.get("summary"),
                content=_entry_content(entry),
                published=_parse_entry_date(entry, ["updated_parsed", "published_parsed"]),
            )
        )

    return ParsedFeed(
        format=FeedFormat.RDF,
        title=_title(feed),
        link=_text(feed.get("link")),
        items=items,
    )


def _extract_rss(document: RssDocument) -> ParsedFeed:
    feed = document.data.feed
    image = feed.get("image") or {}

    items = []
    for entry in document.data.entries:
        items.append(
            ParsedItem(
                guid=_text(entry.get("id")),
                title=_title(entry),
                link=_text(entry.get("link")),
                summary=entry.get("summary"),
                content=_entry_content(entry),
                published=_parse_entry_date(entry, ["published_parsed", "updated_parsed"]),
            )
        )

    return ParsedFeed(
        format=FeedFormat.RSS,
        title=_title(feed),
        link=_text(feed.get("link")),
        icon=_text(image.get("href")),
        items=items,
    )


def _root_element(document: str) -> Optional[str]:
    """Return the qualified name of the first element in a document."""
    for match in _MARKUP.finditer(document):
        if match.group(1):
            return match.group(1)
    return None


def _atom_link(feed: dict) -> Optional[str]:
    """Pick the feed's page link, preferring links with no rel or rel="alternate"."""
    links = [link for link in feed.get("links", []) if link.get("href")]

    for link in links:
        if link.get("rel", "alternate") == "alternate":
            return link["href"]

    if links:
        return links[0]["href"]

    return _text(feed.get("link"))


def _entry_content(entry: dict) -> Optional[str]:
    """Return the entry's full content (Atom content or content:encoded)."""
    for content in entry.get("content") or []:
        value = content.get("value")
        if value:
            return value
    return None


def _title(element: dict) -> Optional[str]:
    title = element.get("title")
    if not title:
        return None
    # feedparser has already decoded entities
    return title.strip() or None


def _text(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return value.strip() or None


def _parse_entry_date(entry: dict, date_fields: list[str]) -> Optional[datetime]:
    """Parse a date from a feed entry.

    Args:
        entry: feedparser entry dict
        date_fields: The *_parsed fields to try, in order

    Returns:
        timezone-aware UTC datetime if a date was found and parsed, None otherwise
    """
    # feedparser normalizes dates to UTC *_parsed tuples
    for field_name in date_fields:
        parsed_time = entry.get(field_name)
        if parsed_time:
            try:
                return datetime.fromtimestamp(calendar.timegm(parsed_time), tz=timezone.utc)
            except (TypeError, ValueError, OverflowError, OSError):
                continue

    return None


class UnparseableFeedError(Exception):
    """Raised when a document is empty or isn't a supported feed format."""

    pass
