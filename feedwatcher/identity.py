"""Stable identifiers for feed items."""

import hashlib

from .rss import ParsedItem


def identify_article(item: ParsedItem) -> str:
    """Return a unique ID for a feed item.

    The ID must be the same every time the same item is downloaded so that
    existing articles are updated rather than duplicated. Uses the item's own
    id (guid, Atom id or rdf:about), then its link, then a hash of its text.
    """
    if item.guid:
        return item.guid

    if item.link:
        return item.link

    text = (item.title or "") + (item.summary or "") + (item.content or "")
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return f"sha256:{digest}"
