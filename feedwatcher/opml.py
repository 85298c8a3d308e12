"""OPML import and export of feed subscriptions."""

import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Optional

from .models import Feed


@dataclass
class OpmlFeed:
    """A feed entry from an OPML file."""

    url: str
    title: Optional[str] = None
    html_url: Optional[str] = None


def parse_opml(xml_content: str) -> list[OpmlFeed]:
    """Parse OPML XML content and extract feed subscriptions.

    Nested (grouped) outlines are flattened.

    Args:
        xml_content: Raw OPML XML string

    Returns:
        List of OpmlFeed in document order

    Raises:
        ValueError: If XML is invalid or not OPML format
    """
    try:
        root = ET.fromstring(xml_content)
    except ET.ParseError as e:
        raise ValueError(f"Invalid XML: {e}") from e

    if root.tag.lower() != "opml":
        raise ValueError(f"Not an OPML document (root element: {root.tag})")

    body = root.find("body")
    if body is None:
        raise ValueError("OPML document missing <body> element")

    feeds: list[OpmlFeed] = []
    _parse_outlines(body, feeds)
    return feeds


def _parse_outlines(element: ET.Element, feeds: list[OpmlFeed]) -> None:
    for outline in element.findall("outline"):
        xml_url = outline.get("xmlUrl") or outline.get("xmlurl")

        if xml_url:
            title = outline.get("title") or outline.get("text")
            feeds.append(
                OpmlFeed(
                    url=xml_url.strip(),
                    title=title.strip() if title else None,
                    html_url=outline.get("htmlUrl") or None,
                )
            )
        else:
            # A folder of feeds
            _parse_outlines(outline, feeds)


def build_opml(feeds: list[Feed], title: str = "FeedWatcher Subscriptions") -> str:
    """Generate an OPML 2.0 document listing feeds."""
    root = ET.Element("opml", version="2.0")

    head = ET.SubElement(root, "head")
    ET.SubElement(head, "title").text = title

    body = ET.SubElement(root, "body")
    for feed in feeds:
        attrs = {"type": feed.kind, "text": feed.title, "title": feed.title, "xmlUrl": feed.url}
        if feed.html_url:
            attrs["htmlUrl"] = feed.html_url
        ET.SubElement(body, "outline", attrs)

    ET.indent(root)
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + ET.tostring(root, encoding="unicode") + "\n"
