"""HTML cleanup for article content."""

import logging
from typing import Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from bs4.dammit import EntitySubstitution
from bs4.formatter import HTMLFormatter

logger = logging.getLogger(__name__)

# Like the "minimal" formatter, but writes void elements as <img> rather than <img/>
_FORMATTER = HTMLFormatter(
    entity_substitution=EntitySubstitution.substitute_xml,
    void_element_close_prefix=None,
)


def sanitize(content: str, base_link: Optional[str]) -> str:
    """Absolutize image sources and strip link styling in an HTML fragment.

    Relative <img> sources are resolved against the origin of base_link, and
    <a> elements lose their inline style attribute. This is best effort: if
    anything goes wrong the original content is returned.

    Args:
        content: HTML fragment from a feed item
        base_link: URL the fragment's relative links are relative to

    Returns:
        The rewritten fragment, or the original content on failure
    """
    if not content:
        return ""

    try:
        soup = BeautifulSoup(content, "html.parser")

        origin = _origin(base_link)
        if origin:
            for img in soup.find_all("img", src=True):
                src = img["src"].strip()
                if src and not _is_absolute(src):
                    img["src"] = urljoin(origin + "/", src)

        for a in soup.find_all("a", style=True):
            del a["style"]

        return soup.decode(formatter=_FORMATTER)
    except Exception as e:
        logger.warning(f"Error processing article content: {e}")
        return content


def _origin(url: Optional[str]) -> Optional[str]:
    """Return scheme://host[:port] for an absolute http(s) URL."""
    if not url:
        return None
    try:
        parsed = urlparse(url)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def _is_absolute(url: str) -> bool:
    return bool(urlparse(url).scheme)
