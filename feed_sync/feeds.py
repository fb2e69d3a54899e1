"""Feed parsing and normalization helpers."""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

import feedparser
from bs4 import BeautifulSoup

from .errors import MalformedFeedError
from .models import Article, Channel, FeedPage
from .thumbnails import CARD_SIZE, normalize_thumbnail

logger = logging.getLogger(__name__)

DESCRIPTION_LIMIT = 250

# Candidate feedparser fields per logical field, highest priority first.
# feedparser already folds the dialects together: RSS <description> lands
# in ``summary`` (item) or ``subtitle`` (channel), <content:encoded> and
# Atom <content> in ``content``, <guid> in ``id``, <pubDate> in ``published``.
CHANNEL_TITLE_FIELDS = ("title",)
CHANNEL_DESCRIPTION_FIELDS = ("subtitle",)
CHANNEL_LINK_FIELDS = ("link",)
TITLE_FIELDS = ("title",)
LINK_FIELDS = ("link",)
ID_FIELDS = ("id", "link")
PUBLISHED_FIELDS = ("published", "updated")
CONTENT_FIELDS = ("content", "summary")

_IMG_SRC = re.compile(r"""<img[^>]+src=["']([^"'>]+)["']""", re.IGNORECASE)


def _field_value(node: Any) -> str:
    """Reduce a feedparser value (string, detail dict or content list) to text."""
    if isinstance(node, list):
        node = node[0] if node else None
    if isinstance(node, Mapping):
        node = node.get("value")
    if isinstance(node, str):
        return node.strip()
    return ""


def resolve_field(record: Mapping[str, Any], fields: Iterable[str]) -> str:
    """Return the first non-empty value among ``fields`` of a feedparser record."""
    for name in fields:
        value = _field_value(record.get(name))
        if value:
            return value
    return ""


def strip_html(raw_value: str) -> str:
    """Return text content extracted from HTML fragments."""
    if not raw_value:
        return ""
    soup = BeautifulSoup(raw_value, "html.parser")
    return re.sub(r"\s+", " ", soup.get_text()).strip()


def make_description(content: str, limit: int = DESCRIPTION_LIMIT) -> str:
    """Derive the short plain-text preview from full HTML content."""
    return strip_html(content)[:limit]


# Thumbnail extractors receive (entry, resolved content) and return the first
# candidate URL they find, or None.
ThumbnailExtractor = Callable[[Mapping[str, Any], str], Optional[str]]


def _media_thumbnail(entry: Mapping[str, Any], content: str) -> Optional[str]:
    for node in entry.get("media_thumbnail") or []:
        if node.get("url"):
            return node["url"]
    return None


def _media_content(entry: Mapping[str, Any], content: str) -> Optional[str]:
    for node in entry.get("media_content") or []:
        medium = node.get("medium")
        mime = node.get("type") or ""
        if medium not in (None, "image") and not mime.startswith("image/"):
            continue
        if node.get("url"):
            return node["url"]
    return None


def _image_enclosure(entry: Mapping[str, Any], content: str) -> Optional[str]:
    # Covers RSS <enclosure> and Atom rel="enclosure" links alike.
    for node in entry.get("enclosures") or []:
        if node.get("href") and (node.get("type") or "").startswith("image/"):
            return node["href"]
    return None


def _first_img_in_content(entry: Mapping[str, Any], content: str) -> Optional[str]:
    match = _IMG_SRC.search(content or "")
    return match.group(1) if match else None


THUMBNAIL_EXTRACTORS: Sequence[ThumbnailExtractor] = (
    _media_thumbnail,
    _media_content,
    _image_enclosure,
    _first_img_in_content,
)


def resolve_thumbnail(
    entry: Mapping[str, Any],
    content: str,
    extractors: Iterable[ThumbnailExtractor] = THUMBNAIL_EXTRACTORS,
) -> Optional[str]:
    """Return the first thumbnail found by ``extractors``, normalized to card size."""
    for extractor in extractors:
        url = extractor(entry, content)
        if url:
            return normalize_thumbnail(url.strip(), CARD_SIZE)
    return None


def _parse_entry(entry: Mapping[str, Any]) -> Article:
    link = resolve_field(entry, LINK_FIELDS)
    content = resolve_field(entry, CONTENT_FIELDS)
    return Article(
        guid=resolve_field(entry, ID_FIELDS),
        link=link,
        title=resolve_field(entry, TITLE_FIELDS),
        published_at=resolve_field(entry, PUBLISHED_FIELDS),
        description=make_description(content),
        content=content,
        thumbnail=resolve_thumbnail(entry, content),
    )


def parse_feed(data: bytes, source_url: str) -> FeedPage:
    """Parse RSS or Atom bytes into a normalized :class:`FeedPage`.

    Recoverable markup problems (stray whitespace before the prolog, HTML
    entities) are tolerated; a document feedparser cannot identify as any
    feed dialect raises :class:`MalformedFeedError`.
    """
    parsed = feedparser.parse(data, sanitize_html=False, resolve_relative_uris=False)

    if not parsed.get("version"):
        cause = parsed.get("bozo_exception")
        logger.debug("Unrecognised feed document from %s: %s", source_url, cause)
        raise MalformedFeedError(
            "Failed to parse feed. The document is not a valid RSS or Atom feed. "
            "Please check that the URL points to a feed."
        )
    if parsed.get("bozo"):
        logger.debug(
            "Feed %s (%s) parsed leniently: %s",
            source_url,
            parsed.version,
            parsed.get("bozo_exception"),
        )

    feed = parsed.feed
    channel = Channel(
        title=resolve_field(feed, CHANNEL_TITLE_FIELDS),
        description=resolve_field(feed, CHANNEL_DESCRIPTION_FIELDS),
        link=resolve_field(feed, CHANNEL_LINK_FIELDS) or source_url,
    )

    articles = tuple(_parse_entry(entry) for entry in parsed.entries)
    if not articles:
        logger.warning("Feed %s parsed successfully but contains no entries", source_url)
    else:
        logger.debug("Parsed %d entries from %s (%s)", len(articles), source_url, parsed.version)
    return FeedPage(channel=channel, articles=articles)
