"""Shared data models for feed_sync."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .thumbnails import HERO_SIZE, normalize_thumbnail


def slugify(text: str) -> str:
    """Return a URL-friendly slug for ``text``."""
    value = str(text or "").lower()
    value = re.sub(r"\s+", "-", value)
    value = re.sub(r"[^\w\-]+", "", value)
    value = re.sub(r"-{2,}", "-", value)
    return value.strip("-")


@dataclass(frozen=True)
class Channel:
    """Feed-level metadata."""

    title: str
    description: str
    link: str

    def to_dict(self) -> dict:
        return {"title": self.title, "description": self.description, "link": self.link}


@dataclass(frozen=True)
class Article:
    """One syndicated item normalized across feed dialects."""

    guid: str
    link: str
    title: str
    published_at: str
    description: str
    content: str
    thumbnail: Optional[str] = None
    is_new: bool = False

    @property
    def slug(self) -> str:
        return slugify(self.title)

    def to_dict(self) -> dict:
        return {
            "guid": self.guid,
            "slug": self.slug,
            "link": self.link,
            "title": self.title,
            "pubDate": self.published_at,
            "description": self.description,
            "content": self.content,
            "thumbnail": self.thumbnail,
            "heroImage": normalize_thumbnail(self.thumbnail, HERO_SIZE)
            if self.thumbnail
            else None,
            "isNew": self.is_new,
        }


@dataclass(frozen=True)
class FeedPage:
    """A parsed page: channel summary plus its articles in origin order."""

    channel: Channel
    articles: Tuple[Article, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "channel": self.channel.to_dict(),
            "articles": [article.to_dict() for article in self.articles],
        }


@dataclass(frozen=True)
class RawFeed:
    """Undecoded response body as returned by the origin."""

    url: str
    body: bytes
    content_type: str = "application/xml"
