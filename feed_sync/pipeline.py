"""Shared fetch -> parse -> cache path used by sessions and the HTTP API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .cache import FeedCache, cache_key, normalize_url
from .feeds import parse_feed
from .fetching import FeedFetcher, validate_url
from .models import FeedPage, RawFeed

if TYPE_CHECKING:
    from .config import AppConfig

logger = logging.getLogger(__name__)

PAGINATING_PATH_FRAGMENT = "/feeds/posts/"
DEFAULT_PAGE_TTL = 30.0
DEFAULT_RAW_TTL = 600.0


def is_paginating_feed(url: str) -> bool:
    """True for Blogger-style feeds that honour ``start-index``/``max-results``."""
    return PAGINATING_PATH_FRAGMENT in urlsplit(url).path


def build_page_url(url: str, start_index: int, max_results: int) -> str:
    """Return ``url`` with paging parameters applied when the feed supports them."""
    if not is_paginating_feed(url):
        return url
    parts = urlsplit(url)
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key not in ("start-index", "max-results")
    ]
    query.append(("start-index", str(start_index)))
    query.append(("max-results", str(max_results)))
    return urlunsplit(
        (parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment)
    )


def page_number(start_index: int, max_results: int) -> int:
    return start_index // max_results + 1


@dataclass(frozen=True)
class PageResult:
    page: FeedPage
    cache_hit: bool


class FeedPipeline:
    """Fetch, parse and cache feed pages."""

    def __init__(
        self,
        fetcher: Optional[FeedFetcher] = None,
        cache: Optional[FeedCache] = None,
        page_ttl: float = DEFAULT_PAGE_TTL,
        raw_ttl: float = DEFAULT_RAW_TTL,
    ) -> None:
        self.fetcher = fetcher or FeedFetcher()
        self.cache = cache if cache is not None else FeedCache(default_ttl=page_ttl)
        self.page_ttl = page_ttl
        self.raw_ttl = raw_ttl

    @classmethod
    def from_config(cls, config: "AppConfig") -> "FeedPipeline":
        fetcher = FeedFetcher(
            user_agent=config.fetcher.user_agent,
            timeout=config.fetcher.timeout,
            relay_url=config.fetcher.relay_url,
        )
        return cls(
            fetcher=fetcher,
            cache=FeedCache(default_ttl=config.cache.page_ttl),
            page_ttl=config.cache.page_ttl,
            raw_ttl=config.cache.raw_ttl,
        )

    def load_page(self, url: str, start_index: int = 1, max_results: int = 25) -> PageResult:
        """Return one parsed page, served from cache while its entry is fresh."""
        url = validate_url(url)
        if start_index < 1 or max_results < 1:
            raise ValueError("start_index and max_results must be positive.")

        key = cache_key(url, page_number(start_index, max_results), max_results)
        cached = self.cache.get(key)
        if cached is not None:
            return PageResult(page=cached, cache_hit=True)

        page_url = build_page_url(url, start_index, max_results)
        raw = self.fetcher.fetch(page_url)
        page = parse_feed(raw.body, url)
        self.cache.put(key, page, self.page_ttl)
        logger.info(
            "Loaded %d articles from %s (start=%d, size=%d)",
            len(page.articles),
            url,
            start_index,
            max_results,
        )
        return PageResult(page=page, cache_hit=False)

    def fetch_raw(self, url: str) -> Tuple[RawFeed, bool]:
        """Return the origin body for ``url`` and whether it came from cache."""
        url = validate_url(url)
        key = "raw:" + normalize_url(url)
        cached = self.cache.get(key)
        if cached is not None:
            return cached, True
        raw = self.fetcher.fetch(url)
        self.cache.put(key, raw, self.raw_ttl)
        return raw, False
