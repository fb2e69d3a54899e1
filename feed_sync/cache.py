"""Short-lived in-process cache for fetched feed pages."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    expires_at: float


def normalize_url(url: str) -> str:
    """Lowercase scheme and host, drop the fragment and sort query parameters."""
    parts = urlsplit(url.strip())
    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
    return urlunsplit(
        (parts.scheme.lower(), parts.netloc.lower(), parts.path or "/", query, "")
    )


def cache_key(url: str, page: int, page_size: int) -> str:
    """Key for one page of one feed.

    The page size is part of the key so a short poll page never answers a
    request for a full page.
    """
    return f"feed:{normalize_url(url)}:p{page}:n{page_size}"


class FeedCache:
    """Thread-safe key/value store whose entries expire after a TTL.

    Expiry is checked on read, and every write drops entries that have
    already expired. Stored values are returned as-is, so callers
    should only store immutable objects.
    """

    def __init__(
        self, default_ttl: float = 30.0, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                logger.debug("Cache miss for %s", key)
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                logger.debug("Cache entry expired for %s", key)
                return None
        logger.debug("Cache hit for %s", key)
        return entry.value

    def put(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            self._entries[key] = CacheEntry(value=value, expires_at=now + ttl)

    def _purge_expired(self, now: float) -> None:
        # Caller holds the lock.
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Purged %d expired cache entries", len(expired))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
