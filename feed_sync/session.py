"""Feed sessions: pagination, new-item polling and background backfill.

A :class:`FeedSession` is an immutable snapshot. The module-level transition
functions take a session and return a new one; :class:`FeedSessionController`
runs the network work on a thread pool and swaps snapshots under a single
lock so that a poll prepend and a backfill append can never overwrite each
other.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Sequence, Tuple

from .models import Article, Channel, FeedPage
from .pipeline import FeedPipeline, is_paginating_feed
from .scheduling import ScheduledTask, Scheduler, ThreadScheduler

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 25
DEFAULT_POLL_SIZE = 5
DEFAULT_POLL_INTERVAL = 60.0
DEFAULT_BACKFILL_INTERVAL = 300.0


class SessionStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class FeedSession:
    """In-memory view of one feed URL."""

    url: str = ""
    generation: int = 0
    status: SessionStatus = SessionStatus.IDLE
    channel: Optional[Channel] = None
    articles: Tuple[Article, ...] = ()
    cursor: int = 1
    page_size: int = DEFAULT_PAGE_SIZE
    has_more: bool = False
    loading_more: bool = False
    error: Optional[BaseException] = None

    @property
    def guids(self) -> set:
        return {article.guid for article in self.articles}


def start_loading(session: FeedSession, url: str, page_size: int) -> FeedSession:
    """Reset to an empty session for ``url`` under a new generation."""
    return FeedSession(
        url=url,
        generation=session.generation + 1,
        status=SessionStatus.LOADING,
        page_size=page_size,
    )


def apply_first_page(session: FeedSession, page: FeedPage) -> FeedSession:
    # A full page means there may be more; a feed that ends on an exact
    # full page costs one extra, empty fetch.
    full_page = len(page.articles) == session.page_size
    return replace(
        session,
        status=SessionStatus.READY,
        channel=page.channel,
        articles=tuple(page.articles),
        cursor=1 + session.page_size,
        has_more=full_page and is_paginating_feed(session.url),
        error=None,
    )


def apply_load_error(session: FeedSession, error: BaseException) -> FeedSession:
    return replace(session, status=SessionStatus.ERROR, error=error)


def begin_next_page(session: FeedSession) -> FeedSession:
    return replace(session, loading_more=True)


def apply_next_page(session: FeedSession, page: FeedPage) -> FeedSession:
    """Append an older page at the cursor.

    Items published since the first load shift the origin's page
    boundaries, so the page may repeat guids the session already holds;
    those are skipped. ``has_more`` still looks at the raw page length.
    """
    seen = session.guids
    older = []
    for article in page.articles:
        if article.guid in seen:
            continue
        seen.add(article.guid)
        older.append(article)
    return replace(
        session,
        channel=page.channel,
        articles=session.articles + tuple(older),
        cursor=session.cursor + session.page_size,
        has_more=len(page.articles) == session.page_size,
        loading_more=False,
    )


def abort_next_page(session: FeedSession) -> FeedSession:
    return replace(session, loading_more=False)


def merge_new_articles(
    session: FeedSession, fetched: Sequence[Article]
) -> Tuple[FeedSession, Tuple[Article, ...]]:
    """Prepend articles whose guid is unknown, flagged as new.

    Origin order is kept among the new articles; known articles are left
    exactly as they were.
    """
    seen = session.guids
    fresh = []
    for article in fetched:
        if article.guid in seen:
            continue
        seen.add(article.guid)
        fresh.append(replace(article, is_new=True))

    if not fresh:
        return session, ()
    merged = replace(session, articles=tuple(fresh) + session.articles)
    return merged, tuple(fresh)


def _resolved(value) -> Future:
    future: Future = Future()
    future.set_result(value)
    return future


class FeedSessionController:
    """Drive a :class:`FeedSession` through loads, polls and backfills.

    Every operation returns a :class:`~concurrent.futures.Future`. Results
    that arrive after the session switched to another URL are dropped.
    """

    def __init__(
        self,
        pipeline: FeedPipeline,
        scheduler: Optional[Scheduler] = None,
        executor: Optional[Executor] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        poll_size: int = DEFAULT_POLL_SIZE,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        backfill_interval: float = DEFAULT_BACKFILL_INTERVAL,
    ) -> None:
        self.pipeline = pipeline
        self.scheduler = scheduler or ThreadScheduler()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=4, thread_name_prefix="feed-sync"
        )
        self.page_size = page_size
        self.poll_size = poll_size
        self.poll_interval = poll_interval
        self.backfill_interval = backfill_interval

        self._lock = threading.Lock()
        self._session = FeedSession(page_size=page_size)
        self._visible = True
        self._poll_in_flight = False
        self._backfill_in_flight = False
        self._poll_task: Optional[ScheduledTask] = None
        self._backfill_task: Optional[ScheduledTask] = None

    @property
    def session(self) -> FeedSession:
        with self._lock:
            return self._session

    @property
    def visible(self) -> bool:
        return self._visible

    def set_visible(self, visible: bool) -> None:
        """Ticks are skipped while the consuming view is hidden."""
        self._visible = bool(visible)

    def _is_stale(self, generation: int) -> bool:
        return self._session.generation != generation

    # Foreground loads

    def load_feed(self, url: str) -> Future:
        """Start a fresh session for ``url`` and load its first page."""
        with self._lock:
            self._session = start_loading(self._session, url, self.page_size)
            generation = self._session.generation
        logger.info("Loading feed %s", url)
        return self._executor.submit(self._load_first_page, url, generation)

    def _load_first_page(self, url: str, generation: int) -> FeedSession:
        try:
            result = self.pipeline.load_page(url, 1, self.page_size)
        except Exception as exc:
            with self._lock:
                if self._is_stale(generation):
                    logger.debug("Discarding failed load of %s after URL switch", url)
                    return self._session
                self._session = apply_load_error(self._session, exc)
            logger.warning("Failed to load feed %s: %s", url, exc)
            raise

        with self._lock:
            if self._is_stale(generation):
                logger.debug("Discarding stale first page for %s", url)
                return self._session
            self._session = apply_first_page(self._session, result.page)
            session = self._session
        logger.info(
            "Loaded %d articles from %s (has_more=%s)",
            len(session.articles),
            url,
            session.has_more,
        )
        return session

    def load_more(self) -> Future:
        """Load the page at the cursor; dropped if nothing more or already loading."""
        with self._lock:
            session = self._session
            if (
                session.status is not SessionStatus.READY
                or not session.has_more
                or session.loading_more
            ):
                logger.debug("Skipping load_more for %s", session.url or "<no feed>")
                return _resolved(session)
            self._session = begin_next_page(session)
        return self._executor.submit(
            self._load_next_page, session.url, session.generation, session.cursor
        )

    def _load_next_page(self, url: str, generation: int, cursor: int) -> FeedSession:
        try:
            result = self.pipeline.load_page(url, cursor, self.page_size)
        except Exception:
            with self._lock:
                if self._is_stale(generation):
                    return self._session
                self._session = abort_next_page(self._session)
            raise

        with self._lock:
            if self._is_stale(generation):
                logger.debug("Discarding stale page at %d for %s", cursor, url)
                return self._session
            self._session = apply_next_page(self._session, result.page)
            session = self._session
        logger.info(
            "Appended %d articles from %s at index %d (has_more=%s)",
            len(result.page.articles),
            url,
            cursor,
            session.has_more,
        )
        return session

    # Background ticks

    def poll_once(self) -> Optional[Future]:
        """Run one poll tick; returns None when the tick is skipped.

        The returned future resolves to the newly discovered articles and
        never raises.
        """
        with self._lock:
            session = self._session
            if (
                self._poll_in_flight
                or not self._visible
                or session.status is not SessionStatus.READY
            ):
                logger.debug("Skipping poll tick for %s", session.url or "<no feed>")
                return None
            self._poll_in_flight = True
        return self._executor.submit(self._poll, session.url, session.generation)

    def _poll(self, url: str, generation: int) -> Tuple[Article, ...]:
        try:
            result = self.pipeline.load_page(url, 1, self.poll_size)
            with self._lock:
                if self._is_stale(generation):
                    logger.debug("Discarding stale poll result for %s", url)
                    return ()
                self._session, fresh = merge_new_articles(
                    self._session, result.page.articles
                )
            if fresh:
                logger.info("Discovered %d new articles in %s", len(fresh), url)
            return fresh
        except Exception as exc:  # noqa: BLE001 - polling is best effort
            logger.warning("Poll of %s failed: %s", url, exc)
            return ()
        finally:
            with self._lock:
                self._poll_in_flight = False

    def backfill_once(self) -> Optional[Future]:
        """Run one backfill tick through :meth:`load_more`.

        Returns None when skipped. The returned future never raises.
        """
        with self._lock:
            session = self._session
            if (
                self._backfill_in_flight
                or not self._visible
                or session.status is not SessionStatus.READY
                or not session.has_more
                or session.loading_more
            ):
                logger.debug("Skipping backfill tick for %s", session.url or "<no feed>")
                return None
            self._backfill_in_flight = True

        outcome: Future = Future()

        def _finish(future: Future) -> None:
            with self._lock:
                self._backfill_in_flight = False
            error = future.exception()
            if error is not None:
                logger.warning("Backfill of %s failed: %s", session.url, error)
                outcome.set_result(self.session)
            else:
                outcome.set_result(future.result())

        self.load_more().add_done_callback(_finish)
        return outcome

    # Timers

    def start_polling(self) -> None:
        with self._lock:
            if self._poll_task is None:
                self._poll_task = self.scheduler.schedule_periodic(
                    self.poll_interval, self.poll_once
                )

    def stop_polling(self) -> None:
        with self._lock:
            task, self._poll_task = self._poll_task, None
        if task is not None:
            task.cancel()

    def start_backfill(self) -> None:
        with self._lock:
            if self._backfill_task is None:
                self._backfill_task = self.scheduler.schedule_periodic(
                    self.backfill_interval, self.backfill_once
                )

    def stop_backfill(self) -> None:
        with self._lock:
            task, self._backfill_task = self._backfill_task, None
        if task is not None:
            task.cancel()

    def close(self, wait: bool = True) -> None:
        self.stop_polling()
        self.stop_backfill()
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    def __enter__(self) -> "FeedSessionController":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
