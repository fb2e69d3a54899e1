import threading
from typing import Callable, Dict, List, Sequence

import pytest

from feed_sync.models import Article, Channel, FeedPage
from feed_sync.pipeline import PageResult


def _rss_item(index: int) -> str:
    return f"""
    <item>
      <title>Post {index}</title>
      <link>https://blog.example.com/post-{index}</link>
      <guid>post-{index}</guid>
      <pubDate>Mon, 0{index % 9 + 1} Jan 2024 10:00:00 GMT</pubDate>
      <description>&lt;p&gt;Body of post {index}&lt;/p&gt;</description>
    </item>"""


def build_rss(count: int, title: str = "Example Blog") -> bytes:
    items = "".join(_rss_item(i) for i in range(1, count + 1))
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>{title}</title>
    <link>https://blog.example.com/</link>
    <description>An example feed</description>{items}
  </channel>
</rss>""".encode("utf-8")


@pytest.fixture
def rss_bytes() -> Callable[..., bytes]:
    return build_rss


def make_article(guid: str, **overrides) -> Article:
    fields = dict(
        guid=guid,
        link=f"https://blog.example.com/{guid}",
        title=f"Title {guid}",
        published_at="Mon, 01 Jan 2024 10:00:00 GMT",
        description=f"Description {guid}",
        content=f"<p>Content {guid}</p>",
    )
    fields.update(overrides)
    return Article(**fields)


def make_page(guids: Sequence[str], title: str = "Example Blog") -> FeedPage:
    return FeedPage(
        channel=Channel(title=title, description="", link="https://blog.example.com/"),
        articles=tuple(make_article(guid) for guid in guids),
    )


class FakePipeline:
    """Pipeline stand-in answering ``load_page`` from a callable.

    ``gates`` maps a URL to an event that must be set before the call returns,
    so tests can hold a fetch in flight.
    """

    def __init__(self, responder: Callable[[str, int, int], FeedPage]) -> None:
        self.responder = responder
        self.calls: List[tuple] = []
        self.gates: Dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    def load_page(self, url: str, start_index: int = 1, max_results: int = 25) -> PageResult:
        with self._lock:
            self.calls.append((url, start_index, max_results))
        gate = self.gates.get(url)
        if gate is not None:
            assert gate.wait(5), "gate was never released"
        return PageResult(page=self.responder(url, start_index, max_results), cache_hit=False)


class ManualTask:
    def __init__(self, interval: float, fn: Callable[[], object]) -> None:
        self.interval = interval
        self.fn = fn
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self):
        assert not self.cancelled
        return self.fn()


class ManualScheduler:
    """Scheduler whose tasks only run when a test fires them."""

    def __init__(self) -> None:
        self.tasks: List[ManualTask] = []

    def schedule_periodic(self, interval: float, fn: Callable[[], object]) -> ManualTask:
        task = ManualTask(interval, fn)
        self.tasks.append(task)
        return task


@pytest.fixture
def manual_scheduler() -> ManualScheduler:
    return ManualScheduler()
