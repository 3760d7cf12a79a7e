from __future__ import annotations

import threading
from dataclasses import replace
from datetime import UTC, datetime
from pathlib import Path

import allure
import httpx

from feed_to_epub.epub.converter import EntryConverterError, EpubConverter
from feed_to_epub.feeds.cycle import PollCycle
from feed_to_epub.feeds.poller import FeedPoller
from feed_to_epub.models import FeedEntry, PollStatus

pytestmark = [
    allure.epic("Feed Polling"),
    allure.feature("Poll Cycle"),
]

NOW = datetime(2026, 2, 17, 12, 0, tzinfo=UTC)

RSS_XML = """<?xml version="1.0"?>
<rss version="2.0">
  <channel>
    <title>Example</title>
    <item>
      <guid>id-1</guid>
      <title>First post</title>
      <description>First body</description>
    </item>
    <item>
      <guid>id-2</guid>
      <title>Second post</title>
      <description>Second body</description>
    </item>
  </channel>
</rss>
"""


class FlakyConverter:
    """Fails on one entry id, records the rest."""

    def __init__(self, failing_id: str) -> None:
        self.failing_id = failing_id
        self.converted: list[tuple[str, str]] = []

    def convert(self, feed_name: str, download_dir: Path, entry: FeedEntry) -> Path:
        if entry.entry_id == self.failing_id:
            raise EntryConverterError(message="boom", code="write_failed")
        self.converted.append((feed_name, entry.entry_id))
        return download_dir / f"{entry.entry_id}.epub"


def test_run_once_writes_epub_per_fetched_entry(repository, make_feed, make_fetcher):
    feed = make_feed("blog")
    fetcher, _ = make_fetcher(lambda _request: httpx.Response(200, text=RSS_XML))
    cycle = PollCycle(
        poller=FeedPoller(repository=repository, fetcher=fetcher),
        converter=EpubConverter(),
    )

    summary = cycle.run_once([feed], now=NOW)

    assert summary.count(PollStatus.FETCHED) == 1
    assert summary.converted == 2
    assert summary.conversion_failures == 0
    assert sorted(path.name for path in feed.download_dir.iterdir()) == [
        "First post.epub",
        "Second post.epub",
    ]


def test_second_cycle_within_interval_converts_nothing(repository, make_feed, make_fetcher):
    feed = make_feed("blog")
    fetcher, handler = make_fetcher(lambda _request: httpx.Response(200, text=RSS_XML))
    converter = FlakyConverter(failing_id="none")
    cycle = PollCycle(poller=FeedPoller(repository=repository, fetcher=fetcher), converter=converter)

    cycle.run_once([feed], now=NOW)
    summary = cycle.run_once([feed], now=NOW)

    assert summary.count(PollStatus.NOT_DUE) == 1
    assert summary.converted == 0
    assert len(handler.requests) == 1
    assert len(converter.converted) == 2


def test_converter_failure_is_isolated_per_entry(repository, make_feed, make_fetcher):
    feed = make_feed("blog")
    fetcher, _ = make_fetcher(lambda _request: httpx.Response(200, text=RSS_XML))
    converter = FlakyConverter(failing_id="id-1")
    cycle = PollCycle(poller=FeedPoller(repository=repository, fetcher=fetcher), converter=converter)

    summary = cycle.run_once([feed], now=NOW)

    assert summary.converted == 1
    assert summary.conversion_failures == 1
    assert converter.converted == [("blog", "id-2")]
    assert repository.count_entries() == 2
    stats = repository.get_feed_stats(feed.url)
    assert stats is not None
    assert stats.last_fetched == NOW


def test_unusable_download_dir_still_polls_feed(tmp_path: Path, repository, make_feed, make_fetcher):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    feed = replace(make_feed("blog"), download_dir=blocker / "out")
    fetcher, handler = make_fetcher(lambda _request: httpx.Response(200, text=RSS_XML))
    cycle = PollCycle(
        poller=FeedPoller(repository=repository, fetcher=fetcher),
        converter=EpubConverter(),
    )

    summary = cycle.run_once([feed], now=NOW)

    assert len(handler.requests) == 1
    assert summary.count(PollStatus.FETCHED) == 1
    assert summary.converted == 0
    assert summary.conversion_failures == 2


def test_failed_feed_is_not_converted(repository, make_feed, make_fetcher):
    good = make_feed("good", "https://good.example.com/rss")
    bad = make_feed("bad", "https://bad.example.com/rss")

    def _reply(request: httpx.Request) -> httpx.Response:
        if request.url.host == "bad.example.com":
            return httpx.Response(503)
        return httpx.Response(200, text=RSS_XML)

    fetcher, _ = make_fetcher(_reply)
    converter = FlakyConverter(failing_id="none")
    cycle = PollCycle(poller=FeedPoller(repository=repository, fetcher=fetcher), converter=converter)

    summary = cycle.run_once([bad, good], now=NOW)

    assert summary.count(PollStatus.FAILED) == 1
    assert summary.count(PollStatus.FETCHED) == 1
    assert {name for name, _ in converter.converted} == {"good"}


def test_run_forever_stops_when_event_is_set(repository, make_feed, make_fetcher):
    feed = make_feed("blog")
    stop_event = threading.Event()

    def _reply(_request: httpx.Request) -> httpx.Response:
        stop_event.set()
        return httpx.Response(304)

    fetcher, handler = make_fetcher(_reply)
    cycle = PollCycle(
        poller=FeedPoller(repository=repository, fetcher=fetcher),
        converter=FlakyConverter(failing_id="none"),
    )

    cycle.run_forever([feed], interval_seconds=3600, stop_event=stop_event)

    assert len(handler.requests) == 1
