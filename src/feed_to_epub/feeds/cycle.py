"""Poll cycle driver: prepare outputs, poll every feed, convert new entries."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from feed_to_epub.config import FeedSettings
from feed_to_epub.epub.converter import EntryConverter, EntryConverterError
from feed_to_epub.feeds.poller import FeedPoller
from feed_to_epub.models import FeedDocument, PollResult, PollStatus
from feed_to_epub.storage.common import utc_now

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CycleSummary:
    """Counters for one pass over all configured feeds."""

    results: list[PollResult] = field(default_factory=list)
    converted: int = 0
    conversion_failures: int = 0
    written_paths: list[Path] = field(default_factory=list)

    def count(self, status: PollStatus) -> int:
        return sum(1 for result in self.results if result.status is status)


class PollCycle:
    """Runs poll cycles and hands fetched entries to the entry converter."""

    def __init__(
        self,
        *,
        poller: FeedPoller,
        converter: EntryConverter,
        max_workers: int = 1,
    ) -> None:
        self.poller = poller
        self.converter = converter
        self.max_workers = max_workers

    def run_once(
        self,
        feeds: tuple[FeedSettings, ...] | list[FeedSettings],
        *,
        now: datetime | None = None,
    ) -> CycleSummary:
        for feed in feeds:
            _prepare_download_dir(feed)

        summary = CycleSummary(
            results=self.poller.poll_all(
                feeds,
                now=now or utc_now(),
                max_workers=self.max_workers,
            ),
        )
        feeds_by_name = {feed.name: feed for feed in feeds}
        for result in summary.results:
            if result.status is not PollStatus.FETCHED or result.feed is None:
                continue
            self._convert_entries(feeds_by_name[result.feed_name], result.feed, summary)
        return summary

    def run_forever(
        self,
        feeds: tuple[FeedSettings, ...] | list[FeedSettings],
        *,
        interval_seconds: float,
        stop_event: threading.Event,
    ) -> None:
        """Repeat `run_once` until `stop_event` is set, waiting between cycles."""

        while not stop_event.is_set():
            summary = self.run_once(feeds)
            logger.info(
                "Poll cycle done: fetched=%d not_modified=%d not_due=%d rate_limited=%d "
                "failed=%d converted=%d conversion_failures=%d",
                summary.count(PollStatus.FETCHED),
                summary.count(PollStatus.NOT_MODIFIED),
                summary.count(PollStatus.NOT_DUE),
                summary.count(PollStatus.RATE_LIMITED),
                summary.count(PollStatus.FAILED),
                summary.converted,
                summary.conversion_failures,
            )
            stop_event.wait(interval_seconds)

    def _convert_entries(
        self,
        feed: FeedSettings,
        document: FeedDocument,
        summary: CycleSummary,
    ) -> None:
        for entry in document.entries:
            try:
                path = self.converter.convert(feed.name, feed.download_dir, entry)
            except EntryConverterError as error:
                summary.conversion_failures += 1
                logger.warning(
                    "Failed to convert entry %s of %s: %s",
                    entry.entry_id,
                    feed.name,
                    error,
                )
                continue
            summary.converted += 1
            summary.written_paths.append(path)


def _prepare_download_dir(feed: FeedSettings) -> None:
    try:
        feed.download_dir.mkdir(parents=True, exist_ok=True)
    except OSError as error:
        logger.warning(
            "Failed to create download dir %s for feed %s: %s",
            feed.download_dir,
            feed.name,
            error,
        )
