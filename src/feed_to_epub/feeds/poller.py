"""Per-feed poll coordination: due-ness gate, conditional fetch and cache bookkeeping."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime

from feed_to_epub.config import FeedSettings
from feed_to_epub.feeds.conversion import EntryConversionError, entry_from_feed_entry
from feed_to_epub.feeds.parser import FeedParseError, parse_feed
from feed_to_epub.http.fetcher import (
    ConditionalFetcher,
    FetchError,
    Fresh,
    NotModified,
    RateLimited,
    Validators,
)
from feed_to_epub.models import (
    Entry,
    FeedDocument,
    FeedEntry,
    FeedStats,
    PollResult,
    PollStatus,
)
from feed_to_epub.storage.errors import FeedNotFoundAfterInsertError, StorageError
from feed_to_epub.storage.repository import SQLiteRepository

logger = logging.getLogger(__name__)


class FeedPoller:
    """Polls feeds against the cache store.

    `poll_feed` calls for one URL are serialized; distinct feeds may be polled from
    several threads at once.
    """

    def __init__(self, *, repository: SQLiteRepository, fetcher: ConditionalFetcher) -> None:
        self.repository = repository
        self.fetcher = fetcher
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def poll_feed(self, feed: FeedSettings, *, now: datetime) -> PollResult:
        with self._feed_lock(feed.url):
            return self._poll_feed_locked(feed, now=now)

    def poll_all(
        self,
        feeds: tuple[FeedSettings, ...] | list[FeedSettings],
        *,
        now: datetime,
        max_workers: int = 1,
    ) -> list[PollResult]:
        """Poll every feed; a failing feed is reported and never stops its siblings."""

        if max_workers <= 1 or len(feeds) <= 1:
            return [self._poll_isolated(feed, now=now) for feed in feeds]
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="feed-poll") as pool:
            return list(pool.map(lambda feed: self._poll_isolated(feed, now=now), feeds))

    def _poll_isolated(self, feed: FeedSettings, *, now: datetime) -> PollResult:
        try:
            return self.poll_feed(feed, now=now)
        except FeedNotFoundAfterInsertError as error:
            logger.exception("Feed %s (%s) failed: %s", feed.name, feed.url, error)
            return _failed(feed, error)
        except (FetchError, FeedParseError, StorageError) as error:
            logger.warning("Failed to poll feed %s (%s): %s", feed.name, feed.url, error)
            return _failed(feed, error)

    def _poll_feed_locked(self, feed: FeedSettings, *, now: datetime) -> PollResult:
        stats = self.repository.get_feed_stats(feed.url)
        if stats is None:
            stats = self.repository.create_feed_stats(feed.url)

        if stats.last_fetched is not None:
            elapsed = now - stats.last_fetched
            if elapsed < feed.poll_interval:
                logger.info(
                    "%s was already fetched %s ago, next poll after %s.",
                    feed.name,
                    elapsed,
                    feed.poll_interval,
                )
                return PollResult(feed_name=feed.name, feed_url=feed.url, status=PollStatus.NOT_DUE)

        outcome = self.fetcher.fetch(
            feed.url,
            Validators(last_modified=stats.last_modified, etag=stats.etag),
            feed.conditional_type,
        )

        if isinstance(outcome, RateLimited):
            logger.warning(
                "%s got a 429 rate limit response (retry-after=%s); cache left untouched.",
                feed.name,
                outcome.retry_after or "-",
            )
            return PollResult(feed_name=feed.name, feed_url=feed.url, status=PollStatus.RATE_LIMITED)

        if isinstance(outcome, NotModified):
            _apply_validators(
                stats,
                last_modified=outcome.new_last_modified,
                etag=outcome.new_etag,
            )
            stats.last_fetched = now
            self.repository.save_feed_stats(stats)
            logger.info("%s not modified since last fetch.", feed.name)
            return PollResult(
                feed_name=feed.name,
                feed_url=feed.url,
                status=PollStatus.NOT_MODIFIED,
            )

        return self._ingest_fresh(feed, stats, outcome, now=now)

    def _ingest_fresh(
        self,
        feed: FeedSettings,
        stats: FeedStats,
        outcome: Fresh,
        *,
        now: datetime,
    ) -> PollResult:
        document = parse_feed(outcome.body, feed.url)
        stored, entries = _convert_entries(stats.id, document)
        for entry in entries:
            self.repository.upsert_entry(entry)

        _apply_validators(stats, last_modified=outcome.new_last_modified, etag=outcome.new_etag)
        stats.last_fetched = now
        self.repository.save_feed_stats(stats)
        logger.info(
            "%s fetched: %d entries, %d stored.",
            feed.name,
            len(document.entries),
            len(entries),
        )
        return PollResult(
            feed_name=feed.name,
            feed_url=feed.url,
            status=PollStatus.FETCHED,
            feed=FeedDocument(feed_url=document.feed_url, title=document.title, entries=stored),
            entries=entries,
        )

    def _feed_lock(self, url: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(url)
            if lock is None:
                lock = threading.Lock()
                self._locks[url] = lock
            return lock


def _convert_entries(
    feed_id: int,
    document: FeedDocument,
) -> tuple[list[FeedEntry], list[Entry]]:
    kept: list[FeedEntry] = []
    entries: list[Entry] = []
    for feed_entry in document.entries:
        try:
            entries.append(entry_from_feed_entry(feed_id, feed_entry))
        except EntryConversionError as error:
            logger.warning("Skipping entry of %s: %s", document.feed_url, error)
            continue
        kept.append(feed_entry)
    return kept, entries


def _apply_validators(stats: FeedStats, *, last_modified: str | None, etag: str | None) -> None:
    if last_modified is not None:
        stats.last_modified = last_modified
    if etag is not None:
        stats.etag = etag


def _failed(feed: FeedSettings, error: Exception) -> PollResult:
    return PollResult(
        feed_name=feed.name,
        feed_url=feed.url,
        status=PollStatus.FAILED,
        error=error,
    )
