"""Controllers for CLI commands."""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from feed_to_epub.config import DEFAULT_CONFIG_PATH, Settings
from feed_to_epub.epub.converter import EpubConverter
from feed_to_epub.feeds.cycle import CycleSummary, PollCycle
from feed_to_epub.feeds.poller import FeedPoller
from feed_to_epub.http.fetcher import ConditionalFetcher
from feed_to_epub.models import PollStatus
from feed_to_epub.storage.repository import SQLiteRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PollCommand:
    """CLI inputs for the poll command."""

    config_path: Path | None
    db_path: Path | None
    loop: bool
    interval_seconds: int
    max_workers: int


@dataclass(slots=True)
class StatusCommand:
    """CLI inputs for the status command."""

    config_path: Path | None
    db_path: Path | None


class FeedCliController:
    """Coordinates CLI command execution."""

    def poll(self, command: PollCommand) -> list[str]:
        settings = _load_settings(command.config_path, command.db_path)
        settings.validate()
        with (
            _repository(settings) as repository,
            ConditionalFetcher(timeout_seconds=settings.http_request_timeout_seconds) as fetcher,
        ):
            cycle = PollCycle(
                poller=FeedPoller(repository=repository, fetcher=fetcher),
                converter=EpubConverter(),
                max_workers=command.max_workers,
            )
            if command.loop:
                stop_event = threading.Event()
                _stop_on_signals(stop_event)
                logger.info(
                    "Polling %d feeds every %ds",
                    len(settings.feeds),
                    command.interval_seconds,
                )
                cycle.run_forever(
                    settings.feeds,
                    interval_seconds=command.interval_seconds,
                    stop_event=stop_event,
                )
                return ["Polling stopped."]
            summary = cycle.run_once(settings.feeds)
        return _summary_lines(summary)

    def status(self, command: StatusCommand) -> list[str]:
        settings = _load_settings(command.config_path, command.db_path)
        with _repository(settings) as repository:
            stored = repository.list_feed_stats()
            if not stored:
                return [f"No feeds tracked in {settings.db_path}."]
            names = {feed.url: feed.name for feed in settings.feeds}
            lines = [f"Tracked feeds in {settings.db_path}: {len(stored)}"]
            for stats in stored:
                lines.append(
                    f"  feed={names.get(stats.url, '-')} url={stats.url} id={stats.id} "
                    f"entries={repository.count_entries(feed_id=stats.id)} "
                    "last_fetched="
                    f"{stats.last_fetched.isoformat() if stats.last_fetched else '-'} "
                    f"etag={stats.etag or '-'} "
                    f"last_modified={stats.last_modified or '-'}",
                )
        return lines


def _load_settings(config_path: Path | None, db_path: Path | None) -> Settings:
    return Settings.from_toml(config_path or DEFAULT_CONFIG_PATH, db_path=db_path)


@contextmanager
def _repository(settings: Settings) -> Iterator[SQLiteRepository]:
    repository = SQLiteRepository.open(settings.db_path)
    try:
        repository.init_schema()
        yield repository
    finally:
        repository.close()


def _stop_on_signals(stop_event: threading.Event) -> None:
    def _handler(signum: int, _frame: object) -> None:
        logger.info("Received signal %s, stopping after the current cycle.", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def _summary_lines(summary: CycleSummary) -> list[str]:
    lines = [
        "Poll cycle completed: "
        f"feeds={len(summary.results)} "
        f"fetched={summary.count(PollStatus.FETCHED)} "
        f"not_modified={summary.count(PollStatus.NOT_MODIFIED)} "
        f"not_due={summary.count(PollStatus.NOT_DUE)} "
        f"rate_limited={summary.count(PollStatus.RATE_LIMITED)} "
        f"failed={summary.count(PollStatus.FAILED)} "
        f"converted={summary.converted} "
        f"conversion_failures={summary.conversion_failures}",
    ]
    for result in summary.results:
        line = (
            f"  feed={result.feed_name} url={result.feed_url} status={result.status.value} "
            f"stored_entries={len(result.entries)}"
        )
        if result.error is not None:
            line += f" error={result.error}"
        lines.append(line)
    return lines
