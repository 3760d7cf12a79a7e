from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

import allure
import pytest

from feed_to_epub.models import Entry, FeedStats
from feed_to_epub.storage.errors import (
    EntryNotFoundError,
    FeedNotFoundAfterInsertError,
    StorageQueryError,
    StorageWriteError,
    StoreOpenError,
)
from feed_to_epub.storage.repository import SQLiteRepository

pytestmark = [
    allure.epic("Feed Polling"),
    allure.feature("Cache Store"),
]

FEED_URL = "https://example.com/feed.xml"


def _entry(feed_id: int, feed_entry_id: str | None, *, title: str = "bar") -> Entry:
    return Entry(
        feed_id=feed_id,
        feed_entry_id=feed_entry_id,
        title=title,
        content="<p>XML here</p>",
        updated="2026-02-17T11:18:07+00:00",
        authors="John Doe",
        summary="some summary",
    )


def test_get_feed_stats_returns_none_for_unknown_feed(repository: SQLiteRepository) -> None:
    assert repository.get_feed_stats(FEED_URL) is None


def test_create_feed_stats_inserts_bare_row(repository: SQLiteRepository) -> None:
    stats = repository.create_feed_stats(FEED_URL)

    assert stats == FeedStats(id=stats.id, url=FEED_URL)
    assert stats.last_modified is None
    assert stats.etag is None
    assert stats.last_fetched is None
    assert repository.get_feed_stats(FEED_URL) == stats


def test_feed_stats_round_trip_with_all_fields(repository: SQLiteRepository) -> None:
    created = repository.create_feed_stats(FEED_URL)
    stats = FeedStats(
        id=created.id,
        url=FEED_URL,
        last_modified="Thu, 01 Jan 1970 00:00:00 GMT",
        etag='W/"foo"',
        last_fetched=datetime.now(tz=UTC),
    )

    repository.save_feed_stats(stats)

    assert repository.get_feed_stats(FEED_URL) == stats


def test_feed_stats_round_trip_with_all_optionals_absent(repository: SQLiteRepository) -> None:
    stats = FeedStats(id=1, url=FEED_URL)

    repository.save_feed_stats(stats)

    assert repository.get_feed_stats(FEED_URL) == stats


def test_save_feed_stats_writes_absent_fields_too(repository: SQLiteRepository) -> None:
    created = repository.create_feed_stats(FEED_URL)
    repository.save_feed_stats(
        FeedStats(
            id=created.id,
            url=FEED_URL,
            last_modified="lm-1",
            etag="etag-1",
            last_fetched=datetime(2026, 2, 17, 10, 0, tzinfo=UTC),
        ),
    )

    cleared = FeedStats(id=created.id, url=FEED_URL, etag="etag-2")
    repository.save_feed_stats(cleared)

    assert repository.get_feed_stats(FEED_URL) == cleared


def test_save_feed_stats_is_idempotent(repository: SQLiteRepository) -> None:
    created = repository.create_feed_stats(FEED_URL)
    stats = FeedStats(
        id=created.id,
        url=FEED_URL,
        etag="etag-1",
        last_fetched=datetime(2026, 2, 17, 10, 0, 0, 123456, tzinfo=UTC),
    )

    repository.save_feed_stats(stats)
    once = repository.list_feed_stats()
    repository.save_feed_stats(stats)
    twice = repository.list_feed_stats()

    assert once == twice == [stats]


def test_last_fetched_is_normalized_to_utc(repository: SQLiteRepository) -> None:
    created = repository.create_feed_stats(FEED_URL)
    local = datetime(2026, 2, 17, 16, 0, tzinfo=timezone(timedelta(hours=2)))
    repository.save_feed_stats(FeedStats(id=created.id, url=FEED_URL, last_fetched=local))

    stored = repository.get_feed_stats(FEED_URL)
    assert stored is not None
    assert stored.last_fetched == datetime(2026, 2, 17, 14, 0, tzinfo=UTC)
    assert stored.last_fetched.tzinfo is UTC


def test_feed_id_is_stable_across_saves(repository: SQLiteRepository) -> None:
    first = repository.create_feed_stats(FEED_URL)
    other = repository.create_feed_stats("https://example.org/other.xml")

    repository.save_feed_stats(FeedStats(id=first.id, url=FEED_URL, etag="x"))

    stored = repository.get_feed_stats(FEED_URL)
    assert stored is not None
    assert stored.id == first.id
    assert other.id != first.id


def test_create_feed_stats_twice_fails_with_insert_error(repository: SQLiteRepository) -> None:
    repository.create_feed_stats(FEED_URL)

    with pytest.raises(StorageWriteError) as excinfo:
        repository.create_feed_stats(FEED_URL)
    assert excinfo.value.code == "insert_failed"


def test_create_feed_stats_fails_when_row_cannot_be_read_back(
    repository: SQLiteRepository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(repository, "get_feed_stats", lambda _url: None)

    with pytest.raises(FeedNotFoundAfterInsertError, match="this is a bug"):
        repository.create_feed_stats(FEED_URL)


def test_read_failure_is_not_reported_as_absence() -> None:
    repo = SQLiteRepository.in_memory()
    try:
        with pytest.raises(StorageQueryError):
            repo.get_feed_stats(FEED_URL)
    finally:
        repo.close()


def test_init_schema_is_idempotent(tmp_path: Path) -> None:
    db_path = tmp_path / "feeds.db"
    with SQLiteRepository.open(db_path) as repo:
        repo.init_schema()
        repo.create_feed_stats(FEED_URL)

    with SQLiteRepository.open(db_path) as reopened:
        reopened.init_schema()
        stats = reopened.get_feed_stats(FEED_URL)

    assert stats is not None
    assert stats.url == FEED_URL


def test_open_reports_location_on_failure(tmp_path: Path) -> None:
    location = tmp_path / "missing" / "nested" / "feeds.db"

    with pytest.raises(StoreOpenError) as excinfo:
        SQLiteRepository.open(location)

    assert str(location) in str(excinfo.value)
    assert excinfo.value.location == str(location)


def test_entry_round_trip(repository: SQLiteRepository) -> None:
    feed = repository.create_feed_stats(FEED_URL)
    entry = _entry(feed.id, "foo")

    repository.upsert_entry(entry)

    assert repository.get_entry("foo") == entry


def test_upsert_entry_overwrites_same_natural_key(repository: SQLiteRepository) -> None:
    feed = repository.create_feed_stats(FEED_URL)

    repository.upsert_entry(_entry(feed.id, "foo", title="first"))
    repository.upsert_entry(_entry(feed.id, "foo", title="edited"))

    assert repository.count_entries(feed_id=feed.id) == 1
    assert repository.get_entry("foo").title == "edited"


def test_same_entry_id_in_two_feeds_is_kept_apart(repository: SQLiteRepository) -> None:
    first = repository.create_feed_stats(FEED_URL)
    second = repository.create_feed_stats("https://example.org/other.xml")

    repository.upsert_entry(_entry(first.id, "shared", title="from first"))
    repository.upsert_entry(_entry(second.id, "shared", title="from second"))

    assert repository.count_entries() == 2
    assert repository.get_entry("shared", feed_id=second.id).title == "from second"


def test_entries_without_native_id_are_always_inserted(repository: SQLiteRepository) -> None:
    feed = repository.create_feed_stats(FEED_URL)

    repository.upsert_entry(_entry(feed.id, None))
    repository.upsert_entry(_entry(feed.id, None))

    assert repository.count_entries(feed_id=feed.id) == 2


def test_upsert_entry_for_unknown_feed_fails(repository: SQLiteRepository) -> None:
    with pytest.raises(StorageWriteError):
        repository.upsert_entry(_entry(999, "orphan"))


def test_get_entry_raises_when_missing(repository: SQLiteRepository) -> None:
    with pytest.raises(EntryNotFoundError):
        repository.get_entry("nope")
