"""Domain models shared by the store, the fetcher and the poller."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ConditionalType(str, Enum):
    """Which validator a feed replays on conditional requests."""

    ETAG = "ETag"
    LAST_MODIFIED = "LastModified"


class PollStatus(str, Enum):
    """Outcome of one poll of one feed."""

    NOT_DUE = "not_due"
    RATE_LIMITED = "rate_limited"
    NOT_MODIFIED = "not_modified"
    FETCHED = "fetched"
    FAILED = "failed"


@dataclass(slots=True)
class FeedStats:
    """Persisted fetch state of one feed.

    Validators are opaque server tokens: they are stored and replayed, never parsed.
    """

    id: int
    url: str
    last_modified: str | None = None
    etag: str | None = None
    last_fetched: datetime | None = None


@dataclass(slots=True)
class Entry:
    """Storage shape of one feed item."""

    feed_id: int
    feed_entry_id: str | None
    title: str
    content: str
    updated: str | None = None
    authors: str | None = None
    summary: str = ""


@dataclass(slots=True)
class FeedEntry:
    """One parsed item of a feed document."""

    entry_id: str
    title: str | None
    link: str | None = None
    summary: str | None = None
    content: str | None = None
    authors: tuple[str, ...] = ()
    published: datetime | None = None
    updated: datetime | None = None


@dataclass(slots=True)
class FeedDocument:
    """Parsed RSS/Atom document."""

    feed_url: str
    title: str | None
    entries: list[FeedEntry] = field(default_factory=list)


@dataclass(slots=True)
class PollResult:
    """Result of polling one feed.

    `feed` is set only for `PollStatus.FETCHED` and lists the parsed entries that were
    persisted; `entries` holds their storage shape.
    """

    feed_name: str
    feed_url: str
    status: PollStatus
    feed: FeedDocument | None = None
    entries: list[Entry] = field(default_factory=list)
    error: Exception | None = None
