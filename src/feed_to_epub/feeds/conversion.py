"""Conversion of parsed feed entries into their storage shape."""

from __future__ import annotations

from dataclasses import dataclass

from feed_to_epub.models import Entry, FeedEntry

# Some feeds stuff the whole article into the summary; such summaries are dropped.
MAX_SUMMARY_LENGTH_BYTES = 1000
AUTHOR_SEPARATOR = ", "


@dataclass(slots=True)
class EntryConversionError(Exception):
    """A parsed entry lacks a field its storage shape requires."""

    message: str
    code: str = "entry_conversion_error"
    entry_id: str | None = None

    def __str__(self) -> str:
        return self.message


def entry_from_feed_entry(feed_id: int, feed_entry: FeedEntry) -> Entry:
    return Entry(
        feed_id=feed_id,
        feed_entry_id=feed_entry.entry_id,
        title=feed_entry.title or "",
        content=extract_html(feed_entry),
        updated=None if feed_entry.updated is None else feed_entry.updated.isoformat(),
        authors=AUTHOR_SEPARATOR.join(feed_entry.authors),
        summary=bounded_summary(feed_entry) or "",
    )


def extract_html(feed_entry: FeedEntry) -> str:
    """Return the entry body, falling back to the summary when there is no content."""

    if feed_entry.content:
        return feed_entry.content
    if feed_entry.summary:
        return feed_entry.summary
    raise EntryConversionError(
        message=f"could not get a body from entry {feed_entry.entry_id!r}",
        code="missing_body",
        entry_id=feed_entry.entry_id,
    )


def bounded_summary(feed_entry: FeedEntry) -> str | None:
    summary = feed_entry.summary
    if summary is None:
        return None
    if len(summary.encode("utf-8")) >= MAX_SUMMARY_LENGTH_BYTES:
        return None
    return summary
