"""SQLModel-backed cache store for feed fetch state and entries."""

from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import func
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from feed_to_epub.models import Entry, FeedStats
from feed_to_epub.storage.common import (
    IN_MEMORY_LOCATION,
    build_sqlite_engine,
    to_db_datetime,
    to_utc_aware_datetime,
)
from feed_to_epub.storage.errors import (
    EntryNotFoundError,
    FeedNotFoundAfterInsertError,
    SchemaError,
    StorageQueryError,
    StorageWriteError,
    StoreOpenError,
)
from feed_to_epub.storage.sqlmodel_models import EntryRow, FeedRow

logger = logging.getLogger(__name__)


class SQLiteRepository:
    """Durable mapping from feed URL to fetch state and from feed item to content.

    Every call opens its own session and re-reads from the database, so distinct
    feeds can be polled concurrently against one file.
    """

    def __init__(self, location: str | Path) -> None:
        self.location = str(location)
        self.engine = build_sqlite_engine(location=self.location)

    @classmethod
    def open(cls, location: str | Path) -> SQLiteRepository:
        """Open or create the database at `location`, failing early if unusable."""

        repository = cls(location)
        try:
            with repository.engine.connect():
                pass
        except SQLAlchemyError as error:
            repository.close()
            raise StoreOpenError(
                message=f"failed to open database file {repository.location}: {error}",
                code="open_failed",
                location=repository.location,
            ) from error
        return repository

    @classmethod
    def in_memory(cls) -> SQLiteRepository:
        return cls.open(IN_MEMORY_LOCATION)

    def close(self) -> None:
        self.engine.dispose()

    def __enter__(self) -> SQLiteRepository:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def init_schema(self) -> None:
        """Create the `feeds` and `entries` tables if they do not exist yet."""

        try:
            SQLModel.metadata.create_all(
                self.engine,
                tables=[FeedRow.__table__, EntryRow.__table__],  # type: ignore[attr-defined]
            )
        except SQLAlchemyError as error:
            raise SchemaError(
                message=f"failed to initialise database {self.location}: {error}",
                code="schema_failed",
            ) from error

    def get_feed_stats(self, url: str) -> FeedStats | None:
        """Return stored stats, or None when the feed has never been polled."""

        try:
            with Session(self.engine) as session:
                row = session.exec(select(FeedRow).where(FeedRow.feed_url == url)).one_or_none()
                if row is None:
                    return None
                return _feed_stats_from_row(row)
        except SQLAlchemyError as error:
            raise StorageQueryError(
                message=f"failed to read feed stats for {url}: {error}",
                code="query_failed",
            ) from error

    def list_feed_stats(self) -> list[FeedStats]:
        try:
            with Session(self.engine) as session:
                rows = session.exec(select(FeedRow).order_by(FeedRow.feed_url)).all()
                return [_feed_stats_from_row(row) for row in rows]
        except SQLAlchemyError as error:
            raise StorageQueryError(
                message=f"failed to list feed stats: {error}",
                code="query_failed",
            ) from error

    def create_feed_stats(self, url: str) -> FeedStats:
        """Insert a bare row for `url` and return it as read back from storage."""

        try:
            with Session(self.engine) as session:
                session.add(FeedRow(feed_url=url))
                session.commit()
        except SQLAlchemyError as error:
            raise StorageWriteError(
                message=f"failed to insert feed stats for {url}: {error}",
                code="insert_failed",
            ) from error

        stats = self.get_feed_stats(url)
        if stats is None:
            raise FeedNotFoundAfterInsertError(
                message=f"cannot find feed {url} right after inserting it, this is a bug",
                code="not_found_after_insert",
                url=url,
            )
        logger.debug("Created feed stats row id=%s for %s", stats.id, url)
        return stats

    def save_feed_stats(self, stats: FeedStats) -> None:
        """Write every field of `stats`, keyed by URL, in one statement."""

        last_fetched = None if stats.last_fetched is None else to_db_datetime(stats.last_fetched)
        statement = sqlite_insert(FeedRow).values(
            feed_url=stats.url,
            etag=stats.etag,
            last_modified=stats.last_modified,
            last_fetched=last_fetched,
        )
        statement = statement.on_conflict_do_update(
            index_elements=["feed_url"],
            set_={
                "etag": statement.excluded.etag,
                "last_modified": statement.excluded.last_modified,
                "last_fetched": statement.excluded.last_fetched,
            },
        )
        try:
            with Session(self.engine) as session:
                session.exec(statement)  # type: ignore[call-overload]
                session.commit()
        except SQLAlchemyError as error:
            raise StorageWriteError(
                message=f"failed to save feed stats for {stats.url}: {error}",
                code="write_failed",
            ) from error

    def upsert_entry(self, entry: Entry) -> None:
        """Insert the entry, overwriting any row with the same (feed, entry id)."""

        statement = sqlite_insert(EntryRow).values(
            feed_id=entry.feed_id,
            feed_entry_id=entry.feed_entry_id,
            title=entry.title,
            updated=entry.updated,
            authors=entry.authors,
            summary=entry.summary,
            content=entry.content,
        )
        statement = statement.on_conflict_do_update(
            index_elements=["feed_id", "feed_entry_id"],
            set_={
                "title": statement.excluded.title,
                "updated": statement.excluded.updated,
                "authors": statement.excluded.authors,
                "summary": statement.excluded.summary,
                "content": statement.excluded.content,
            },
        )
        try:
            with Session(self.engine) as session:
                session.exec(statement)  # type: ignore[call-overload]
                session.commit()
        except SQLAlchemyError as error:
            raise StorageWriteError(
                message=(
                    f"failed to store entry {entry.feed_entry_id!r} "
                    f"of feed id={entry.feed_id}: {error}"
                ),
                code="write_failed",
            ) from error

    def get_entry(self, feed_entry_id: str, *, feed_id: int | None = None) -> Entry:
        try:
            with Session(self.engine) as session:
                query = select(EntryRow).where(EntryRow.feed_entry_id == feed_entry_id)
                if feed_id is not None:
                    query = query.where(EntryRow.feed_id == feed_id)
                row = session.exec(query.order_by(EntryRow.id)).first()
                if row is not None:
                    return _entry_from_row(row)
        except SQLAlchemyError as error:
            raise StorageQueryError(
                message=f"failed to read entry {feed_entry_id!r}: {error}",
                code="query_failed",
            ) from error
        raise EntryNotFoundError(
            message=f"entry not found: {feed_entry_id!r}",
            code="not_found",
            feed_entry_id=feed_entry_id,
        )

    def count_entries(self, *, feed_id: int | None = None) -> int:
        try:
            with Session(self.engine) as session:
                query = select(func.count()).select_from(EntryRow)
                if feed_id is not None:
                    query = query.where(EntryRow.feed_id == feed_id)
                return int(session.exec(query).one())
        except SQLAlchemyError as error:
            raise StorageQueryError(
                message=f"failed to count entries: {error}",
                code="query_failed",
            ) from error


def _feed_stats_from_row(row: FeedRow) -> FeedStats:
    if row.id is None:
        raise StorageQueryError(message=f"feed row without id: {row.feed_url}", code="corrupt_row")
    return FeedStats(
        id=row.id,
        url=row.feed_url,
        last_modified=row.last_modified,
        etag=row.etag,
        last_fetched=None if row.last_fetched is None else to_utc_aware_datetime(row.last_fetched),
    )


def _entry_from_row(row: EntryRow) -> Entry:
    return Entry(
        feed_id=row.feed_id,
        feed_entry_id=row.feed_entry_id,
        title=row.title or "",
        content=row.content,
        updated=row.updated,
        authors=row.authors,
        summary=row.summary or "",
    )
