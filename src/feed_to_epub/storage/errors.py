"""Cache store error taxonomy."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class StorageError(Exception):
    """Base cache store error."""

    message: str
    code: str = "storage_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class StoreOpenError(StorageError):
    """Backing database file could not be opened or created."""

    location: str = ""


@dataclass(slots=True)
class SchemaError(StorageError):
    """Tables could not be created."""


@dataclass(slots=True)
class StorageQueryError(StorageError):
    """A read failed for a reason other than the row being absent."""


@dataclass(slots=True)
class StorageWriteError(StorageError):
    """An insert or upsert did not apply."""


@dataclass(slots=True)
class FeedNotFoundAfterInsertError(StorageError):
    """A freshly inserted feed row could not be read back.

    This is a logic bug rather than a transient condition.
    """

    url: str = ""


@dataclass(slots=True)
class EntryNotFoundError(StorageError):
    """No entry is stored under the requested feed entry id."""

    feed_entry_id: str = ""
