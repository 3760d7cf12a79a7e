"""SQLite-backed cache store for feed fetch state and ingested entries."""

from feed_to_epub.storage.errors import (
    EntryNotFoundError,
    FeedNotFoundAfterInsertError,
    SchemaError,
    StorageError,
    StorageQueryError,
    StorageWriteError,
    StoreOpenError,
)
from feed_to_epub.storage.repository import SQLiteRepository

__all__ = [
    "EntryNotFoundError",
    "FeedNotFoundAfterInsertError",
    "SQLiteRepository",
    "SchemaError",
    "StorageError",
    "StorageQueryError",
    "StorageWriteError",
    "StoreOpenError",
]
