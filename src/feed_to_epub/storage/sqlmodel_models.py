"""SQLModel ORM tables for the feed cache."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class FeedRow(SQLModel, table=True):
    __tablename__ = "feeds"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    feed_url: str = Field(sa_column=Column(Text, nullable=False, unique=True))
    last_modified: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    last_fetched: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    etag: str | None = Field(default=None, sa_column=Column(Text, nullable=True))


class EntryRow(SQLModel, table=True):
    __tablename__ = "entries"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint(
            "feed_id",
            "feed_entry_id",
            name="uq_entries_feed_entry",
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    feed_id: int = Field(
        sa_column=Column(Integer, ForeignKey("feeds.id"), nullable=False, index=True),
    )
    feed_entry_id: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    title: str | None = Field(default=None, sa_column=Column(Text))
    updated: str | None = Field(default=None, sa_column=Column(Text))
    authors: str | None = Field(default=None, sa_column=Column(Text))
    summary: str | None = Field(default=None, sa_column=Column(Text))
    content: str = Field(sa_column=Column(Text, nullable=False))
