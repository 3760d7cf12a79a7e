"""Runtime configuration: feeds to poll, database location and HTTP limits."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import httpx

from feed_to_epub.models import ConditionalType

DEFAULT_CONFIG_PATH = Path("~/.config/rss-to-epub/config.toml")
DEFAULT_DB_PATH = Path("./feed-to-rss.db")
DEFAULT_HTTP_REQUEST_TIMEOUT_SECONDS = 15.0
DEFAULT_POLL_INTERVAL_SECONDS = 14_400
MIN_POLL_INTERVAL_SECONDS = 3_600


@dataclass(slots=True)
class FeedSettings:
    """One configured feed."""

    name: str
    url: str
    download_dir: Path
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL_SECONDS
    conditional_type: ConditionalType = ConditionalType.LAST_MODIFIED

    @property
    def poll_interval(self) -> timedelta:
        return timedelta(seconds=self.poll_interval_seconds)


@dataclass(slots=True)
class Settings:
    """Application settings."""

    db_path: Path = DEFAULT_DB_PATH
    http_request_timeout_seconds: float = DEFAULT_HTTP_REQUEST_TIMEOUT_SECONDS
    feeds: tuple[FeedSettings, ...] = field(default_factory=tuple)

    @classmethod
    def from_toml(cls, config_path: Path, *, db_path: Path | None = None) -> Settings:
        """Load settings from a TOML file, then apply environment overrides."""

        path = config_path.expanduser()
        try:
            with path.open("rb") as handle:
                raw = tomllib.load(handle)
        except FileNotFoundError as error:
            raise ValueError(f"Config file not found: {path}") from error
        except OSError as error:
            raise ValueError(f"Could not read config file {path}: {error}") from error
        except tomllib.TOMLDecodeError as error:
            raise ValueError(f"Could not parse config file {path}, invalid TOML: {error}") from error
        return cls.from_mapping(raw, db_path=db_path)

    @classmethod
    def from_mapping(cls, raw: dict[str, Any], *, db_path: Path | None = None) -> Settings:
        feeds_raw = raw.get("feeds", {})
        if not isinstance(feeds_raw, dict):
            raise ValueError("Invalid config: [feeds] must be a table of named feeds.")

        resolved_db_path = (
            db_path
            or _env_path("FEED_TO_EPUB_DB_PATH")
            or Path(str(raw.get("db_file", DEFAULT_DB_PATH)))
        )
        timeout = os.getenv("FEED_TO_EPUB_HTTP_REQUEST_TIMEOUT_SECS")
        return cls(
            db_path=resolved_db_path.expanduser(),
            http_request_timeout_seconds=float(
                timeout
                if timeout is not None
                else raw.get("http_request_timeout_secs", DEFAULT_HTTP_REQUEST_TIMEOUT_SECONDS),
            ),
            feeds=tuple(_feed_from_mapping(name, value) for name, value in feeds_raw.items()),
        )

    def validate(self) -> None:
        """Raise configuration error if feeds are missing, invalid or polled too often."""

        if not self.feeds:
            raise ValueError("At least one feed is required under [feeds.<name>].")
        if self.http_request_timeout_seconds <= 0:
            raise ValueError("http_request_timeout_secs must be > 0.")

        for feed in self.feeds:
            _validate_feed_url(feed.name, feed.url)

        too_fast = sorted(
            feed.name for feed in self.feeds if feed.poll_interval_seconds < MIN_POLL_INTERVAL_SECONDS
        )
        if too_fast:
            raise ValueError(
                f"Behave, the poll interval cannot be set below {MIN_POLL_INTERVAL_SECONDS}s: "
                f"{', '.join(too_fast)}",
            )


def _feed_from_mapping(name: str, raw: object) -> FeedSettings:
    if not isinstance(raw, dict):
        raise ValueError(f"Invalid config for feed {name!r}: expected a table.")
    url = raw.get("url")
    download_dir = raw.get("download_dir")
    if not url or not download_dir:
        raise ValueError(f"Feed {name!r} requires both 'url' and 'download_dir'.")

    try:
        poll_interval_seconds = int(raw.get("poll_interval_secs", DEFAULT_POLL_INTERVAL_SECONDS))
    except (TypeError, ValueError) as error:
        raise ValueError(
            f"Invalid poll_interval_secs for feed {name!r}: {raw.get('poll_interval_secs')!r}",
        ) from error

    return FeedSettings(
        name=name,
        url=str(url).strip(),
        download_dir=Path(str(download_dir)).expanduser(),
        poll_interval_seconds=poll_interval_seconds,
        conditional_type=_parse_conditional_type(name, raw.get("conditional_type")),
    )


def _parse_conditional_type(name: str, value: object) -> ConditionalType:
    if value is None:
        return ConditionalType.LAST_MODIFIED
    try:
        return ConditionalType(str(value))
    except ValueError as error:
        allowed = ", ".join(item.value for item in ConditionalType)
        raise ValueError(
            f"Invalid conditional_type for feed {name!r}: {value!r}. Expected one of: {allowed}",
        ) from error


def _validate_feed_url(name: str, value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid feed URL for {name!r}: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )
    try:
        httpx.URL(value)
    except httpx.InvalidURL as error:
        raise ValueError(f"Invalid feed URL for {name!r}: {value!r}. {error}") from error


def _env_path(name: str) -> Path | None:
    value = os.getenv(name, "").strip()
    if not value:
        return None
    return Path(value)
