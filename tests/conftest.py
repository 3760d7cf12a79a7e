"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import httpx
import pytest

from feed_to_epub.config import FeedSettings
from feed_to_epub.http.fetcher import ConditionalFetcher
from feed_to_epub.models import ConditionalType
from feed_to_epub.storage.repository import SQLiteRepository

Reply = Callable[[httpx.Request], httpx.Response]


class RecordingHandler:
    """MockTransport handler that records requests and answers through `reply`."""

    def __init__(self, reply: Reply) -> None:
        self.reply = reply
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.reply(request)


@pytest.fixture()
def repository() -> Iterator[SQLiteRepository]:
    repo = SQLiteRepository.in_memory()
    repo.init_schema()
    yield repo
    repo.close()


@pytest.fixture()
def make_feed(tmp_path: Path) -> Callable[..., FeedSettings]:
    def _make_feed(
        name: str = "example",
        url: str = "https://example.com/feed.xml",
        *,
        poll_interval_seconds: int = 14_400,
        conditional_type: ConditionalType = ConditionalType.LAST_MODIFIED,
    ) -> FeedSettings:
        return FeedSettings(
            name=name,
            url=url,
            download_dir=tmp_path / "out" / name,
            poll_interval_seconds=poll_interval_seconds,
            conditional_type=conditional_type,
        )

    return _make_feed


@pytest.fixture()
def make_fetcher() -> Iterator[Callable[[Reply], tuple[ConditionalFetcher, RecordingHandler]]]:
    fetchers: list[ConditionalFetcher] = []

    def _make_fetcher(reply: Reply) -> tuple[ConditionalFetcher, RecordingHandler]:
        handler = RecordingHandler(reply)
        fetcher = ConditionalFetcher(transport=httpx.MockTransport(handler))
        fetchers.append(fetcher)
        return fetcher, handler

    yield _make_fetcher
    for fetcher in fetchers:
        fetcher.close()
