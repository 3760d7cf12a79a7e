"""Conditional GET client for feed URLs."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from feed_to_epub import __version__
from feed_to_epub.models import ConditionalType

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
DEFAULT_USER_AGENT = f"feed-to-epub {__version__}; +https://github.com/catouc/feed-to-epub"
HTTP_NOT_MODIFIED = 304
HTTP_TOO_MANY_REQUESTS = 429


@dataclass(slots=True)
class FetchError(Exception):
    """Base fetch error."""

    message: str
    code: str = "fetch_error"

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class FetchTransportError(FetchError):
    """Request did not produce a usable response: network failure, timeout or bad status."""

    url: str = ""
    status_code: int | None = None


@dataclass(slots=True, frozen=True)
class Validators:
    """Stored validators of one feed, either of which may be absent."""

    last_modified: str | None = None
    etag: str | None = None


@dataclass(slots=True)
class Fresh:
    """Server returned a new feed body.

    The body stays undecoded so the XML declaration decides its encoding.
    """

    body: bytes
    new_last_modified: str | None = None
    new_etag: str | None = None


@dataclass(slots=True)
class NotModified:
    """Server confirmed the cached copy; it may still have rotated validators."""

    new_last_modified: str | None = None
    new_etag: str | None = None


@dataclass(slots=True)
class RateLimited:
    """Server asked us to back off."""

    retry_after: str | None = None


FetchOutcome = Fresh | NotModified | RateLimited


class ConditionalFetcher:
    """httpx client that sends one conditional GET per call and classifies the response.

    Nothing is retried here; the polling schedule decides when to try again.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._timeout = httpx.Timeout(
            timeout_seconds,
            connect=min(timeout_seconds, DEFAULT_CONNECT_TIMEOUT_SECONDS),
        )
        self._client = httpx.Client(
            timeout=self._timeout,
            headers={
                "User-Agent": user_agent,
                "Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml",
            },
            transport=transport or httpx.HTTPTransport(retries=0),
            follow_redirects=True,
        )

    @property
    def timeout(self) -> httpx.Timeout:
        return self._timeout

    def fetch(
        self,
        feed_url: str,
        validators: Validators,
        conditional_type: ConditionalType,
    ) -> FetchOutcome:
        headers = build_conditional_headers(validators, conditional_type)
        try:
            response = self._client.get(feed_url, headers=headers)
        except httpx.TimeoutException as error:
            raise FetchTransportError(
                message=f"timeout fetching {feed_url}",
                code="timeout",
                url=feed_url,
            ) from error
        except httpx.HTTPError as error:
            raise FetchTransportError(
                message=f"HTTP transport error fetching {feed_url}: {error}",
                code="transport",
                url=feed_url,
            ) from error
        except httpx.InvalidURL as error:
            raise FetchTransportError(
                message=f"invalid feed URL {feed_url}: {error}",
                code="invalid_url",
                url=feed_url,
            ) from error
        return classify_response(feed_url, response)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> ConditionalFetcher:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def build_conditional_headers(
    validators: Validators,
    conditional_type: ConditionalType,
) -> dict[str, str]:
    """Pick the one validator header this feed is configured for, if it is stored."""

    if conditional_type is ConditionalType.ETAG:
        if validators.etag:
            return {"If-None-Match": validators.etag}
        return {}
    if validators.last_modified:
        return {"If-Modified-Since": validators.last_modified}
    return {}


def classify_response(feed_url: str, response: httpx.Response) -> FetchOutcome:
    status = response.status_code
    if status == HTTP_NOT_MODIFIED:
        return NotModified(
            new_last_modified=_normalize_header(response.headers.get("Last-Modified")),
            new_etag=_normalize_header(response.headers.get("ETag")),
        )
    if status == HTTP_TOO_MANY_REQUESTS:
        return RateLimited(retry_after=_normalize_header(response.headers.get("Retry-After")))
    if response.is_success:
        return Fresh(
            body=response.content,
            new_last_modified=_normalize_header(response.headers.get("Last-Modified")),
            new_etag=_normalize_header(response.headers.get("ETag")),
        )
    raise FetchTransportError(
        message=f"unexpected HTTP status {status} for {feed_url}",
        code=str(status),
        url=feed_url,
        status_code=status,
    )


def _normalize_header(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None
