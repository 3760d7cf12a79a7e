"""RSS 2.0 / Atom parser producing a structured feed document."""

from __future__ import annotations

import copy
import hashlib
import html
import json
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

from defusedxml import DefusedXmlException, ElementTree

from feed_to_epub.models import FeedDocument, FeedEntry


@dataclass(slots=True)
class FeedParseError(Exception):
    """Feed body is not a usable RSS/Atom document."""

    message: str
    code: str = "feed_parse_error"

    def __str__(self) -> str:
        return self.message


def parse_feed(raw_xml: str | bytes, feed_url: str) -> FeedDocument:
    """Parse a feed body; bytes are decoded by the XML declaration."""

    try:
        root = ElementTree.fromstring(raw_xml)
    except ElementTree.ParseError as error:
        raise FeedParseError(
            message=f"Invalid RSS/Atom XML from {feed_url}",
            code="invalid_feed_xml",
        ) from error
    except DefusedXmlException as error:
        raise FeedParseError(
            message=f"Refusing unsafe XML from {feed_url}: {error}",
            code="unsafe_feed_xml",
        ) from error

    root_name = _local_name(root.tag)
    if root_name == "rss":
        return _parse_rss(root, feed_url)
    if root_name == "feed":
        return _parse_atom(root, feed_url)

    # Best effort: some feeds omit top-level conventions.
    rss_items = root.findall(".//item")
    if rss_items:
        channel = root.find(".//channel")
        container = channel if channel is not None else root
        return _parse_rss(container, feed_url)
    atom_entries = [element for element in root.iter() if _local_name(element.tag) == "entry"]
    if atom_entries:
        return _parse_atom(root, feed_url)

    raise FeedParseError(
        message=f"Unsupported feed format from {feed_url}",
        code="unsupported_feed_format",
    )


def _parse_rss(root: ElementTree.Element, feed_url: str) -> FeedDocument:
    channel = root.find("channel")
    container = channel if channel is not None else root

    entries: list[FeedEntry] = []
    for item in container:
        if _local_name(item.tag) != "item":
            continue

        title = _child_text(item, "title")
        link = _child_text(item, "link")
        guid = _child_text(item, "guid")
        raw_pub_date = _child_text(item, "pubDate")
        published = _parse_datetime(raw_pub_date)
        authors = tuple(
            name
            for name in (_child_text(item, "creator"), _child_text(item, "author"))
            if name
        )

        entries.append(
            FeedEntry(
                entry_id=_build_entry_id(feed_url, guid, link, title, raw_pub_date),
                title=title,
                link=link,
                summary=_child_text(item, "description"),
                content=_child_text(item, "encoded"),
                authors=authors,
                published=published,
                updated=published,
            ),
        )
    return FeedDocument(feed_url=feed_url, title=_child_text(container, "title"), entries=entries)


def _parse_atom(root: ElementTree.Element, feed_url: str) -> FeedDocument:
    entries: list[FeedEntry] = []
    for entry in root.iter():
        if _local_name(entry.tag) != "entry":
            continue

        title = _child_text(entry, "title")
        link = _atom_link(entry)
        entry_id = _child_text(entry, "id")
        raw_published = _child_text(entry, "published")
        raw_updated = _child_text(entry, "updated")

        entries.append(
            FeedEntry(
                entry_id=_build_entry_id(
                    feed_url,
                    entry_id,
                    link,
                    title,
                    raw_published or raw_updated,
                ),
                title=title,
                link=link,
                summary=_atom_text(entry, "summary"),
                content=_atom_text(entry, "content"),
                authors=_atom_authors(entry),
                published=_parse_datetime(raw_published),
                updated=_parse_datetime(raw_updated) or _parse_datetime(raw_published),
            ),
        )
    return FeedDocument(feed_url=feed_url, title=_child_text(root, "title"), entries=entries)


def _atom_link(entry: ElementTree.Element) -> str | None:
    for child in entry:
        if _local_name(child.tag) != "link":
            continue
        rel = child.attrib.get("rel", "").strip().lower()
        href = child.attrib.get("href", "").strip()
        if not href:
            continue
        if not rel or rel == "alternate":
            return href
    for child in entry:
        if _local_name(child.tag) == "link":
            href = child.attrib.get("href", "").strip()
            if href:
                return href
    return None


def _atom_text(entry: ElementTree.Element, name: str) -> str | None:
    for child in entry:
        if _local_name(child.tag) != name:
            continue
        if child.attrib.get("type", "").strip().lower() == "xhtml":
            return _xhtml_markup(child)
        break
    return _child_text(entry, name)


def _xhtml_markup(element: ElementTree.Element) -> str | None:
    # Atom wraps xhtml content in a single div, which is not part of the content.
    container = element
    if len(element) == 1 and _local_name(element[0].tag) == "div":
        container = element[0]
    parts = [html.escape(container.text or "", quote=False)]
    for child in container:
        plain = copy.deepcopy(child)
        for node in plain.iter():
            if isinstance(node.tag, str) and "}" in node.tag:
                node.tag = node.tag.rsplit("}", 1)[1]
        parts.append(ElementTree.tostring(plain, encoding="unicode"))
    markup = "".join(parts).strip()
    return markup or None


def _atom_authors(entry: ElementTree.Element) -> tuple[str, ...]:
    names: list[str] = []
    for child in entry:
        if _local_name(child.tag) != "author":
            continue
        name = _child_text(child, "name") or _child_text(child, "email")
        if name:
            names.append(name)
    return tuple(names)


def _child_text(element: ElementTree.Element, name: str) -> str | None:
    target = name.lower()
    for child in element:
        if _local_name(child.tag) != target:
            continue
        if child.text and child.text.strip():
            return child.text.strip()
        full_text = "".join(child.itertext()).strip()
        if full_text:
            return full_text
    return None


def _local_name(tag: str) -> str:
    if "}" in tag:
        return tag.rsplit("}", 1)[1].lower()
    return tag.lower()


def _parse_datetime(raw_value: str | None) -> datetime | None:
    if not raw_value:
        return None

    try:
        parsed = parsedate_to_datetime(raw_value)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=UTC)
        return parsed.astimezone(UTC)
    except (TypeError, ValueError):
        pass

    try:
        iso = datetime.fromisoformat(raw_value)
        if iso.tzinfo is None:
            return iso.replace(tzinfo=UTC)
        return iso.astimezone(UTC)
    except ValueError:
        return None


def _build_entry_id(
    feed_url: str,
    native_id: str | None,
    link: str | None,
    title: str | None,
    raw_date: str | None,
) -> str:
    if native_id and native_id.strip():
        return native_id.strip()
    raw = json.dumps(
        {
            "feed_url": feed_url,
            "link": link or "",
            "title": title or "",
            "raw_date": (raw_date or "").strip(),
        },
        sort_keys=True,
        ensure_ascii=True,
    )
    digest = hashlib.sha1(raw.encode("utf-8"), usedforsecurity=False).hexdigest()  # noqa: S324
    return f"generated:{digest}"
