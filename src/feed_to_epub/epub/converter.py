"""EPUB packaging of single feed entries."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from ebooklib import epub

from feed_to_epub.feeds.conversion import EntryConversionError, bounded_summary, extract_html
from feed_to_epub.models import FeedEntry

logger = logging.getLogger(__name__)

GENERATOR = "feed-to-epub"
DEFAULT_LANGUAGE = "en"
CHAPTER_FILE_NAME = "content.xhtml"


@dataclass(slots=True)
class EntryConverterError(Exception):
    """An entry could not be written as an output document."""

    message: str
    code: str = "entry_converter_error"

    def __str__(self) -> str:
        return self.message


class EntryConverter(Protocol):
    """Turns one feed entry into an output artifact under `download_dir`."""

    def convert(self, feed_name: str, download_dir: Path, entry: FeedEntry) -> Path:
        raise NotImplementedError


class EpubConverter:
    """Writes each entry as a one-chapter EPUB 3 book named after its title."""

    def __init__(self, *, language: str = DEFAULT_LANGUAGE) -> None:
        self.language = language

    def convert(self, feed_name: str, download_dir: Path, entry: FeedEntry) -> Path:
        if not entry.title:
            raise EntryConverterError(
                message=f"could not get title from entry {entry.entry_id!r}",
                code="missing_title",
            )
        try:
            html = extract_html(entry)
        except EntryConversionError as error:
            raise EntryConverterError(message=str(error), code=error.code) from error

        book = self._build_book(feed_name, entry, html)
        path = entry_title_to_file_name(download_dir, entry.title)
        # epub.write_epub() discards IOError from the final write.
        writer = epub.EpubWriter(str(path), book, {})
        try:
            writer.process()
            writer.write()
        except Exception as error:  # noqa: BLE001
            raise EntryConverterError(
                message=f"could not write {path}: {error}",
                code="write_failed",
            ) from error
        logger.debug("Wrote %s", path)
        return path

    def _build_book(self, feed_name: str, entry: FeedEntry, html: str) -> epub.EpubBook:
        title = entry.title or ""
        book = epub.EpubBook()
        book.set_identifier(entry.entry_id)
        book.set_title(title)
        book.set_language(self.language)
        book.add_metadata(None, "meta", "", {"name": "generator", "content": GENERATOR})
        book.add_metadata(
            None,
            "meta",
            feed_name,
            {"property": "belongs-to-collection", "id": "collection"},
        )
        if entry.published is not None:
            book.add_metadata("DC", "date", entry.published.isoformat())
        summary = bounded_summary(entry)
        if summary:
            book.add_metadata("DC", "description", summary)
        for author in entry.authors:
            book.add_author(author)

        chapter = epub.EpubHtml(title=title, file_name=CHAPTER_FILE_NAME, lang=self.language)
        chapter.content = html_to_xhtml_document(title, html)
        book.add_item(chapter)
        book.toc = [epub.Link(CHAPTER_FILE_NAME, title, "content")]
        book.add_item(epub.EpubNcx())
        book.add_item(epub.EpubNav())
        book.spine = ["nav", chapter]
        return book


def html_to_xhtml_document(title: str, html: str) -> str:
    escaped_title = title.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    return (
        '<html xmlns="http://www.w3.org/1999/xhtml">\n'
        f"  <head><title>{escaped_title}</title></head>\n"
        f"  <body>\n{html}\n  </body>\n"
        "</html>"
    )


def entry_title_to_file_name(download_dir: Path, title: str) -> Path:
    return download_dir / f"{title.replace('/', '_')}.epub"
