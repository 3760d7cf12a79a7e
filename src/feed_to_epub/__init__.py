"""Poll RSS/Atom feeds with conditional GETs and turn new entries into EPUB files."""

__version__ = "0.6.3"
