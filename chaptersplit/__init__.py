"""
chaptersplit - Split EPUB and plain-text books into chapters for narration.

Extracts title, author and an ordered list of titled chapters from EPUB
packages, segments plain text at heuristic chapter boundaries, and checks
hand-edited splits against their source text.
"""

from .cleaner import TextCleaner, clean_text
from .errors import EPUBError, ErrorKind
from .models import Chapter, ChapterSource, DriftReport, ParseResult
from .parser import (
    EPUBParser,
    aparse_document,
    aparse_epub_bytes,
    parse_document,
    parse_epub_bytes,
    parse_text,
)
from .reconcile import build_manual_result, reconcile_split
from .segmenter import DEFAULT_CHAPTER_PATTERNS, segment_text, split_evenly

__all__ = [
    "EPUBParser",
    "parse_epub_bytes",
    "parse_text",
    "parse_document",
    "aparse_epub_bytes",
    "aparse_document",
    "Chapter",
    "ChapterSource",
    "DriftReport",
    "ParseResult",
    "EPUBError",
    "ErrorKind",
    "build_manual_result",
    "reconcile_split",
    "segment_text",
    "split_evenly",
    "DEFAULT_CHAPTER_PATTERNS",
    "clean_text",
    "TextCleaner",
]

try:
    from ._version import version as __version__
except ImportError:
    __version__ = "0.0.0+unknown"
