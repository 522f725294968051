"""
Markup to plain-text conversion for chapter resources.

Headings survive flattening as ``#``-style prefixes, blocks are separated by
blank lines and ``<br>`` becomes a single newline.
"""

import logging
import re
import warnings

from bs4 import (  # type: ignore[import-untyped]
    BeautifulSoup,
    Comment,
    Declaration,
    Doctype,
    NavigableString,
    ProcessingInstruction,
    XMLParsedAsHTMLWarning,
)

from .cleaner import clean_text
from .container import EPUBArchive
from .errors import EPUBError
from .models import Chapter, ChapterOutcome, ChapterSource

logger = logging.getLogger(__name__)

# EPUB content is XHTML; html.parser handles it fine
warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)

REMOVED_TAGS = ["script", "style", "head", "noscript", "template"]
HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]
BLOCK_TAGS = [
    "p",
    "div",
    "section",
    "article",
    "aside",
    "header",
    "footer",
    "blockquote",
    "pre",
    "ul",
    "ol",
    "li",
    "dl",
    "dt",
    "dd",
    "table",
    "tr",
    "figure",
    "figcaption",
    "hr",
]
INTRODUCTION_TITLE = "Introduction"
INTRODUCTION_ID = "heading-intro"

_WS = re.compile(r"\s+")
_SENTINEL = re.compile(r"\x00(\d+)\x00")
_NON_CONTENT = (Comment, Declaration, Doctype, ProcessingInstruction)


def _heading_title(tag) -> str:
    return " ".join(tag.get_text(" ").split())


def _prepare_soup(html: str) -> BeautifulSoup:
    """Parse ``html`` and apply every transformation except heading handling."""
    soup = BeautifulSoup(html.replace("\x00", ""), "html.parser")

    for tag in soup.find_all(REMOVED_TAGS):
        tag.decompose()

    for node in soup.find_all(string=True):
        if isinstance(node, _NON_CONTENT):
            node.extract()
        elif type(node) is NavigableString and node.find_parent("pre") is None:
            node.replace_with(_WS.sub(" ", str(node)))

    for br in soup.find_all("br"):
        br.replace_with("\n")

    return soup


def _mark_blocks(soup: BeautifulSoup) -> None:
    for tag in soup.find_all(BLOCK_TAGS):
        tag.insert(0, "\n\n")
        tag.append("\n\n")


def html_to_text(html: str, heading_marker: str = "#") -> str:
    """
    Convert a markup document to normalized plain text.

    Args:
        html: Raw (X)HTML
        heading_marker: Character repeated once per heading level in front
            of each heading line

    Returns:
        Plain text with blank lines between blocks, or "" for empty markup
    """
    if not html or not html.strip():
        return ""
    soup = _prepare_soup(html)

    for heading in soup.find_all(HEADING_TAGS):
        title = _heading_title(heading)
        if not title:
            heading.decompose()
            continue
        level = int(heading.name[1])
        heading.replace_with(f"\n\n{heading_marker * level} {title}\n\n")

    _mark_blocks(soup)
    return clean_text(soup.get_text())


def extract_chapters_from_headings(html: str) -> list[Chapter]:
    """
    Split one markup document into chapters at its headings.

    Each heading starts a chapter titled with the heading text; the text up
    to the next heading of any level is its body. Levels are relative to the
    shallowest heading found, so the top headings are level 0. Non-blank
    content before the first heading becomes an "Introduction" chapter.

    Args:
        html: Raw (X)HTML of a single document

    Returns:
        Chapters with ``source = heading``, indexed in document order
    """
    if not html or not html.strip():
        return []
    soup = _prepare_soup(html)

    found: list[tuple[int, str, str]] = []
    for heading in soup.find_all(HEADING_TAGS):
        title = _heading_title(heading)
        if not title:
            heading.decompose()
            continue
        anchor = heading.get("id") or ""
        found.append((int(heading.name[1]), title, str(anchor)))
        heading.replace_with(f"\n\n\x00{len(found) - 1}\x00\n\n")

    _mark_blocks(soup)
    parts = _SENTINEL.split(soup.get_text())

    chapters: list[Chapter] = []
    intro = clean_text(parts[0])
    if intro:
        chapters.append(
            Chapter(
                id=INTRODUCTION_ID,
                title=INTRODUCTION_TITLE,
                text=intro,
                index=0,
                source=ChapterSource.HEADING,
            )
        )

    if not found:
        return chapters

    top_level = min(level for level, _, _ in found)
    for i in range(1, len(parts), 2):
        heading_idx = int(parts[i])
        level, title, anchor = found[heading_idx]
        chapters.append(
            Chapter(
                id=f"heading-{heading_idx}",
                href=f"#{anchor}" if anchor else "",
                title=title,
                level=level - top_level,
                text=clean_text(parts[i + 1]),
                index=len(chapters),
                source=ChapterSource.HEADING,
            )
        )
    logger.debug(f"Split document into {len(found)} heading sections")
    return chapters


def load_markup(archive: EPUBArchive, path: str) -> ChapterOutcome:
    """Read the raw markup of ``path``; failures become a failed outcome."""
    try:
        return ChapterOutcome.loaded(path, archive.read_text(path))
    except EPUBError as e:
        logger.warning(f"Could not load chapter resource {path}: {e.message}")
        return ChapterOutcome.failed(path, e.kind, e.message)


def load_chapter_text(
    archive: EPUBArchive, path: str, heading_marker: str = "#"
) -> ChapterOutcome:
    """
    Load ``path`` from ``archive`` and convert it to plain text.

    Never raises for a missing or unreadable entry: the failure is returned
    as an outcome so the caller can keep the chapters that did load.
    """
    outcome = load_markup(archive, path)
    if not outcome.ok:
        return outcome
    return ChapterOutcome.loaded(path, html_to_text(outcome.text, heading_marker))
