"""Data models for chapters, parse results and EPUB package structure."""

import json
import posixpath
import urllib.parse
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Optional

from .errors import ErrorKind

DEFAULT_TITLE = "Untitled"
DEFAULT_AUTHOR = "Unknown Author"


class ChapterSource(str, Enum):
    """Strategy that produced a chapter."""

    NAVIGATION = "navigation"
    READING_ORDER = "reading-order"
    HEADING = "heading"
    MANUAL = "manual"


@dataclass(frozen=True)
class Chapter:
    """A single titled unit of narration."""

    id: str
    title: str
    text: str
    index: int
    source: ChapterSource
    href: str = ""
    level: int = 0
    load_error: Optional[str] = None

    @property
    def char_count(self) -> int:
        return len(self.text)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "href": self.href,
            "title": self.title,
            "level": self.level,
            "text": self.text,
            "index": self.index,
            "source": self.source.value,
        }
        if self.load_error:
            data["loadError"] = self.load_error
        return data


def reindex(chapters: Iterable[Chapter]) -> tuple[Chapter, ...]:
    """Return copies of ``chapters`` whose ``index`` matches their position."""
    return tuple(
        chapter if chapter.index == i else replace(chapter, index=i)
        for i, chapter in enumerate(chapters)
    )


def render_content(chapters: Iterable[Chapter]) -> str:
    """Concatenate chapter texts, each prefixed by a ``# Title`` marker."""
    return "".join(f"# {ch.title}\n\n{ch.text}\n\n" for ch in chapters)


@dataclass(frozen=True)
class ParseResult:
    """
    Top-level output of every parse.

    ``success`` is False only for fatal failures, in which case ``chapters``
    is empty and ``error`` holds a readable message. Degraded but usable
    results keep ``success`` True and describe the problem in ``warnings``.
    """

    title: str = DEFAULT_TITLE
    author: str = DEFAULT_AUTHOR
    chapters: tuple[Chapter, ...] = ()
    success: bool = True
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    pattern_match_counts: Optional[dict[str, int]] = field(default=None, hash=False)
    warnings: tuple[str, ...] = ()

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        title: str = DEFAULT_TITLE,
        author: str = DEFAULT_AUTHOR,
    ) -> "ParseResult":
        return cls(
            title=title,
            author=author,
            chapters=(),
            success=False,
            error=message,
            error_kind=kind,
        )

    @property
    def content(self) -> str:
        return render_content(self.chapters)

    @property
    def total_characters(self) -> int:
        return sum(ch.char_count for ch in self.chapters)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "title": self.title,
            "author": self.author,
            "chapters": [ch.to_dict() for ch in self.chapters],
            "content": self.content,
            "success": self.success,
        }
        if not self.success:
            data["error"] = self.error or "Unknown error"
            if self.error_kind is not None:
                data["errorKind"] = self.error_kind.value
        if self.pattern_match_counts is not None:
            data["patternMatchCounts"] = dict(self.pattern_match_counts)
        if self.warnings:
            data["warnings"] = list(self.warnings)
        return data

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


@dataclass
class NavPoint:
    """One entry of a navigation outline. Children keep document order."""

    label: str
    href: Optional[str] = None
    children: list["NavPoint"] = field(default_factory=list)


@dataclass(frozen=True)
class ManifestItem:
    """A manifest entry, with ``href`` already resolved to an archive path."""

    id: str
    href: str
    media_type: str
    properties: tuple[str, ...] = ()


@dataclass(frozen=True)
class PackageDocument:
    """What the root package descriptor tells us about the book."""

    path: str
    title: str
    author: str
    spine: tuple[str, ...]
    manifest: dict[str, ManifestItem] = field(hash=False)
    nav_id: Optional[str] = None
    ncx_id: Optional[str] = None

    @property
    def base_dir(self) -> str:
        return posixpath.dirname(self.path)

    def resolve(self, href: str, relative_to: Optional[str] = None) -> str:
        """
        Resolve a manifest or navigation href to a normalized archive path.

        Args:
            href: Raw href, possibly percent-encoded, possibly with fragment
            relative_to: Archive path of the document containing the href.
                Defaults to the package document itself.
        """
        return resolve_href(href, relative_to or self.path)


def resolve_href(href: str, relative_to: str) -> str:
    """Resolve ``href`` against the directory of ``relative_to``."""
    target = urllib.parse.unquote(href.split("#", 1)[0]).strip()
    if target.startswith("/"):
        return posixpath.normpath(target.lstrip("/"))
    base = posixpath.dirname(relative_to)
    joined = posixpath.join(base, target) if base else target
    normalized = posixpath.normpath(joined)
    return "" if normalized == "." else normalized


@dataclass(frozen=True)
class ChapterOutcome:
    """Result of loading one chapter's resource: text, or a failure kind."""

    path: str
    text: str = ""
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    @classmethod
    def loaded(cls, path: str, text: str) -> "ChapterOutcome":
        return cls(path=path, text=text)

    @classmethod
    def failed(cls, path: str, kind: ErrorKind, message: str) -> "ChapterOutcome":
        return cls(path=path, error_kind=kind, error=message)


@dataclass(frozen=True)
class DriftReport:
    """Advisory comparison of an edited split against its source text."""

    source_length: int
    chapter_length: int
    drift_percent: float
    threshold: float

    @property
    def exceeded(self) -> bool:
        return self.drift_percent > self.threshold
