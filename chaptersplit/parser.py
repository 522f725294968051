"""
Chapter extraction entry points.

EPUB input goes container -> package -> navigation -> content, plain text
goes through the heuristic segmenter. Both end in a ParseResult; documented
failures are returned in the result, never raised.
"""

import asyncio
import logging
from pathlib import Path
from typing import Iterable, Optional, Union

from .container import EPUBArchive
from .content import (
    INTRODUCTION_ID,
    extract_chapters_from_headings,
    load_chapter_text,
    load_markup,
)
from .errors import EPUBError, ErrorKind
from .models import (
    DEFAULT_AUTHOR,
    DEFAULT_TITLE,
    Chapter,
    ChapterOutcome,
    NavPoint,
    PackageDocument,
    ParseResult,
    reindex,
)
from .navigation import (
    MAX_OUTLINE_DEPTH,
    ChapterPlan,
    plan_chapters,
    resolve_navigation,
)
from .package import read_package
from .segmenter import DEFAULT_CHAPTER_PATTERNS, PatternLike, segment_text

logger = logging.getLogger(__name__)

EPUB_MEDIA_TYPES = frozenset({"application/epub+zip", "application/epub"})
TEXT_MEDIA_TYPES = frozenset({"text/plain", "text/markdown", "text/x-markdown"})


class EPUBParser:
    """
    Parse an EPUB held in memory into ordered, titled chapters.

    Chapter discovery precedence:
      1. navigation document present: one chapter per reading-order entry,
         titled from the navigation where the paths match
      2. no navigation and a single content document with at least two
         headings: that document is split at its headings
      3. otherwise one "Chapter N" per reading-order entry

    A parser instance owns its archive. Every parse opens it afresh and
    closes it when done, so ``parse`` may be called again.
    """

    def __init__(
        self,
        data: bytes,
        heading_marker: str = "#",
        split_single_document: bool = True,
        max_outline_depth: int = MAX_OUTLINE_DEPTH,
    ):
        """
        Args:
            data: Raw EPUB bytes
            heading_marker: Prefix character for heading lines in chapter text
            split_single_document: Enable the heading split of strategy 2
            max_outline_depth: Navigation entries nested deeper are ignored
        """
        self.data = data
        self.heading_marker = heading_marker
        self.split_single_document = split_single_document
        self.max_outline_depth = max_outline_depth
        self.archive: Optional[EPUBArchive] = None
        self.package: Optional[PackageDocument] = None
        self.outline: Optional[list[NavPoint]] = None

    @classmethod
    def from_file(cls, filepath: Union[str, Path], **kwargs) -> "EPUBParser":
        """
        Raises:
            FileNotFoundError: If file doesn't exist
        """
        path = Path(filepath)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {filepath}")
        return cls(path.read_bytes(), **kwargs)

    def load(self) -> PackageDocument:
        """
        Open the archive and read package and navigation.

        Raises:
            EPUBError: For any structural defect of the container
        """
        self.archive = EPUBArchive.from_bytes(self.data)
        self.package = read_package(self.archive)
        self.outline = resolve_navigation(
            self.archive, self.package, self.max_outline_depth
        )
        return self.package

    def plan(self) -> list[ChapterPlan]:
        """Chapter order and titles for the loaded package."""
        if self.package is None:
            self.load()
        assert self.package is not None
        plans = plan_chapters(self.package, self.outline, self.max_outline_depth)
        if not plans:
            raise EPUBError(
                ErrorKind.NO_READABLE_CONTENT,
                "Invalid EPUB: the reading order contains no content documents",
            )
        return plans

    def split_by_headings(self, plans: list[ChapterPlan]) -> Optional[list[Chapter]]:
        """
        Heading split for single-document books without navigation.

        Returns:
            The heading chapters, or None when the strategy does not apply
        """
        if not self.split_single_document or self.outline or len(plans) != 1:
            return None
        assert self.archive is not None
        plan = plans[0]
        outcome = load_markup(self.archive, plan.path)
        if not outcome.ok:
            return None
        chapters = extract_chapters_from_headings(outcome.text)
        headings = [ch for ch in chapters if ch.id != INTRODUCTION_ID]
        if len(headings) < 2:
            return None
        logger.info(f"Split single document {plan.path} at {len(headings)} headings")
        return [
            Chapter(
                id=ch.id,
                href=f"{plan.path}{ch.href}",
                title=ch.title,
                text=ch.text,
                index=ch.index,
                source=ch.source,
                level=ch.level,
            )
            for ch in chapters
        ]

    def extract(self, plans: list[ChapterPlan]) -> list[ChapterOutcome]:
        """Load the text of every planned chapter, in order."""
        assert self.archive is not None
        return [
            load_chapter_text(self.archive, plan.path, self.heading_marker)
            for plan in plans
        ]

    def assemble(
        self,
        plans: list[ChapterPlan],
        outcomes: list[ChapterOutcome],
    ) -> ParseResult:
        """
        Fold per-chapter outcomes into a ParseResult.

        A failed outcome yields a chapter with empty text and ``load_error``
        set; the result stays successful.
        """
        assert self.package is not None
        chapters: list[Chapter] = []
        warnings: list[str] = []
        for plan, outcome in zip(plans, outcomes):
            if not outcome.ok:
                warnings.append(f'Chapter "{plan.title}": {outcome.error}')
            chapters.append(
                Chapter(
                    id=plan.id,
                    href=plan.path,
                    title=plan.title,
                    level=plan.level,
                    text=outcome.text if outcome.ok else "",
                    index=len(chapters),
                    source=plan.source,
                    load_error=outcome.error,
                )
            )
        if warnings:
            logger.warning(f"{len(warnings)} chapter(s) failed to load")
        return self._result(chapters, warnings)

    def _result(
        self, chapters: list[Chapter], warnings: Iterable[str] = ()
    ) -> ParseResult:
        assert self.package is not None
        logger.info(f"Assembled {len(chapters)} chapters")
        return ParseResult(
            title=self.package.title,
            author=self.package.author,
            chapters=reindex(chapters),
            warnings=tuple(warnings),
        )

    def _failure(self, error: EPUBError) -> ParseResult:
        logger.error(f"EPUB parse failed: {error}")
        if self.package is not None:
            return ParseResult.failure(
                error.kind, error.message, self.package.title, self.package.author
            )
        return ParseResult.failure(error.kind, error.message)

    def close(self) -> None:
        """Close the archive and drop state loaded from it."""
        if self.archive is not None:
            self.archive.close()
        self.archive = None
        self.package = None
        self.outline = None

    def parse(self) -> ParseResult:
        """Run the whole pipeline. Never raises for a malformed book."""
        try:
            plans = self.plan()
            chapters = self.split_by_headings(plans)
            if chapters is not None:
                return self._result(chapters)
            return self.assemble(plans, self.extract(plans))
        except EPUBError as e:
            return self._failure(e)
        finally:
            self.close()

    async def aparse(self) -> ParseResult:
        """
        Asynchronous ``parse``.

        Archive work runs in worker threads and chapter resources are
        converted concurrently; the result is reassembled in reading order.
        Cancelling the awaiting task abandons the parse without a result.
        """
        try:
            plans = await asyncio.to_thread(self.plan)
            chapters = await asyncio.to_thread(self.split_by_headings, plans)
            if chapters is not None:
                return self._result(chapters)
            assert self.archive is not None
            outcomes = await asyncio.gather(
                *(
                    asyncio.to_thread(
                        load_chapter_text, self.archive, plan.path, self.heading_marker
                    )
                    for plan in plans
                )
            )
            return self.assemble(plans, list(outcomes))
        except EPUBError as e:
            return self._failure(e)
        finally:
            self.close()


def parse_epub_bytes(data: bytes, **options) -> ParseResult:
    """Parse EPUB bytes. See EPUBParser for ``options``."""
    return EPUBParser(data, **options).parse()


async def aparse_epub_bytes(data: bytes, **options) -> ParseResult:
    return await EPUBParser(data, **options).aparse()


def parse_text(
    text: str,
    patterns: Iterable[PatternLike] = DEFAULT_CHAPTER_PATTERNS,
    title: str = DEFAULT_TITLE,
    author: str = DEFAULT_AUTHOR,
) -> ParseResult:
    """
    Segment plain text into chapters.

    Empty or whitespace-only text is a successful result with no chapters.
    Text without any detectable boundary is a successful single-chapter
    result carrying a warning, so callers can tell it from a real split.
    """
    segmentation = segment_text(text, patterns)
    warnings: tuple[str, ...] = ()
    if segmentation.chapters and not segmentation.boundaries_found:
        warnings = ("No chapter boundaries detected; the whole text is one chapter",)
    return ParseResult(
        title=title,
        author=author,
        chapters=reindex(segmentation.chapters),
        pattern_match_counts=dict(segmentation.pattern_matches),
        warnings=warnings,
    )


def _base_media_type(media_type: Optional[str]) -> Optional[str]:
    if not media_type:
        return None
    return media_type.split(";", 1)[0].strip().lower() or None


def _looks_like_zip(data: bytes) -> bool:
    return data[:2] == b"PK"


def _route(data: Union[bytes, str], media_type: Optional[str]) -> str:
    if isinstance(data, str):
        return "text"
    base = _base_media_type(media_type)
    if base is None:
        return "epub" if _looks_like_zip(data) else "text"
    if base in EPUB_MEDIA_TYPES:
        return "epub"
    if base in TEXT_MEDIA_TYPES:
        return "text"
    return "unsupported"


def _decode(data: Union[bytes, str]) -> str:
    if isinstance(data, str):
        return data
    return data.decode("utf-8-sig", errors="replace")


def parse_document(
    data: Union[bytes, str],
    media_type: Optional[str] = None,
    **options,
) -> ParseResult:
    """
    Parse an upload given its declared media type.

    ``str`` input is always treated as text. Without a media type, bytes
    starting with a ZIP signature are parsed as EPUB and anything else as
    UTF-8 text.

    Args:
        data: File bytes or text
        media_type: Declared media type, e.g. "application/epub+zip"
        **options: Passed to EPUBParser or parse_text
    """
    route = _route(data, media_type)
    if route == "epub":
        assert isinstance(data, bytes)
        return parse_epub_bytes(data, **options)
    if route == "text":
        return parse_text(_decode(data), **options)
    logger.error(f"Unsupported media type: {media_type}")
    return ParseResult.failure(
        ErrorKind.UNSUPPORTED_MEDIA_TYPE, f"Unsupported media type: {media_type}"
    )


async def aparse_document(
    data: Union[bytes, str],
    media_type: Optional[str] = None,
    **options,
) -> ParseResult:
    """Asynchronous ``parse_document``; text segmentation runs inline."""
    route = _route(data, media_type)
    if route == "epub":
        assert isinstance(data, bytes)
        return await aparse_epub_bytes(data, **options)
    return parse_document(data, media_type, **options)
