"""
Heuristic chapter segmentation for plain text.

A line starts a new chapter when it matches one of an ordered list of
boundary patterns. The matching line is turned into a canonical title by an
ordered list of title rules. Both lists are evaluated top to bottom and the
first match wins.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Union

from .models import Chapter, ChapterSource

logger = logging.getLogger(__name__)

INTRODUCTION_TITLE = "Introduction"
FALLBACK_TITLE = "Chapter 1"

# Valid Roman numerals only; the lookbehind rejects the empty match
_ROMAN = (
    r"(?=[MDCLXVI])M{0,3}(?:CM|CD|D?C{0,3})(?:XC|XL|L?X{0,3})(?:IX|IV|V?I{0,3})"
    r"(?<=[MDCLXVI])"
)
# Up to CCCXCIX, for lines carrying nothing but the number
_SMALL_ROMAN = r"(?=[CLXVI])C{0,3}(?:XC|XL|L?X{0,3})(?:IX|IV|V?I{0,3})(?<=[CLXVI])"
_NUMERAL = rf"(\d+|{_ROMAN})"
_LINE_SPLIT = re.compile(r"\r?\n")
_SENTENCE_END = re.compile(r"[.!?]\s")

DEFAULT_CHAPTER_PATTERNS: tuple[re.Pattern[str], ...] = (
    # Chapter 7 / CHAPTER XII: The Storm / Chapter 3 - Home
    re.compile(rf"^chapter\s+{_NUMERAL}\b.{{0,80}}$", re.IGNORECASE),
    # 3. The Long Road / III. The Long Road, but not initials like "D. H. Lawrence"
    re.compile(
        rf"^(?![LCDM]\.)(\d{{1,3}}|{_SMALL_ROMAN})\.\s+(?![A-Z]\.\s)\S.{{0,60}}$"
    ),
    # a bare numeral on its own line
    re.compile(rf"^(\d{{1,3}}|{_SMALL_ROMAN})$"),
    re.compile(
        r"^(prologue|epilogue|preface|foreword|afterword|introduction)"
        r"(\s*[:.\-–—]\s*\S.{0,60})?$",
        re.IGNORECASE,
    ),
    re.compile(
        rf"^part\s+(\d+|{_ROMAN}|one|two|three|four|five|six|seven|eight|nine|ten)"
        r"\b.{0,60}$",
        re.IGNORECASE,
    ),
)


def _numeral(value: str) -> str:
    """Canonical spelling of an Arabic or Roman numeral."""
    if value.isdigit():
        return str(int(value))
    return value.upper()


def _chapter_title(match: "re.Match[str]") -> str:
    number = _numeral(match.group(1))
    remainder = (match.group(2) or "").strip()
    return f"Chapter {number}: {remainder}" if remainder else f"Chapter {number}"


@dataclass(frozen=True)
class TitleRule:
    """A title pattern and the function turning its match into a title."""

    name: str
    pattern: re.Pattern[str]
    format: Callable[["re.Match[str]"], str]

    def apply(self, line: str) -> Optional[str]:
        match = self.pattern.match(line)
        return self.format(match) if match else None


TITLE_RULES: tuple[TitleRule, ...] = (
    TitleRule(
        "chapter-word",
        re.compile(
            rf"^chapter\s+{_NUMERAL}\b(?:\s*[:.,\-–—]\s*|\s+)?(.*)$",
            re.IGNORECASE,
        ),
        _chapter_title,
    ),
    TitleRule(
        "numbered-title",
        re.compile(rf"^{_NUMERAL}\.\s+(.+)$", re.IGNORECASE),
        _chapter_title,
    ),
    TitleRule(
        "bare-numeral",
        re.compile(rf"^{_NUMERAL}$", re.IGNORECASE),
        lambda m: f"Chapter {_numeral(m.group(1))}",
    ),
    TitleRule("verbatim", re.compile(r"^(.+)$"), lambda m: m.group(1)),
)


def normalize_title(line: str, rules: Iterable[TitleRule] = TITLE_RULES) -> str:
    """
    Turn a boundary line into a canonical chapter title.

    "III. The Long Road" becomes "Chapter III: The Long Road", "chapter 07"
    becomes "Chapter 7"; lines no rule rewrites are returned trimmed.
    """
    stripped = line.strip()
    for rule in rules:
        title = rule.apply(stripped)
        if title:
            return title
    return stripped


PatternLike = Union[str, re.Pattern[str]]


def compile_patterns(
    patterns: Iterable[PatternLike],
) -> tuple[re.Pattern[str], ...]:
    """Compile string patterns; already compiled patterns pass through."""
    return tuple(p if isinstance(p, re.Pattern) else re.compile(p) for p in patterns)


def match_boundary(
    line: str, patterns: Iterable[re.Pattern[str]]
) -> Optional[int]:
    """Index of the first pattern matching the trimmed ``line``, or None."""
    stripped = line.strip()
    if not stripped:
        return None
    for idx, pattern in enumerate(patterns):
        if pattern.search(stripped):
            return idx
    return None


@dataclass
class SegmentationResult:
    """Chapters found in a text plus which pattern produced each title."""

    chapters: list[Chapter] = field(default_factory=list)
    pattern_matches: dict[str, int] = field(default_factory=dict)
    boundaries_found: bool = False


def segment_text(
    text: str,
    patterns: Iterable[PatternLike] = DEFAULT_CHAPTER_PATTERNS,
    title_rules: Iterable[TitleRule] = TITLE_RULES,
) -> SegmentationResult:
    """
    Split plain text into chapters at lines matching ``patterns``.

    Content before the first boundary becomes an "Introduction" chapter when
    it is not blank. Text without any boundary becomes a single "Chapter 1".
    Boundary lines become titles and are not repeated in chapter text.

    Args:
        text: Raw text
        patterns: Boundary patterns, tested in order against each trimmed line
        title_rules: Title normalization rules, tested in order

    Returns:
        SegmentationResult; empty when ``text`` is empty or whitespace
    """
    result = SegmentationResult()
    if not text or not text.strip():
        return result

    compiled = compile_patterns(patterns)
    rules = tuple(title_rules)
    preamble: list[str] = []
    sections: list[tuple[str, int, list[str]]] = []

    for line in _LINE_SPLIT.split(text):
        idx = match_boundary(line, compiled)
        if idx is not None:
            sections.append((normalize_title(line, rules), idx, []))
        elif sections:
            sections[-1][2].append(line)
        else:
            preamble.append(line)

    intro = "\n".join(preamble).strip()
    if not sections:
        logger.warning("No chapter boundaries detected; using the whole text")
        result.chapters.append(_make_chapter(0, FALLBACK_TITLE, intro))
        return result

    result.boundaries_found = True
    if intro:
        result.chapters.append(_make_chapter(0, INTRODUCTION_TITLE, intro))
    for title, idx, body in sections:
        result.chapters.append(
            _make_chapter(len(result.chapters), title, "\n".join(body).strip())
        )
        result.pattern_matches[title] = idx

    logger.info(
        f"Detected {len(sections)} chapter boundaries"
        f"{' plus introduction' if intro else ''}"
    )
    return result


def _make_chapter(index: int, title: str, text: str) -> Chapter:
    return Chapter(
        id=f"text-{index}",
        title=title,
        text=text,
        index=index,
        source=ChapterSource.HEADING,
    )


def split_evenly(
    text: str,
    min_length: int = 2000,
    target_chunk: int = 5000,
    max_chunks: int = 10,
) -> list[tuple[str, str]]:
    """
    Cut text into roughly equal chunks as a starting point for a manual split.

    Each cut is moved to the first paragraph break, line break or sentence
    end found between 80% and 120% of the ideal chunk size.

    Returns:
        (title, text) pairs titled "Chapter N"
    """
    text = text.strip()
    if not text:
        return []
    if len(text) < min_length:
        return [(FALLBACK_TITLE, text)]

    count = min(max(2, len(text) // target_chunk), max_chunks)
    size = math.ceil(len(text) / count)
    chunks: list[tuple[str, str]] = []
    pos = 0
    for i in range(count):
        end = len(text) if i == count - 1 else min(pos + size, len(text))
        if end < len(text):
            window_start = max(pos + int(size * 0.8), pos + 100)
            window_end = min(pos + math.ceil(size * 1.2), len(text))
            area = text[window_start:window_end]
            paragraph = area.find("\n\n")
            newline = area.find("\n")
            sentence = _SENTENCE_END.search(area)
            if paragraph != -1:
                end = window_start + paragraph + 2
            elif newline != -1:
                end = window_start + newline + 1
            elif sentence:
                end = window_start + sentence.start() + 2
        chunk = text[pos:end].strip()
        if chunk:
            chunks.append((f"Chapter {len(chunks) + 1}", chunk))
        pos = end
    return chunks
