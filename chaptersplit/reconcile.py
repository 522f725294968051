"""
Integrity check for hand-edited chapter splits.

An edited split is always accepted. When its total length drifts from the
source text by more than the threshold, the caller gets a DriftReport with
``exceeded`` set and a warning is logged.
"""

import logging
from typing import Iterable, Optional, Sequence

from .models import (
    DEFAULT_AUTHOR,
    DEFAULT_TITLE,
    Chapter,
    ChapterSource,
    DriftReport,
    ParseResult,
)

logger = logging.getLogger(__name__)

DRIFT_THRESHOLD_PERCENT = 5.0


def compute_drift(source_length: int, chapter_length: int) -> float:
    """Percentage difference between the two lengths; 0 for an empty source."""
    if source_length <= 0:
        return 0.0
    return abs(chapter_length - source_length) / source_length * 100


def reconcile_split(
    source_length: int,
    chapter_length: int,
    threshold: float = DRIFT_THRESHOLD_PERCENT,
) -> DriftReport:
    """
    Compare an edited split's total length with the source length.

    Args:
        source_length: Character count of the original text
        chapter_length: Summed character count of the edited chapters
        threshold: Drift percentage above which the report is flagged

    Returns:
        DriftReport; ``report.exceeded`` is the integrity warning signal
    """
    drift = compute_drift(source_length, chapter_length)
    report = DriftReport(
        source_length=source_length,
        chapter_length=chapter_length,
        drift_percent=drift,
        threshold=threshold,
    )
    if report.exceeded:
        logger.warning(
            f"Edited chapters total {chapter_length:,} characters against "
            f"{source_length:,} in the source ({drift:.1f}% drift)"
        )
    return report


def build_manual_result(
    pairs: Iterable[tuple[str, str]],
    source_text: Optional[str] = None,
    source_length: Optional[int] = None,
    title: str = DEFAULT_TITLE,
    author: str = DEFAULT_AUTHOR,
    threshold: float = DRIFT_THRESHOLD_PERCENT,
) -> tuple[ParseResult, DriftReport]:
    """
    Wrap an edited list of (title, text) pairs into a new ParseResult.

    Blank titles become "Chapter N". The source length is taken from
    ``source_length`` when given, else from ``source_text``; with neither,
    drift is measured against the edited split itself (always 0).

    Returns:
        (result, drift report). The result has ``source = manual`` on every
        chapter and is successful even when the drift threshold is exceeded
        or a chapter is blank; both only add warnings.
    """
    chapters: list[Chapter] = []
    for i, (chapter_title, text) in enumerate(pairs):
        text = text or ""
        chapters.append(
            Chapter(
                id=f"manual-{i}",
                title=(chapter_title or "").strip() or f"Chapter {i + 1}",
                text=text,
                index=i,
                source=ChapterSource.MANUAL,
            )
        )

    edited_length = sum(ch.char_count for ch in chapters)
    if source_length is None:
        source_length = len(source_text) if source_text is not None else edited_length
    report = reconcile_split(source_length, edited_length, threshold)

    warnings: list[str] = []
    for ch in chapters:
        if not ch.text.strip():
            logger.warning(f'Edited chapter {ch.index + 1} ("{ch.title}") is empty')
            warnings.append(f'Chapter "{ch.title}" is empty')
    if report.exceeded:
        warnings.append(
            f"Edited chapters differ from the source by "
            f"{report.drift_percent:.1f}% of its length"
        )
    result = ParseResult(
        title=title,
        author=author,
        chapters=tuple(chapters),
        warnings=tuple(warnings),
    )
    return result, report


def chapters_as_pairs(chapters: Sequence[Chapter]) -> list[tuple[str, str]]:
    """Turn chapters back into the (title, text) pairs an editor works on."""
    return [(ch.title, ch.text) for ch in chapters]
