"""Tests for heuristic plain-text segmentation."""

import re

import pytest

from chaptersplit.cleaner import calculate_text_length
from chaptersplit.models import ChapterSource
from chaptersplit.segmenter import (
    DEFAULT_CHAPTER_PATTERNS,
    match_boundary,
    normalize_title,
    segment_text,
    split_evenly,
)

NOVEL = """The Collected Tale
by Someone

CHAPTER 1
It began in the rain.
The streets were empty.

Chapter 2: The Chase
They ran.

III. The Long Road
Miles and miles.

Epilogue
All was well.
"""


def test_segment_text_titles_and_bodies() -> None:
    """Boundary lines become titles; everything else is body text."""
    result = segment_text(NOVEL)

    assert result.boundaries_found
    assert [ch.title for ch in result.chapters] == [
        "Introduction",
        "Chapter 1",
        "Chapter 2: The Chase",
        "Chapter III: The Long Road",
        "Epilogue",
    ]
    assert result.chapters[0].text == "The Collected Tale\nby Someone"
    assert result.chapters[1].text == "It began in the rain.\nThe streets were empty."
    assert result.chapters[4].text == "All was well."
    assert [ch.index for ch in result.chapters] == [0, 1, 2, 3, 4]
    assert [ch.id for ch in result.chapters][:2] == ["text-0", "text-1"]
    assert all(ch.source is ChapterSource.HEADING for ch in result.chapters)
    assert result.pattern_matches == {
        "Chapter 1": 0,
        "Chapter 2: The Chase": 0,
        "Chapter III: The Long Road": 1,
        "Epilogue": 3,
    }


def test_segment_text_conserves_body_characters() -> None:
    """No body character is lost or duplicated by segmentation."""
    result = segment_text(NOVEL)
    boundary_lines = [
        "CHAPTER 1",
        "Chapter 2: The Chase",
        "III. The Long Road",
        "Epilogue",
    ]

    body_length = calculate_text_length(NOVEL) - sum(
        calculate_text_length(line) for line in boundary_lines
    )
    assert sum(calculate_text_length(ch.text) for ch in result.chapters) == body_length


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("CHAPTER 07", "Chapter 7"),
        ("chapter xii", "Chapter XII"),
        ("Chapter 3 - Home", "Chapter 3: Home"),
        ("Chapter 4 The Return", "Chapter 4: The Return"),
        ("12. Crossing", "Chapter 12: Crossing"),
        ("  IV  ", "Chapter IV"),
        ("4", "Chapter 4"),
        ("Chapter 7", "Chapter 7"),
        ("Prologue", "Prologue"),
        ("Chapter 1, in which we meet", "Chapter 1: in which we meet"),
        ("Chapter Civil War", "Chapter Civil War"),
    ],
)
def test_normalize_title(line: str, expected: str) -> None:
    """Numbering is normalized to a canonical "Chapter N" form."""
    assert normalize_title(line) == expected


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("Chapter 9", 0),
        ("  Chapter 9  ", 0),
        ("2. The Door", 1),
        ("XIV", 2),
        ("Preface: Why", 3),
        ("Part Two", 4),
        ("", None),
        ("The chapter 9 was long.", None),
        ("It was 1999. Nobody cared.", None),
        ("CIVIL", None),
        ("DID", None),
        ("VIVID", None),
        ("MID", None),
        ("D. H. Lawrence wrote books.", None),
        ("I. A. Richards lectured.", None),
        ("IIII", None),
        ("Chapter Civil War", None),
        ("XL. Forty", 1),
        ("Part IV", 4),
    ],
)
def test_match_boundary(line: str, expected) -> None:
    """The index of the first matching pattern is reported."""
    assert match_boundary(line, DEFAULT_CHAPTER_PATTERNS) == expected


def test_segment_text_without_boundaries() -> None:
    """Text without boundaries is a single fallback chapter."""
    result = segment_text("  Some prose.\nMore prose.  \n")

    assert not result.boundaries_found
    assert [ch.title for ch in result.chapters] == ["Chapter 1"]
    assert result.chapters[0].text == "Some prose.\nMore prose."
    assert result.pattern_matches == {}


@pytest.mark.parametrize("text", ["", "\n\n   \n"])
def test_segment_text_empty(text: str) -> None:
    """Empty input produces no chapters."""
    result = segment_text(text)

    assert result.chapters == []
    assert not result.boundaries_found


def test_segment_text_custom_patterns() -> None:
    """Caller-supplied patterns replace the defaults."""
    text = "BOOK ONE\nFirst.\r\nBOOK TWO\r\nSecond.\nChapter 1\nStill two."
    result = segment_text(text, [re.compile(r"^BOOK [A-Z]+$"), r"^\*\*\*$"])

    assert [ch.title for ch in result.chapters] == ["BOOK ONE", "BOOK TWO"]
    assert result.chapters[1].text == "Second.\nChapter 1\nStill two."


def test_segment_text_is_deterministic() -> None:
    """Segmenting the same text twice gives the same chapters."""
    assert segment_text(NOVEL) == segment_text(NOVEL)


class TestSplitEvenly:
    def test_short_text_is_one_chapter(self) -> None:
        """Texts under the minimum length are not split."""
        assert split_evenly("Short text.") == [("Chapter 1", "Short text.")]
        assert split_evenly("   ") == []

    def test_long_text_splits_at_paragraphs(self) -> None:
        """Long texts are cut near equal sizes at paragraph breaks."""
        text = "\n\n".join(
            f"Paragraph {i:03d} has some words in it." for i in range(500)
        )
        chunks = split_evenly(text)

        assert [title for title, _ in chunks] == ["Chapter 1", "Chapter 2", "Chapter 3"]
        assert all(body.startswith("Paragraph") for _, body in chunks)
        assert all(body.endswith("in it.") for _, body in chunks)
        assert "".join(body for _, body in chunks).replace("\n", "") == text.replace(
            "\n", ""
        )

    def test_chunk_count_is_capped(self) -> None:
        """Very long texts produce at most max_chunks chapters."""
        text = "Word. " * 20000

        assert len(split_evenly(text, max_chunks=4)) == 4


def test_segment_text_ignores_numeral_lookalikes() -> None:
    """Capitalized words and initials do not open chapters."""
    text = (
        "Chapter 1, in which we meet\nA.\nCIVIL\nB.\n"
        "D. H. Lawrence wrote books.\nC."
    )
    result = segment_text(text)

    assert [ch.title for ch in result.chapters] == ["Chapter 1: in which we meet"]
    assert "CIVIL" in result.chapters[0].text
    assert result.chapters[0].text.endswith("D. H. Lawrence wrote books.\nC.")
