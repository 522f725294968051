"""Whitespace normalization shared by the markup and plain-text paths."""

import re

_HORIZONTAL_WS = re.compile(r"[^\S\n]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_LINE_ENDINGS = re.compile(r"\r\n?")


class TextCleaner:
    """
    Normalize extracted text.

    Args:
        normalize_whitespace: Collapse runs of spaces, tabs and other
            non-newline whitespace to a single space
        collapse_blank_lines: Collapse three or more newlines to one blank line
        strip_lines: Strip leading/trailing whitespace from every line
    """

    def __init__(
        self,
        normalize_whitespace: bool = True,
        collapse_blank_lines: bool = True,
        strip_lines: bool = True,
    ):
        self.normalize_whitespace = normalize_whitespace
        self.collapse_blank_lines = collapse_blank_lines
        self.strip_lines = strip_lines

    def clean(self, text: str) -> str:
        if not text:
            return ""
        text = _LINE_ENDINGS.sub("\n", text)
        if self.normalize_whitespace:
            text = _HORIZONTAL_WS.sub(" ", text)
        if self.strip_lines:
            text = "\n".join(line.strip() for line in text.split("\n"))
        if self.collapse_blank_lines:
            text = _EXCESS_NEWLINES.sub("\n\n", text)
        return text.strip()


_default_cleaner = TextCleaner()


def clean_text(text: str) -> str:
    """Clean ``text`` with the default settings."""
    return _default_cleaner.clean(text)


def calculate_text_length(text: str) -> int:
    """Length of ``text`` ignoring all whitespace."""
    return len("".join(text.split()))
