"""Narration estimates and text rendering for chapters."""

from typing import Iterable

from .models import Chapter

# Rough MP3 size per narrated character
AUDIO_BYTES_PER_CHAR = 12


def estimate_reading_time(text: str, words_per_minute: int = 150) -> int:
    """
    Estimate narration time of ``text``.

    Args:
        text: Chapter text
        words_per_minute: Narration speed (default: 150)

    Returns:
        Estimated duration in whole seconds
    """
    word_count = len(text.split())
    return round(word_count / words_per_minute * 60)


def estimate_audio_size(text: str) -> int:
    """Estimated size in bytes of the narrated audio for ``text``."""
    return len(text) * AUDIO_BYTES_PER_CHAR


def format_duration(seconds: int) -> str:
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_chapters_text(chapters: Iterable[Chapter], with_titles: bool = True) -> str:
    """
    Join chapter texts for plain-text output.

    Chapters are separated by 4 linebreaks; with titles, each text is
    preceded by its title and 2 linebreaks.
    """
    parts = []
    for chapter in chapters:
        if with_titles:
            parts.append(f"{chapter.title}\n\n{chapter.text}")
        else:
            parts.append(chapter.text)
    return "\n\n\n\n".join(parts)
