"""Optional cleanup applied to text before it is segmented.

Each option strips something that reads badly when spoken: markdown syntax,
emoji, URLs, hard line breaks, citation markers, and user-supplied keywords.
Pause markers are protected and always survive cleaning.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List

from .text_segmenter import PAUSE_MARKER_PATTERN

_PLACEHOLDER = "\u0000{}\u0000"
_PLACEHOLDER_PATTERN = re.compile("\u0000(\\d+)\u0000")

_EMOJI_PATTERN = re.compile(
    "["
    "\U0001F300-\U0001F5FF"
    "\U0001F600-\U0001F64F"
    "\U0001F680-\U0001F6FF"
    "\U0001F700-\U0001F77F"
    "\U0001F900-\U0001F9FF"
    "\U0001FA70-\U0001FAFF"
    "\u2600-\u26FF"
    "\u2700-\u27BF"
    "\uFE0F"
    "]+"
)
_URL_PATTERN = re.compile(r"https?://\S+|www\.\S+")
_CITATION_PATTERN = re.compile(r"\[\d+(?:\s*[,-]\s*\d+)*\]")


@dataclass
class CleaningOptions:
    remove_markdown: bool = True
    remove_emoji: bool = True
    remove_urls: bool = True
    remove_line_breaks: bool = True
    remove_citations: bool = True
    custom_keywords: List[str] = field(default_factory=list)


def _strip_markdown(text: str) -> str:
    # Links and images keep their visible label
    text = re.sub(r"!?\[([^\]]*)\]\([^)]*\)", r"\1", text)
    text = re.sub(r"```[^\n]*\n?", "", text)
    text = re.sub(r"`([^`]*)`", r"\1", text)
    text = re.sub(r"(?m)^\s{0,3}#{1,6}\s+", "", text)
    text = re.sub(r"(?m)^\s{0,3}>\s?", "", text)
    text = re.sub(r"(?m)^\s*(?:[-*+]|\d+\.)\s+", "", text)
    text = re.sub(r"\*\*(.+?)\*\*", r"\1", text)
    text = re.sub(r"(?<!\w)__(.+?)__(?!\w)", r"\1", text)
    text = re.sub(r"\*(.+?)\*", r"\1", text)
    text = re.sub(r"(?<!\w)_(.+?)_(?!\w)", r"\1", text)
    text = re.sub(r"~~(.+?)~~", r"\1", text)
    return re.sub(r"(?m)^\s*(?:-{3,}|\*{3,}|_{3,})\s*$", "", text)


def clean_text(text: str, options: CleaningOptions | None = None) -> str:
    """Apply ``options`` to ``text`` and return the cleaned result."""
    options = options or CleaningOptions()

    markers: List[str] = []

    def _protect(match: re.Match[str]) -> str:
        markers.append(match.group(0))
        return _PLACEHOLDER.format(len(markers) - 1)

    cleaned = PAUSE_MARKER_PATTERN.sub(_protect, text)

    if options.remove_markdown:
        cleaned = _strip_markdown(cleaned)
    if options.remove_urls:
        cleaned = _URL_PATTERN.sub("", cleaned)
    if options.remove_emoji:
        cleaned = _EMOJI_PATTERN.sub("", cleaned)
    if options.remove_citations:
        cleaned = _CITATION_PATTERN.sub("", cleaned)
    for keyword in options.custom_keywords:
        keyword = keyword.strip()
        if keyword:
            cleaned = cleaned.replace(keyword, "")
    if options.remove_line_breaks:
        cleaned = re.sub(r"[ \t]*(?:\r?\n)+[ \t]*", " ", cleaned)

    cleaned = re.sub(r"[ \t]{2,}", " ", cleaned).strip()
    return _PLACEHOLDER_PATTERN.sub(lambda m: markers[int(m.group(1))], cleaned)


__all__ = ["CleaningOptions", "clean_text"]
