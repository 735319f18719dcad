"""
Text Segmenter for Long-Text Synthesis.

This module splits arbitrarily long input into chunks that each fit inside a
provider's per-request budget, preferring to break at natural punctuation.

Budgets are measured in *units* rather than characters:

- a character with code point <= 127 costs 1 unit, anything wider costs 2
- a pause marker such as ``<break time="1.5s"/>`` costs nothing as text but
  adds ``round(seconds * 11)`` units, roughly what the pause costs the
  provider in synthesis time

Architecture:
    input text → segment_text() → [TextChunk, ...] → ChunkOrchestrator

Usage:
    limits = limits_for(provider)
    chunks = segment_text(text, limits.max_segment)
    for chunk in chunks:
        print(chunk.index, chunk.units, chunk.text[:20])

Joining ``chunk.text`` for every chunk gives back the input unchanged.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import List, Optional

from ...errors import InputValidationError
from ...schemas.tts import ProviderConfig, TextChunk

PAUSE_MARKER_PATTERN = re.compile(
    r"""<break\s+time=(["'])(\d+(?:\.\d+)?)(ms|s)\1\s*/>"""
)

PAUSE_UNITS_PER_SECOND = 11
LOOKBACK_UNITS = 300
MAX_PAUSE_SECONDS = 100

# Ordered from strongest to weakest boundary
BOUNDARY_CLASSES: tuple[frozenset[str], ...] = (
    frozenset("\n\r"),
    frozenset("。！？.!?"),
    frozenset("；;"),
    frozenset("，：,:"),
    frozenset("、…―─-—–"),
    frozenset(" \t　"),
)


@dataclass(frozen=True)
class ProviderLimits:
    """Per-request and per-run unit budgets for a provider."""

    max_segment: int
    max_total: int


EDGE_LIMITS = ProviderLimits(max_segment=5000, max_total=100000)
OPENAI_LIMITS = ProviderLimits(max_segment=400, max_total=2000)


def limits_for(provider: ProviderConfig) -> ProviderLimits:
    """Return the unit budgets that apply to ``provider``."""
    base = OPENAI_LIMITS if provider.wire_format == "openai" else EDGE_LIMITS
    if provider.max_segment:
        return ProviderLimits(
            max_segment=provider.max_segment,
            max_total=max(base.max_total, provider.max_segment),
        )
    return base


@dataclass(frozen=True)
class _Token:
    start: int
    end: int
    units: int
    # None for pause markers
    char: Optional[str]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _char_units(char: str) -> int:
    return 1 if ord(char) <= 127 else 2


def _pause_units(match: re.Match[str]) -> int:
    amount = float(match.group(2))
    seconds = amount / 1000 if match.group(3) == "ms" else amount
    return _round_half_up(seconds * PAUSE_UNITS_PER_SECOND)


def _tokenize(text: str) -> List[_Token]:
    tokens: List[_Token] = []
    position = 0
    for match in PAUSE_MARKER_PATTERN.finditer(text):
        for index in range(position, match.start()):
            tokens.append(_Token(index, index + 1, _char_units(text[index]), text[index]))
        tokens.append(_Token(match.start(), match.end(), _pause_units(match), None))
        position = match.end()
    for index in range(position, len(text)):
        tokens.append(_Token(index, index + 1, _char_units(text[index]), text[index]))
    return tokens


def unit_length(text: str) -> int:
    """Return the weighted unit length of ``text``."""
    return sum(token.units for token in _tokenize(text))


def strip_pause_markers(text: str) -> str:
    """Remove every pause marker from ``text``."""
    return PAUSE_MARKER_PATTERN.sub("", text)


def pause_marker(seconds: float) -> str:
    """Build a pause marker for ``seconds`` (0 < seconds <= 100)."""
    if not 0 < seconds <= MAX_PAUSE_SECONDS:
        raise InputValidationError(
            f"Pause must be between 0.01 and {MAX_PAUSE_SECONDS} seconds"
        )
    return f'<break time="{seconds:g}s"/>'


def preview_text(text: str, limit: int = 7) -> str:
    """Short, marker-free label used in the generation history."""
    clean = strip_pause_markers(text)
    if len(clean) > limit:
        return clean[:limit] + "..."
    return clean


def _choose_split(tokens: List[_Token], start: int, overflow: int) -> int:
    """Return the exclusive token index where the current chunk should end.

    ``overflow`` is the first token that no longer fits. The search walks
    backwards from the token before it and stops after LOOKBACK_UNITS.
    """
    for boundary in BOUNDARY_CLASSES:
        scanned = 0
        for index in range(overflow - 1, start, -1):
            token = tokens[index]
            scanned += token.units
            if scanned > LOOKBACK_UNITS:
                break
            if token.char is not None and token.char in boundary:
                return index + 1
    # A chunk always takes at least one token, even an oversized one
    return max(overflow, start + 1)


def segment_text(text: str, max_units: int) -> List[TextChunk]:
    """
    Split ``text`` into chunks of at most ``max_units`` units each.

    Args:
        text: Input text, possibly containing pause markers.
        max_units: Per-chunk unit budget of the active provider.

    Returns:
        Ordered chunks. Empty or whitespace-only input yields an empty list.
        The only chunk allowed to exceed the budget is one made of a single
        token (a pause marker) that is larger than the budget by itself.
    """
    if max_units < 1:
        raise ValueError("max_units must be positive")
    if not text or not text.strip():
        return []

    tokens = _tokenize(text)
    chunks: List[TextChunk] = []
    start = 0

    while start < len(tokens):
        end = len(tokens)
        running = 0
        for index in range(start, len(tokens)):
            running += tokens[index].units
            if running > max_units:
                end = _choose_split(tokens, start, index)
                break

        piece = tokens[start:end]
        chunks.append(
            TextChunk(
                index=len(chunks),
                text=text[piece[0].start : piece[-1].end],
                units=sum(token.units for token in piece),
            )
        )
        start = end

    return chunks


__all__ = [
    "BOUNDARY_CLASSES",
    "EDGE_LIMITS",
    "LOOKBACK_UNITS",
    "OPENAI_LIMITS",
    "PAUSE_MARKER_PATTERN",
    "ProviderLimits",
    "limits_for",
    "pause_marker",
    "preview_text",
    "segment_text",
    "strip_pause_markers",
    "unit_length",
]
