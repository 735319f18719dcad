"""
TTS (Text-to-Speech) Services Package.

This package contains the long-text synthesis pipeline:

- text_segmenter: Splits input text into provider-sized chunks
- text_cleaner: Optional cleanup of markdown, emoji, URLs and similar noise
- provider_client: Sends one chunk to an external TTS provider
- orchestrator: Sequential, retrying synthesis and audio assembly

Architecture Overview:

    ┌────────────┐     ┌───────────────┐     ┌───────────────────┐
    │ Input text │────▶│ segment_text  │────▶│ ChunkOrchestrator │
    └────────────┘     └───────────────┘     └───────────────────┘
                                                       │  one chunk at a time
                                                       ▼
                                             ┌───────────────────┐
                                             │ TTSProviderClient │
                                             └───────────────────┘
                                                       │
                                                       ▼
                                             ┌───────────────────┐
                                             │  AssembledAudio   │
                                             └───────────────────┘

Chunks are synthesized in order, never concurrently:
1. segment_text cuts the text at the best punctuation inside the budget
2. each chunk gets up to three attempts with growing backoff
3. a fixed pause separates successful requests to respect rate limits
4. successful payloads are concatenated in their original order
"""

from .orchestrator import (
    AssembledAudio,
    AudioChunkResult,
    ChunkOrchestrator,
    ChunkState,
    PipelineError,
    ProgressUpdate,
    RetryPolicy,
)
from .provider_client import TTSFormatError, TTSProviderClient, TTSUpstreamError
from .text_cleaner import CleaningOptions, clean_text
from .text_segmenter import ProviderLimits, limits_for, segment_text, unit_length

__all__ = [
    "AssembledAudio",
    "AudioChunkResult",
    "ChunkOrchestrator",
    "ChunkState",
    "CleaningOptions",
    "PipelineError",
    "ProgressUpdate",
    "ProviderLimits",
    "RetryPolicy",
    "TTSFormatError",
    "TTSProviderClient",
    "TTSUpstreamError",
    "clean_text",
    "limits_for",
    "segment_text",
    "unit_length",
]
