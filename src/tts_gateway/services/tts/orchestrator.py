"""
Chunk Request Orchestrator for Long-Text Synthesis.

Drives the chunks produced by the text segmenter through a provider one at a
time, retrying each failed chunk a bounded number of times, and assembles the
successful payloads into one audio blob.

Architecture:
    [TextChunk, ...] → ChunkOrchestrator.run() → synthesize(chunk) per chunk
                                               → AssembledAudio

Each chunk moves through an explicit state machine:

    PENDING → IN_FLIGHT → SUCCEEDED
                        → RETRYING → IN_FLIGHT ...
                        → FAILED (attempts exhausted)

Chunks are processed strictly in order so the concatenated audio matches the
text order and the provider never sees parallel requests. A chunk that fails
for good does not stop the run; only a run with zero successful chunks fails.

Usage:
    orchestrator = ChunkOrchestrator(
        lambda chunk: client.synthesize(chunk.text, request),
        on_progress=print,
    )
    assembled = await orchestrator.run(request)
"""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from ...errors import TTSGatewayError
from ...schemas.tts import SynthesisRequest, TextChunk

logger = logging.getLogger(__name__)

SynthesizeFn = Callable[[TextChunk], Awaitable[bytes]]
SleepFn = Callable[[float], Awaitable[None]]
ProgressFn = Callable[["ProgressUpdate"], None]


class PipelineError(TTSGatewayError):
    """Every chunk of a run failed after exhausting its retries."""

    def __init__(self, total_chunks: int, results: Optional[List["AudioChunkResult"]] = None):
        super().__init__(f"All {total_chunks} chunks failed to synthesize")
        self.total_chunks = total_chunks
        self.results = results or []


class ChunkState(str, enum.Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    """Retry ceiling and delays, in seconds."""

    max_attempts: int = 3
    base_delay: float = 3.0
    step_delay: float = 2.0
    inter_request_delay: float = 3.0

    def backoff(self, retry_count: int) -> float:
        """Delay before the next attempt after ``retry_count`` failures."""
        return self.base_delay + retry_count * self.step_delay


@dataclass
class AudioChunkResult:
    index: int
    state: ChunkState = ChunkState.PENDING
    audio: Optional[bytes] = None
    attempts: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state is ChunkState.SUCCEEDED


@dataclass(frozen=True)
class ProgressUpdate:
    current: int
    total: int
    message: str
    state: ChunkState
    attempt: int

    @property
    def percent(self) -> float:
        return round(self.current / self.total * 100, 1) if self.total else 100.0


@dataclass
class AssembledAudio:
    audio: bytes
    media_type: str
    results: List[AudioChunkResult] = field(default_factory=list)

    @property
    def failed_indices(self) -> List[int]:
        return [result.index for result in self.results if not result.succeeded]


_MEDIA_TYPES = {
    "mp3": "audio/mpeg",
    "opus": "audio/ogg",
    "aac": "audio/aac",
    "flac": "audio/flac",
    "wav": "audio/wav",
    "pcm": "audio/pcm",
}


def media_type_for(audio_format: str) -> str:
    return _MEDIA_TYPES.get(audio_format.lower(), "audio/mpeg")


class ChunkOrchestrator:
    """
    Sequential, retrying synthesis of an ordered list of chunks.

    Attributes:
        synthesize: Coroutine function turning one chunk into audio bytes.
        policy: Retry ceiling and delays.
        sleep: Awaitable used for every delay; tests inject a fake clock.
        on_progress: Optional callback receiving ProgressUpdate events.
    """

    def __init__(
        self,
        synthesize: SynthesizeFn,
        *,
        policy: Optional[RetryPolicy] = None,
        sleep: SleepFn = asyncio.sleep,
        on_progress: Optional[ProgressFn] = None,
        label: str = "",
    ):
        self.synthesize = synthesize
        self.policy = policy or RetryPolicy()
        self.sleep = sleep
        self.on_progress = on_progress
        self.label = label

    def _emit(self, result: AudioChunkResult, total: int, message: str) -> None:
        if self.on_progress is None:
            return
        self.on_progress(
            ProgressUpdate(
                current=result.index + 1,
                total=total,
                message=message,
                state=result.state,
                attempt=result.attempts,
            )
        )

    async def _run_chunk(self, chunk: TextChunk, total: int) -> AudioChunkResult:
        result = AudioChunkResult(index=chunk.index)
        position = f"{self.label}{chunk.index + 1}/{total}"

        while result.state in (ChunkState.PENDING, ChunkState.RETRYING):
            result.state = ChunkState.IN_FLIGHT
            result.attempts += 1
            try:
                audio = await self.synthesize(chunk)
            except TTSGatewayError as exc:
                result.error = str(exc)
                retries = result.attempts
                if retries < self.policy.max_attempts:
                    result.state = ChunkState.RETRYING
                    delay = self.policy.backoff(retries)
                    logger.warning(
                        "Chunk %s failed (retry %d/%d), waiting %.1fs: %s",
                        position,
                        retries,
                        self.policy.max_attempts,
                        delay,
                        exc,
                    )
                    self._emit(
                        result,
                        total,
                        f"Chunk {position} failed, retrying "
                        f"({retries}/{self.policy.max_attempts})...",
                    )
                    await self.sleep(delay)
                else:
                    result.state = ChunkState.FAILED
                    logger.error(
                        "Chunk %s failed after %d attempts: %s",
                        position,
                        result.attempts,
                        exc,
                    )
                    self._emit(result, total, f"Chunk {position} failed: {exc}")
            else:
                result.state = ChunkState.SUCCEEDED
                result.audio = audio
                result.error = None
                self._emit(result, total, f"Chunk {position} done")

        return result

    async def run(self, request: SynthesisRequest) -> AssembledAudio:
        """Synthesize every chunk of ``request`` and return the joined audio."""
        chunks = list(request.chunks)
        if not chunks:
            raise ValueError("request has no chunks to synthesize")

        total = len(chunks)
        results: List[AudioChunkResult] = []
        for position, chunk in enumerate(chunks):
            result = await self._run_chunk(chunk, total)
            results.append(result)
            if result.succeeded and position < total - 1:
                await self.sleep(self.policy.inter_request_delay)

        successful = [result.audio for result in results if result.succeeded and result.audio]
        if not successful:
            raise PipelineError(total, results)

        failed = total - len(successful)
        if failed:
            logger.warning("%d of %d chunks failed and were skipped", failed, total)
        logger.info("Assembled %d/%d chunks", len(successful), total)

        return AssembledAudio(
            audio=b"".join(successful),
            media_type=media_type_for(request.format),
            results=results,
        )


__all__ = [
    "AssembledAudio",
    "AudioChunkResult",
    "ChunkOrchestrator",
    "ChunkState",
    "PipelineError",
    "ProgressUpdate",
    "RetryPolicy",
    "media_type_for",
]
