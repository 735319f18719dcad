from __future__ import annotations

import pytest

from tts_gateway.schemas.tts import SynthesisRequest, TextChunk
from tts_gateway.services.tts.orchestrator import (
    ChunkOrchestrator,
    ChunkState,
    PipelineError,
    ProgressUpdate,
    RetryPolicy,
    media_type_for,
)
from tts_gateway.services.tts.provider_client import TTSFormatError, TTSUpstreamError


def _request(count: int, audio_format: str = "mp3") -> SynthesisRequest:
    return SynthesisRequest(
        voice="zh-CN-XiaoxiaoNeural",
        format=audio_format,
        chunks=[TextChunk(index=i, text=f"chunk{i}", units=6) for i in range(count)],
    )


class FlakySynth:
    """Fails each chunk index a configured number of times before succeeding."""

    def __init__(self, failures: dict[int, int] | None = None):
        self.failures = dict(failures or {})
        self.calls: list[int] = []

    async def __call__(self, chunk: TextChunk) -> bytes:
        self.calls.append(chunk.index)
        remaining = self.failures.get(chunk.index, 0)
        if remaining:
            self.failures[chunk.index] = remaining - 1
            raise TTSUpstreamError(500, f"boom {chunk.index}")
        return f"<{chunk.index}>".encode()


def test_backoff_grows_linearly() -> None:
    policy = RetryPolicy()

    assert policy.backoff(1) == 5.0
    assert policy.backoff(2) == 7.0


@pytest.mark.anyio
async def test_all_chunks_succeed_in_order(fake_sleep) -> None:
    synth = FlakySynth()
    orchestrator = ChunkOrchestrator(synth, sleep=fake_sleep)

    assembled = await orchestrator.run(_request(3))

    assert assembled.audio == b"<0><1><2>"
    assert assembled.media_type == "audio/mpeg"
    assert assembled.failed_indices == []
    assert synth.calls == [0, 1, 2]
    # Pause between successful requests, none after the last
    assert fake_sleep.delays == [3.0, 3.0]


@pytest.mark.anyio
async def test_failed_middle_chunk_is_skipped(fake_sleep) -> None:
    synth = FlakySynth({1: 99})
    orchestrator = ChunkOrchestrator(synth, sleep=fake_sleep)

    assembled = await orchestrator.run(_request(3))

    assert assembled.audio == b"<0><2>"
    assert assembled.failed_indices == [1]
    failed = assembled.results[1]
    assert failed.state is ChunkState.FAILED
    assert failed.attempts == 3
    assert failed.error == "boom 1"
    assert synth.calls == [0, 1, 1, 1, 2]
    assert fake_sleep.delays == [3.0, 5.0, 7.0]


@pytest.mark.anyio
async def test_chunk_recovers_on_last_attempt(fake_sleep) -> None:
    synth = FlakySynth({0: 2})
    orchestrator = ChunkOrchestrator(synth, sleep=fake_sleep)

    assembled = await orchestrator.run(_request(1))

    assert assembled.audio == b"<0>"
    assert assembled.results[0].attempts == 3
    assert assembled.results[0].error is None
    assert fake_sleep.delays == [5.0, 7.0]


@pytest.mark.anyio
async def test_format_errors_are_retried(fake_sleep) -> None:
    attempts: list[int] = []

    async def synth(chunk: TextChunk) -> bytes:
        attempts.append(chunk.index)
        if len(attempts) == 1:
            raise TTSFormatError(502, "not audio")
        return b"ok"

    assembled = await ChunkOrchestrator(synth, sleep=fake_sleep).run(_request(1))

    assert assembled.audio == b"ok"
    assert attempts == [0, 0]


@pytest.mark.anyio
async def test_every_chunk_failing_raises_pipeline_error(fake_sleep) -> None:
    orchestrator = ChunkOrchestrator(FlakySynth({0: 99, 1: 99}), sleep=fake_sleep)

    with pytest.raises(PipelineError) as excinfo:
        await orchestrator.run(_request(2))

    assert "All 2 chunks failed" in str(excinfo.value)
    assert excinfo.value.total_chunks == 2
    assert [result.state for result in excinfo.value.results] == [
        ChunkState.FAILED,
        ChunkState.FAILED,
    ]
    assert fake_sleep.delays == [5.0, 7.0, 5.0, 7.0]


@pytest.mark.anyio
async def test_progress_events_follow_chunk_states(fake_sleep) -> None:
    events: list[ProgressUpdate] = []
    orchestrator = ChunkOrchestrator(
        FlakySynth({1: 1}), sleep=fake_sleep, on_progress=events.append
    )

    await orchestrator.run(_request(2))

    assert [event.state for event in events] == [
        ChunkState.SUCCEEDED,
        ChunkState.RETRYING,
        ChunkState.SUCCEEDED,
    ]
    assert [event.current for event in events] == [1, 2, 2]
    assert events[1].attempt == 1
    assert "retrying" in events[1].message
    assert events[-1].percent == 100.0


@pytest.mark.anyio
async def test_unexpected_errors_propagate(fake_sleep) -> None:
    async def synth(chunk: TextChunk) -> bytes:
        raise RuntimeError("bug")

    with pytest.raises(RuntimeError):
        await ChunkOrchestrator(synth, sleep=fake_sleep).run(_request(1))
    assert fake_sleep.delays == []


@pytest.mark.anyio
async def test_request_without_chunks_is_rejected(fake_sleep) -> None:
    with pytest.raises(ValueError):
        await ChunkOrchestrator(FlakySynth(), sleep=fake_sleep).run(_request(0))


def test_media_type_follows_format() -> None:
    assert media_type_for("mp3") == "audio/mpeg"
    assert media_type_for("opus") == "audio/ogg"
    assert media_type_for("unknown") == "audio/mpeg"
