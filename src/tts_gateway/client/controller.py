"""Action handlers that own and mutate the terminal client's state.

Every mutation of :class:`AppState` goes through one of the ``TTSController``
methods, and each of them persists the state before returning. The CLI only
parses arguments and renders results.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
from fastapi import status

from ..errors import ConfigurationError, InputValidationError
from ..schemas.chat import ChatMessage, ChatSettings
from ..schemas.client_state import AppState, HistoryEntry
from ..schemas.tts import ProviderConfig, SynthesisRequest, TextChunk
from ..services.chat_assistant import ChatAssistantClient
from ..services.tts.orchestrator import (
    AssembledAudio,
    ChunkOrchestrator,
    ProgressFn,
    RetryPolicy,
    SleepFn,
)
from ..services.tts.provider_client import TTSProviderClient, TTSUpstreamError
from ..services.tts.text_cleaner import CleaningOptions, clean_text
from ..services.tts.text_segmenter import (
    limits_for,
    preview_text,
    segment_text,
    unit_length,
)
from ..services.voice_catalog import locale_of
from .state import StateStore

logger = logging.getLogger(__name__)

DEFAULT_SERVER_URL = "http://127.0.0.1:8000"
OAI_TTS_ENDPOINT = "https://oai-tts.zwei.de.eu.org/v1/audio/speech"

PREVIEW_CHARS = 20
PREVIEW_SAMPLE = "Hello! This is a short preview of the selected voice."

MODES = ("chat", "tts")


class ProviderNotFoundError(ConfigurationError):
    """No built-in or saved provider has the requested id."""


def builtin_providers(server_url: str) -> Dict[str, ProviderConfig]:
    server = server_url.rstrip("/")
    return {
        "edge-api": ProviderConfig(
            id="edge-api",
            name="Edge TTS (gateway)",
            wire_format="edge",
            endpoint=f"{server}/api/tts",
            custom=False,
        ),
        "oai-tts": ProviderConfig(
            id="oai-tts",
            name="OpenAI-compatible TTS",
            wire_format="openai",
            endpoint=OAI_TTS_ENDPOINT,
            custom=False,
        ),
    }


@dataclass
class SpeakResult:
    request_number: int
    path: Path
    assembled: AssembledAudio
    chunk_count: int

    @property
    def size_bytes(self) -> int:
        return len(self.assembled.audio)


class TTSController:
    """Owns :class:`AppState` and exposes one method per user action."""

    def __init__(
        self,
        store: StateStore,
        *,
        server_url: str = DEFAULT_SERVER_URL,
        output_dir: Optional[Path] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        policy: Optional[RetryPolicy] = None,
        sleep: SleepFn = asyncio.sleep,
        on_progress: Optional[ProgressFn] = None,
        timeout: float = 60.0,
    ):
        self._store = store
        self._server_url = server_url.rstrip("/")
        self._output_dir = output_dir or Path.cwd()
        self._http_client = http_client
        self._policy = policy
        self._sleep = sleep
        self._on_progress = on_progress
        self._timeout = timeout

    @property
    def state(self) -> AppState:
        return self._store.load()

    def _commit(self) -> None:
        self._store.save(self.state)

    # ---- providers -------------------------------------------------------

    def list_providers(self) -> Dict[str, ProviderConfig]:
        providers = builtin_providers(self._server_url)
        providers.update(self.state.custom_providers)
        return providers

    def get_provider(self, provider_id: str) -> ProviderConfig:
        provider = self.list_providers().get(provider_id)
        if provider is None:
            raise ProviderNotFoundError(f"Unknown provider: {provider_id}")
        return provider

    def save_provider(self, provider: ProviderConfig) -> ProviderConfig:
        if provider.id in builtin_providers(self._server_url):
            raise InputValidationError(
                f"'{provider.id}' is a built-in provider and cannot be replaced"
            )
        if not provider.endpoint.strip():
            raise InputValidationError("Provider endpoint is required")
        saved = provider.model_copy(update={"custom": True})
        self.state.custom_providers[saved.id] = saved
        self._commit()
        logger.info("Saved custom provider %s", saved.id)
        return saved

    def delete_provider(self, provider_id: str) -> None:
        if provider_id not in self.state.custom_providers:
            raise ProviderNotFoundError(f"No custom provider named {provider_id}")
        del self.state.custom_providers[provider_id]
        self._commit()

    def _provider_client(self, provider: ProviderConfig) -> TTSProviderClient:
        return TTSProviderClient(
            provider, http_client=self._http_client, timeout=self._timeout
        )

    async def _gateway_voices(self, locale: Optional[str] = None) -> Dict[str, str]:
        url = f"{self._server_url}/api/voices"
        params = {"f": "1"}
        if locale:
            params["l"] = locale
        try:
            if self._http_client is not None:
                response = await self._http_client.get(url, params=params)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise TTSUpstreamError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc
        if response.status_code >= 400:
            raise TTSUpstreamError(
                response.status_code,
                f"Failed to fetch voices: {response.status_code}",
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TTSUpstreamError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc
        if not isinstance(payload, dict):
            raise TTSUpstreamError(
                status.HTTP_502_BAD_GATEWAY, "Voice listing is not a JSON object"
            )
        return {str(key): str(value) for key, value in payload.items()}

    async def voices(
        self, provider_id: str, locale: Optional[str] = None
    ) -> Dict[str, str]:
        """Return ``{voice_id: label}`` for the given provider.

        The gateway filters by locale itself. Other providers only report ids,
        so the locale is matched against the id's language-region prefix.
        """
        provider = self.get_provider(provider_id)
        if provider.wire_format == "edge" and not provider.custom:
            return await self._gateway_voices(locale)
        voices = await self._provider_client(provider).discover_voices()
        if not locale:
            return voices
        needle = locale.lower()
        return {
            voice_id: label
            for voice_id, label in voices.items()
            if needle in locale_of(voice_id).lower()
        }

    # ---- synthesis -------------------------------------------------------

    def _output_path(self, request_number: int, audio_format: str) -> Path:
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        return self._output_dir / f"tts-{request_number:04d}-{stamp}.{audio_format}"

    def _record(self, entry: HistoryEntry) -> None:
        self._store.record_history(self.state, entry)

    async def speak(
        self,
        text: str,
        *,
        provider_id: str,
        voice: str,
        rate: int = 0,
        pitch: int = 0,
        audio_format: str = "mp3",
        instructions: Optional[str] = None,
        cleaning: Optional[CleaningOptions] = None,
        output: Optional[Path] = None,
    ) -> SpeakResult:
        """Segment ``text``, synthesize every chunk and write the merged file."""

        provider = self.get_provider(provider_id)
        if cleaning is not None:
            text = clean_text(text, cleaning)
        if not text.strip():
            raise InputValidationError("Please enter some text to synthesize")
        if not voice:
            raise InputValidationError("Please choose a voice")

        limits = limits_for(provider)
        total_units = unit_length(text)
        if total_units > limits.max_total:
            raise InputValidationError(
                f"Text is {total_units} units long; {provider.name} accepts at "
                f"most {limits.max_total}"
            )

        chunks = segment_text(text, limits.max_segment)
        request = SynthesisRequest(
            voice=voice,
            rate=rate,
            pitch=pitch,
            format=audio_format,
            instructions=instructions,
            chunks=chunks,
        )

        state = self.state
        state.request_counter += 1
        request_number = state.request_counter
        self._commit()

        client = self._provider_client(provider)

        async def _synthesize(chunk: TextChunk) -> bytes:
            return await client.synthesize(chunk.text, request)

        orchestrator = ChunkOrchestrator(
            _synthesize,
            policy=self._policy,
            sleep=self._sleep,
            on_progress=self._on_progress,
            label=f"#{request_number} ",
        )
        logger.info(
            "Request #%d: %d units in %d chunk(s) via %s",
            request_number,
            total_units,
            len(chunks),
            provider.id,
        )
        assembled = await orchestrator.run(request)

        path = output or self._output_path(request_number, audio_format)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(assembled.audio)

        now = datetime.now()
        total = len(chunks)
        if total == 1:
            self._record(
                HistoryEntry(
                    timestamp=now,
                    speaker=voice,
                    request_info=f"#{request_number}(1/1)",
                    text=preview_text(chunks[0].text),
                    path=str(path),
                    size_bytes=len(assembled.audio),
                )
            )
        else:
            for result in assembled.results:
                if not result.succeeded or result.audio is None:
                    continue
                self._record(
                    HistoryEntry(
                        timestamp=now,
                        speaker=voice,
                        request_info=f"#{request_number}({result.index + 1}/{total})",
                        text=preview_text(chunks[result.index].text),
                        size_bytes=len(result.audio),
                    )
                )
            self._record(
                HistoryEntry(
                    timestamp=now,
                    speaker=voice,
                    request_info=f"#{request_number}(merged)",
                    text=preview_text(text),
                    path=str(path),
                    size_bytes=len(assembled.audio),
                )
            )
        self._commit()

        return SpeakResult(
            request_number=request_number,
            path=path,
            assembled=assembled,
            chunk_count=total,
        )

    async def preview(
        self,
        *,
        provider_id: str,
        voice: str,
        text: Optional[str] = None,
        rate: int = 0,
        pitch: int = 0,
        output: Optional[Path] = None,
    ) -> Path:
        """Synthesize a short sample with a single request and no retries."""

        provider = self.get_provider(provider_id)
        sample = (text or PREVIEW_SAMPLE)[:PREVIEW_CHARS]
        if not sample.strip():
            raise InputValidationError("Preview text is empty")

        request = SynthesisRequest(
            voice=voice,
            rate=rate,
            pitch=pitch,
            preview=True,
            chunks=[TextChunk(index=0, text=sample, units=unit_length(sample))],
        )
        audio = await self._provider_client(provider).synthesize(sample, request)

        path = output or self._output_dir / f"preview-{voice}.mp3"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(audio)
        return path

    def clear_history(self) -> None:
        self.state.generation_history.clear()
        self._commit()

    def history(self) -> List[HistoryEntry]:
        return list(self.state.generation_history)

    # ---- chat ------------------------------------------------------------

    async def chat(self, message: str) -> str:
        message = message.strip()
        if not message:
            raise InputValidationError("Message is empty")

        state = self.state
        client = ChatAssistantClient(
            state.chat_settings, http_client=self._http_client, timeout=self._timeout
        )
        answer = await client.reply(state.chat_history, message)

        state.chat_history.append(ChatMessage(role="user", content=message))
        state.chat_history.append(ChatMessage(role="assistant", content=answer))
        self._commit()
        return answer

    def clear_chat(self) -> None:
        self.state.chat_history.clear()
        self._commit()

    def update_chat_settings(self, **changes: Any) -> ChatSettings:
        updates = {key: value for key, value in changes.items() if value is not None}
        merged = self.state.chat_settings.model_dump()
        merged.update(updates)
        try:
            settings = ChatSettings.model_validate(merged)
        except ValueError as exc:
            raise InputValidationError(str(exc)) from exc
        self.state.chat_settings = settings
        self._commit()
        return settings

    # ---- mode ------------------------------------------------------------

    def set_mode(self, mode: str) -> str:
        if mode not in MODES:
            raise InputValidationError(f"Mode must be one of: {', '.join(MODES)}")
        self.state.last_mode = mode  # type: ignore[assignment]
        self._commit()
        return mode


__all__ = [
    "DEFAULT_SERVER_URL",
    "ProviderNotFoundError",
    "SpeakResult",
    "TTSController",
    "builtin_providers",
]
