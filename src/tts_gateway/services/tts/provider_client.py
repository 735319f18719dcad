"""HTTP client for the external TTS providers a chunk can be sent to."""

from __future__ import annotations

import html
import json
import logging
import re
from typing import Any, Dict, Optional

import httpx
from fastapi import status

from ...errors import UpstreamError
from ...schemas.tts import ProviderConfig, SynthesisRequest
from .text_segmenter import PAUSE_MARKER_PATTERN, strip_pause_markers

logger = logging.getLogger(__name__)

# Voice names accepted by OpenAI-compatible speech endpoints
OPENAI_VOICES = [
    "alloy",
    "ash",
    "ballad",
    "coral",
    "echo",
    "fable",
    "nova",
    "onyx",
    "sage",
    "shimmer",
]

_CUSTOM_OPENAI_VOICE = "alloy"
_X_API_KEY_PREFIX = "x-api-key:"


class TTSUpstreamError(UpstreamError):
    """The provider answered with an error status or could not be reached."""


class TTSFormatError(TTSUpstreamError):
    """The provider answered successfully but the body is not usable audio."""


def escape_xml(text: str) -> str:
    """Escape XML special characters while keeping pause markers intact."""
    markers: list[str] = []

    def _protect(match: re.Match[str]) -> str:
        markers.append(match.group(0))
        return f"__SSML_TAG_{len(markers) - 1}__"

    protected = PAUSE_MARKER_PATTERN.sub(_protect, text)
    escaped = html.escape(protected, quote=True).replace("&#x27;", "&apos;")
    for index, marker in enumerate(markers):
        escaped = escaped.replace(f"__SSML_TAG_{index}__", marker)
    return escaped


class TTSProviderClient:
    """
    Sends one synthesis request per chunk to a configured provider.

    Two wire formats are supported:

    - ``edge``: JSON ``{text, voice, rate, pitch, preview}`` with the text
      XML-escaped (pause markers are passed through untouched)
    - ``openai``: an ``/audio/speech`` style body; pause markers are removed
      because these endpoints do not understand them

    User-defined (custom) providers authenticate with a bearer token, or with
    an ``x-api-key`` header when the stored key reads ``x-api-key:<value>``.
    """

    # Singleton HTTP client for connection pooling
    _http_client: Optional[httpx.AsyncClient] = None

    def __init__(
        self,
        provider: ProviderConfig,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ):
        self.provider = provider
        self._client = http_client
        self._timeout = timeout

    @classmethod
    def get_http_client(cls, timeout: float = 60.0) -> httpx.AsyncClient:
        """Get singleton HTTP client for connection pooling."""
        if cls._http_client is None:
            cls._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(timeout, connect=10.0)
            )
            logger.debug("Created shared httpx.AsyncClient for TTS providers")
        return cls._http_client

    @classmethod
    async def close_http_client(cls) -> None:
        """Close the singleton HTTP client."""
        if cls._http_client is not None:
            await cls._http_client.aclose()
            cls._http_client = None

    @property
    def _http(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return self.get_http_client(self._timeout)

    def _auth_headers(self) -> Dict[str, str]:
        key = (self.provider.api_key or "").strip()
        if not self.provider.custom or not key:
            return {}
        if self.provider.wire_format == "edge" and key.lower().startswith(
            _X_API_KEY_PREFIX
        ):
            return {"x-api-key": key[len(_X_API_KEY_PREFIX) :].strip()}
        return {"Authorization": f"Bearer {key}"}

    def build_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
        }
        headers.update(self._auth_headers())
        return headers

    def build_payload(self, text: str, request: SynthesisRequest) -> Dict[str, Any]:
        """Return the JSON body for one chunk in the provider's wire format."""
        if self.provider.wire_format == "openai":
            payload: Dict[str, Any] = {
                "model": request.voice,
                "input": strip_pause_markers(text),
                "voice": _CUSTOM_OPENAI_VOICE if self.provider.custom else request.voice,
                "response_format": request.format,
            }
            if request.instructions:
                payload["instructions"] = request.instructions
            return payload

        return {
            "text": escape_xml(text),
            "voice": request.voice,
            "rate": request.rate,
            "pitch": request.pitch,
            "preview": request.preview,
        }

    async def synthesize(self, text: str, request: SynthesisRequest) -> bytes:
        """Synthesize ``text`` and return the raw audio bytes."""
        try:
            response = await self._http.post(
                self.provider.endpoint,
                headers=self.build_headers(),
                json=self.build_payload(text, request),
            )
        except httpx.HTTPError as exc:
            raise TTSUpstreamError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        if response.status_code >= 400:
            detail = response.text or response.reason_phrase
            raise TTSUpstreamError(
                response.status_code,
                f"Provider responded with {response.status_code} - {detail}",
            )

        content_type = response.headers.get("content-type", "")
        if "audio/" not in content_type or not response.content:
            raise TTSFormatError(
                status.HTTP_502_BAD_GATEWAY,
                f"Invalid audio response (type={content_type or 'unknown'}, "
                f"size={len(response.content)})",
            )

        logger.debug(
            "Provider %s returned %d bytes for %d chars",
            self.provider.id,
            len(response.content),
            len(text),
        )
        return response.content

    async def discover_voices(self) -> Dict[str, str]:
        """Return ``{voice_id: label}`` for this provider.

        Manually entered voices win. Otherwise the provider's model endpoint
        is queried; it may answer with an OpenAI ``/models`` listing or with a
        plain ``{id: label}`` mapping.
        """
        if self.provider.voices:
            return {voice: voice for voice in self.provider.voices}
        if not self.provider.custom and self.provider.wire_format == "openai":
            return {voice: voice for voice in OPENAI_VOICES}
        if not self.provider.model_endpoint:
            return {}

        headers = {"Accept": "application/json"}
        if self.provider.api_key:
            headers["Authorization"] = f"Bearer {self.provider.api_key.strip()}"

        try:
            response = await self._http.get(self.provider.model_endpoint, headers=headers)
        except httpx.HTTPError as exc:
            raise TTSUpstreamError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc
        if response.status_code >= 400:
            raise TTSUpstreamError(
                response.status_code,
                f"Failed to fetch voices: {response.status_code}",
            )

        try:
            payload = response.json()
        except json.JSONDecodeError as exc:
            raise TTSFormatError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        if isinstance(payload, dict) and isinstance(payload.get("data"), list):
            voices: Dict[str, str] = {}
            for model in payload["data"]:
                model_id = model.get("id") if isinstance(model, dict) else None
                if not isinstance(model_id, str):
                    continue
                if model_id.startswith("tts-") or model_id in OPENAI_VOICES:
                    voices[model_id] = model_id
            return voices

        if isinstance(payload, dict) and all(
            isinstance(key, str) and isinstance(value, str)
            for key, value in payload.items()
        ):
            return dict(payload)

        logger.warning(
            "Voice listing from %s is not in a recognised format", self.provider.id
        )
        return {}


__all__ = [
    "OPENAI_VOICES",
    "TTSFormatError",
    "TTSProviderClient",
    "TTSUpstreamError",
    "escape_xml",
]
