"""Client for the Edge-style upstream that backs `POST /api/tts`."""

from __future__ import annotations

import asyncio
import logging

import httpx
from fastapi import status

from ..config import Settings
from ..schemas.tts import TTSRequestPayload
from .tts.provider_client import TTSUpstreamError

logger = logging.getLogger(__name__)


class EdgeUpstreamClient:
    """Forwards one synthesis request to the configured Edge TTS endpoint."""

    _client_lock: asyncio.Lock = asyncio.Lock()
    _client_pool: dict[float, httpx.AsyncClient] = {}

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        self._settings = settings
        self._client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client

        key = float(self._settings.upstream_timeout)
        client = self.__class__._client_pool.get(key)
        if client is not None:
            return client

        async with self.__class__._client_lock:
            client = self.__class__._client_pool.get(key)
            if client is None:
                client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self._settings.upstream_timeout, connect=10.0),
                    limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
                )
                self.__class__._client_pool[key] = client
        return client

    @property
    def _url(self) -> str:
        return str(self._settings.edge_tts_url)

    async def synthesize(self, payload: TTSRequestPayload) -> bytes:
        """Return the audio bytes produced upstream for ``payload``."""

        params = {
            "text": payload.text,
            "voice": payload.voice,
            "rate": str(payload.rate),
            "pitch": str(payload.pitch),
            "format": payload.format,
        }

        client = await self._get_http_client()
        try:
            response = await client.get(self._url, params=params)
        except httpx.HTTPError as exc:
            raise TTSUpstreamError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        if response.status_code >= 400:
            logger.warning(
                "Edge TTS upstream returned %s for voice %s",
                response.status_code,
                payload.voice,
            )
            raise TTSUpstreamError(
                response.status_code,
                f"Edge TTS API returned error: {response.status_code}",
            )

        logger.debug(
            "Edge TTS upstream returned %d bytes for %d chars",
            len(response.content),
            len(payload.text),
        )
        return response.content

    @classmethod
    async def aclose_shared(cls) -> None:
        async with cls._client_lock:
            clients = list(cls._client_pool.values())
            cls._client_pool.clear()
        for client in clients:
            await client.aclose()


__all__ = ["EdgeUpstreamClient"]
