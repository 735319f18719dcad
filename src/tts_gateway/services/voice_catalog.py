"""Voice catalog backed by a built-in table or a live Edge voice listing."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx
from fastapi import status

from ..config import Settings
from ..errors import UpstreamError
from ..schemas.voices import Voice

logger = logging.getLogger(__name__)


class VoiceCatalogError(UpstreamError):
    """The remote voice listing could not be fetched or parsed."""


# (id, label, gender) for the neural voices offered without a remote lookup
_BUILTIN_TABLE = [
    ("zh-CN-XiaoxiaoNeural", "中文女声 (晓晓)", "Female"),
    ("zh-CN-YunxiNeural", "中文男声 (云希)", "Male"),
    ("zh-CN-YunyangNeural", "中文男声 (云扬)", "Male"),
    ("zh-CN-XiaoyiNeural", "中文女声 (晓伊)", "Female"),
    ("zh-CN-YunjianNeural", "中文男声 (云健)", "Male"),
    ("zh-CN-XiaochenNeural", "中文女声 (晓辰)", "Female"),
    ("zh-CN-XiaohanNeural", "中文女声 (晓涵)", "Female"),
    ("zh-CN-XiaomengNeural", "中文女声 (晓梦)", "Female"),
    ("zh-CN-XiaomoNeural", "中文女声 (晓墨)", "Female"),
    ("zh-CN-XiaoqiuNeural", "中文女声 (晓秋)", "Female"),
    ("zh-CN-XiaoruiNeural", "中文女声 (晓睿)", "Female"),
    ("zh-CN-XiaoshuangNeural", "中文女声 (晓双)", "Female"),
    ("zh-CN-XiaoxuanNeural", "中文女声 (晓萱)", "Female"),
    ("zh-CN-XiaoyanNeural", "中文女声 (晓颜)", "Female"),
    ("zh-CN-XiaoyouNeural", "中文女声 (晓悠)", "Female"),
    ("zh-CN-XiaozhenNeural", "中文女声 (晓甄)", "Female"),
    ("zh-CN-YunfengNeural", "中文男声 (云枫)", "Male"),
    ("zh-CN-YunhaoNeural", "中文男声 (云皓)", "Male"),
    ("zh-CN-YunxiaNeural", "中文男声 (云夏)", "Male"),
    ("zh-CN-YunyeNeural", "中文男声 (云野)", "Male"),
    ("zh-CN-YunzeNeural", "中文男声 (云泽)", "Male"),
    ("en-US-JennyNeural", "英文女声 (Jenny)", "Female"),
    ("en-US-GuyNeural", "英文男声 (Guy)", "Male"),
    ("en-US-AriaNeural", "英文女声 (Aria)", "Female"),
    ("en-US-DavisNeural", "英文男声 (Davis)", "Male"),
]


def locale_of(voice_id: str) -> str:
    parts = voice_id.split("-")
    return "-".join(parts[:2]) if len(parts) >= 3 else ""


BUILTIN_VOICES: List[Voice] = [
    Voice(id=voice_id, name=label, locale=locale_of(voice_id), gender=gender)
    for voice_id, label, gender in _BUILTIN_TABLE
]


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_remote_voices(payload: Any) -> List[Voice]:
    """Convert an Edge ``voices/list`` response into :class:`Voice` objects."""
    if not isinstance(payload, list):
        raise VoiceCatalogError(
            status.HTTP_502_BAD_GATEWAY, "Voice listing is not a JSON array"
        )

    voices: List[Voice] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        short_name = item.get("ShortName")
        if not isinstance(short_name, str) or not short_name:
            continue
        label = item.get("LocalName") or item.get("FriendlyName") or short_name
        locale = item.get("Locale")
        gender = item.get("Gender")
        voices.append(
            Voice(
                id=short_name,
                name=str(label),
                locale=str(locale) if locale else locale_of(short_name),
                gender=str(gender) if gender else None,
                sample_rate=_as_int(item.get("SampleRateHertz")),
                words_per_minute=_as_int(item.get("WordsPerMinute")),
            )
        )
    return voices


def filter_voices(voices: Sequence[Voice], locale: Optional[str]) -> List[Voice]:
    """Keep voices whose locale contains ``locale``, case-insensitively."""
    if not locale:
        return list(voices)
    needle = locale.lower()
    return [voice for voice in voices if needle in (voice.locale or "").lower()]


def render_plugin_text(voices: Sequence[Voice]) -> str:
    """Render the YAML-like listing consumed by reader-app speaker plugins."""
    lines = ["voices:"]
    for voice in voices:
        lines.append(f"  - id: {voice.id}")
        lines.append(f"    name: {voice.name}")
        if voice.locale:
            lines.append(f"    locale: {voice.locale}")
        if voice.gender:
            lines.append(f"    gender: {voice.gender}")
    return "\n".join(lines) + "\n"


def format_catalog(
    voices: Sequence[Voice], fmt: Optional[str]
) -> Union[str, Dict[str, str], List[Dict[str, Any]]]:
    """Shape the catalog for the ``f`` query parameter.

    ``"0"`` gives plugin text, ``"1"`` an ``{id: label}`` map, anything else
    the full list of voice records.
    """
    if fmt == "0":
        return render_plugin_text(voices)
    if fmt == "1":
        return {voice.id: voice.name for voice in voices}
    return [voice.model_dump(exclude_none=True) for voice in voices]


class VoiceCatalog:
    """Serves the voice list, caching remote listings for a configurable TTL."""

    def __init__(
        self,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
        clock=time.monotonic,
    ):
        self._settings = settings
        self._client = http_client
        self._clock = clock
        self._lock = asyncio.Lock()
        self._cached: Optional[List[Voice]] = None
        self._cached_at = 0.0

    async def _fetch_remote(self) -> List[Voice]:
        url = str(self._settings.voices_url)
        timeout = httpx.Timeout(self._settings.upstream_timeout, connect=10.0)
        try:
            if self._client is not None:
                response = await self._client.get(url)
            else:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await client.get(url)
        except httpx.HTTPError as exc:
            raise VoiceCatalogError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        if response.status_code >= 400:
            raise VoiceCatalogError(
                status.HTTP_502_BAD_GATEWAY,
                f"Voice listing returned {response.status_code}",
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise VoiceCatalogError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc
        return parse_remote_voices(payload)

    async def list_voices(self) -> List[Voice]:
        if self._settings.voices_source == "builtin":
            return list(BUILTIN_VOICES)

        async with self._lock:
            now = self._clock()
            ttl = self._settings.voices_cache_ttl
            if self._cached is not None and now - self._cached_at < ttl:
                return list(self._cached)

            voices = await self._fetch_remote()
            logger.info("Fetched %d voices from remote listing", len(voices))
            self._cached = voices
            self._cached_at = now
            return list(voices)


__all__ = [
    "BUILTIN_VOICES",
    "VoiceCatalog",
    "VoiceCatalogError",
    "filter_voices",
    "format_catalog",
    "locale_of",
    "parse_remote_voices",
    "render_plugin_text",
]
