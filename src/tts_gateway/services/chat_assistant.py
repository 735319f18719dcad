"""Chat-completion client used by the conversational mode."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Sequence

import httpx
from fastapi import status

from ..errors import ConfigurationError, UpstreamError
from ..schemas.chat import ChatMessage, ChatSettings

logger = logging.getLogger(__name__)

# Prior turns forwarded with each request
MAX_HISTORY_TURNS = 10


class ChatConfigurationError(ConfigurationError):
    """No API key (or endpoint) has been configured for the assistant."""


class ChatUpstreamError(UpstreamError):
    """The chat-completion endpoint failed or returned an unusable body."""


class ChatAssistantClient:
    """Sends a conversation to an OpenAI-compatible chat-completion endpoint."""

    def __init__(
        self,
        settings: ChatSettings,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 60.0,
    ):
        self._settings = settings
        self._client = http_client
        self._timeout = timeout

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.api_key.strip()}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def build_messages(
        self, history: Sequence[ChatMessage], message: str
    ) -> list[dict[str, str]]:
        """System prompt, then the most recent turns, then the new message."""
        messages = [{"role": "system", "content": self._settings.system_prompt}]
        recent = [turn for turn in history if turn.role != "system"]
        for turn in recent[-MAX_HISTORY_TURNS:]:
            messages.append({"role": turn.role, "content": turn.content})
        messages.append({"role": "user", "content": message})
        return messages

    def build_payload(
        self, history: Sequence[ChatMessage], message: str
    ) -> dict[str, Any]:
        return {
            "model": self._settings.model,
            "messages": self.build_messages(history, message),
            "temperature": self._settings.temperature,
            "max_tokens": self._settings.max_tokens,
        }

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        url = self._settings.api_url
        if self._client is not None:
            return await self._client.post(url, headers=self._headers, json=payload)
        timeout = httpx.Timeout(self._timeout, connect=10.0)
        async with httpx.AsyncClient(timeout=timeout) as client:
            return await client.post(url, headers=self._headers, json=payload)

    async def reply(self, history: Sequence[ChatMessage], message: str) -> str:
        """Return the assistant's answer to ``message``."""

        if not self._settings.api_key.strip():
            raise ChatConfigurationError("Chat API key is not configured")
        if not self._settings.api_url.strip():
            raise ChatConfigurationError("Chat API URL is not configured")

        payload = self.build_payload(history, message)
        try:
            response = await self._post(payload)
        except httpx.HTTPError as exc:
            raise ChatUpstreamError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        if response.status_code >= 400:
            detail = self._extract_error_detail(response.content)
            logger.warning("Chat endpoint returned %s: %s", response.status_code, detail)
            raise ChatUpstreamError(response.status_code, detail)

        try:
            body = response.json()
            content = body["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ChatUpstreamError(
                status.HTTP_502_BAD_GATEWAY,
                f"Unexpected chat response: {exc}",
            ) from exc
        if not isinstance(content, str):
            raise ChatUpstreamError(
                status.HTTP_502_BAD_GATEWAY, "Chat response has no text content"
            )
        return content.strip()

    @staticmethod
    def _extract_error_detail(raw: bytes) -> str:
        if not raw:
            return "Chat endpoint returned an empty error response."
        text = raw.decode("utf-8", errors="ignore")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return text
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str) and error:
                return error
        return text


__all__ = [
    "ChatAssistantClient",
    "ChatConfigurationError",
    "ChatUpstreamError",
    "MAX_HISTORY_TURNS",
]
