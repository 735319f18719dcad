"""Pydantic models for the chat assistant."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

DEFAULT_SYSTEM_PROMPT = (
    "You are a friendly, upbeat voice assistant. Reply in short, natural "
    "sentences that sound good when read aloud. Keep answers under 100 words "
    "unless the user explicitly asks for more detail."
)


class ChatMessage(BaseModel):
    """Represents a single chat message."""

    role: Literal["system", "user", "assistant"]
    content: str


class ChatSettings(BaseModel):
    """Connection and generation settings for the chat-completion endpoint."""

    api_url: str = "https://api.openai.com/v1/chat/completions"
    api_key: str = ""
    model: str = "gpt-3.5-turbo"
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int = Field(default=150, ge=1)
