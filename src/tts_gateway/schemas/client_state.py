"""Schema for the terminal client's locally persisted state."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .chat import ChatMessage, ChatSettings
from .tts import ProviderConfig

MAX_HISTORY = 50


class HistoryEntry(BaseModel):
    """One generated audio file, as listed in the generation history."""

    timestamp: datetime
    speaker: str
    request_info: str
    text: str
    path: Optional[str] = None
    size_bytes: int = 0


class AppState(BaseModel):
    """Everything the client remembers between runs."""

    chat_history: List[ChatMessage] = Field(default_factory=list)
    chat_settings: ChatSettings = Field(default_factory=ChatSettings)
    custom_providers: Dict[str, ProviderConfig] = Field(default_factory=dict)
    last_mode: Literal["chat", "tts"] = "chat"
    # Newest first
    generation_history: List[HistoryEntry] = Field(default_factory=list)
    request_counter: int = 0
