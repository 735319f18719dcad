"""Pydantic models for synthesis requests and provider definitions."""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

WireFormat = Literal["edge", "openai"]


def _clamp_offset(value: int) -> int:
    return max(-100, min(100, int(value)))


class TTSRequestPayload(BaseModel):
    """Body accepted by `POST /api/tts`."""

    text: str
    voice: str
    rate: int = 0
    pitch: int = 0
    format: str = "mp3"

    model_config = ConfigDict(extra="ignore")

    @field_validator("rate", "pitch", mode="before")
    @classmethod
    def _coerce_offset(cls, value: object) -> int:
        if value is None or value == "":
            return 0
        if isinstance(value, (list, dict)):
            raise ValueError("rate and pitch must be numbers")
        try:
            return _clamp_offset(int(value))  # type: ignore[arg-type]
        except (TypeError, ValueError, OverflowError) as exc:
            raise ValueError("rate and pitch must be numbers") from exc

    @field_validator("format", mode="before")
    @classmethod
    def _default_format(cls, value: object) -> str:
        if not value:
            return "mp3"
        return str(value)


class TextChunk(BaseModel):
    """An ordered slice of the input text sent as one synthesis request."""

    index: int = Field(ge=0)
    text: str
    units: int = Field(ge=0)

    model_config = ConfigDict(frozen=True)


class SynthesisRequest(BaseModel):
    """Everything a provider needs to synthesize one run of chunks."""

    voice: str
    rate: int = 0
    pitch: int = 0
    format: str = "mp3"
    instructions: Optional[str] = None
    preview: bool = False
    chunks: List[TextChunk] = Field(default_factory=list)

    @field_validator("rate", "pitch")
    @classmethod
    def _clamp(cls, value: int) -> int:
        return _clamp_offset(value)


class ProviderConfig(BaseModel):
    """A TTS endpoint the terminal client can send chunks to."""

    id: str
    name: str
    wire_format: WireFormat = "openai"
    endpoint: str
    api_key: Optional[str] = None
    model_endpoint: Optional[str] = None
    voices: List[str] = Field(default_factory=list)
    max_segment: Optional[int] = Field(default=None, ge=1)
    custom: bool = True

    model_config = ConfigDict(populate_by_name=True)


__all__ = [
    "ProviderConfig",
    "SynthesisRequest",
    "TextChunk",
    "TTSRequestPayload",
    "WireFormat",
]
