"""Voice catalog schema."""

from typing import Optional

from pydantic import BaseModel, Field


class Voice(BaseModel):
    """A single synthesis voice offered by a provider."""

    id: str = Field(description="Provider-specific voice identifier.")
    name: str = Field(description="Human readable label.")
    locale: Optional[str] = None
    gender: Optional[str] = None
    sample_rate: Optional[int] = None
    words_per_minute: Optional[int] = None

    model_config = {"frozen": True}
