"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Shared secret for the password gate; empty or unset disables the gate
    password: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("PASSWORD", "password"),
    )

    edge_tts_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://api.edge-tts.cn/v1/synthesize"),
        validation_alias=AliasChoices("EDGE_TTS_URL", "edge_tts_url"),
    )

    voices_source: Literal["builtin", "remote"] = Field(
        default="builtin",
        validation_alias=AliasChoices("VOICES_SOURCE", "voices_source"),
    )
    voices_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl(
            "https://speech.platform.bing.com/consumer/speech/synthesize/"
            "readaloud/voices/list?trustedclienttoken=6A5AA1D4EAFF4E9FB37E23D68491D6F4"
        ),
        validation_alias=AliasChoices("VOICES_URL", "voices_url"),
    )
    voices_cache_ttl: float = Field(
        default=3600.0,
        ge=0,
        validation_alias=AliasChoices("VOICES_CACHE_TTL", "voices_cache_ttl"),
    )

    upstream_timeout: float = Field(
        default=60.0,
        ge=1,
        validation_alias=AliasChoices("UPSTREAM_TIMEOUT", "timeout"),
    )

    host: str = Field(
        default="0.0.0.0",
        validation_alias=AliasChoices("HOST", "host"),
    )
    port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        validation_alias=AliasChoices("PORT", "port"),
    )

    @property
    def password_value(self) -> str:
        if self.password is None:
            return ""
        return self.password.get_secret_value()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Settings", "get_settings"]
