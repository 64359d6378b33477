"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant who responds concisely and clearly."
)


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    openai_api_key: SecretStr = Field(
        ...,
        validation_alias=AliasChoices("OPENAI_API_KEY", "openai_api_key"),
    )
    openai_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://api.openai.com/v1"),
        validation_alias=AliasChoices("OPENAI_BASE_URL", "openai_base_url"),
    )
    chat_model: str = Field(
        default="gpt-4o",
        validation_alias=AliasChoices("OPENAI_CHAT_MODEL", "chat_model"),
    )
    chat_max_tokens: int = Field(
        default=500,
        ge=1,
        validation_alias=AliasChoices("OPENAI_MAX_TOKENS", "chat_max_tokens"),
    )
    chat_temperature: float = Field(
        default=0.7,
        ge=0,
        le=2,
        validation_alias=AliasChoices("OPENAI_TEMPERATURE", "chat_temperature"),
    )
    default_system_prompt: str = Field(
        default=DEFAULT_SYSTEM_PROMPT,
        validation_alias=AliasChoices(
            "DEFAULT_SYSTEM_PROMPT",
            "default_system_prompt",
        ),
    )
    request_timeout: float = Field(
        default=60.0,
        ge=1,
        validation_alias=AliasChoices("OPENAI_TIMEOUT", "request_timeout"),
    )

    # Speech synthesis providers, tried in order: Vonage first, then OpenAI
    openai_tts_model: str = Field(
        default="tts-1",
        validation_alias=AliasChoices("OPENAI_TTS_MODEL", "openai_tts_model"),
    )
    vonage_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("VONAGE_API_KEY", "vonage_api_key"),
    )
    vonage_api_secret: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("VONAGE_API_SECRET", "vonage_api_secret"),
    )
    vonage_tts_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://api.nexmo.com/v0.1/tts"),
        validation_alias=AliasChoices("VONAGE_TTS_URL", "vonage_tts_url"),
    )
    tts_timeout: float = Field(
        default=30.0,
        ge=1,
        validation_alias=AliasChoices("TTS_TIMEOUT", "tts_timeout"),
    )

    # Response assembly
    partial_window_ms: int = Field(
        default=100,
        ge=0,
        le=2000,
        validation_alias=AliasChoices("PARTIAL_WINDOW_MS", "partial_window_ms"),
        description="How long a streaming request waits before reporting its partial text.",
    )
    min_partial_chars: int = Field(
        default=10,
        ge=0,
        validation_alias=AliasChoices("MIN_PARTIAL_CHARS", "min_partial_chars"),
    )
    dedup_ratio: float = Field(
        default=1.5,
        ge=1.0,
        validation_alias=AliasChoices("DEDUP_RATIO", "dedup_ratio"),
        description=(
            "Final replies shorter than partial length times this ratio reuse "
            "the partial audio instead of synthesizing again."
        ),
    )

    # In-memory stores
    correlation_retention_seconds: float = Field(
        default=600.0,
        gt=0,
        validation_alias=AliasChoices(
            "CORRELATION_RETENTION_SECONDS",
            "correlation_retention_seconds",
        ),
    )
    audio_cache_max_entries: int = Field(
        default=50,
        ge=1,
        validation_alias=AliasChoices(
            "AUDIO_CACHE_MAX_ENTRIES",
            "audio_cache_max_entries",
        ),
    )
    cleanup_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        validation_alias=AliasChoices(
            "CLEANUP_INTERVAL_SECONDS",
            "cleanup_interval_seconds",
        ),
    )

    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("LOG_LEVEL", "log_level"),
    )
    log_file: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices("LOG_FILE", "log_file"),
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
    def partial_window_seconds(self) -> float:
        return self.partial_window_ms / 1000.0

    @property
    def vonage_configured(self) -> bool:
        return bool(
            self.vonage_api_key
            and self.vonage_api_key.get_secret_value()
            and self.vonage_api_secret
            and self.vonage_api_secret.get_secret_value()
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["DEFAULT_SYSTEM_PROMPT", "PROJECT_ROOT", "Settings", "get_settings"]
