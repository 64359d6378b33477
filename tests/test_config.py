import pytest
from pydantic import SecretStr, ValidationError

from voice_backend.config import DEFAULT_SYSTEM_PROMPT, Settings


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("PARTIAL_WINDOW_MS", "DEDUP_RATIO", "VONAGE_API_KEY", "VONAGE_API_SECRET"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(openai_api_key=SecretStr("key"), _env_file=None)

    assert settings.partial_window_seconds == pytest.approx(0.1)
    assert settings.min_partial_chars == 10
    assert settings.dedup_ratio == 1.5
    assert settings.correlation_retention_seconds == 600
    assert settings.audio_cache_max_entries == 50
    assert settings.chat_max_tokens == 500
    assert settings.default_system_prompt == DEFAULT_SYSTEM_PROMPT
    assert settings.vonage_configured is False


def test_settings_read_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")
    monkeypatch.setenv("PARTIAL_WINDOW_MS", "250")
    monkeypatch.setenv("VONAGE_API_KEY", "vk")
    monkeypatch.setenv("VONAGE_API_SECRET", "vs")

    settings = Settings(_env_file=None)

    assert settings.openai_api_key.get_secret_value() == "env-key"
    assert settings.partial_window_seconds == pytest.approx(0.25)
    assert settings.vonage_configured is True


def test_dedup_ratio_below_one_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(openai_api_key=SecretStr("key"), dedup_ratio=0.5, _env_file=None)
