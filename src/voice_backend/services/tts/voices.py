"""Voice tables mapping {language, gender} to provider voice names."""

from __future__ import annotations

from typing import Literal

VoiceType = Literal["female", "male"]

DEFAULT_LANGUAGE = "en-US"
DEFAULT_VOICE_TYPE: VoiceType = "female"

# Vonage voice names per locale
VONAGE_VOICES: dict[str, dict[str, str]] = {
    "en-US": {"female": "Kimberly", "male": "Matthew"},
    "en-GB": {"female": "Amy", "male": "Brian"},
    "es-ES": {"female": "Penelope", "male": "Miguel"},
    "fr-FR": {"female": "Celine", "male": "Mathieu"},
    "de-DE": {"female": "Marlene", "male": "Hans"},
    "it-IT": {"female": "Carla", "male": "Giorgio"},
    "ja-JP": {"female": "Mizuki", "male": "Takumi"},
    "zh-CN": {"female": "Zhiyu", "male": "Zhiyu"},  # no male voice offered
}

# OpenAI voices are language-agnostic
OPENAI_VOICES: dict[str, str] = {
    "female": "nova",
    "male": "onyx",
}

SUPPORTED_LANGUAGES = tuple(VONAGE_VOICES)


def normalize_voice_type(voice_type: str | None) -> VoiceType:
    value = (voice_type or "").strip().lower()
    if value == "male":
        return "male"
    if value == "female":
        return "female"
    return DEFAULT_VOICE_TYPE


def normalize_language(language: str | None) -> str:
    value = (language or "").strip()
    if value in VONAGE_VOICES:
        return value
    return DEFAULT_LANGUAGE


def resolve_vonage_voice(language: str | None, voice_type: str | None) -> str:
    """Return the Vonage voice, falling back to the default locale and gender."""

    voices = VONAGE_VOICES[normalize_language(language)]
    return voices[normalize_voice_type(voice_type)]


def resolve_openai_voice(voice_type: str | None) -> str:
    return OPENAI_VOICES[normalize_voice_type(voice_type)]


__all__ = [
    "DEFAULT_LANGUAGE",
    "DEFAULT_VOICE_TYPE",
    "OPENAI_VOICES",
    "SUPPORTED_LANGUAGES",
    "VONAGE_VOICES",
    "VoiceType",
    "normalize_language",
    "normalize_voice_type",
    "resolve_openai_voice",
    "resolve_vonage_voice",
]
