"""Ordered failover across speech providers."""

from __future__ import annotations

import logging
import time
from typing import Protocol, Sequence

from ...errors import SynthesisError
from .providers import SpeechProvider
from .voices import DEFAULT_LANGUAGE, DEFAULT_VOICE_TYPE

logger = logging.getLogger(__name__)


class SpeechSynthesizer(Protocol):
    """Capability to turn text into encoded audio."""

    async def synthesize(
        self,
        text: str,
        voice_type: str = DEFAULT_VOICE_TYPE,
        language: str = DEFAULT_LANGUAGE,
    ) -> bytes:
        ...


class FailoverSpeechSynthesizer:
    """Try each provider in order until one returns audio.

    Raises `SynthesisError` only when every provider failed.
    """

    def __init__(self, providers: Sequence[SpeechProvider]) -> None:
        if not providers:
            raise ValueError("At least one speech provider is required")
        self._providers = list(providers)

    @property
    def name(self) -> str:
        return f"failover({' -> '.join(p.name for p in self._providers)})"

    @property
    def providers(self) -> list[SpeechProvider]:
        return list(self._providers)

    async def synthesize(
        self,
        text: str,
        voice_type: str = DEFAULT_VOICE_TYPE,
        language: str = DEFAULT_LANGUAGE,
    ) -> bytes:
        if not text or not text.strip():
            raise SynthesisError("Text is required")

        errors: list[str] = []
        for index, provider in enumerate(self._providers):
            started = time.monotonic()
            try:
                audio = await provider.synthesize(text, voice_type, language)
            except SynthesisError as exc:
                errors.append(f"{provider.name}: {exc.message}")
                logger.warning(
                    "TTS %s failed for '%.40s': %s (%s), trying next",
                    provider.name,
                    text,
                    exc.message,
                    exc.detail,
                )
                continue
            except Exception as exc:
                errors.append(f"{provider.name}: {exc}")
                logger.warning(
                    "TTS %s raised unexpectedly for '%.40s': %s, trying next",
                    provider.name,
                    text,
                    exc,
                    exc_info=True,
                )
                continue

            if index > 0:
                logger.warning(
                    "TTS failover: %s succeeded (primary %s failed) latency=%.0fms",
                    provider.name,
                    self._providers[0].name,
                    (time.monotonic() - started) * 1000,
                )
            return audio

        logger.error("All TTS providers failed for '%.60s': %s", text, "; ".join(errors))
        raise SynthesisError(
            "Failed to convert text to speech", detail="; ".join(errors)
        )

    async def aclose(self) -> None:
        for provider in self._providers:
            try:
                await provider.aclose()
            except Exception:
                logger.debug("Error closing TTS provider %s", provider.name, exc_info=True)


__all__ = ["FailoverSpeechSynthesizer", "SpeechSynthesizer"]
