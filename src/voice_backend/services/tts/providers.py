import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from voice_backend.config import Settings
from voice_backend.errors import SynthesisError
from voice_backend.openai_client import OpenAIClient, OpenAIError
from voice_backend.services.tts.voices import resolve_openai_voice, resolve_vonage_voice

logger = logging.getLogger(__name__)


class SpeechProvider(ABC):
    """
    A single text-to-speech backend.

    Providers return encoded MP3 bytes and raise `SynthesisError` for every
    failure mode (missing credentials, transport errors, error statuses and
    unexpected payloads) so the caller can move on to the next provider.
    Input longer than `max_text_length` is truncated before the request.
    """

    name: str = "provider"
    max_text_length: int = 1500

    def prepare_text(self, text: str) -> str:
        if len(text) > self.max_text_length:
            logger.warning(
                "Text exceeds %s TTS length limit (%d > %d). Truncating...",
                self.name,
                len(text),
                self.max_text_length,
            )
            return text[: self.max_text_length]
        return text

    @abstractmethod
    async def synthesize(self, text: str, voice_type: str, language: str) -> bytes:
        ...

    async def aclose(self) -> None:
        return None


class VonageSpeechProvider(SpeechProvider):
    """Vonage text-to-speech, the preferred provider with per-locale voices."""

    name = "vonage"
    max_text_length = 1500

    # Singleton HTTP client for connection pooling
    _http_client: Optional[httpx.AsyncClient] = None

    def __init__(
        self,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._api_key = (
            settings.vonage_api_key.get_secret_value()
            if settings.vonage_api_key else None
        )
        self._api_secret = (
            settings.vonage_api_secret.get_secret_value()
            if settings.vonage_api_secret else None
        )
        self._url = str(settings.vonage_tts_url)
        self._timeout = settings.tts_timeout
        self._client_override = http_client

    @classmethod
    def get_http_client(cls) -> httpx.AsyncClient:
        """Get singleton HTTP client for connection pooling."""
        if cls._http_client is None:
            cls._http_client = httpx.AsyncClient(timeout=30.0)
            logger.info("Created singleton httpx.AsyncClient for Vonage TTS")
        return cls._http_client

    @classmethod
    async def close_http_client(cls) -> None:
        """Close the singleton HTTP client. Call on app shutdown."""
        if cls._http_client is not None:
            await cls._http_client.aclose()
            cls._http_client = None
            logger.info("Closed Vonage TTS HTTP client")

    async def synthesize(self, text: str, voice_type: str, language: str) -> bytes:
        if not self._api_key or not self._api_secret:
            raise SynthesisError(
                "Vonage API credentials are missing. Set VONAGE_API_KEY and VONAGE_API_SECRET.",
                provider=self.name,
            )

        voice = resolve_vonage_voice(language, voice_type)
        params = {
            "api_key": self._api_key,
            "api_secret": self._api_secret,
            "text": self.prepare_text(text),
            "voice": voice,
        }

        client = self._client_override or self.get_http_client()
        try:
            response = await client.post(self._url, params=params, timeout=self._timeout)
        except httpx.HTTPError as exc:
            raise SynthesisError(
                "Failed to convert text to speech using Vonage",
                provider=self.name,
                detail=str(exc),
            ) from exc

        if response.status_code >= 400:
            raise SynthesisError(
                "Failed to convert text to speech using Vonage",
                provider=self.name,
                detail=f"HTTP {response.status_code}: {response.text[:200]}",
            )

        content_type = response.headers.get("content-type", "")
        audio = response.content
        if not audio or "json" in content_type or content_type.startswith("text/"):
            raise SynthesisError(
                "Vonage returned an unexpected payload",
                provider=self.name,
                detail=f"content-type={content_type or 'unknown'} bytes={len(audio)}",
            )

        logger.info(
            "Vonage TTS synthesized %d bytes with voice %s for text: %.50s...",
            len(audio),
            voice,
            text,
        )
        return audio

    async def aclose(self) -> None:
        if self._client_override is None:
            await self.close_http_client()


class OpenAISpeechProvider(SpeechProvider):
    """OpenAI `/audio/speech`, the fallback provider."""

    name = "openai"
    max_text_length = 4096

    def __init__(self, client: OpenAIClient, settings: Settings):
        self._client = client
        self._model = settings.openai_tts_model
        self._timeout = settings.tts_timeout
        self._configured = bool(settings.openai_api_key.get_secret_value())

    async def synthesize(self, text: str, voice_type: str, language: str) -> bytes:
        if not self._configured:
            raise SynthesisError("OpenAI API key not configured", provider=self.name)

        # OpenAI voices speak any input language; only gender matters here
        voice = resolve_openai_voice(voice_type)
        try:
            audio = await self._client.create_speech(
                text=self.prepare_text(text),
                voice=voice,
                model=self._model,
                timeout=self._timeout,
            )
        except OpenAIError as exc:
            raise SynthesisError(
                "Failed to convert text to speech using OpenAI",
                provider=self.name,
                detail=exc.detail,
            ) from exc

        if not audio:
            raise SynthesisError("OpenAI returned empty audio", provider=self.name)

        logger.info(
            "OpenAI TTS synthesized %d bytes with voice %s for text: %.50s...",
            len(audio),
            voice,
            text,
        )
        return audio


__all__ = ["OpenAISpeechProvider", "SpeechProvider", "VonageSpeechProvider"]
