import json
import logging

import httpx
import pytest
from pydantic import SecretStr

from voice_backend.errors import SynthesisError
from voice_backend.openai_client import OpenAIClient
from voice_backend.services.tts import (
    FailoverSpeechSynthesizer,
    OpenAISpeechProvider,
    SpeechProvider,
    VonageSpeechProvider,
)
from voice_backend.services.tts.voices import (
    resolve_openai_voice,
    resolve_vonage_voice,
)


class StubProvider(SpeechProvider):
    def __init__(self, name: str, *, audio: bytes | None = None, error: Exception | None = None):
        self.name = name
        self._audio = audio
        self._error = error
        self.calls: list[tuple[str, str, str]] = []

    async def synthesize(self, text: str, voice_type: str, language: str) -> bytes:
        self.calls.append((text, voice_type, language))
        if self._error is not None:
            raise self._error
        assert self._audio is not None
        return self._audio


def test_vonage_voice_table():
    assert resolve_vonage_voice("en-US", "female") == "Kimberly"
    assert resolve_vonage_voice("en-GB", "male") == "Brian"
    assert resolve_vonage_voice("fr-FR", "male") == "Mathieu"
    assert resolve_vonage_voice("zh-CN", "male") == "Zhiyu"


def test_unknown_locale_and_gender_fall_back_to_default():
    assert resolve_vonage_voice("xx-XX", "female") == "Kimberly"
    assert resolve_vonage_voice("en-US", "robot") == "Kimberly"
    assert resolve_vonage_voice(None, None) == "Kimberly"


def test_openai_voice_depends_on_gender_only():
    assert resolve_openai_voice("female") == "nova"
    assert resolve_openai_voice("male") == "onyx"
    assert resolve_openai_voice("") == "nova"


@pytest.mark.asyncio
async def test_primary_provider_wins():
    primary = StubProvider("primary", audio=b"ID3-primary")
    fallback = StubProvider("fallback", audio=b"ID3-fallback")
    synthesizer = FailoverSpeechSynthesizer([primary, fallback])

    audio = await synthesizer.synthesize("Hello there", "male", "en-GB")

    assert audio == b"ID3-primary"
    assert primary.calls == [("Hello there", "male", "en-GB")]
    assert fallback.calls == []


@pytest.mark.asyncio
async def test_fallback_used_when_primary_fails(caplog):
    primary = StubProvider("primary", error=SynthesisError("boom", provider="primary"))
    fallback = StubProvider("fallback", audio=b"ID3-fallback")
    synthesizer = FailoverSpeechSynthesizer([primary, fallback])

    with caplog.at_level(logging.WARNING):
        audio = await synthesizer.synthesize("Hello there")

    assert audio == b"ID3-fallback"
    assert fallback.calls == primary.calls == [("Hello there", "female", "en-US")]
    assert any("primary" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_unexpected_provider_exception_also_fails_over():
    primary = StubProvider("primary", error=RuntimeError("socket closed"))
    fallback = StubProvider("fallback", audio=b"ID3")
    synthesizer = FailoverSpeechSynthesizer([primary, fallback])

    assert await synthesizer.synthesize("Hello") == b"ID3"


@pytest.mark.asyncio
async def test_all_providers_failing_raises():
    synthesizer = FailoverSpeechSynthesizer(
        [
            StubProvider("a", error=SynthesisError("a down")),
            StubProvider("b", error=SynthesisError("b down")),
        ]
    )

    with pytest.raises(SynthesisError) as excinfo:
        await synthesizer.synthesize("Hello")

    assert excinfo.value.message == "Failed to convert text to speech"
    assert "a down" in excinfo.value.detail
    assert "b down" in excinfo.value.detail


@pytest.mark.asyncio
async def test_empty_text_is_rejected():
    provider = StubProvider("a", audio=b"ID3")
    synthesizer = FailoverSpeechSynthesizer([provider])

    with pytest.raises(SynthesisError):
        await synthesizer.synthesize("   ")
    assert provider.calls == []


def test_failover_requires_providers():
    with pytest.raises(ValueError):
        FailoverSpeechSynthesizer([])


@pytest.mark.asyncio
async def test_vonage_sends_voice_and_credentials(settings):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"ID3audio", headers={"content-type": "audio/mpeg"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    provider = VonageSpeechProvider(settings, http_client=client)

    audio = await provider.synthesize("Bonjour", "male", "fr-FR")

    assert audio == b"ID3audio"
    params = seen[0].url.params
    assert params["voice"] == "Mathieu"
    assert params["text"] == "Bonjour"
    assert params["api_key"] == "vonage-key"
    assert params["api_secret"] == "vonage-secret"
    await provider.aclose()


@pytest.mark.asyncio
async def test_vonage_unknown_language_uses_default_voice(settings):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"ID3", headers={"content-type": "audio/mpeg"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    provider = VonageSpeechProvider(settings, http_client=client)

    assert await provider.synthesize("Hello", "female", "tlh-KL") == b"ID3"
    assert seen[0].url.params["voice"] == "Kimberly"
    await provider.aclose()


@pytest.mark.asyncio
async def test_vonage_truncates_long_text(settings):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=b"ID3", headers={"content-type": "audio/mpeg"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    provider = VonageSpeechProvider(settings, http_client=client)

    await provider.synthesize("a" * 2000, "female", "en-US")

    assert len(seen[0].url.params["text"]) == 1500
    await provider.aclose()


@pytest.mark.asyncio
async def test_vonage_rejects_json_payload(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error": "quota"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    provider = VonageSpeechProvider(settings, http_client=client)

    with pytest.raises(SynthesisError):
        await provider.synthesize("Hello", "female", "en-US")
    await provider.aclose()


@pytest.mark.asyncio
async def test_vonage_error_status_raises(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="unauthorized")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    provider = VonageSpeechProvider(settings, http_client=client)

    with pytest.raises(SynthesisError) as excinfo:
        await provider.synthesize("Hello", "female", "en-US")
    assert "401" in excinfo.value.detail
    await provider.aclose()


@pytest.mark.asyncio
async def test_vonage_without_credentials_fails_fast(settings):
    settings = settings.model_copy(update={"vonage_api_key": None, "vonage_api_secret": None})

    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - never called
        raise AssertionError("no request expected")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    provider = VonageSpeechProvider(settings, http_client=client)

    with pytest.raises(SynthesisError):
        await provider.synthesize("Hello", "female", "en-US")
    await provider.aclose()


@pytest.mark.asyncio
async def test_openai_speech_provider_posts_voice(settings):
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path.endswith("/audio/speech")
        seen.append(json.loads(request.content))
        return httpx.Response(200, content=b"ID3openai", headers={"content-type": "audio/mpeg"})

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    provider = OpenAISpeechProvider(OpenAIClient(settings, http_client=http_client), settings)

    audio = await provider.synthesize("Hello", "male", "de-DE")

    assert audio == b"ID3openai"
    assert seen[0]["voice"] == "onyx"
    assert seen[0]["model"] == "tts-1"
    assert seen[0]["input"] == "Hello"
    await http_client.aclose()


@pytest.mark.asyncio
async def test_vonage_failure_falls_back_to_openai(settings):
    def vonage_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    def openai_handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"ID3openai", headers={"content-type": "audio/mpeg"})

    vonage_client = httpx.AsyncClient(transport=httpx.MockTransport(vonage_handler))
    openai_client = httpx.AsyncClient(transport=httpx.MockTransport(openai_handler))
    synthesizer = FailoverSpeechSynthesizer(
        [
            VonageSpeechProvider(settings, http_client=vonage_client),
            OpenAISpeechProvider(OpenAIClient(settings, http_client=openai_client), settings),
        ]
    )

    assert await synthesizer.synthesize("Hello") == b"ID3openai"
    await synthesizer.aclose()
    await openai_client.aclose()


def test_openai_provider_requires_key(settings):
    settings = settings.model_copy(update={"openai_api_key": SecretStr("")})
    provider = OpenAISpeechProvider(OpenAIClient(settings), settings)
    assert provider._configured is False
