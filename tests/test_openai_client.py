import json

import httpx
import pytest
from pydantic import AnyHttpUrl, SecretStr

from voice_backend.config import Settings
from voice_backend.openai_client import OpenAIClient, OpenAIError


def make_client(http_client: httpx.AsyncClient | None = None) -> OpenAIClient:
    settings = Settings(
        openai_api_key=SecretStr("test"),
        openai_base_url=AnyHttpUrl("https://example.com/v1"),
    )
    return OpenAIClient(settings, http_client=http_client)


def test_parse_event_supports_multiple_data_lines() -> None:
    client = make_client()

    headers = client._headers("text/event-stream")  # type: ignore[attr-defined]
    assert headers["Authorization"] == "Bearer test"
    assert headers["Accept"] == "text/event-stream"

    event = client._parse_event(  # type: ignore[attr-defined]
        [
            "event: completion",
            "id: test-id",
            "data: part one",
            "data: part two",
        ]
    )

    assert event.event == "completion"
    assert event.event_id == "test-id"
    assert event.data == "part one\npart two"


def test_parse_event_defaults_to_message() -> None:
    event = make_client()._parse_event(["data: {}"])  # type: ignore[attr-defined]

    assert event.event == "message"
    assert event.event_id is None
    assert event.data == "{}"


def test_build_chat_payload_uses_default_system_prompt() -> None:
    client = make_client()

    payload = client.build_chat_payload("Hi", None, stream=True)

    assert payload["model"] == "gpt-4o"
    assert payload["stream"] is True
    assert payload["messages"][0]["role"] == "system"
    assert "concisely" in payload["messages"][0]["content"]
    assert payload["messages"][1] == {"role": "user", "content": "Hi"}


@pytest.mark.asyncio
async def test_stream_text_skips_comments_and_stops_at_done() -> None:
    body = (
        ": keep-alive\n\n"
        'data: {"choices":[{"delta":{"role":"assistant"}}]}\n\n'
        'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n'
        'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n'
        "data: [DONE]\n\n"
        'data: {"choices":[{"delta":{"content":"ignored"}}]}\n\n'
    )

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/chat/completions"
        assert json.loads(request.content)["stream"] is True
        return httpx.Response(200, text=body, headers={"content-type": "text/event-stream"})

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = make_client(http_client)

    payload = client.build_chat_payload("Hi", None, stream=True)
    chunks = [chunk async for chunk in client.stream_text(payload)]

    assert chunks == ["Hel", "lo"]
    await client.aclose()


@pytest.mark.asyncio
async def test_stream_error_status_raises_openai_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": {"message": "bad key"}})

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = make_client(http_client)

    with pytest.raises(OpenAIError) as excinfo:
        async for _ in client.stream_text(client.build_chat_payload("Hi", None, stream=True)):
            pass

    assert excinfo.value.status_code == 401
    assert excinfo.value.detail == "bad key"
    await client.aclose()


@pytest.mark.asyncio
async def test_complete_chat_rejects_empty_choices() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": []})

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = make_client(http_client)

    with pytest.raises(OpenAIError) as excinfo:
        await client.complete_chat(client.build_chat_payload("Hi", None, stream=False))
    assert excinfo.value.detail == "No response from OpenAI"
    await client.aclose()


@pytest.mark.asyncio
async def test_create_speech_returns_audio_bytes() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/audio/speech"
        assert request.headers["accept"] == "audio/mpeg"
        return httpx.Response(200, content=b"ID3data")

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = make_client(http_client)

    audio = await client.create_speech(text="Hello", voice="nova", model="tts-1")

    assert audio == b"ID3data"
    await client.aclose()
