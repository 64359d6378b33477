import asyncio
import pathlib
import sys
import uuid

import pytest
from pydantic import SecretStr

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from voice_backend.config import Settings  # noqa: E402
from voice_backend.errors import GenerationError, SynthesisError  # noqa: E402
from voice_backend.services.text_generation import StreamHandle  # noqa: E402


class FakeTextGenerator:
    """Text generator with scripted partial/final text.

    With ``hold=True`` completions stay pending until `release()`.
    """

    def __init__(
        self,
        partial: str = "Hello there, friend.",
        final: str = "Hello there, friend. It is a lovely day for a long walk outside.",
        *,
        fail: bool = False,
        hold: bool = False,
        placeholder: bool = False,
    ) -> None:
        self.partial = partial
        self.final = final
        self.placeholder = placeholder
        self.fail = fail
        self.hold = hold
        self.calls: list[tuple[str, str | None]] = []
        self.stream_ids: list[str] = []
        self._pending: list[asyncio.Future[str]] = []

    async def generate(self, message: str, system_prompt: str | None = None) -> str:
        self.calls.append((message, system_prompt))
        if self.fail:
            raise GenerationError("Failed to get AI response", detail="upstream down")
        return self.final

    async def generate_streaming(
        self, message: str, system_prompt: str | None = None
    ) -> StreamHandle:
        self.calls.append((message, system_prompt))
        if self.fail:
            raise GenerationError("Failed to get AI response", detail="upstream down")
        completion: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        if self.hold:
            self._pending.append(completion)
        else:
            completion.set_result(self.final)
        stream_id = str(uuid.uuid4())
        self.stream_ids.append(stream_id)
        return StreamHandle(
            stream_id=stream_id,
            partial_text=self.partial,
            completion=completion,
            placeholder=self.placeholder,
        )

    def release(self) -> None:
        for completion in self._pending:
            if not completion.done():
                completion.set_result(self.final)
        self._pending.clear()


class FakeSynthesizer:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, str, str]] = []

    async def synthesize(
        self, text: str, voice_type: str = "female", language: str = "en-US"
    ) -> bytes:
        self.calls.append((text, voice_type, language))
        if self.fail:
            raise SynthesisError("Failed to convert text to speech", detail="all down")
        return b"ID3" + text.encode("utf-8")

    @property
    def texts(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        openai_api_key=SecretStr("test-key"),
        openai_base_url="https://llm.example.com/v1",
        vonage_api_key=SecretStr("vonage-key"),
        vonage_api_secret=SecretStr("vonage-secret"),
        vonage_tts_url="https://tts.example.com/v0.1/tts",
        partial_window_ms=50,
    )


@pytest.fixture
def generator() -> FakeTextGenerator:
    return FakeTextGenerator()


@pytest.fixture
def synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()
