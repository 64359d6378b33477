"""Text generation port and its OpenAI-backed implementation."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..errors import GenerationError
from ..openai_client import OpenAIClient, OpenAIError

logger = logging.getLogger(__name__)

PROCESSING_PLACEHOLDER = "Processing your request..."
STREAM_FAILURE_TEXT = "Sorry, there was an error processing your request."


@dataclass
class StreamHandle:
    """Early view of a streamed reply plus a future for the full text.

    ``completion`` resolves exactly once with the full reply, or with a
    user-safe fallback sentence when the stream breaks. It never raises.
    """

    stream_id: str
    partial_text: str
    completion: asyncio.Future[str]
    placeholder: bool = False


class TextGenerator(Protocol):
    """Capability to turn a user message into an assistant reply."""

    async def generate(self, message: str, system_prompt: str | None = None) -> str:
        ...

    async def generate_streaming(
        self, message: str, system_prompt: str | None = None
    ) -> StreamHandle:
        ...


@dataclass
class _StreamState:
    chunks: list[str] = field(default_factory=list)
    error: Exception | None = None

    @property
    def text(self) -> str:
        return "".join(self.chunks).strip()


class OpenAITextGenerator:
    """Generate replies through the chat-completions endpoint."""

    def __init__(self, client: OpenAIClient, *, partial_window: float = 0.1):
        self._client = client
        self._partial_window = max(0.0, partial_window)
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def active_streams(self) -> int:
        return len(self._tasks)

    async def generate(self, message: str, system_prompt: str | None = None) -> str:
        payload = self._client.build_chat_payload(message, system_prompt, stream=False)
        try:
            return await self._client.complete_chat(payload)
        except OpenAIError as exc:
            logger.error("Chat completion failed: %s", exc.detail)
            raise GenerationError(
                "Failed to get AI response", detail=exc.detail
            ) from exc

    async def generate_streaming(
        self, message: str, system_prompt: str | None = None
    ) -> StreamHandle:
        """Start a streamed completion and report what arrived within the window.

        Raises `GenerationError` only when the stream fails before yielding any
        text; later failures resolve the completion with a fallback sentence.
        """

        stream_id = str(uuid.uuid4())
        payload = self._client.build_chat_payload(message, system_prompt, stream=True)
        completion: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        state = _StreamState()

        task = asyncio.create_task(
            self._consume(stream_id, payload, state, completion),
            name=f"chat-stream-{stream_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        await asyncio.wait({task}, timeout=self._partial_window)

        if state.error is not None and not state.chunks:
            detail = (
                state.error.detail
                if isinstance(state.error, OpenAIError)
                else str(state.error)
            )
            raise GenerationError(
                "Failed to get AI response", detail=detail
            ) from state.error

        partial = state.text
        logger.debug(
            "Stream %s partial after %.0fms: %d chars",
            stream_id,
            self._partial_window * 1000,
            len(partial),
        )
        return StreamHandle(
            stream_id=stream_id,
            partial_text=partial or PROCESSING_PLACEHOLDER,
            completion=completion,
            placeholder=not partial,
        )

    async def _consume(
        self,
        stream_id: str,
        payload: dict[str, Any],
        state: _StreamState,
        completion: asyncio.Future[str],
    ) -> None:
        try:
            async for delta in self._client.stream_text(payload):
                state.chunks.append(delta)
        except asyncio.CancelledError:
            if not completion.done():
                completion.set_result(state.text or STREAM_FAILURE_TEXT)
            raise
        except Exception as exc:
            state.error = exc
            logger.error("Stream %s failed after %d chunks: %s", stream_id, len(state.chunks), exc)
            if not completion.done():
                completion.set_result(STREAM_FAILURE_TEXT)
            return

        if not completion.done():
            completion.set_result(state.text or STREAM_FAILURE_TEXT)
        logger.info("Stream %s complete: %d chars", stream_id, len(state.text))

    async def shutdown(self) -> None:
        """Cancel streams that are still being read."""

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


__all__ = [
    "OpenAITextGenerator",
    "PROCESSING_PLACEHOLDER",
    "STREAM_FAILURE_TEXT",
    "StreamHandle",
    "TextGenerator",
]
