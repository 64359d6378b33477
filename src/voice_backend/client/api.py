"""HTTP client for the voice chat backend."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional

import httpx

from .conversation import ConversationLog, ConversationMessage
from .poller import PendingReply, ResponsePoller

logger = logging.getLogger(__name__)


class ChatClientError(RuntimeError):
    """Raised when the backend rejects or fails a request."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class VoiceChatClient:
    """Submit messages, render partial replies at once, and poll for the rest."""

    def __init__(
        self,
        server_url: str,
        *,
        system_prompt: Optional[str] = None,
        voice_type: str = "female",
        language: str = "en-US",
        poll_interval: float = 0.5,
        max_poll_attempts: int = 30,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
        on_delivered: Callable[[PendingReply, Mapping[str, Any]], None] | None = None,
        on_abandoned: Callable[[PendingReply], None] | None = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self.system_prompt = system_prompt
        self.voice_settings = {"voiceType": voice_type, "language": language}
        self.conversation = ConversationLog()
        self._http = http_client or httpx.AsyncClient(
            base_url=self.server_url, timeout=timeout
        )
        self.poller = ResponsePoller(
            self.fetch_completion,
            interval=poll_interval,
            max_attempts=max_poll_attempts,
            on_delivered=on_delivered,
            on_abandoned=on_abandoned,
        )

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            message = body.get("message") or body.get("detail")
            if message:
                return str(message)
        return f"HTTP {response.status_code}"

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise ChatClientError(0, f"Cannot reach backend: {exc}") from exc
        if response.status_code >= 400:
            raise ChatClientError(response.status_code, self._error_message(response))
        return response

    async def health(self) -> dict[str, Any]:
        response = await self._request("GET", "/api/health")
        return response.json()

    async def send(self, message: str, *, stream: bool = True) -> ConversationMessage:
        """Send ``message`` and return the assistant message as first rendered.

        The user turn is logged before the request. On failure no assistant
        message is added and `ChatClientError` is raised.
        """

        self.conversation.add_user(message)
        payload: dict[str, Any] = {
            "message": message,
            "voiceSettings": self.voice_settings,
            "stream": stream,
        }
        if self.system_prompt:
            payload["systemPrompt"] = self.system_prompt

        response = await self._request("POST", "/api/chat", json=payload)
        body = response.json()

        is_partial = bool(body.get("isPartial"))
        stream_id = body.get("streamId")
        reply = self.conversation.add_assistant(
            body.get("text") or "",
            audio_url=body.get("audioUrl"),
            partial=is_partial and bool(stream_id),
            stream_id=stream_id,
        )
        if reply.partial and stream_id:
            self.poller.register(stream_id, reply)
        return reply

    async def fetch_completion(self, stream_id: str) -> dict[str, Any]:
        response = await self._request("GET", f"/api/response/{stream_id}")
        return response.json()

    async def fetch_audio(self, audio_url: str) -> bytes:
        """Download audio by URL (relative to the server) or bare filename."""

        url = audio_url if "/" in audio_url else f"/api/audio/{audio_url}"
        response = await self._request("GET", url)
        return response.content

    async def text_to_speech(
        self, text: str, *, voice_type: str | None = None, language: str | None = None
    ) -> bytes:
        payload = {
            "text": text,
            "voiceType": voice_type or self.voice_settings["voiceType"],
            "language": language or self.voice_settings["language"],
        }
        response = await self._request("POST", "/api/tts", json=payload)
        return response.content

    def clear(self) -> None:
        self.conversation.clear()

    async def aclose(self) -> None:
        await self.poller.aclose()
        await self._http.aclose()

    async def __aenter__(self) -> "VoiceChatClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


__all__ = ["ChatClientError", "VoiceChatClient"]
