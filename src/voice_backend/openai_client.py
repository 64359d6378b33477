"""Chat completion and speech calls against an OpenAI-compatible API."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Iterable, Mapping, Optional, Sequence

import httpx
from fastapi import status

from .config import Settings

logger = logging.getLogger(__name__)


class OpenAIError(Exception):
    """Transport or API failure from the provider, with the status to report."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(str(detail))
        self.status_code = status_code
        self.detail = detail


@dataclass
class ServerSentEvent:
    data: str
    event: str = "message"
    event_id: Optional[str] = None


class OpenAIClient:
    """Thin async client for `/chat/completions` and `/audio/speech`.

    Clients without an injected ``http_client`` share one pooled HTTP/2
    connection per (base URL, timeout) pair.
    """

    _pool: dict[tuple[str, float], httpx.AsyncClient] = {}

    def __init__(
        self,
        settings: Settings,
        *,
        http_client: httpx.AsyncClient | None = None,
    ):
        self._settings = settings
        self._override = http_client

    @property
    def _base_url(self) -> str:
        return str(self._settings.openai_base_url).rstrip("/")

    @property
    def _timeout(self) -> float:
        return float(self._settings.request_timeout)

    def _http(self) -> httpx.AsyncClient:
        if self._override is not None:
            return self._override

        key = (self._base_url, self._timeout)
        client = OpenAIClient._pool.get(key)
        if client is None or client.is_closed:
            client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=10.0),
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
                http2=True,
            )
            OpenAIClient._pool[key] = client
            logger.debug("Opened pooled HTTP client for %s", self._base_url)
        return client

    def _headers(self, accept: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.openai_api_key.get_secret_value()}",
            "Content-Type": "application/json",
            "Accept": accept,
        }

    def build_chat_payload(
        self,
        message: str,
        system_prompt: str | None,
        *,
        stream: bool,
    ) -> dict[str, Any]:
        return {
            "model": self._settings.chat_model,
            "messages": [
                {
                    "role": "system",
                    "content": system_prompt or self._settings.default_system_prompt,
                },
                {"role": "user", "content": message},
            ],
            "max_tokens": self._settings.chat_max_tokens,
            "temperature": self._settings.chat_temperature,
            "stream": stream,
        }

    async def _post(
        self,
        path: str,
        payload: Mapping[str, Any],
        *,
        accept: str,
        timeout: float | None = None,
    ) -> httpx.Response:
        kwargs: dict[str, Any] = {"headers": self._headers(accept), "json": payload}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = await self._http().post(f"{self._base_url}{path}", **kwargs)
        except httpx.HTTPError as exc:
            raise OpenAIError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

        if response.status_code >= 400:
            raise OpenAIError(response.status_code, self._error_detail(response.content))
        return response

    async def complete_chat(self, payload: dict[str, Any]) -> str:
        """Run a blocking completion and return the assistant text."""

        response = await self._post(
            "/chat/completions", {**payload, "stream": False}, accept="application/json"
        )
        try:
            body = response.json()
        except ValueError as exc:
            raise OpenAIError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc
        return self._message_text(body)

    @staticmethod
    def _message_text(body: Mapping[str, Any]) -> str:
        choices = body.get("choices")
        if not isinstance(choices, Sequence) or not choices:
            raise OpenAIError(status.HTTP_502_BAD_GATEWAY, "No response from OpenAI")

        first = choices[0]
        message = first.get("message") if isinstance(first, Mapping) else None
        content = message.get("content") if isinstance(message, Mapping) else None
        if not isinstance(content, str) or not content.strip():
            raise OpenAIError(
                status.HTTP_502_BAD_GATEWAY, "Completion response missing content"
            )
        return content.strip()

    async def _events(
        self, payload: dict[str, Any]
    ) -> AsyncGenerator[ServerSentEvent, None]:
        """Yield the server-sent events of a streamed completion."""

        try:
            async with self._http().stream(
                "POST",
                f"{self._base_url}/chat/completions",
                headers=self._headers("text/event-stream"),
                json={**payload, "stream": True},
            ) as response:
                if response.status_code >= 400:
                    raw = await response.aread()
                    raise OpenAIError(response.status_code, self._error_detail(raw))

                pending: list[str] = []
                async for line in response.aiter_lines():
                    if line.startswith(":"):
                        continue
                    if line:
                        pending.append(line)
                    elif pending:
                        yield self._parse_event(pending)
                        pending = []
                if pending:
                    yield self._parse_event(pending)
        except httpx.HTTPError as exc:
            raise OpenAIError(status.HTTP_502_BAD_GATEWAY, str(exc)) from exc

    async def stream_text(self, payload: dict[str, Any]) -> AsyncGenerator[str, None]:
        """Yield content deltas until the `[DONE]` sentinel."""

        async for event in self._events(payload):
            if event.data == "[DONE]":
                return
            if not event.data:
                continue
            try:
                chunk = json.loads(event.data)
            except json.JSONDecodeError:
                logger.debug("Skipping non-JSON stream chunk: %.80s", event.data)
                continue
            if not isinstance(chunk, dict):
                continue
            if chunk.get("error"):
                raise OpenAIError(status.HTTP_502_BAD_GATEWAY, chunk["error"])
            for choice in chunk.get("choices") or []:
                content = (choice.get("delta") or {}).get("content")
                if isinstance(content, str) and content:
                    yield content

    async def create_speech(
        self,
        *,
        text: str,
        voice: str,
        model: str,
        response_format: str = "mp3",
        timeout: float | None = None,
    ) -> bytes:
        """Return encoded audio for ``text``."""

        response = await self._post(
            "/audio/speech",
            {
                "model": model,
                "voice": voice,
                "input": text,
                "response_format": response_format,
            },
            accept="audio/mpeg",
            timeout=timeout,
        )
        return response.content

    async def aclose(self) -> None:
        if self._override is not None:
            await self._override.aclose()
        else:
            await self.aclose_shared()

    @classmethod
    async def aclose_shared(cls) -> None:
        clients = list(cls._pool.values())
        cls._pool.clear()
        for client in clients:
            await client.aclose()

    @staticmethod
    def _parse_event(lines: Iterable[str]) -> ServerSentEvent:
        fields: dict[str, list[str]] = {}
        for line in lines:
            name, _, value = line.partition(":")
            fields.setdefault(name, []).append(value[1:] if value.startswith(" ") else value)

        event = (fields.get("event") or [""])[-1]
        event_id = (fields.get("id") or [""])[-1]
        return ServerSentEvent(
            data="\n".join(fields.get("data", [])),
            event=event or "message",
            event_id=event_id or None,
        )

    @staticmethod
    def _error_detail(raw: bytes) -> Any:
        text = raw.decode("utf-8", errors="ignore").strip()
        if not text:
            return "OpenAI returned an empty error response."
        try:
            body = json.loads(text)
        except json.JSONDecodeError:
            return text

        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        return error or body


__all__ = ["OpenAIClient", "OpenAIError", "ServerSentEvent"]
