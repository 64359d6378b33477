"""Client-side conversation log."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, Literal, Optional


@dataclass
class ConversationMessage:
    """One turn of the conversation as the client shows it.

    An assistant message may start out ``partial``; it is finalised in place
    once when the completed reply arrives.
    """

    role: Literal["user", "assistant"]
    content: str
    audio_url: Optional[str] = None
    partial: bool = False
    stream_id: Optional[str] = None
    initial_audio_url: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def audio_playlist(self) -> list[str]:
        """Audio URLs in playback order."""

        urls = []
        if self.initial_audio_url:
            urls.append(self.initial_audio_url)
        if self.audio_url and self.audio_url not in urls:
            urls.append(self.audio_url)
        return urls

    def finalize(
        self,
        text: str | None,
        audio_url: str | None = None,
        *,
        initial_audio_url: str | None = None,
        multipart: bool = False,
    ) -> None:
        if not self.partial:
            return
        if text:
            self.content = text
        if multipart and initial_audio_url:
            self.initial_audio_url = initial_audio_url
            self.audio_url = audio_url
        elif audio_url:
            # The final audio covers the whole reply
            self.initial_audio_url = None
            self.audio_url = audio_url
        self.partial = False


class ConversationLog:
    """Append-only list of messages, cleared only on request."""

    def __init__(self) -> None:
        self._messages: list[ConversationMessage] = []

    def add_user(self, text: str) -> ConversationMessage:
        message = ConversationMessage(role="user", content=text)
        self._messages.append(message)
        return message

    def add_assistant(
        self,
        text: str,
        *,
        audio_url: str | None = None,
        partial: bool = False,
        stream_id: str | None = None,
    ) -> ConversationMessage:
        message = ConversationMessage(
            role="assistant",
            content=text,
            audio_url=audio_url,
            partial=partial,
            stream_id=stream_id,
        )
        self._messages.append(message)
        return message

    def clear(self) -> None:
        self._messages.clear()

    @property
    def messages(self) -> list[ConversationMessage]:
        return list(self._messages)

    def __iter__(self) -> Iterator[ConversationMessage]:
        return iter(list(self._messages))

    def __len__(self) -> int:
        return len(self._messages)


__all__ = ["ConversationLog", "ConversationMessage"]
