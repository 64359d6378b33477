"""Pydantic models for the chat, polling and speech endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..services.tts.voices import DEFAULT_LANGUAGE, DEFAULT_VOICE_TYPE


class VoiceSettings(BaseModel):
    """Voice selection sent by the client; unknown values fall back to defaults."""

    voice_type: str = Field(default=DEFAULT_VOICE_TYPE, alias="voiceType")
    language: str = Field(default=DEFAULT_LANGUAGE)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ChatRequest(BaseModel):
    """Incoming chat submission.

    ``message`` is optional at the schema level so that a missing message is
    reported with the service's own 400 body rather than a 422.
    """

    message: Optional[str] = None
    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")
    voice_settings: Optional[VoiceSettings] = Field(default=None, alias="voiceSettings")
    stream: bool = True

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ChatResponse(BaseModel):
    success: bool = True
    text: str
    is_partial: bool = Field(alias="isPartial")
    stream_id: Optional[str] = Field(default=None, alias="streamId")
    audio_url: Optional[str] = Field(default=None, alias="audioUrl")

    model_config = ConfigDict(populate_by_name=True)


class CompletionResponse(BaseModel):
    success: bool = True
    complete: bool
    text: Optional[str] = None
    audio_url: Optional[str] = Field(default=None, alias="audioUrl")
    initial_audio_url: Optional[str] = Field(default=None, alias="initialAudioUrl")
    has_multipart_audio: Optional[bool] = Field(default=None, alias="hasMultipartAudio")

    model_config = ConfigDict(populate_by_name=True)


class TextToSpeechRequest(BaseModel):
    text: Optional[str] = None
    voice_type: str = Field(default=DEFAULT_VOICE_TYPE, alias="voiceType")
    language: str = Field(default=DEFAULT_LANGUAGE)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: datetime


__all__ = [
    "ChatRequest",
    "ChatResponse",
    "CompletionResponse",
    "HealthResponse",
    "TextToSpeechRequest",
    "VoiceSettings",
]
