"""Chat submission and completion polling routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from ..errors import ValidationError
from ..schemas.chat import ChatRequest, ChatResponse, CompletionResponse
from ..services.assembler import ResponseAssembler, VoiceOptions

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["chat"])


def get_assembler(request: Request) -> ResponseAssembler:
    assembler = getattr(request.app.state, "assembler", None)
    if assembler is None:
        raise HTTPException(status_code=500, detail="Response assembler unavailable")
    return assembler


def voice_options(payload: ChatRequest) -> VoiceOptions:
    settings = payload.voice_settings
    if settings is None:
        return VoiceOptions()
    return VoiceOptions(voice_type=settings.voice_type, language=settings.language)


@router.post("/chat", response_model=ChatResponse)
async def submit_chat(
    payload: ChatRequest,
    assembler: ResponseAssembler = Depends(get_assembler),
) -> ChatResponse:
    """Return the first part of the reply; the rest is fetched by polling."""

    message = (payload.message or "").strip()
    if not message:
        raise ValidationError("Message is required")

    voice = voice_options(payload)
    if payload.stream:
        reply = await assembler.submit(message, payload.system_prompt, voice)
    else:
        reply = await assembler.respond(message, payload.system_prompt, voice)

    return ChatResponse(
        text=reply.text,
        is_partial=reply.is_partial,
        stream_id=reply.stream_id,
        audio_url=reply.audio_url,
    )


@router.get(
    "/response/{stream_id}",
    response_model=CompletionResponse,
    response_model_exclude_unset=True,
)
async def poll_completion(
    stream_id: str,
    assembler: ResponseAssembler = Depends(get_assembler),
) -> CompletionResponse:
    """Deliver the completed reply once; every later poll sees ``complete: false``."""

    record = await assembler.take_completion(stream_id)
    if record is None:
        return CompletionResponse(success=True, complete=False)

    logger.debug("Delivering completion for stream %s", stream_id)
    fields = {
        "success": True,
        "complete": True,
        "text": record.final_text,
        "audio_url": record.audio_url,
    }
    if record.has_multipart_audio:
        fields["initial_audio_url"] = record.initial_audio_url
        fields["has_multipart_audio"] = True
    return CompletionResponse(**fields)


__all__ = ["get_assembler", "router", "voice_options"]
