"""Audio delivery and speech routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from ..errors import NotFoundError, ValidationError
from ..schemas.chat import TextToSpeechRequest
from ..services.assembler import AUDIO_CONTENT_TYPE, ResponseAssembler, VoiceOptions
from ..utils.filenames import is_safe_filename
from .chat import get_assembler

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["speech"])


@router.get("/audio/{filename}")
async def fetch_audio(
    filename: str,
    assembler: ResponseAssembler = Depends(get_assembler),
) -> Response:
    """Serve cached audio; names are unique, so clients may cache them."""

    if not is_safe_filename(filename):
        raise NotFoundError("Audio not found", detail=filename)

    blob = await assembler.get_audio(filename)
    headers = {
        "Cache-Control": "public, max-age=3600, immutable",
        "Content-Disposition": f'inline; filename="{blob.filename}"',
    }
    return Response(content=blob.data, media_type=blob.content_type, headers=headers)


@router.post("/tts")
async def text_to_speech(
    payload: TextToSpeechRequest,
    assembler: ResponseAssembler = Depends(get_assembler),
) -> Response:
    """Synthesize arbitrary text with provider failover."""

    text = (payload.text or "").strip()
    if not text:
        raise ValidationError("Text is required")

    voice = VoiceOptions(voice_type=payload.voice_type, language=payload.language)
    audio = await assembler.synthesize(text, voice)
    return Response(content=audio, media_type=AUDIO_CONTENT_TYPE)


@router.post("/stt", status_code=501)
async def speech_to_text() -> JSONResponse:
    """Speech recognition happens in the browser; there is no server-side STT."""

    return JSONResponse(
        status_code=501,
        content={
            "success": False,
            "message": (
                "Speech-to-text via API not implemented. "
                "Please use the browser's Web Speech API."
            ),
        },
    )


__all__ = ["router"]
