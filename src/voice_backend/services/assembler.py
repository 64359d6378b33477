"""Assemble spoken replies from a streamed completion.

A submission returns as soon as the first fragment of the reply is known
(with audio for it when the fragment is long enough). The rest of the reply
is awaited in a background task, voiced, and published as a
`CompletionRecord` that the poll endpoint hands out exactly once.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from ..errors import NotFoundError, SynthesisError
from ..utils.filenames import build_audio_filename
from .stores import AudioBlob, BlobStore, CompletionRecord, CorrelationStore
from .text_generation import StreamHandle, TextGenerator
from .tts.synthesizer import SpeechSynthesizer
from .tts.voices import DEFAULT_LANGUAGE, DEFAULT_VOICE_TYPE

logger = logging.getLogger(__name__)

AUDIO_CONTENT_TYPE = "audio/mpeg"


@dataclass(frozen=True)
class VoiceOptions:
    voice_type: str = DEFAULT_VOICE_TYPE
    language: str = DEFAULT_LANGUAGE


@dataclass
class AssembledReply:
    """What the submitter sees immediately."""

    text: str
    stream_id: str | None
    audio_url: str | None
    is_partial: bool = True


@dataclass(frozen=True)
class RemainderPlan:
    reuse_initial: bool
    text: str
    continues_partial: bool


def plan_remainder(
    partial_text: str,
    final_text: str,
    *,
    has_initial_audio: bool,
    dedup_ratio: float,
) -> RemainderPlan:
    """Decide what still needs voicing once the full reply is known.

    With initial audio in hand, a final reply shorter than
    ``len(partial_text) * dedup_ratio`` is considered covered by it. Otherwise
    only the suffix after the already-voiced prefix is spoken, or the whole
    reply when the prefix does not match.
    """

    if has_initial_audio and len(final_text) < len(partial_text) * dedup_ratio:
        return RemainderPlan(reuse_initial=True, text="", continues_partial=False)

    # Without initial audio the prefix was never spoken, so nothing is stripped
    if has_initial_audio and partial_text and final_text.startswith(partial_text):
        remainder = final_text[len(partial_text):].strip()
        return RemainderPlan(
            reuse_initial=not remainder,
            text=remainder,
            continues_partial=True,
        )

    remainder = final_text.strip()
    return RemainderPlan(
        reuse_initial=has_initial_audio and not remainder,
        text=remainder,
        continues_partial=False,
    )


class ResponseAssembler:
    """Coordinate text generation, speech synthesis and the two stores."""

    def __init__(
        self,
        generator: TextGenerator,
        synthesizer: SpeechSynthesizer,
        records: CorrelationStore,
        blobs: BlobStore,
        *,
        min_partial_chars: int = 10,
        dedup_ratio: float = 1.5,
        audio_url_prefix: str = "/api/audio",
    ) -> None:
        self._generator = generator
        self._synthesizer = synthesizer
        self._records = records
        self._blobs = blobs
        self._min_partial_chars = min_partial_chars
        self._dedup_ratio = dedup_ratio
        self._audio_url_prefix = audio_url_prefix.rstrip("/")
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending_continuations(self) -> int:
        return len(self._tasks)

    @property
    def records(self) -> CorrelationStore:
        return self._records

    @property
    def blobs(self) -> BlobStore:
        return self._blobs

    async def submit(
        self,
        message: str,
        system_prompt: str | None = None,
        voice: VoiceOptions | None = None,
    ) -> AssembledReply:
        """Return the partial reply now and finish the rest in the background.

        `GenerationError` from the text generator propagates unchanged; speech
        failures only leave ``audio_url`` empty.
        """

        voice = voice or VoiceOptions()
        handle = await self._generator.generate_streaming(message, system_prompt)

        initial_url: str | None = None
        if len(handle.partial_text) > self._min_partial_chars:
            initial_url = await self._voice_and_store(handle.partial_text, voice, label="initial")

        task = asyncio.create_task(
            self._complete(handle, voice, initial_url),
            name=f"assemble-{handle.stream_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info(
            "Stream %s submitted: partial=%d chars audio=%s",
            handle.stream_id,
            len(handle.partial_text),
            "yes" if initial_url else "no",
        )
        return AssembledReply(
            text=handle.partial_text,
            stream_id=handle.stream_id,
            audio_url=initial_url,
            is_partial=True,
        )

    async def respond(
        self,
        message: str,
        system_prompt: str | None = None,
        voice: VoiceOptions | None = None,
    ) -> AssembledReply:
        """Generate the whole reply before answering."""

        voice = voice or VoiceOptions()
        text = await self._generator.generate(message, system_prompt)
        audio_url = await self._voice_and_store(text, voice, label="reply")
        return AssembledReply(text=text, stream_id=None, audio_url=audio_url, is_partial=False)

    async def synthesize(self, text: str, voice: VoiceOptions | None = None) -> bytes:
        voice = voice or VoiceOptions()
        return await self._synthesizer.synthesize(text, voice.voice_type, voice.language)

    async def take_completion(self, stream_id: str) -> CompletionRecord | None:
        """Hand out the completion record once; later calls return None."""

        return await self._records.pop(stream_id)

    async def get_audio(self, filename: str) -> AudioBlob:
        blob = await self._blobs.get(filename)
        if blob is None:
            raise NotFoundError("Audio not found", detail=filename)
        return blob

    async def evict(self) -> tuple[int, int]:
        records = await self._records.evict_expired()
        blobs = await self._blobs.evict()
        return records, blobs

    async def _complete(
        self,
        handle: StreamHandle,
        voice: VoiceOptions,
        initial_url: str | None,
    ) -> None:
        try:
            final_text = await handle.completion
            record = await self._build_record(handle, final_text, voice, initial_url)
            await self._records.put(record)
            logger.info(
                "Stream %s completed: %d chars audio=%s multipart=%s",
                handle.stream_id,
                len(final_text),
                record.audio_url,
                record.has_multipart_audio,
            )
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Background completion failed for stream %s", handle.stream_id)

    async def _build_record(
        self,
        handle: StreamHandle,
        final_text: str,
        voice: VoiceOptions,
        initial_url: str | None,
    ) -> CompletionRecord:
        if handle.placeholder:
            # The initial clip only voiced the placeholder, never reply text
            initial_url = None

        plan = plan_remainder(
            handle.partial_text,
            final_text,
            has_initial_audio=initial_url is not None,
            dedup_ratio=self._dedup_ratio,
        )

        if plan.reuse_initial or not plan.text:
            return CompletionRecord(
                stream_id=handle.stream_id,
                final_text=final_text,
                audio_url=initial_url,
                initial_audio_url=initial_url,
            )

        label = "continuation" if plan.continues_partial else "final"
        audio_url = await self._voice_and_store(plan.text, voice, label=label)
        multipart = bool(initial_url and audio_url and plan.continues_partial)
        return CompletionRecord(
            stream_id=handle.stream_id,
            final_text=final_text,
            audio_url=audio_url,
            initial_audio_url=initial_url,
            has_multipart_audio=multipart,
        )

    async def _voice_and_store(
        self, text: str, voice: VoiceOptions, *, label: str
    ) -> str | None:
        try:
            audio = await self._synthesizer.synthesize(text, voice.voice_type, voice.language)
        except SynthesisError as exc:
            logger.warning("No %s audio produced: %s (%s)", label, exc.message, exc.detail)
            return None

        filename = build_audio_filename(label)
        await self._blobs.put(
            AudioBlob(filename=filename, data=audio, content_type=AUDIO_CONTENT_TYPE)
        )
        return f"{self._audio_url_prefix}/{filename}"

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for background continuations that are currently running."""

        tasks = list(self._tasks)
        if tasks:
            await asyncio.wait(tasks, timeout=timeout)

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Cancelled %d pending continuation(s)", len(tasks))


__all__ = [
    "AUDIO_CONTENT_TYPE",
    "AssembledReply",
    "RemainderPlan",
    "ResponseAssembler",
    "VoiceOptions",
    "plan_remainder",
]
