"""Process-local stores for completion records and synthesized audio.

Both stores expose an async interface so a shared backend can replace the
in-memory one later. The in-memory implementations never await between
reading and writing their maps, so a single event loop keeps every
operation atomic without an explicit lock.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CompletionRecord:
    """Final text and audio for one streamed reply."""

    stream_id: str
    final_text: str
    audio_url: str | None = None
    initial_audio_url: str | None = None
    has_multipart_audio: bool = False
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class AudioBlob:
    filename: str
    data: bytes
    content_type: str = "audio/mpeg"
    created_at: datetime = field(default_factory=_utcnow)

    @property
    def size_bytes(self) -> int:
        return len(self.data)


class CorrelationStore(ABC):
    """Single-consumer map from stream id to `CompletionRecord`."""

    @abstractmethod
    async def put(self, record: CompletionRecord) -> bool:
        """Publish a record; return False when the id was already used."""

    @abstractmethod
    async def pop(self, stream_id: str) -> CompletionRecord | None:
        """Return and delete the record, or None when absent."""

    @abstractmethod
    async def contains(self, stream_id: str) -> bool:
        ...

    @abstractmethod
    async def evict_expired(self) -> int:
        """Drop records older than the retention window."""

    @abstractmethod
    async def count(self) -> int:
        ...


class BlobStore(ABC):
    """Map from generated filename to `AudioBlob`."""

    @abstractmethod
    async def put(self, blob: AudioBlob) -> None:
        ...

    @abstractmethod
    async def get(self, filename: str) -> AudioBlob | None:
        ...

    @abstractmethod
    async def evict(self) -> int:
        """Drop the oldest blobs beyond the capacity bound."""

    @abstractmethod
    async def count(self) -> int:
        ...


class InMemoryCorrelationStore(CorrelationStore):
    """Age-bounded records; ids that were consumed or evicted stay retired."""

    def __init__(
        self,
        *,
        retention_seconds: float = 600.0,
        clock: Clock = time.monotonic,
    ) -> None:
        if retention_seconds <= 0:
            raise ValueError("retention_seconds must be positive")
        self._retention = retention_seconds
        self._clock = clock
        self._records: dict[str, tuple[float, CompletionRecord]] = {}
        # stream_id -> retirement time; kept for one retention window
        self._retired: dict[str, float] = {}

    @property
    def retention_seconds(self) -> float:
        return self._retention

    async def put(self, record: CompletionRecord) -> bool:
        self._evict(self._clock())
        stream_id = record.stream_id
        if stream_id in self._records or stream_id in self._retired:
            logger.warning("Ignoring duplicate completion record for stream %s", stream_id)
            return False
        self._records[stream_id] = (self._clock(), record)
        logger.debug("Stored completion record for stream %s", stream_id)
        return True

    async def pop(self, stream_id: str) -> CompletionRecord | None:
        now = self._clock()
        entry = self._records.pop(stream_id, None)
        if entry is None:
            return None
        self._retired[stream_id] = now
        stored_at, record = entry
        if now - stored_at > self._retention:
            logger.debug("Completion record for stream %s expired before read", stream_id)
            return None
        return record

    async def contains(self, stream_id: str) -> bool:
        return stream_id in self._records

    async def evict_expired(self) -> int:
        return self._evict(self._clock())

    async def count(self) -> int:
        return len(self._records)

    def _evict(self, now: float) -> int:
        cutoff = now - self._retention
        expired = [sid for sid, (stored_at, _) in self._records.items() if stored_at < cutoff]
        for stream_id in expired:
            del self._records[stream_id]
            self._retired[stream_id] = now

        stale = [sid for sid, retired_at in self._retired.items() if retired_at < cutoff]
        for stream_id in stale:
            del self._retired[stream_id]

        if expired:
            logger.info("Evicted %d expired completion record(s)", len(expired))
        return len(expired)


class InMemoryBlobStore(BlobStore):
    """Keep the most recent ``max_entries`` blobs in insertion order."""

    def __init__(self, *, max_entries: int = 50) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._blobs: OrderedDict[str, AudioBlob] = OrderedDict()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    async def put(self, blob: AudioBlob) -> None:
        self._blobs[blob.filename] = blob
        self._blobs.move_to_end(blob.filename)
        self._evict()

    async def get(self, filename: str) -> AudioBlob | None:
        return self._blobs.get(filename)

    async def evict(self) -> int:
        return self._evict()

    async def count(self) -> int:
        return len(self._blobs)

    def _evict(self) -> int:
        removed = 0
        while len(self._blobs) > self._max_entries:
            filename, _ = self._blobs.popitem(last=False)
            removed += 1
            logger.debug("Evicted audio blob %s", filename)
        return removed


__all__ = [
    "AudioBlob",
    "BlobStore",
    "CompletionRecord",
    "CorrelationStore",
    "InMemoryBlobStore",
    "InMemoryCorrelationStore",
]
