"""Poll for completed replies with one shared loop.

Each registered stream id moves Submitted -> Polling -> Delivered or
Abandoned. A single task polls every pending id on a fixed interval; it
exits when nothing is pending and is restarted by the next registration.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional

from .conversation import ConversationMessage

logger = logging.getLogger(__name__)

FetchCompletion = Callable[[str], Awaitable[Mapping[str, Any]]]


class PollState(str, Enum):
    IDLE = "idle"
    SUBMITTED = "submitted"
    POLLING = "polling"
    DELIVERED = "delivered"
    ABANDONED = "abandoned"


@dataclass
class PendingReply:
    stream_id: str
    message: Optional[ConversationMessage] = None
    attempts: int = 0
    state: PollState = PollState.SUBMITTED


class ResponsePoller:
    """Poll every pending stream id from one task.

    A reply is abandoned once it has been polled ``max_attempts`` times
    without completing. Callback failures are logged and never stop the loop.
    """

    def __init__(
        self,
        fetch_completion: FetchCompletion,
        *,
        interval: float = 0.5,
        max_attempts: int = 30,
        on_delivered: Callable[[PendingReply, Mapping[str, Any]], None] | None = None,
        on_abandoned: Callable[[PendingReply], None] | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._fetch = fetch_completion
        self._interval = interval
        self._max_attempts = max_attempts
        self._on_delivered = on_delivered
        self._on_abandoned = on_abandoned
        self._pending: dict[str, PendingReply] = {}
        self._task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> dict[str, PendingReply]:
        return dict(self._pending)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def register(
        self, stream_id: str, message: ConversationMessage | None = None
    ) -> PendingReply:
        """Start polling for ``stream_id``; the partial is already rendered."""

        reply = PendingReply(stream_id=stream_id, message=message)
        reply.state = PollState.POLLING
        self._pending[stream_id] = reply
        if not self.running:
            self._task = asyncio.create_task(self._run(), name="response-poller")
        return reply

    async def _run(self) -> None:
        while self._pending:
            await asyncio.sleep(self._interval)
            batch = list(self._pending.values())
            results = await asyncio.gather(
                *(self._poll_one(reply) for reply in batch), return_exceptions=True
            )
            for reply, result in zip(batch, results):
                if isinstance(result, Exception):
                    logger.error("Polling stream %s failed: %s", reply.stream_id, result)
        logger.debug("No pending replies; poller stopped")

    async def _poll_one(self, reply: PendingReply) -> None:
        payload: Mapping[str, Any] | None
        try:
            payload = await self._fetch(reply.stream_id)
        except Exception as exc:
            logger.debug("Poll for %s failed: %s", reply.stream_id, exc)
            payload = None

        if self._pending.get(reply.stream_id) is not reply:
            return

        if payload and payload.get("complete"):
            self._deliver(reply, payload)
            return

        reply.attempts += 1
        if reply.attempts >= self._max_attempts:
            reply.state = PollState.ABANDONED
            del self._pending[reply.stream_id]
            logger.info(
                "Gave up on stream %s after %d polls; keeping partial reply",
                reply.stream_id,
                reply.attempts,
            )
            self._notify(self._on_abandoned, reply)

    def _deliver(self, reply: PendingReply, payload: Mapping[str, Any]) -> None:
        reply.state = PollState.DELIVERED
        del self._pending[reply.stream_id]
        if reply.message is not None:
            reply.message.finalize(
                payload.get("text"),
                payload.get("audioUrl"),
                initial_audio_url=payload.get("initialAudioUrl"),
                multipart=bool(payload.get("hasMultipartAudio")),
            )
        self._notify(self._on_delivered, reply, payload)

    def _notify(
        self, callback: Callable[..., None] | None, reply: PendingReply, *args: Any
    ) -> None:
        if callback is None:
            return
        try:
            callback(reply, *args)
        except Exception:
            logger.exception("Callback for stream %s failed", reply.stream_id)

    async def wait_idle(self) -> None:
        """Wait until every pending reply is delivered or abandoned."""

        while self._task is not None and not self._task.done():
            await asyncio.shield(self._task)

    async def aclose(self) -> None:
        task = self._task
        self._pending.clear()
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass


__all__ = ["FetchCompletion", "PendingReply", "PollState", "ResponsePoller"]
