"""Live feed of support transcript events, served as SSE.

Only the active transcript has a channel. The support session opens one
when a transcript starts and retires it on resolve: the ``resolved`` event
goes out to every follower (customer view and admin inbox alike), their
iterators end, and the channel's history is dropped. Following a retired or
unknown transcript yields nothing.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, AsyncIterator

import structlog

from h8_marketplace.models import SupportEvent

logger = structlog.get_logger(__name__)

# Canonical event type constants
EVENT_MESSAGE = "message"
EVENT_TYPING = "typing"
EVENT_ESCALATED = "escalated"
EVENT_UNREAD = "unread"
EVENT_RESOLVED = "resolved"


class _TranscriptChannel:
    """Events emitted so far for one transcript and the followers' queues."""

    __slots__ = ("backlog", "followers")

    def __init__(self) -> None:
        self.backlog: list[SupportEvent] = []
        self.followers: list[asyncio.Queue[SupportEvent | None]] = []


class SupportEventStream:
    def __init__(self, max_queue_size: int = 256) -> None:
        self._channels: dict[str, _TranscriptChannel] = {}
        self._max_queue_size = max_queue_size

    @property
    def open_transcripts(self) -> list[str]:
        return list(self._channels)

    def is_open(self, transcript_id: str) -> bool:
        return transcript_id in self._channels

    def follower_count(self, transcript_id: str) -> int:
        channel = self._channels.get(transcript_id)
        return len(channel.followers) if channel else 0

    def get_history(self, transcript_id: str) -> list[SupportEvent]:
        """Events of an open transcript; empty once it has been retired."""
        channel = self._channels.get(transcript_id)
        return list(channel.backlog) if channel else []

    # ------------------------------------------------------------------
    # Transcript lifecycle
    # ------------------------------------------------------------------

    def open(self, transcript_id: str) -> None:
        self._channels.setdefault(transcript_id, _TranscriptChannel())

    def retire(self, transcript_id: str, message: str = "") -> SupportEvent:
        """Send ``resolved`` to the followers, end their feeds, drop the channel."""
        event = self.emit(transcript_id, EVENT_RESOLVED, message=message)
        channel = self._channels.pop(transcript_id, None)
        if channel is not None:
            for queue in channel.followers:
                self._offer(transcript_id, queue, None)
            logger.debug(
                "transcript_feed_retired",
                transcript_id=transcript_id,
                followers=len(channel.followers),
            )
        return event

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def emit(
        self,
        transcript_id: str,
        event_type: str,
        data: dict[str, Any] | None = None,
        message: str = "",
    ) -> SupportEvent:
        event = SupportEvent(
            event_type=event_type,
            transcript_id=transcript_id,
            data=data or {},
            message=message,
            timestamp=datetime.now(tz=timezone.utc),
        )

        channel = self._channels.get(transcript_id)
        if channel is None:
            logger.warning(
                "event_for_closed_transcript",
                transcript_id=transcript_id,
                event_type=event_type,
            )
            return event

        channel.backlog.append(event)
        for queue in channel.followers:
            self._offer(transcript_id, queue, event)
        return event

    def _offer(
        self,
        transcript_id: str,
        queue: asyncio.Queue[SupportEvent | None],
        item: SupportEvent | None,
    ) -> None:
        # A lagging follower loses its oldest pending event, never the newest.
        if queue.full():
            queue.get_nowait()
            logger.warning("follower_lagging", transcript_id=transcript_id)
        queue.put_nowait(item)

    # ------------------------------------------------------------------
    # Following
    # ------------------------------------------------------------------

    async def subscribe(self, transcript_id: str) -> AsyncIterator[SupportEvent]:
        """Replay the transcript's events so far, then follow it live.

        The backlog is copied in the same step that registers the follower,
        so each event is delivered exactly once.
        """
        channel = self._channels.get(transcript_id)
        if channel is None:
            return

        replay = list(channel.backlog)
        queue: asyncio.Queue[SupportEvent | None] = asyncio.Queue(
            maxsize=self._max_queue_size
        )
        channel.followers.append(queue)

        try:
            for event in replay:
                yield event
            while (event := await queue.get()) is not None:
                yield event
        finally:
            if queue in channel.followers:
                channel.followers.remove(queue)
