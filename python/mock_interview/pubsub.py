"""
Session Event Stream.

In-memory pub/sub that streams session events (voice state, transcript,
test results, reconnect indicators, termination) to the presentation layer.
Each SessionController owns one publisher; late subscribers first receive
the bounded history.

Example usage:
    publisher = SessionEventPublisher()
    queue = await publisher.subscribe()
    await publisher.publish_voice_state("listening")
    event = await queue.get()
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class SessionEventType(str, Enum):
    """
    Types of events published to the stream.

    Attributes:
        VOICE_STATE: Voice channel state changed.
        PARTIAL_TRANSCRIPT: In-progress user utterance replaced (or cleared).
        TRANSCRIPT_ENTRY: A finalized utterance was appended.
        TEST_RESULTS: A run or submit produced test results.
        RECONNECTING: The voice channel dropped and is reconnecting.
        INTRO: The introduction was scheduled.
        SESSION_ENDED: The session reached a terminal status.
        SYSTEM: Lifecycle messages (loaded, resumed, started).
        ERROR: Errors surfaced to the user.
    """

    VOICE_STATE = "voice_state"
    PARTIAL_TRANSCRIPT = "partial_transcript"
    TRANSCRIPT_ENTRY = "transcript_entry"
    TEST_RESULTS = "test_results"
    RECONNECTING = "reconnecting"
    INTRO = "intro"
    SESSION_ENDED = "session_ended"
    SYSTEM = "system"
    ERROR = "error"


def _get_utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class SessionEvent:
    """
    A single publishable session event.

    Attributes:
        event_type: Category of the event.
        content: Human-readable summary.
        timestamp: UTC timestamp when the event was created.
        data: Structured payload (state names, entry, results...).
    """

    event_type: SessionEventType
    content: str
    timestamp: str = field(default_factory=_get_utc_timestamp)
    data: dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "event_type": self.event_type.value,
            "content": self.content,
            "timestamp": self.timestamp,
            "data": self.data,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class SessionEventPublisher:
    """
    Publisher for session events.

    Manages multiple subscriber queues and broadcasts events to all.
    Async-safe through lock usage.

    Attributes:
        max_history: Maximum number of events to retain in history.
    """

    def __init__(self, max_history: int = 200) -> None:
        self._subscribers: list[asyncio.Queue[SessionEvent]] = []
        self._history: list[SessionEvent] = []
        self._max_history = max_history
        self._lock = asyncio.Lock()
        logger.debug("SessionEventPublisher initialized with max_history=%d", max_history)

    async def subscribe(self) -> asyncio.Queue[SessionEvent]:
        """
        Subscribe to session events.

        The returned queue first receives the retained history. Caller is
        responsible for calling unsubscribe when done.
        """
        queue: asyncio.Queue[SessionEvent] = asyncio.Queue()
        async with self._lock:
            self._subscribers.append(queue)
            for event in self._history:
                queue.put_nowait(event)
        logger.debug("New subscriber added. Total: %d", len(self._subscribers))
        return queue

    async def unsubscribe(self, queue: asyncio.Queue[SessionEvent]) -> None:
        async with self._lock:
            if queue in self._subscribers:
                self._subscribers.remove(queue)
        logger.debug("Subscriber removed. Total: %d", len(self._subscribers))

    async def publish(self, event: SessionEvent) -> None:
        """
        Publish an event to all subscribers and store it in history.

        Args:
            event: The event to publish.
        """
        async with self._lock:
            self._history.append(event)
            if len(self._history) > self._max_history:
                self._history = self._history[-self._max_history :]
            for queue in self._subscribers:
                queue.put_nowait(event)

        logger.debug("Published event: %s", event.event_type.value)

    async def publish_voice_state(self, old: str, new: str) -> None:
        await self.publish(
            SessionEvent(
                event_type=SessionEventType.VOICE_STATE,
                content=f"{old} -> {new}",
                data={"old": old, "state": new},
            )
        )

    async def publish_partial(self, text: str | None) -> None:
        await self.publish(
            SessionEvent(
                event_type=SessionEventType.PARTIAL_TRANSCRIPT,
                content=text or "",
                data={"text": text},
            )
        )

    async def publish_entry(self, entry: dict[str, object]) -> None:
        await self.publish(
            SessionEvent(
                event_type=SessionEventType.TRANSCRIPT_ENTRY,
                content=str(entry.get("text", "")),
                data=entry,
            )
        )

    async def publish_test_results(
        self,
        execution_type: str,
        report: dict[str, object],
    ) -> None:
        """
        Publish run/submit results.

        Args:
            execution_type: "run" or "submit".
            report: Serialized ExecutionReport (results + summary).
        """
        summary = report.get("summary") or {}
        passed = summary.get("passed", 0) if isinstance(summary, dict) else 0
        total = summary.get("total", 0) if isinstance(summary, dict) else 0
        await self.publish(
            SessionEvent(
                event_type=SessionEventType.TEST_RESULTS,
                content=f"{execution_type}: {passed}/{total} passed",
                data={"execution_type": execution_type, **report},
            )
        )

    async def publish_reconnecting(self, attempt: int, reason: str) -> None:
        await self.publish(
            SessionEvent(
                event_type=SessionEventType.RECONNECTING,
                content=f"Reconnecting (attempt {attempt})",
                data={"attempt": attempt, "reason": reason},
            )
        )

    async def publish_intro(self, text: str) -> None:
        await self.publish(
            SessionEvent(event_type=SessionEventType.INTRO, content=text)
        )

    async def publish_session_ended(self, outcome: dict[str, object]) -> None:
        await self.publish(
            SessionEvent(
                event_type=SessionEventType.SESSION_ENDED,
                content=f"Session ended: {outcome.get('reason')}",
                data=outcome,
            )
        )

    async def publish_system(self, content: str) -> None:
        await self.publish(SessionEvent(event_type=SessionEventType.SYSTEM, content=content))

    async def publish_error(self, content: str) -> None:
        await self.publish(SessionEvent(event_type=SessionEventType.ERROR, content=content))

    async def get_history(self) -> list[SessionEvent]:
        """Return a copy of the event history (async-safe)."""
        async with self._lock:
            return list(self._history)

    async def clear_history(self) -> None:
        async with self._lock:
            self._history.clear()
        logger.debug("History cleared")

    @property
    def subscriber_count(self) -> int:
        """Approximate number of active subscribers."""
        return len(self._subscribers)
