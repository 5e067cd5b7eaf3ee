"""
Transcript Log.

Ordered, append-only record of finalized utterances for one session, plus
the single in-progress partial utterance shown while the user is speaking.

Ordering:
    Entries keep the order in which their final form arrived. That is not
    guaranteed to match timestamp order under network jitter; use
    ``by_timestamp()`` when sorted output is needed.

Thread Safety:
    This class is NOT thread-safe. It is owned by one VoiceChannel and
    read by the SessionController on the same event loop.

Last Grunted: 10/15/2026
"""

import logging
from typing import Iterable, Optional

from .models import Speaker, TranscriptEntry, now_ms


__all__ = ["TranscriptLog"]


logger = logging.getLogger(__name__)


class TranscriptLog:
    """
    Append-only transcript with a replaceable partial.

    Example:
        >>> log = TranscriptLog()
        >>> log.set_partial("Can I assume")
        >>> log.append(Speaker.USER, "Can I assume the input is sorted?")
        >>> log.partial is None
        True
        >>> len(log)
        1
    """

    def __init__(self, entries: Optional[Iterable[TranscriptEntry]] = None) -> None:
        """
        Initialize the log.

        Args:
            entries: Entries persisted before this session view was loaded.
        """
        self._entries: list[TranscriptEntry] = list(entries or [])
        self._partial: Optional[str] = None
        logger.debug("TranscriptLog initialized with %d entries", len(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def partial(self) -> Optional[str]:
        """The current partial user utterance, if any."""
        return self._partial

    def set_partial(self, text: str) -> None:
        """Replace the partial utterance. Partials are never appended."""
        self._partial = text or None

    def clear_partial(self) -> None:
        self._partial = None

    def append(
        self,
        speaker: Speaker,
        text: str,
        timestamp_ms: Optional[int] = None,
    ) -> Optional[TranscriptEntry]:
        """
        Append a finalized utterance.

        A user entry also clears the partial it finalizes. Blank text is
        ignored.

        Args:
            speaker: Who spoke.
            text: Final utterance text.
            timestamp_ms: Arrival time; defaults to now.

        Returns:
            The appended entry, or None when the text was blank.
        """
        text = (text or "").strip()
        if speaker == Speaker.USER:
            self._partial = None
        if not text:
            return None

        entry = TranscriptEntry(
            timestamp_ms=timestamp_ms if timestamp_ms is not None else now_ms(),
            speaker=speaker,
            text=text,
        )
        self._entries.append(entry)
        logger.debug("Transcript entry #%d from %s", len(self._entries), speaker.value)
        return entry

    def entries(self) -> list[TranscriptEntry]:
        """Return a copy of all entries in append order."""
        return list(self._entries)

    def recent(self, count: int = 10) -> list[TranscriptEntry]:
        if count <= 0:
            return []
        return self._entries[-count:]

    def by_timestamp(self) -> list[TranscriptEntry]:
        """Entries re-sorted by timestamp (stable for ties)."""
        return sorted(self._entries, key=lambda e: e.timestamp_ms)

    def last_interviewer_utterance(self) -> Optional[str]:
        for entry in reversed(self._entries):
            if entry.speaker == Speaker.INTERVIEWER:
                return entry.text
        return None

    def to_api(self) -> list[dict[str, object]]:
        return [entry.to_api() for entry in self._entries]

    def get_context(self, max_entries: int = 20) -> dict[str, object]:
        """
        Summarize the conversation for display or diagnostics.

        Returns:
            Dictionary with entry counts per speaker, the partial utterance
            and the most recent entries in wire form.
        """
        user_count = sum(1 for e in self._entries if e.speaker == Speaker.USER)
        return {
            "total_entries": len(self._entries),
            "user_entries": user_count,
            "interviewer_entries": len(self._entries) - user_count,
            "partial": self._partial,
            "recent": [e.to_api() for e in self.recent(max_entries)],
        }
