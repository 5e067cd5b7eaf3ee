"""
Introduction Cache.

Fetches the interviewer's one-time spoken introduction for a fresh session,
caches it in memory, and plays it once the voice channel is connected.

A durable per-session flag (``intro_played_<session_id>``) is stored in a
small JSON file so that it survives process restarts. The flag is set at the
moment playback is scheduled, before any audio plays, so a restart during
playback never replays the introduction.

Thread Safety:
    File operations are atomic at the write level (temp file + replace) but
    not at the read-modify-write level. One process per state directory.

Last Grunted: 10/15/2026
"""

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from .collaborators import IntroductionSource
from .models import IntroPayload

if TYPE_CHECKING:
    from .voice import VoiceChannel


__all__ = [
    "IntroFlagStore",
    "IntroFlagError",
    "IntroductionCache",
    "intro_flag_key",
]


logger = logging.getLogger(__name__)

FLAG_FILE_NAME = "intro_flags.json"


def intro_flag_key(session_id: str) -> str:
    """
    Durable key recording that a session's introduction has played.

    Example:
        >>> intro_flag_key("iv_123")
        'intro_played_iv_123'
    """
    return f"intro_played_{session_id}"


class IntroFlagError(Exception):
    """Raised when the flag file cannot be read or written."""

    def __init__(self, path: Path, cause: Exception) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to access intro flags at {path}: {cause}")


class IntroFlagStore:
    """
    Durable boolean flags keyed by session, backed by one JSON file.

    Example:
        >>> store = IntroFlagStore(Path("~/.mock_interview").expanduser())
        >>> store.set("iv_123")
        >>> store.is_set("iv_123")
        True
    """

    def __init__(self, state_dir: Path) -> None:
        """
        Initialize the store.

        Args:
            state_dir: Directory holding the flag file. Created if it
                doesn't exist.

        Raises:
            IntroFlagError: If the directory cannot be created.
        """
        self.state_dir = Path(state_dir)
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IntroFlagError(self.state_dir, e) from e

    @property
    def path(self) -> Path:
        return self.state_dir / FLAG_FILE_NAME

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise IntroFlagError(self.path, e) from e
        if not isinstance(data, dict):
            raise IntroFlagError(self.path, ValueError("flag file is not a JSON object"))
        return data

    def _save(self, data: dict[str, Any]) -> None:
        tmp_path = self.path.with_suffix(".json.tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise IntroFlagError(self.path, e) from e

    def is_set(self, session_id: str) -> bool:
        return bool(self._load().get(intro_flag_key(session_id)))

    def set(self, session_id: str) -> None:
        data = self._load()
        key = intro_flag_key(session_id)
        if data.get(key):
            return
        data[key] = True
        self._save(data)
        logger.debug("Set %s", key)

    def clear(self, session_id: str) -> None:
        data = self._load()
        if data.pop(intro_flag_key(session_id), None) is not None:
            self._save(data)


class IntroductionCache:
    """
    At-most-once introduction for one session.

    The payload is fetched once per question context and kept in memory
    only; the played flag lives in the IntroFlagStore.

    Args:
        session_id: Interview id.
        source: HTTP introduction source. When None, the voice channel is
            asked to generate the introduction in its own voice instead.
        flags: Durable flag store.
        play_delay_seconds: Pause between scheduling and playing, giving the
            channel time to settle after connecting.
        request_timeout_seconds: Timeout for a channel-generated introduction.
    """

    def __init__(
        self,
        session_id: str,
        *,
        source: Optional[IntroductionSource],
        flags: IntroFlagStore,
        play_delay_seconds: float = 0.5,
        request_timeout_seconds: float = 30.0,
    ) -> None:
        self._session_id = session_id
        self._source = source
        self._flags = flags
        self._play_delay = play_delay_seconds
        self._request_timeout = request_timeout_seconds
        self._payloads: dict[str, IntroPayload] = {}
        self._fetch_attempts = 0

    @property
    def fetch_attempts(self) -> int:
        return self._fetch_attempts

    def cached(self, question_context: str) -> Optional[IntroPayload]:
        return self._payloads.get(question_context)

    def has_played(self) -> bool:
        """
        Check the durable flag.

        An unreadable flag file counts as played: skipping an introduction
        is recoverable, hearing it twice is not.
        """
        try:
            return self._flags.is_set(self._session_id)
        except IntroFlagError as e:
            logger.warning("Intro flag unreadable for %s, skipping intro: %s", self._session_id, e)
            return True

    def mark_played(self) -> None:
        """Set the durable flag. Write failures are logged, not raised."""
        try:
            self._flags.set(self._session_id)
        except IntroFlagError as e:
            logger.warning("Failed to persist intro flag for %s: %s", self._session_id, e)

    async def prefetch(self, question_context: str) -> Optional[IntroPayload]:
        """
        Fetch and cache the HTTP introduction for a question context.

        Returns:
            The payload, or None if the flag is already set, no HTTP source
            is configured, or the fetch failed. A failed fetch leaves the
            flag untouched.
        """
        if self.has_played():
            return None
        cached = self._payloads.get(question_context)
        if cached is not None:
            return cached
        if self._source is None:
            return None

        self._fetch_attempts += 1
        try:
            payload = await self._source.introduce(question_context, include_audio=True)
        except Exception as e:
            logger.warning("Introduction fetch failed for %s: %s", self._session_id, e)
            return None

        if not payload.text.strip():
            logger.warning("Introduction for %s came back empty", self._session_id)
            return None
        self._payloads[question_context] = payload
        return payload

    async def play_when_ready(self, channel: "VoiceChannel", question_context: str) -> bool:
        """
        Play the introduction once the payload is ready and the channel is connected.

        Returns:
            True if playback was scheduled by this call.
        """
        if self.has_played():
            logger.info("Introduction already played for %s", self._session_id)
            return False

        payload = await self.prefetch(question_context)
        await channel.wait_connected()

        # Re-check: another path may have played it while we waited.
        if self.has_played():
            return False

        if payload is None and self._source is None:
            self._fetch_attempts += 1
            try:
                payload = await channel.request_introduction(
                    question_context, timeout=self._request_timeout
                )
            except Exception as e:
                logger.warning("Channel introduction failed for %s: %s", self._session_id, e)
                return False
            self._payloads[question_context] = payload
        if payload is None:
            return False

        self.mark_played()
        logger.info("Introduction scheduled for %s", self._session_id)
        if self._play_delay > 0:
            await asyncio.sleep(self._play_delay)
        await channel.play_introduction(payload)
        return True
