"""
Periodic autosave of in-memory session edits.

The pump never reads the session directly; it asks ``snapshot_source`` for
the payload the active track would persist and compares its canonical JSON
form against the last snapshot that was successfully written.

Thread Safety:
    Single event loop only. At most one persistence call is in flight at a
    time; a tick that fires while one is outstanding is skipped, not queued.

Last Grunted: 10/15/2026
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional

from .errors import PersistenceError
from .models import is_ephemeral_session_id


__all__ = ["AutosavePump", "serialize_snapshot"]


logger = logging.getLogger(__name__)


def serialize_snapshot(payload: dict[str, Any]) -> str:
    """
    Canonical serialization used for dirty-checking.

    Example:
        >>> serialize_snapshot({"b": 1, "a": "x"})
        '{"a":"x","b":1}'
    """
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


class AutosavePump:
    """
    Dirty-checked, single-flight persistence loop.

    Args:
        session_id: Interview id. Ephemeral ids (``temp-``/``local-``) never
            start the loop.
        snapshot_source: Returns the payload to persist (artifact fields plus
            ``time_spent_seconds``).
        persist: Coroutine that writes a payload; raises on failure.
        interval_seconds: Period between ticks.
        initial_snapshot: Payload already known to be durable (the state
            as loaded), so an untouched session issues no writes.

    Example:
        >>> pump = AutosavePump(
        ...     "iv_123",
        ...     snapshot_source=controller.autosave_payload,
        ...     persist=lambda payload: api.update("iv_123", payload),
        ... )
        >>> pump.start()
        >>> ...
        >>> await pump.stop()
    """

    def __init__(
        self,
        session_id: str,
        *,
        snapshot_source: Callable[[], dict[str, Any]],
        persist: Callable[[dict[str, Any]], Awaitable[object]],
        interval_seconds: float = 10.0,
        initial_snapshot: Optional[dict[str, Any]] = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._session_id = session_id
        self._snapshot_source = snapshot_source
        self._persist = persist
        self._interval = interval_seconds
        self._snapshot: Optional[str] = (
            serialize_snapshot(initial_snapshot) if initial_snapshot is not None else None
        )
        self._loop_task: Optional[asyncio.Task[None]] = None
        self._inflight: Optional[asyncio.Task[bool]] = None
        self._pending_edits = 0
        self._writes = 0
        self._last_error: Optional[PersistenceError] = None

    @property
    def enabled(self) -> bool:
        return not is_ephemeral_session_id(self._session_id)

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    @property
    def snapshot(self) -> Optional[str]:
        """Serialization of the last successful write."""
        return self._snapshot

    @property
    def pending_edits(self) -> int:
        """Edits reported via ``mark_dirty`` since the last successful write."""
        return self._pending_edits

    @property
    def write_count(self) -> int:
        return self._writes

    @property
    def last_error(self) -> Optional[PersistenceError]:
        return self._last_error

    def mark_dirty(self) -> None:
        self._pending_edits += 1

    def is_dirty(self) -> bool:
        return serialize_snapshot(self._snapshot_source()) != self._snapshot

    def record_persisted(self, payload: dict[str, Any]) -> None:
        """Adopt a payload written outside the loop (e.g. the final flush)."""
        self._snapshot = serialize_snapshot(payload)
        self._pending_edits = 0

    def start(self) -> None:
        """Start the periodic loop. No-op for ephemeral ids or when running."""
        if not self.enabled:
            logger.debug("Autosave disabled for ephemeral session %s", self._session_id)
            return
        if self.is_running:
            return
        self._loop_task = asyncio.create_task(self._run())
        logger.debug("Autosave started for %s every %.1fs", self._session_id, self._interval)

    async def stop(self) -> None:
        """Cancel the loop and wait for any outstanding write to settle."""
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None
        if self._inflight is not None and not self._inflight.done():
            await asyncio.wait([self._inflight])

    async def tick(self) -> bool:
        """
        Run one autosave cycle.

        Returns:
            True if a write was issued and succeeded, False for a skip, a
            no-op, or a failed write. Failures are logged, never raised; the
            snapshot is left untouched so the next tick retries.
        """
        if self.in_flight:
            logger.debug("Autosave tick skipped: previous write still in flight")
            return False
        self._inflight = asyncio.create_task(self._flush_if_dirty())
        return await asyncio.shield(self._inflight)

    async def _flush_if_dirty(self) -> bool:
        payload = self._snapshot_source()
        serialized = serialize_snapshot(payload)
        if serialized == self._snapshot:
            logger.debug("Autosave no-op for %s", self._session_id)
            return False

        try:
            await self._persist(payload)
        except Exception as e:
            self._last_error = PersistenceError(
                f"Autosave failed: {e}", session_id=self._session_id, cause=e
            )
            logger.warning("Autosave failed for %s: %s", self._session_id, e)
            return False

        self._snapshot = serialized
        self._pending_edits = 0
        self._writes += 1
        self._last_error = None
        logger.debug("Autosaved %s (%d bytes)", self._session_id, len(serialized))
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            if self.in_flight:
                logger.debug("Autosave tick skipped: previous write still in flight")
                continue
            # The schedule keeps running while a write is outstanding.
            self._inflight = asyncio.create_task(self._flush_if_dirty())
