"""
Ordered delivery of finalized transcript entries to durable storage.

Entries are written one at a time, oldest first, by a single worker task.
An entry leaves the queue only after its write succeeds; failed writes are
retried with backoff, so the stored transcript matches local append order.

Thread Safety:
    Single event loop only. The worker and ``flush`` share one write lock,
    so at most one transcript write is in flight.

Last Grunted: 10/18/2026
"""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Optional

from .errors import PersistenceError
from .models import TranscriptEntry, is_ephemeral_session_id


__all__ = ["TranscriptSync"]


logger = logging.getLogger(__name__)


class TranscriptSync:
    """
    Single-writer queue of transcript entries awaiting persistence.

    Args:
        session_id: Interview id. Ephemeral ids never queue anything.
        persist: Coroutine writing one partial update
            (``{"transcript_entry": ...}``); raises on failure.
        retry_delay_seconds: First delay after a failed write. Doubles per
            consecutive failure up to ``max_retry_delay_seconds``.
        max_retry_delay_seconds: Backoff ceiling.
    """

    def __init__(
        self,
        session_id: str,
        *,
        persist: Callable[[dict[str, Any]], Awaitable[object]],
        retry_delay_seconds: float = 1.0,
        max_retry_delay_seconds: float = 30.0,
    ) -> None:
        if retry_delay_seconds <= 0:
            raise ValueError("retry_delay_seconds must be positive")
        self._session_id = session_id
        self._persist = persist
        self._retry_delay = retry_delay_seconds
        self._max_retry_delay = max(max_retry_delay_seconds, retry_delay_seconds)
        self._pending: deque[TranscriptEntry] = deque()
        self._wakeup = asyncio.Event()
        self._write_lock = asyncio.Lock()
        self._worker: Optional[asyncio.Task[None]] = None
        self._synced = 0
        self._last_error: Optional[PersistenceError] = None

    @property
    def enabled(self) -> bool:
        return not is_ephemeral_session_id(self._session_id)

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> list[TranscriptEntry]:
        return list(self._pending)

    @property
    def synced_count(self) -> int:
        return self._synced

    @property
    def last_error(self) -> Optional[PersistenceError]:
        return self._last_error

    def enqueue(self, entry: TranscriptEntry) -> None:
        if not self.enabled:
            return
        self._pending.append(entry)
        self._wakeup.set()

    def start(self) -> None:
        if not self.enabled or self.is_running:
            return
        self._worker = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the worker without interrupting a write in progress."""
        if self._worker is None:
            return
        worker, self._worker = self._worker, None
        async with self._write_lock:
            worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            pass

    async def flush(self) -> None:
        """
        Write every pending entry now, in order.

        Raises:
            Exception: Whatever ``persist`` raised for the first entry that
                failed. That entry and the ones after it stay queued.
        """
        async with self._write_lock:
            while self._pending:
                entry = self._pending[0]
                await self._persist({"transcript_entry": entry.to_api()})
                self._pending.popleft()
                self._synced += 1

    async def _write_head(self) -> bool:
        entry = self._pending[0]
        try:
            await self._persist({"transcript_entry": entry.to_api()})
        except Exception as e:
            self._last_error = PersistenceError(
                f"Transcript sync failed: {e}", session_id=self._session_id, cause=e
            )
            logger.warning(
                "Transcript sync failed for %s (%d queued): %s",
                self._session_id,
                len(self._pending),
                e,
            )
            return False
        self._pending.popleft()
        self._synced += 1
        self._last_error = None
        return True

    async def _run(self) -> None:
        delay = self._retry_delay
        while True:
            if not self._pending:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue
            async with self._write_lock:
                ok = await self._write_head() if self._pending else True
            if ok:
                delay = self._retry_delay
                continue
            await asyncio.sleep(delay)
            delay = min(delay * 2, self._max_retry_delay)
