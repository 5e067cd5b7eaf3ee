"""
Session wall clock.

Counts elapsed seconds with a single repeating tick while the session is
active and fires the timeout callback exactly once when the time limit is
reached. No drift correction: each tick adds exactly one second.
"""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Optional


__all__ = ["TimerService", "format_clock"]


logger = logging.getLogger(__name__)


def format_clock(seconds: int) -> str:
    """
    Format seconds as ``M:SS``, or ``H:MM:SS`` from one hour upward.

    Example:
        >>> format_clock(75)
        '1:15'
        >>> format_clock(3725)
        '1:02:05'
    """
    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


class TimerService:
    """
    One-second tick accumulator with a one-shot timeout.

    The timer owns the elapsed counter; every tick reports the new value to
    ``on_tick`` so the session owner can mirror it. ``on_timeout`` is
    scheduled as its own task so that it may stop this timer without
    cancelling itself.

    Example:
        >>> timer = TimerService(
        ...     elapsed_seconds=0,
        ...     time_limit_seconds=3600,
        ...     on_tick=lambda s: None,
        ...     on_timeout=controller.on_timeout,
        ... )
        >>> timer.start()
        >>> ...
        >>> timer.stop()
    """

    def __init__(
        self,
        *,
        elapsed_seconds: int,
        time_limit_seconds: int,
        on_tick: Callable[[int], None],
        on_timeout: Callable[[], Coroutine[Any, Any, object]],
        interval_seconds: float = 1.0,
    ) -> None:
        if time_limit_seconds <= 0:
            raise ValueError("time_limit_seconds must be positive")
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self._elapsed = max(0, int(elapsed_seconds))
        self._limit = int(time_limit_seconds)
        self._on_tick = on_tick
        self._on_timeout = on_timeout
        self._interval = interval_seconds
        self._task: Optional[asyncio.Task[None]] = None
        self._timeout_task: Optional[asyncio.Task[object]] = None
        self._stopped = False
        self._timed_out = False

    @property
    def elapsed_seconds(self) -> int:
        return self._elapsed

    @property
    def time_limit_seconds(self) -> int:
        return self._limit

    @property
    def remaining_seconds(self) -> int:
        return max(0, self._limit - self._elapsed)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def timed_out(self) -> bool:
        return self._timed_out

    @property
    def timeout_task(self) -> Optional[asyncio.Task[object]]:
        """The scheduled timeout callback, once the limit has been reached."""
        return self._timeout_task

    def format_elapsed(self) -> str:
        return format_clock(self._elapsed)

    def format_remaining(self) -> str:
        return format_clock(self.remaining_seconds)

    def start(self) -> None:
        """
        Begin ticking. No-op if already running, stopped, or timed out.

        A session loaded at or past its limit times out immediately.
        """
        if self._stopped or self._timed_out or self.is_running:
            return
        if self._elapsed >= self._limit:
            logger.info("Timer started at %ds with limit %ds; timing out", self._elapsed, self._limit)
            self._fire_timeout()
            return
        self._task = asyncio.create_task(self._run())
        logger.debug("Timer started at %ds (limit %ds)", self._elapsed, self._limit)

    def stop(self) -> None:
        """Cancel the tick loop. Idempotent; only ``resume`` restarts it."""
        self._stopped = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def resume(self) -> None:
        """Restart a stopped timer that has not timed out."""
        if self._timed_out:
            return
        self._stopped = False
        self.start()

    def tick(self) -> bool:
        """
        Advance the clock by exactly one second.

        Returns:
            True when the timer is finished (stopped or timed out) and no
            further ticks should happen.
        """
        if self._stopped or self._timed_out:
            return True

        self._elapsed += 1
        self._on_tick(self._elapsed)

        if self._elapsed >= self._limit:
            logger.info("Time limit reached at %ds", self._elapsed)
            self._fire_timeout()
            return True
        return False

    def _fire_timeout(self) -> None:
        self._timed_out = True
        self._timeout_task = asyncio.create_task(self._on_timeout())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            if self.tick():
                break
