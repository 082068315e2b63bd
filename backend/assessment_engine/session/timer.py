"""Deadline-based countdown with an optional background ticker.

Remaining time is always ``deadline - clock()``; nothing is decremented in
place, so late or skipped ticks (a suspended laptop, a busy event loop)
cannot make the countdown drift.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
TickCallback = Callable[[], Awaitable[None]]


def _is_current_task(task: asyncio.Task) -> bool:
    try:
        return asyncio.current_task() is task
    except RuntimeError:  # no running loop
        return False


class Timer:
    """Single cancellable periodic callback bound to an absolute deadline.

    Args:
        on_tick:  Coroutine function invoked every *interval* seconds while
                  running. Not called at all when *interval* is falsy or no
                  event loop is running at start(); the owner then drives
                  ticks itself.
        clock:    Returns the current time in seconds (epoch-based by default).
        interval: Seconds between ticks.
    """

    def __init__(
        self,
        on_tick: TickCallback | None = None,
        *,
        clock: Clock = time.time,
        interval: float | None = 1.0,
    ) -> None:
        self._on_tick = on_tick
        self._clock = clock
        self._interval = interval
        self._deadline: float | None = None
        self._floor: float | None = None
        self._task: asyncio.Task | None = None
        self._running = False
        self._stopped = False

    # ------------------------------------------------------------------
    @property
    def deadline(self) -> float | None:
        return self._deadline

    @property
    def running(self) -> bool:
        return self._running

    @property
    def ticking(self) -> bool:
        """True while a background task is calling on_tick."""
        return self._task is not None and not self._task.done()

    def now(self) -> float:
        return self._clock()

    def start(self, deadline: float) -> None:
        if self._deadline is not None:
            raise RuntimeError("Timer already started; the deadline cannot change")
        if self._on_tick is not None and self._interval:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                # started from sync code; the owner has to drive ticks
                logger.warning(
                    "No running event loop; timer will not tick on its own, call tick() instead"
                )
            else:
                self._task = loop.create_task(self._run(), name="session-timer")
        self._deadline = deadline
        self._running = True
        logger.debug(
            "Timer started deadline=%.3f remaining=%.1fs",
            deadline, self.remaining() or 0.0,
        )

    def remaining(self) -> float | None:
        """Seconds left, clamped at zero and never increasing. None before start()."""
        if self._deadline is None:
            return None
        left = max(0.0, self._deadline - self._clock())
        # a wall clock stepping backwards must not hand time back
        if self._floor is not None and left > self._floor:
            left = self._floor
        self._floor = left
        return left

    def expired(self) -> bool:
        left = self.remaining()
        return left is not None and left <= 0

    def stop(self) -> None:
        """Release the ticker. Safe to call repeatedly and from inside on_tick."""
        if self._stopped:
            return
        self._stopped = True
        self._running = False
        task, self._task = self._task, None
        if task is not None and not task.done() and not _is_current_task(task):
            task.cancel()
        logger.debug("Timer stopped")

    # ------------------------------------------------------------------
    async def _run(self) -> None:
        assert self._on_tick is not None and self._interval
        while not self._stopped:
            await asyncio.sleep(self._interval)
            if self._stopped:
                break
            try:
                await self._on_tick()
            except Exception:
                logger.exception("Timer tick callback failed")
