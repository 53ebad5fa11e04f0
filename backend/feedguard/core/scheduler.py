"""
Single-timer batch scheduler.

The scheduler is Idle (``scheduled_at == 0``) or Armed (one outstanding
timer due at ``scheduled_at``). Requests from different sources (enqueue,
periodic tick, continuation after a pass) all compete for that one timer
and are merged with an earliest-wins rule: a request only re-arms the
timer when it is due strictly earlier (beyond a small tolerance) than
the current arm time.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

from feedguard.config import SCHEDULE_TOLERANCE_MS
from feedguard.utils import now_ms

logger = logging.getLogger(__name__)

# An armed timer this far past its due time is treated as lost
STALE_AFTER_MS = 5_000

TimerFactory = Callable[[float, Callable[[], None]], Any]


def loop_timer(delay_seconds: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    """Arm a one-shot timer on the running event loop."""
    return asyncio.get_running_loop().call_later(delay_seconds, callback)


class Scheduler:
    """Decides when the next batch pass runs."""

    def __init__(
        self,
        on_fire: Callable[[], Awaitable[Any]],
        clock: Callable[[], int] = now_ms,
        timer: TimerFactory = loop_timer,
        tolerance_ms: int = SCHEDULE_TOLERANCE_MS,
    ):
        self.on_fire = on_fire
        self.clock = clock
        self.timer = timer
        self.tolerance_ms = tolerance_ms
        self.scheduled_at: int = 0
        self._handle: Optional[Any] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def armed(self) -> bool:
        return self.scheduled_at > 0

    @property
    def state(self) -> str:
        return "armed" if self.armed else "idle"

    def schedule(self, reason: str, delay_ms: int) -> bool:
        """
        Request a pass ``delay_ms`` from now.

        Args:
            reason: Short label for logs ("enqueue", "tick", "continuation", ...)
            delay_ms: Requested delay in milliseconds (negative counts as 0)

        Returns:
            True if the timer was (re)armed, False if the request was merged
            into an earlier outstanding one
        """
        now = self.clock()
        delay_ms = max(0, int(delay_ms))
        due = now + delay_ms

        if self.armed and now - self.scheduled_at > STALE_AFTER_MS:
            logger.warning(
                "Timer due at %d is %dms overdue; re-arming immediately",
                self.scheduled_at, now - self.scheduled_at,
            )
            self.cancel()
            delay_ms, due = 0, now

        if self.armed and due >= self.scheduled_at - self.tolerance_ms:
            logger.debug(
                "Schedule ignored: reason=%s due=%d armed_at=%d", reason, due, self.scheduled_at
            )
            return False

        self.cancel()
        self._handle = self.timer(delay_ms / 1000.0, self._fire)
        self.scheduled_at = due
        logger.debug("Schedule armed: reason=%s delay=%dms due=%d", reason, delay_ms, due)
        return True

    def cancel(self) -> None:
        """Drop the outstanding timer, if any, and go Idle."""
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self.scheduled_at = 0

    def _fire(self) -> None:
        # Go Idle first so the pass itself can re-arm
        self._handle = None
        self.scheduled_at = 0
        task = asyncio.ensure_future(self.on_fire())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for passes started by fired timers; used on shutdown and in tests."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
