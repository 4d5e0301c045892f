"""
Timer scheduling for state machine interpreters.

Interpreters never sleep. A delayed transition is a callback registered with
a Scheduler; the returned handle is cancelled when the state is exited.

Two implementations:
- AsyncioScheduler: real time, on the running event loop
- ManualScheduler: virtual time advanced explicitly (tests, replays)
"""

import asyncio
import heapq
import itertools
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> TimerHandle:
        """Run callback once after delay_ms unless the handle is cancelled first."""
        ...


class AsyncioScheduler:
    """Schedules on an asyncio event loop (the running one by default)."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay_ms / 1000, callback)


class _ManualTimer:
    __slots__ = ("due_ms", "callback", "cancelled")

    def __init__(self, due_ms: int, callback: Callable[[], None]):
        self.due_ms = due_ms
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """
    Virtual clock.

    advance(ms) fires every timer due within the window in due order,
    including timers scheduled by callbacks that run during the advance.
    """

    def __init__(self):
        self.now_ms = 0
        self._heap: list[tuple[int, int, _ManualTimer]] = []
        self._seq = itertools.count()

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(self.now_ms + max(0, delay_ms), callback)
        heapq.heappush(self._heap, (timer.due_ms, next(self._seq), timer))
        return timer

    def advance(self, ms: int) -> None:
        target = self.now_ms + ms
        while self._heap and self._heap[0][0] <= target:
            due, _, timer = heapq.heappop(self._heap)
            self.now_ms = due
            if not timer.cancelled:
                timer.callback()
        self.now_ms = target

    @property
    def pending(self) -> int:
        """Number of timers still armed."""
        return sum(1 for _, _, timer in self._heap if not timer.cancelled)
