from __future__ import annotations

import heapq
import itertools
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

"""Cancellable one-shot timers for debounced autosave.

The engine is single-threaded: nothing fires on its own. The host loop (CLI,
UI adapter, tests) calls run_due() and due callbacks run inline, in deadline
order. Re-scheduling an id restarts its delay.
"""

__all__ = [
    "DEFAULT_AUTOSAVE_DELAY",
    "TimerQueue",
]

logger = logging.getLogger(__name__)

DEFAULT_AUTOSAVE_DELAY = 1.5


@dataclass
class _Timer:
    timer_id: str
    deadline: float
    callback: Callable[[], None]
    seq: int
    cancelled: bool = False


class TimerQueue:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._timers: dict[str, _Timer] = {}
        self._heap: list[tuple[float, int, _Timer]] = []
        self._seq = itertools.count()

    def schedule(self, timer_id: str, delay: float, callback: Callable[[], None]) -> None:
        self.cancel(timer_id)
        timer = _Timer(timer_id, self._clock() + max(delay, 0.0), callback, next(self._seq))
        self._timers[timer_id] = timer
        heapq.heappush(self._heap, (timer.deadline, timer.seq, timer))

    def cancel(self, timer_id: str) -> bool:
        timer = self._timers.pop(timer_id, None)
        if timer is None:
            return False
        timer.cancelled = True
        return True

    def pending(self, timer_id: str) -> bool:
        return timer_id in self._timers

    def next_deadline(self) -> float | None:
        while self._heap and self._heap[0][2].cancelled:
            heapq.heappop(self._heap)
        return self._heap[0][0] if self._heap else None

    def _fire(self, timer: _Timer) -> None:
        timer.cancelled = True
        self._timers.pop(timer.timer_id, None)
        try:
            timer.callback()
        except Exception:
            logger.exception("timer callback failed id=%s", timer.timer_id)

    def flush(self, timer_id: str) -> bool:
        """Run a pending timer now. Returns False when nothing was pending."""
        timer = self._timers.get(timer_id)
        if timer is None:
            return False
        self._fire(timer)
        return True

    def run_due(self) -> int:
        """Fire every timer whose deadline passed; returns how many fired."""
        fired = 0
        now = self._clock()
        while self._heap and self._heap[0][0] <= now:
            _, _, timer = heapq.heappop(self._heap)
            if timer.cancelled:
                continue
            self._fire(timer)
            fired += 1
        return fired
