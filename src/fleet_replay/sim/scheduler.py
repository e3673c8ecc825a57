# sim/scheduler.py
import asyncio
import heapq
from collections.abc import Callable
from typing import Protocol

Callback = Callable[[], None]


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Wall-clock source plus one-shot timed callbacks, all on one logical thread."""

    def time(self) -> float: ...
    def call_later(self, delay: float, fn: Callback) -> Cancellable: ...


class AsyncioScheduler:
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop or asyncio.get_running_loop()

    def time(self) -> float:
        return self._loop.time()

    def call_later(self, delay: float, fn: Callback) -> asyncio.TimerHandle:
        return self._loop.call_later(delay, fn)


class _Timer:
    __slots__ = ("due", "fn", "cancelled")

    def __init__(self, due: float, fn: Callback):
        self.due = due
        self.fn = fn
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """
    Deterministic scheduler with its own wall clock.

    Time only moves through advance()/run(); due callbacks fire in (due, FIFO)
    order, and a callback may schedule further callbacks.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._q: list[tuple[float, int, _Timer]] = []
        self._seq = 0

    def time(self) -> float:
        return self._now

    def call_later(self, delay: float, fn: Callback) -> _Timer:
        timer = _Timer(self._now + max(0.0, delay), fn)
        self._seq += 1
        heapq.heappush(self._q, (timer.due, self._seq, timer))
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for _, _, tm in self._q if not tm.cancelled)

    def _pop_due(self, until: float) -> _Timer | None:
        while self._q and self._q[0][0] <= until:
            _, _, timer = heapq.heappop(self._q)
            if not timer.cancelled:
                return timer
        return None

    def advance(self, seconds: float) -> int:
        """Move wall time forward, firing everything that falls due. Returns callbacks run."""
        until = self._now + seconds
        fired = 0
        while (timer := self._pop_due(until)) is not None:
            self._now = max(self._now, timer.due)
            timer.fn()
            fired += 1
        self._now = until
        return fired

    def run(self, max_callbacks: int | None = None) -> int:
        """Jump from callback to callback until nothing is scheduled."""
        fired = 0
        while (timer := self._pop_due(float("inf"))) is not None:
            self._now = max(self._now, timer.due)
            timer.fn()
            fired += 1
            if max_callbacks and fired >= max_callbacks:
                break
        return fired
