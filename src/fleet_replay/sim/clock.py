# sim/clock.py
from __future__ import annotations

import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from math import isfinite

MIN = 60.0
HOUR = 3600.0


class InvalidSpeedError(ValueError):
    pass


def check_speed(speed: float) -> float:
    try:
        s = float(speed)
    except (TypeError, ValueError):
        raise InvalidSpeedError(f"speed must be a number, got {speed!r}") from None
    if not isfinite(s) or s <= 0:
        raise InvalidSpeedError(f"speed must be a positive finite number, got {speed!r}")
    return s


def as_utc(dt: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


class VirtualClock:
    """
    Maps elapsed wall time onto the replayed timeline.

    current = anchor_virtual + speed * (wall_now - anchor_wall)

    Every control call re-anchors on the instant it computes right now, so
    pause/resume and speed changes bend the rate of virtual time but never
    make it jump.
    """

    def __init__(self, speed: float = 1.0, *, time_fn: Callable[[], float] | None = None):
        self._speed = check_speed(speed)
        self._time = time_fn or time.monotonic
        self._anchor_wall: float | None = None
        self._anchor_virtual: datetime | None = None
        self._running = False

    @property
    def speed(self) -> float:
        return self._speed

    @property
    def started(self) -> bool:
        return self._anchor_virtual is not None

    @property
    def running(self) -> bool:
        return self._running

    def start(self, stream_start: datetime) -> None:
        self._anchor_virtual = as_utc(stream_start)
        self._anchor_wall = self._time()
        self._running = True

    def pause(self) -> None:
        if not self._running:
            return
        self._anchor_virtual = self.current_instant()
        self._anchor_wall = self._time()
        self._running = False

    def resume(self) -> None:
        if self._running or not self.started:
            return
        self._anchor_wall = self._time()
        self._running = True

    def set_speed(self, speed: float) -> None:
        s = check_speed(speed)
        if self.started:
            self._anchor_virtual = self.current_instant()
            self._anchor_wall = self._time()
        self._speed = s

    def seek(self, target: datetime) -> None:
        # running/paused state is kept; only the anchor moves
        self._anchor_virtual = as_utc(target)
        self._anchor_wall = self._time()

    def current_instant(self) -> datetime | None:
        if self._anchor_virtual is None:
            return None
        if not self._running:
            return self._anchor_virtual
        elapsed = self._time() - self._anchor_wall
        return self._anchor_virtual + timedelta(seconds=self._speed * elapsed)
