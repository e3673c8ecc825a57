# sim/engine.py
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from fleet_replay.app.store import FleetStore
from fleet_replay.domain.events import BaseEvent, TripCancelled, TripCompleted
from fleet_replay.domain.stream import EventStream
from fleet_replay.sim.clock import HOUR, MIN, VirtualClock, as_utc
from fleet_replay.sim.hooks import NoopHooks, PlaybackHooks
from fleet_replay.sim.scheduler import Cancellable, Scheduler

EventHandler = Callable[[BaseEvent, int], None]
TimeHandler = Callable[[datetime | None, float], None]


@dataclass(frozen=True)
class PlaybackState:
    is_playing: bool
    speed: float
    cursor_index: int
    total_events: int
    progress: float  # percent of events delivered


class PlaybackEngine:
    """
    Dispatch loop: a self-rescheduling tick that delivers every event whose
    timestamp the virtual clock has reached, in stream order, exactly once.
    """

    def __init__(
        self,
        stream: EventStream,
        store: FleetStore,
        scheduler: Scheduler,
        *,
        speed: float = 1.0,
        tick_interval_s: float = 0.1,
        skip_s: float = HOUR,
        grace_s: float = MIN,
        focus_trip_id: str | None = None,
        metrics_every: int = 50,
        metrics_min_interval_s: float = 0.5,
        hooks: PlaybackHooks | None = None,
    ):
        if tick_interval_s <= 0:
            raise ValueError(f"tick_interval_s must be > 0, got {tick_interval_s}")
        self.stream = stream
        self.store = store
        self.scheduler = scheduler
        self.clock = VirtualClock(speed, time_fn=scheduler.time)
        self.tick_interval_s = tick_interval_s
        self.skip = timedelta(seconds=skip_s)
        self.grace = timedelta(seconds=grace_s)
        self.focus_trip_id = focus_trip_id
        self.metrics_every = max(1, metrics_every)
        self.metrics_min_interval_s = metrics_min_interval_s
        self._hooks = hooks or NoopHooks()

        self._cursor = 0
        self._playing = False
        self._handle: Cancellable | None = None
        self._event_subs: list[EventHandler] = []
        self._time_subs: list[TimeHandler] = []
        self._since_metrics = 0
        self._metrics_wall = scheduler.time()

    # ------------- subscriptions -------------

    def on_event(self, handler: EventHandler) -> None:
        self._event_subs.append(handler)

    def on_time_update(self, handler: TimeHandler) -> None:
        self._time_subs.append(handler)

    # ------------- read side -------------

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def finished(self) -> bool:
        return self._cursor >= len(self.stream)

    def current_instant(self) -> datetime | None:
        t = self.clock.current_instant()
        return t if t is not None else self.stream.start

    def get_state(self) -> PlaybackState:
        total = len(self.stream)
        return PlaybackState(
            is_playing=self._playing,
            speed=self.clock.speed,
            cursor_index=self._cursor,
            total_events=total,
            progress=self._cursor / total * 100.0 if total else 100.0,
        )

    # ------------- controls -------------

    def play(self) -> None:
        if self._playing:
            return
        if self.finished:
            # nothing left to deliver (includes the empty stream)
            self._report(self.current_instant() or self.stream.end, 1.0)
            self._hooks.finished(virtual=self.stream.end, delivered=self._cursor)
            return
        if self.clock.started:
            self.clock.resume()
        else:
            self.clock.start(self.stream.start)
        self._playing = True
        self._hooks.play(
            virtual=self.clock.current_instant(), cursor=self._cursor, speed=self.clock.speed
        )
        self._tick()

    def pause(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if not self._playing:
            return
        self._playing = False
        self.clock.pause()
        self._hooks.pause(virtual=self.clock.current_instant(), cursor=self._cursor)

    def reset(self) -> None:
        self.pause()
        self._cursor = 0
        self.store.reset()
        self._since_metrics = 0
        start = self.stream.start
        if start is not None:
            self.clock.seek(start)
        self._hooks.reset(total=len(self.stream))
        self._report(start, 0.0 if self.stream.events else 1.0)

    def set_speed(self, speed: float) -> None:
        # raises InvalidSpeedError before touching anything
        self.clock.set_speed(speed)

    def seek_to_time(self, target: datetime) -> None:
        """
        Rebuild state at `target` by replaying every event up to it from index 0.

        Earlier or later than the cursor makes no difference; the store is
        cleared first so the append-only trip fields come out identical to an
        uninterrupted run. Leaves playback paused.
        """
        target = as_utc(target)
        self.pause()
        self.store.reset()
        self._cursor = 0
        self._since_metrics = 0
        self.clock.seek(target)
        replayed = self._drain(target)
        self._aggregate()
        self._hooks.seek(target=target, replayed=replayed)
        self._report(target, self.stream.progress_at(target))

    def fast_forward(self) -> datetime | None:
        """Seek one skip ahead, or just past the focus trip's end if that is later."""
        now = self.current_instant()
        if now is None:
            return None
        target = now + self.skip
        end = self._focus_trip_end()
        if end is not None:
            target = max(target, end + self.grace)
        self.seek_to_time(target)
        return target

    # ------------- loop -------------

    def _focus_trip_end(self) -> datetime | None:
        if self.focus_trip_id is None:
            return None
        for ev in self.stream:
            if ev.trip_id == self.focus_trip_id and isinstance(ev, TripCompleted | TripCancelled):
                return ev.timestamp
        return None

    def _tick(self) -> None:
        self._handle = None
        if not self._playing:
            return
        now = self.clock.current_instant()
        try:
            delivered = self._drain(now)
        except Exception as exc:
            self._hooks.error(reason="subscriber_failed", cursor=self._cursor, error=str(exc))
            self.pause()
            raise
        progress = self.stream.progress_at(now)
        self._hooks.tick(virtual=now, progress=progress, delivered=delivered, cursor=self._cursor)
        if self._metrics_due():
            self._aggregate()
        self._report(now, progress)

        if self.finished:
            self._playing = False
            self.clock.pause()
            self._aggregate()
            self._hooks.finished(virtual=now, delivered=self._cursor)
            return
        if not self._playing:
            # a subscriber paused mid-tick; the next play() starts the only chain
            return
        self._handle = self.scheduler.call_later(self.tick_interval_s, self._tick)

    def _drain(self, until: datetime) -> int:
        events = self.stream.events
        n = 0
        while self._cursor < len(events) and events[self._cursor].timestamp <= until:
            ev, index = events[self._cursor], self._cursor
            # advance first: a failing subscriber must not cause a second delivery
            self._cursor += 1
            n += 1
            self._since_metrics += 1
            self.store.process_event(ev)
            self._hooks.dispatch(ev, index=index)
            for h in self._event_subs:
                h(ev, index)
        return n

    def _metrics_due(self) -> bool:
        if self._since_metrics >= self.metrics_every:
            return True
        elapsed = self.scheduler.time() - self._metrics_wall
        return self._since_metrics > 0 and elapsed >= self.metrics_min_interval_s

    def _aggregate(self) -> None:
        metrics = self.store.calculate_fleet_metrics()
        self._since_metrics = 0
        self._metrics_wall = self.scheduler.time()
        self._hooks.metrics(metrics, processed=self.store.processed)

    def _report(self, virtual: datetime | None, progress: float) -> None:
        self.store.update_time(virtual, progress)
        for h in self._time_subs:
            h(virtual, progress)
