# domain/stream.py
from __future__ import annotations

from bisect import bisect_right
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import ValidationError

from fleet_replay.domain.events import BaseEvent, parse_event
from fleet_replay.sim.clock import as_utc
from fleet_replay.sim.hooks import NoopHooks, PlaybackHooks


@dataclass(frozen=True)
class RejectedRecord:
    position: int  # index in the source sequence
    record: Any
    reason: str


@dataclass(frozen=True)
class EventStream:
    """Immutable, time-sorted events. Ties keep source order."""

    events: tuple[BaseEvent, ...]
    rejected: tuple[RejectedRecord, ...] = ()

    @classmethod
    def from_events(cls, events: Iterable[BaseEvent]) -> EventStream:
        return cls(tuple(sorted(events, key=lambda e: (e.timestamp, e.seq))))

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any] | BaseEvent],
        *,
        hooks: PlaybackHooks | None = None,
    ) -> EventStream:
        hooks = hooks or NoopHooks()
        good: list[BaseEvent] = []
        bad: list[RejectedRecord] = []
        for i, rec in enumerate(records):
            try:
                if isinstance(rec, BaseEvent):
                    ev = rec.model_copy(update={"seq": i})
                elif isinstance(rec, Mapping):
                    ev = parse_event(rec, seq=i)
                else:
                    raise TypeError(f"expected a mapping, got {type(rec).__name__}")
            except (ValidationError, TypeError) as exc:
                reason = _short_reason(exc)
                bad.append(RejectedRecord(position=i, record=rec, reason=reason))
                hooks.rejected(rec, reason=reason, position=i)
                continue
            good.append(ev)
        # sorted() is stable and seq == source position, so ties stay in source order
        return cls(tuple(sorted(good, key=lambda e: e.timestamp)), tuple(bad))

    def __len__(self) -> int:
        return len(self.events)

    def __iter__(self):
        return iter(self.events)

    def __getitem__(self, i: int) -> BaseEvent:
        return self.events[i]

    @property
    def start(self) -> datetime | None:
        return self.events[0].timestamp if self.events else None

    @property
    def end(self) -> datetime | None:
        return self.events[-1].timestamp if self.events else None

    def index_after(self, t: datetime) -> int:
        """Number of events with timestamp <= t (the cursor position once t is reached)."""
        return bisect_right(self.events, as_utc(t), key=lambda e: e.timestamp)

    def progress_at(self, t: datetime | None) -> float:
        """Fraction of the stream's time range covered at t, clamped to [0, 1]."""
        if not self.events:
            return 1.0
        if t is None:
            return 0.0
        t = as_utc(t)
        span = (self.end - self.start).total_seconds()
        if span <= 0:
            return 1.0 if t >= self.start else 0.0
        frac = (t - self.start).total_seconds() / span
        return min(1.0, max(0.0, frac))


def _short_reason(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        errs = exc.errors()
        return "; ".join(f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in errs[:3])
    return str(exc)


def group_by_trip(events: Iterable[BaseEvent]) -> dict[str, list[BaseEvent]]:
    grouped: dict[str, list[BaseEvent]] = {}
    for ev in events:
        grouped.setdefault(ev.trip_id, []).append(ev)
    return grouped


def events_up_to(events: Iterable[BaseEvent], t: datetime) -> list[BaseEvent]:
    t = as_utc(t)
    return [ev for ev in events if ev.timestamp <= t]
