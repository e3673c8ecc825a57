# io/recorder.py
import sys
from typing import Protocol

from fleet_replay.domain.events import BaseEvent


class Sink(Protocol):
    def write(self, ev: BaseEvent) -> None: ...


class JsonlSink:
    def __init__(self, fp=sys.stdout):
        self.fp = fp

    def write(self, ev: BaseEvent) -> None:
        self.fp.write(ev.model_dump_json() + "\n")


class MemorySink:
    def __init__(self):
        self.events: list[BaseEvent] = []

    def write(self, ev: BaseEvent) -> None:
        self.events.append(ev)


class Recorder:
    """Mirrors dispatched events to sinks. A broken sink is counted, never fatal to playback."""

    def __init__(self, *sinks: Sink):
        self.sinks = sinks or (JsonlSink(),)
        self.failed = 0

    def emit(self, ev: BaseEvent, index: int | None = None) -> None:
        for s in self.sinks:
            try:
                s.write(ev)
            except Exception:
                self.failed += 1
