# sim/hooks.py
from typing import Protocol


class PlaybackHooks(Protocol):
    def play(self, *, virtual, cursor, speed): ...
    def pause(self, *, virtual, cursor): ...
    def tick(self, *, virtual, progress, delivered, cursor): ...
    def dispatch(self, ev, *, index): ...
    def seek(self, *, target, replayed): ...
    def reset(self, *, total): ...
    def finished(self, *, virtual, delivered): ...
    def metrics(self, metrics, *, processed): ...
    def rejected(self, record, *, reason: str, position: int): ...
    def error(self, *, reason: str, **kw): ...


class NoopHooks:
    def play(self, **_):
        pass

    def pause(self, **_):
        pass

    def tick(self, **_):
        pass

    def dispatch(self, *_, **__):
        pass

    def seek(self, **_):
        pass

    def reset(self, **_):
        pass

    def finished(self, **_):
        pass

    def metrics(self, *_, **__):
        pass

    def rejected(self, *_, **__):
        pass

    def error(self, **_):
        pass
