# io/playback_logging.py
import json
import logging
import sys
from datetime import datetime

from fleet_replay.sim.hooks import NoopHooks


def _default_json_logger(name="fleet_replay", level="INFO"):
    logger = logging.getLogger(name)
    if not logger.handlers:
        h = logging.StreamHandler(sys.stdout)

        class _JsonFormatter(logging.Formatter):
            def format(self, record: logging.LogRecord) -> str:
                payload = {
                    "level": record.levelname,
                    "msg": record.getMessage(),
                    "logger": record.name,
                }
                extra = getattr(record, "extra", None)
                if isinstance(extra, dict):
                    payload.update(extra)
                return json.dumps(payload, default=str)

        h.setFormatter(_JsonFormatter())
        logger.addHandler(h)
    logger.setLevel(level)
    return logger


def _iso(t: datetime | None) -> str | None:
    return t.isoformat() if t is not None else None


class PlaybackLogging(NoopHooks):
    """
    Shapes engine callbacks into one JSON log line each.
    Controls go out at INFO; ticks and per-event dispatch only with debug=True.
    """

    def __init__(
        self,
        run_id: str = "local",
        level: str = "INFO",
        debug: bool = False,
        sample_every: int = 1,
        logger: logging.Logger | None = None,
    ):
        self.run_id, self.debug, self.sample_every = run_id, debug, max(1, sample_every)
        self.log = logger or _default_json_logger(level=level)
        self._ticks = 0

    def _emit(self, level: str, msg: str, **extra):
        payload = {"run_id": self.run_id, **extra}
        self.log.log(getattr(logging, level), msg, extra={"extra": payload})

    # --------------- controls -----------------------------

    def play(self, *, virtual, cursor, speed):
        self._emit("INFO", "play", virtual=_iso(virtual), cursor=cursor, speed=speed)

    def pause(self, *, virtual, cursor):
        self._emit("INFO", "pause", virtual=_iso(virtual), cursor=cursor)

    def seek(self, *, target, replayed):
        self._emit("INFO", "seek", target=_iso(target), replayed=replayed)

    def reset(self, *, total):
        self._emit("INFO", "reset", total=total)

    def finished(self, *, virtual, delivered):
        self._emit("INFO", "finished", virtual=_iso(virtual), delivered=delivered)

    # --------------- loop -----------------------------

    def tick(self, *, virtual, progress, delivered, cursor):
        self._ticks += 1
        if self.debug and (self._ticks % self.sample_every) == 0:
            self._emit(
                "DEBUG",
                "tick",
                virtual=_iso(virtual),
                progress=round(progress, 4),
                delivered=delivered,
                cursor=cursor,
            )

    def dispatch(self, ev, *, index):
        if self.debug:
            self._emit(
                "DEBUG",
                ev.event_type,
                index=index,
                trip_id=ev.trip_id,
                vehicle_id=ev.vehicle_id,
                t=_iso(ev.timestamp),
            )

    def metrics(self, metrics, *, processed):
        if self.debug:
            self._emit(
                "DEBUG",
                "fleet_metrics",
                processed=processed,
                trips=metrics.total_trips,
                active=metrics.active_trips,
                distance=metrics.total_distance,
            )

    # --------------- problems -----------------------------

    def rejected(self, record, *, reason: str, position: int):
        self._emit("WARNING", "record_rejected", position=position, reason=reason)

    def error(self, *, reason: str, **kw):
        self._emit("ERROR", "playback_error", reason=reason, **kw)
