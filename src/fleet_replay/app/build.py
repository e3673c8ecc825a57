# fleet_replay/app/build.py
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from fleet_replay.app.store import FleetStore
from fleet_replay.config.models import ScenarioModel
from fleet_replay.domain.events import BaseEvent
from fleet_replay.domain.stream import EventStream
from fleet_replay.io.playback_logging import PlaybackLogging
from fleet_replay.io.recorder import JsonlSink, Recorder, Sink
from fleet_replay.sim.engine import PlaybackEngine
from fleet_replay.sim.hooks import NoopHooks
from fleet_replay.sim.scheduler import ManualScheduler, Scheduler


@dataclass
class App:
    engine: PlaybackEngine
    store: FleetStore
    stream: EventStream
    scheduler: Scheduler
    recorder: Recorder | None


def build(
    cfg: ScenarioModel | Mapping,
    records: Iterable[Mapping[str, Any] | BaseEvent],
    *,
    scheduler: Scheduler | None = None,
    sinks: Iterable[Sink] | None = None,
    use_logging: bool = True,
) -> App:
    # 0) Validate config
    model = cfg if isinstance(cfg, ScenarioModel) else ScenarioModel.model_validate(cfg)

    # 1) Hooks
    hooks = (
        PlaybackLogging(
            run_id=model.run_id,
            level=model.log.level,
            debug=model.log.debug,
            sample_every=model.log.sample_every,
        )
        if use_logging
        else NoopHooks()
    )

    # 2) Stream & store
    stream = EventStream.from_records(records, hooks=hooks)
    store = FleetStore(alert_window=model.metrics.alert_window)

    # 3) Engine; headless runs get a deterministic scheduler
    scheduler = scheduler or ManualScheduler()
    pb = model.playback
    engine = PlaybackEngine(
        stream,
        store,
        scheduler,
        speed=pb.speed,
        tick_interval_s=pb.tick_interval_s,
        skip_s=pb.skip_s,
        grace_s=pb.grace_s,
        focus_trip_id=pb.focus_trip_id,
        metrics_every=model.metrics.every_events,
        metrics_min_interval_s=model.metrics.min_interval_s,
        hooks=hooks,
    )

    # 4) Optional event recording
    sinks = list(sinks or ())
    if model.record and not sinks:
        sinks.append(JsonlSink())
    recorder = Recorder(*sinks) if sinks else None
    if recorder is not None:
        engine.on_event(recorder.emit)

    return App(engine, store, stream, scheduler, recorder)
