# main.py
import json
import sys
from dataclasses import asdict

from fleet_replay.app.build import build
from fleet_replay.config.models import ScenarioModel
from fleet_replay.io.loader import load_trip_files, merge_events
from fleet_replay.io.playback_logging import PlaybackLogging


def run(cfg: ScenarioModel) -> dict:
    """Replay the scenario's trip files headless and return the final fleet metrics."""
    hooks = PlaybackLogging(run_id=cfg.run_id, level=cfg.log.level)
    trips = load_trip_files(cfg.sources, hooks=hooks)

    app = build(cfg, merge_events(trips))
    app.engine.play()
    app.scheduler.run()  # ManualScheduler: jumps tick to tick until playback ends

    return asdict(app.store.fleet_metrics)


if __name__ == "__main__":
    cfg = ScenarioModel(
        name="cli",
        sources=sys.argv[1:],
        playback={"speed": 10_000.0},
    )
    print(json.dumps(run(cfg), default=str, indent=2))
