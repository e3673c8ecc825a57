# fleet_replay/app/store.py
from dataclasses import dataclass, field
from datetime import datetime

from fleet_replay.app.controllers.fleet import calculate_fleet_metrics
from fleet_replay.app.controllers.trips import reduce_trip
from fleet_replay.domain.events import BaseEvent
from fleet_replay.domain.state import FleetMetrics, TripState


@dataclass
class FleetStore:
    """
    Single-writer aggregate shared by the engine and the presentation side.

    The engine is the only caller of process_event/reset/update_time; readers
    only look at `trips`, `fleet_metrics`, `virtual_time` and `progress`.
    """

    alert_window: int = 10
    trips: dict[str, TripState] = field(default_factory=dict)
    fleet_metrics: FleetMetrics = field(default_factory=FleetMetrics)
    processed: int = 0
    virtual_time: datetime | None = None
    progress: float = 0.0  # fraction, 0..1

    def process_event(self, ev: BaseEvent) -> TripState | None:
        self.processed += 1
        nxt = reduce_trip(self.trips.get(ev.trip_id), ev)
        if nxt is not None:
            self.trips[ev.trip_id] = nxt
        return nxt

    def calculate_fleet_metrics(self) -> FleetMetrics:
        self.fleet_metrics = calculate_fleet_metrics(self.trips, alert_window=self.alert_window)
        return self.fleet_metrics

    def update_time(self, virtual_time: datetime | None, progress: float) -> None:
        self.virtual_time = virtual_time
        self.progress = progress

    def reset(self) -> None:
        self.trips.clear()
        self.fleet_metrics = FleetMetrics()
        self.processed = 0
        self.virtual_time = None
        self.progress = 0.0
