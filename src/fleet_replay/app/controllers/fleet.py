# fleet_replay/app/controllers/fleet.py
from collections.abc import Mapping
from heapq import merge

import numpy as np

from fleet_replay.domain.state import FleetMetrics, TripState, TripStatus


def calculate_fleet_metrics(
    trips: Mapping[str, TripState], *, alert_window: int = 10
) -> FleetMetrics:
    """
    Rebuild fleet metrics from scratch over every trip. Read-only over `trips`.

    Average speed only counts trips currently moving (speed > 0). The alert view
    is the `alert_window` most recent alerts, oldest first.
    """
    if not trips:
        return FleetMetrics()

    states = list(trips.values())
    counts = {s: 0 for s in TripStatus}
    for trip in states:
        counts[trip.status] += 1

    distance = np.fromiter((t.distance_travelled for t in states), dtype=float, count=len(states))
    speeds = np.fromiter((t.current_speed for t in states), dtype=float, count=len(states))
    moving = speeds[speeds > 0]

    # each trip's alerts are already in time order
    alerts = list(merge(*(t.alerts for t in states), key=lambda a: a.timestamp))
    recent = alerts[-alert_window:] if alert_window > 0 else []

    return FleetMetrics(
        total_trips=len(states),
        pending_trips=counts[TripStatus.PENDING],
        active_trips=counts[TripStatus.ACTIVE],
        completed_trips=counts[TripStatus.COMPLETED],
        cancelled_trips=counts[TripStatus.CANCELLED],
        total_distance=float(distance.sum()),
        average_speed=float(moving.mean()) if moving.size else 0.0,
        alerts=tuple(recent),
    )
