# fleet_replay/domain/state.py
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from fleet_replay.domain.events import BaseEvent, Location, SignalQuality


class TripStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (TripStatus.COMPLETED, TripStatus.CANCELLED)


class AlertKind(str, Enum):
    SPEED_VIOLATION = "speed_violation"
    DEVICE_ERROR = "device_error"
    FUEL_LOW = "fuel_low"
    BATTERY_LOW = "battery_low"
    SIGNAL_LOST = "signal_lost"


@dataclass(frozen=True)
class Alert:
    kind: AlertKind
    timestamp: datetime
    severity: str
    message: str
    vehicle_id: str
    trip_id: str


@dataclass
class TripState:
    trip_id: str
    vehicle_id: str
    status: TripStatus = TripStatus.PENDING
    progress: float = 0.0  # percent, 0..100
    distance_travelled: float = 0.0  # km
    planned_distance: float = 0.0  # km
    current_location: Location | None = None
    current_speed: float = 0.0  # km/h
    route_path: tuple[tuple[float, float], ...] = ()
    fuel_level: float | None = None
    battery_level: float | None = None
    signal_quality: SignalQuality | None = None
    alerts: tuple[Alert, ...] = ()
    start_time: datetime | None = None
    end_time: datetime | None = None
    cancellation_reason: str | None = None

    @classmethod
    def for_event(cls, ev: BaseEvent) -> "TripState":
        return cls(trip_id=ev.trip_id, vehicle_id=ev.vehicle_id)


@dataclass(frozen=True)
class FleetMetrics:
    total_trips: int = 0
    pending_trips: int = 0
    active_trips: int = 0
    completed_trips: int = 0
    cancelled_trips: int = 0
    total_distance: float = 0.0
    average_speed: float = 0.0
    alerts: tuple[Alert, ...] = ()
