# domain/events.py
from collections.abc import Mapping
from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
)

from fleet_replay.sim.clock import as_utc

SignalQuality = float | str

# lifecycle distances sent as null count as 0 km
Km = Annotated[float, BeforeValidator(lambda v: 0.0 if v is None else v)]


class Location(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")
    lat: float
    lng: float

    def as_pair(self) -> tuple[float, float]:
        return (self.lat, self.lng)


class Movement(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")
    speed_kmh: float | None = None
    heading: float | None = None


class Telemetry(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")
    fuel_level_percent: float | None = None


class Device(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")
    battery_level: float | None = None


class BaseEvent(BaseModel):
    """Common envelope. `seq` is the position in the source stream, used to break timestamp ties."""

    model_config = ConfigDict(frozen=True, extra="allow")
    event_type: str
    trip_id: str = Field(validation_alias=AliasChoices("trip_id", "tripId"))
    vehicle_id: str = Field(validation_alias=AliasChoices("vehicle_id", "vehicleId"))
    timestamp: datetime
    seq: int = 0

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return as_utc(v)


# Trip lifecycle
class TripStarted(BaseEvent):
    event_type: Literal["trip_started"] = "trip_started"
    planned_distance_km: Km = 0.0
    location: Location | None = None


class TripCompleted(BaseEvent):
    event_type: Literal["trip_completed"] = "trip_completed"
    total_distance_km: Km = 0.0
    location: Location | None = None


class TripCancelled(BaseEvent):
    event_type: Literal["trip_cancelled"] = "trip_cancelled"
    distance_completed_km: Km = 0.0
    cancellation_reason: str | None = None
    location: Location | None = None


# Movement
class LocationPing(BaseEvent):
    event_type: Literal["location_ping"] = "location_ping"
    location: Location | None = None
    movement: Movement | None = None
    distance_travelled_km: float | None = None
    signal_quality: SignalQuality | None = None
    device: Device | None = None


class VehicleTelemetry(LocationPing):
    event_type: Literal["vehicle_telemetry"] = "vehicle_telemetry"
    telemetry: Telemetry | None = None


# Alerts
class SpeedViolation(BaseEvent):
    event_type: Literal["speed_violation"] = "speed_violation"
    severity: str | None = None
    violation_amount_kmh: float | None = None


class DeviceError(BaseEvent):
    event_type: Literal["device_error"] = "device_error"
    severity: str | None = None
    error_message: str | None = None


class FuelLevelLow(BaseEvent):
    event_type: Literal["fuel_level_low"] = "fuel_level_low"
    severity: str | None = None
    fuel_level_percent: float | None = None


class BatteryLow(BaseEvent):
    event_type: Literal["battery_low"] = "battery_low"
    severity: str | None = None
    battery_level_percent: float | None = None


class SignalLost(BaseEvent):
    event_type: Literal["signal_lost"] = "signal_lost"
    severity: str | None = None
    signal_quality: SignalQuality | None = None


# Recoveries
class RefuelingCompleted(BaseEvent):
    event_type: Literal["refueling_completed"] = "refueling_completed"
    fuel_level_after_refuel: float | None = None


class SignalRecovered(BaseEvent):
    event_type: Literal["signal_recovered"] = "signal_recovered"
    signal_quality_after_recovery: SignalQuality | None = None
    signal_quality: SignalQuality | None = None


class UnknownEvent(BaseEvent):
    """Any event_type this version does not model; carried through untouched."""


KnownEvent = Annotated[
    TripStarted
    | TripCompleted
    | TripCancelled
    | LocationPing
    | VehicleTelemetry
    | SpeedViolation
    | DeviceError
    | FuelLevelLow
    | BatteryLow
    | SignalLost
    | RefuelingCompleted
    | SignalRecovered,
    Field(discriminator="event_type"),
]

EVENT_TYPES: dict[str, type[BaseEvent]] = {
    cls.model_fields["event_type"].default: cls
    for cls in (
        TripStarted,
        TripCompleted,
        TripCancelled,
        LocationPing,
        VehicleTelemetry,
        SpeedViolation,
        DeviceError,
        FuelLevelLow,
        BatteryLow,
        SignalLost,
        RefuelingCompleted,
        SignalRecovered,
    )
}

_known = TypeAdapter(KnownEvent)


def parse_event(record: Mapping[str, Any], *, seq: int = 0) -> BaseEvent:
    """Validate one raw record. Raises pydantic.ValidationError on malformed input."""
    data = {**record, "seq": seq}
    tag = data.get("event_type")
    if isinstance(tag, str) and tag in EVENT_TYPES:
        return _known.validate_python(data)
    return UnknownEvent.model_validate(data)
