# fleet_replay/app/controllers/trips.py
"""
Trip reducer: (prior TripState, event) -> next TripState.

Handlers never mutate their input; they return a new TripState built with
dataclasses.replace, so route_path and alerts (tuples) only ever grow.
"""

from collections.abc import Callable
from dataclasses import replace

from fleet_replay.domain.events import (
    BaseEvent,
    BatteryLow,
    DeviceError,
    FuelLevelLow,
    LocationPing,
    RefuelingCompleted,
    SignalLost,
    SignalRecovered,
    SpeedViolation,
    TripCancelled,
    TripCompleted,
    TripStarted,
    VehicleTelemetry,
)
from fleet_replay.domain.state import Alert, AlertKind, TripState, TripStatus

Reducer = Callable[[TripState, BaseEvent], TripState]

_HANDLERS: dict[type[BaseEvent], Reducer] = {}


def on(*etypes: type[BaseEvent]):
    def register(fn: Reducer) -> Reducer:
        for et in etypes:
            _HANDLERS[et] = fn
        return fn

    return register


def reduce_trip(prior: TripState | None, ev: BaseEvent) -> TripState | None:
    """
    Fold one event into a trip. Unrecognised event types return `prior` untouched
    (None for a trip never seen); anything else creates the trip on first sight.
    """
    handler = _HANDLERS.get(type(ev))
    if handler is None:
        return prior
    return handler(prior or TripState.for_event(ev), ev)


def _progress(trip: TripState, distance: float) -> float:
    if trip.planned_distance <= 0:
        return trip.progress
    # never walk progress backwards on a noisy odometer
    return max(trip.progress, min(100.0, distance / trip.planned_distance * 100.0))


# ------------ lifecycle --------------


@on(TripStarted)
def on_trip_started(trip: TripState, ev: TripStarted) -> TripState:
    if trip.status is not TripStatus.PENDING:
        return trip
    return replace(
        trip,
        status=TripStatus.ACTIVE,
        start_time=ev.timestamp,
        planned_distance=ev.planned_distance_km,
        current_location=ev.location,
    )


@on(TripCompleted)
def on_trip_completed(trip: TripState, ev: TripCompleted) -> TripState:
    if trip.status.terminal:
        return trip
    return replace(
        trip,
        status=TripStatus.COMPLETED,
        end_time=ev.timestamp,
        distance_travelled=ev.total_distance_km,
        current_location=ev.location if ev.location is not None else trip.current_location,
        progress=100.0,
    )


@on(TripCancelled)
def on_trip_cancelled(trip: TripState, ev: TripCancelled) -> TripState:
    if trip.status.terminal:
        return trip
    return replace(
        trip,
        status=TripStatus.CANCELLED,
        end_time=ev.timestamp,
        distance_travelled=ev.distance_completed_km,
        current_location=ev.location if ev.location is not None else trip.current_location,
        cancellation_reason=ev.cancellation_reason,
    )


# ------------ movement --------------


@on(LocationPing, VehicleTelemetry)
def on_location(trip: TripState, ev: LocationPing) -> TripState:
    if ev.location is None:
        return trip

    speed = ev.movement.speed_kmh if ev.movement else None
    distance = ev.distance_travelled_km
    if distance is None:
        distance = trip.distance_travelled
    battery = ev.device.battery_level if ev.device else None

    fuel = trip.fuel_level
    if isinstance(ev, VehicleTelemetry) and ev.telemetry is not None:
        if ev.telemetry.fuel_level_percent is not None:
            fuel = ev.telemetry.fuel_level_percent

    return replace(
        trip,
        current_location=ev.location,
        current_speed=speed if speed is not None else trip.current_speed,
        distance_travelled=distance,
        route_path=(*trip.route_path, ev.location.as_pair()),
        fuel_level=fuel,
        battery_level=battery if battery is not None else trip.battery_level,
        signal_quality=ev.signal_quality if ev.signal_quality is not None else trip.signal_quality,
        progress=_progress(trip, distance),
    )


# ------------ alerts --------------


def _alert(ev, kind: AlertKind, default_severity: str, message: str) -> Alert:
    return Alert(
        kind=kind,
        timestamp=ev.timestamp,
        severity=getattr(ev, "severity", None) or default_severity,
        message=message,
        vehicle_id=ev.vehicle_id,
        trip_id=ev.trip_id,
    )


@on(SpeedViolation)
def on_speed_violation(trip: TripState, ev: SpeedViolation) -> TripState:
    msg = f"Speed violation: {ev.violation_amount_kmh} km/h over limit"
    alert = _alert(ev, AlertKind.SPEED_VIOLATION, "moderate", msg)
    return replace(trip, alerts=(*trip.alerts, alert))


@on(DeviceError)
def on_device_error(trip: TripState, ev: DeviceError) -> TripState:
    msg = ev.error_message or "Device error detected"
    alert = _alert(ev, AlertKind.DEVICE_ERROR, "warning", msg)
    return replace(trip, alerts=(*trip.alerts, alert))


@on(FuelLevelLow)
def on_fuel_level_low(trip: TripState, ev: FuelLevelLow) -> TripState:
    msg = f"Low fuel: {ev.fuel_level_percent}% remaining"
    alert = _alert(ev, AlertKind.FUEL_LOW, "warning", msg)
    fuel = ev.fuel_level_percent if ev.fuel_level_percent is not None else trip.fuel_level
    return replace(trip, alerts=(*trip.alerts, alert), fuel_level=fuel)


@on(BatteryLow)
def on_battery_low(trip: TripState, ev: BatteryLow) -> TripState:
    msg = f"Low battery: {ev.battery_level_percent}% remaining"
    alert = _alert(ev, AlertKind.BATTERY_LOW, "warning", msg)
    battery = (
        ev.battery_level_percent if ev.battery_level_percent is not None else trip.battery_level
    )
    return replace(trip, alerts=(*trip.alerts, alert), battery_level=battery)


@on(SignalLost)
def on_signal_lost(trip: TripState, ev: SignalLost) -> TripState:
    alert = _alert(ev, AlertKind.SIGNAL_LOST, "warning", "GPS signal lost")
    signal = ev.signal_quality if ev.signal_quality is not None else trip.signal_quality
    return replace(trip, alerts=(*trip.alerts, alert), signal_quality=signal)


# ------------ recoveries --------------


@on(RefuelingCompleted)
def on_refueling_completed(trip: TripState, ev: RefuelingCompleted) -> TripState:
    if ev.fuel_level_after_refuel is None:
        return trip
    return replace(trip, fuel_level=ev.fuel_level_after_refuel)


@on(SignalRecovered)
def on_signal_recovered(trip: TripState, ev: SignalRecovered) -> TripState:
    signal = ev.signal_quality_after_recovery
    if signal is None:
        signal = ev.signal_quality
    if signal is None:
        return trip
    return replace(trip, signal_quality=signal)
