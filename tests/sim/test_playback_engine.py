# tests/sim/test_playback_engine.py
from datetime import UTC, datetime, timedelta

import pytest

from fleet_replay.app.store import FleetStore
from fleet_replay.domain.state import TripStatus
from fleet_replay.domain.stream import EventStream, events_up_to
from fleet_replay.sim.clock import InvalidSpeedError
from fleet_replay.sim.engine import PlaybackEngine
from fleet_replay.sim.hooks import NoopHooks
from fleet_replay.sim.scheduler import ManualScheduler

T0 = datetime(2025, 11, 3, 9, 0, 0, tzinfo=UTC)


def _at(sec: float) -> datetime:
    return T0 + timedelta(seconds=sec)


def _rec(kind: str, sec: float, trip: str = "t1", **payload) -> dict:
    return {
        "event_type": kind,
        "trip_id": trip,
        "vehicle_id": f"VH_{trip}",
        "timestamp": _at(sec).isoformat(),
        **payload,
    }


def _loc(lat=45.0, lng=-73.0):
    return {"lat": lat, "lng": lng}


THREE = [
    _rec("trip_started", 0, planned_distance_km=100, location=_loc()),
    _rec("location_ping", 10, distance_travelled_km=50, location=_loc(45.1)),
    _rec("trip_completed", 20, total_distance_km=100),
]


def _fleet_records():
    return [
        _rec("trip_started", 0, "a", planned_distance_km=200, location=_loc()),
        _rec("trip_started", 30, "b", planned_distance_km=80, location=_loc(46.0)),
        _rec("location_ping", 60, "a", distance_travelled_km=20, location=_loc(45.1),
             movement={"speed_kmh": 80}),
        _rec("speed_violation", 90, "a", violation_amount_kmh=12),
        _rec("vehicle_telemetry", 120, "b", distance_travelled_km=10, location=_loc(46.1),
             movement={"speed_kmh": 40}, telemetry={"fuel_level_percent": 55}),
        _rec("signal_lost", 150, "b"),
        _rec("location_ping", 180, "a", distance_travelled_km=60, location=_loc(45.2),
             movement={"speed_kmh": 90}),
        _rec("trip_cancelled", 240, "b", distance_completed_km=15, cancellation_reason="weather"),
        _rec("trip_completed", 7200, "a", total_distance_km=200),
    ]


def _engine(records, *, speed=1.0, **kw):
    scheduler = ManualScheduler()
    store = FleetStore()
    engine = PlaybackEngine(EventStream.from_records(records), store, scheduler, speed=speed, **kw)
    return engine, store, scheduler


def _fold(records, until=None) -> FleetStore:
    store = FleetStore()
    events = EventStream.from_records(records).events
    for ev in events if until is None else events_up_to(events, until):
        store.process_event(ev)
    return store


# ---------------- dispatch ----------------


def test_three_event_trip_plays_to_completion():
    engine, store, scheduler = _engine(THREE, speed=10.0)
    engine.play()
    scheduler.run()

    trip = store.trips["t1"]
    assert trip.status is TripStatus.COMPLETED
    assert trip.progress == 100.0
    assert trip.distance_travelled == 100.0
    assert len(trip.route_path) == 1
    assert engine.finished and not engine.is_playing
    assert scheduler.pending == 0


def test_every_event_delivered_once_in_order():
    engine, store, scheduler = _engine(_fleet_records(), speed=500.0)
    seen = []
    engine.on_event(lambda ev, i: seen.append((i, ev.trip_id, ev.timestamp)))
    engine.play()
    scheduler.run()

    assert [i for i, _, _ in seen] == list(range(len(engine.stream)))
    assert len(set(seen)) == len(seen)
    assert [t for _, _, t in seen] == sorted(t for _, _, t in seen)
    assert store.processed == len(engine.stream)


def test_nothing_delivered_before_its_timestamp():
    engine, store, scheduler = _engine(THREE, speed=1.0)
    seen = []
    engine.on_event(lambda ev, i: seen.append(ev.timestamp))
    engine.play()
    scheduler.advance(5.0)

    assert seen == [_at(0)]
    assert engine.cursor == 1
    assert store.virtual_time <= _at(5.0)
    assert all(t <= engine.current_instant() for t in seen)


def test_time_updates_progress_monotonic_and_complete():
    engine, _, scheduler = _engine(THREE, speed=4.0)
    updates = []
    engine.on_time_update(lambda t, p: updates.append((t, p)))
    engine.play()
    scheduler.run()

    fractions = [p for _, p in updates]
    assert fractions == sorted(fractions)
    assert fractions[0] == 0.0
    assert fractions[-1] == 1.0
    assert all(0.0 <= p <= 1.0 for p in fractions)


def test_pause_stops_ticks_and_resume_continues_without_jump():
    engine, store, scheduler = _engine(THREE, speed=1.0)
    engine.play()
    scheduler.advance(2.0)
    engine.pause()
    paused_at = engine.current_instant()
    assert scheduler.pending == 0

    scheduler.advance(1000.0)
    assert engine.cursor == 1
    assert engine.current_instant() == paused_at

    engine.play()
    assert engine.current_instant() == paused_at
    scheduler.run()
    assert store.trips["t1"].status is TripStatus.COMPLETED


def test_pause_from_subscriber_keeps_a_single_tick_chain():
    engine, store, scheduler = _engine(THREE, speed=1.0)
    paused = []

    def stop_once(ev, i):
        if not paused:
            paused.append(i)
            engine.pause()

    engine.on_event(stop_once)
    engine.play()
    assert paused == [0]
    assert not engine.is_playing
    assert scheduler.pending == 0

    updates = []
    engine.on_time_update(lambda t, p: updates.append(t))
    engine.play()
    assert scheduler.pending == 1
    scheduler.advance(1.0)
    assert scheduler.pending == 1
    # one immediate tick plus one per 0.1s of wall time
    assert len(updates) <= 11

    scheduler.run()
    assert store.trips["t1"].status is TripStatus.COMPLETED


def test_speed_change_mid_playback():
    engine, store, scheduler = _engine(THREE, speed=1.0)
    engine.play()
    scheduler.advance(1.0)
    before = engine.current_instant()
    engine.set_speed(100.0)
    assert engine.current_instant() == before
    scheduler.advance(1.0)
    assert engine.finished
    assert engine.get_state().speed == 100.0


def test_invalid_speed_rejected_no_state_change():
    engine, _, scheduler = _engine(THREE, speed=2.0)
    engine.play()
    scheduler.advance(1.0)
    before = engine.current_instant()
    for bad in (0, -3.0):
        with pytest.raises(InvalidSpeedError):
            engine.set_speed(bad)
    assert engine.get_state().speed == 2.0
    assert engine.current_instant() == before


def test_empty_stream_is_immediately_complete():
    engine, store, scheduler = _engine([])
    updates = []
    engine.on_time_update(lambda t, p: updates.append(p))
    engine.play()

    assert updates == [1.0]
    assert scheduler.pending == 0
    assert not engine.is_playing
    state = engine.get_state()
    assert state.total_events == 0
    assert state.progress == 100.0


def test_get_state_snapshot():
    engine, _, scheduler = _engine(THREE, speed=1.0)
    engine.play()
    scheduler.advance(12.0)
    state = engine.get_state()
    assert state.is_playing
    assert state.cursor_index == 2
    assert state.total_events == 3
    assert state.progress == pytest.approx(200.0 / 3)


# ---------------- seek / fast forward ----------------


def test_seek_matches_full_replay_up_to_target():
    records = _fleet_records()
    target = _at(150)
    engine, store, _ = _engine(records, speed=3.0)
    engine.seek_to_time(target)

    expected = _fold(records, until=target)
    assert store.trips == expected.trips
    assert engine.cursor == 6
    assert not engine.is_playing
    assert store.fleet_metrics.total_trips == 2


def test_reseek_same_target_is_noop_on_state():
    engine, store, _ = _engine(_fleet_records())
    engine.seek_to_time(_at(200))
    first = dict(store.trips)
    engine.seek_to_time(_at(200))
    assert store.trips == first


def test_seek_backwards_rebuilds_from_start():
    records = _fleet_records()
    engine, store, scheduler = _engine(records, speed=1000.0)
    engine.play()
    scheduler.run()
    assert len(store.trips["a"].route_path) == 2

    engine.seek_to_time(_at(100))
    assert store.trips == _fold(records, until=_at(100)).trips
    assert len(store.trips["a"].route_path) == 1
    assert store.trips["a"].status is TripStatus.ACTIVE
    assert "b" in store.trips and store.trips["b"].status is TripStatus.ACTIVE


def test_seek_reports_progress_for_target_then_play_continues():
    records = _fleet_records()
    engine, store, scheduler = _engine(records, speed=1000.0)
    updates = []
    engine.on_time_update(lambda t, p: updates.append((t, p)))
    engine.seek_to_time(_at(720))
    assert updates[-1] == (_at(720), pytest.approx(0.1))

    engine.play()
    scheduler.run()
    assert store.trips == _fold(records).trips


def test_fast_forward_lands_after_focus_trip_end():
    # focus trip "a" completes at 2h; a 1h skip from the start would land before that
    engine, store, _ = _engine(_fleet_records(), focus_trip_id="a")
    target = engine.fast_forward()
    assert target == _at(7200) + timedelta(seconds=60)
    assert store.trips["a"].status is TripStatus.COMPLETED
    assert engine.finished


def test_fast_forward_plain_skip_without_focus_trip():
    engine, _, _ = _engine(_fleet_records())
    assert engine.fast_forward() == _at(3600)
    assert engine.cursor == 8


def test_fast_forward_skip_wins_when_later():
    engine, _, _ = _engine(_fleet_records(), focus_trip_id="a")
    engine.seek_to_time(_at(7200))
    assert engine.fast_forward() == _at(7200 + 3600)


def test_fast_forward_on_empty_stream_is_noop():
    engine, _, _ = _engine([])
    assert engine.fast_forward() is None


def test_reset_then_replay_gives_same_state():
    records = _fleet_records()
    engine, store, scheduler = _engine(records, speed=1000.0)
    engine.play()
    scheduler.run()
    final = dict(store.trips)

    updates = []
    engine.on_time_update(lambda t, p: updates.append((t, p)))
    engine.reset()
    assert store.trips == {}
    assert engine.cursor == 0
    assert updates == [(_at(0), 0.0)]

    engine.play()
    scheduler.run()
    assert store.trips == final


# ---------------- metrics cadence / errors ----------------


def test_metrics_batched_by_event_count():
    records = [
        _rec("trip_started", 0, "a"),
        _rec("trip_started", 50, "b"),
        _rec("trip_started", 250, "c"),
    ]
    engine, store, scheduler = _engine(
        records, speed=1000.0, metrics_every=2, metrics_min_interval_s=1000.0
    )
    engine.play()
    assert store.fleet_metrics.total_trips == 0  # one event, not yet due

    scheduler.advance(0.1)
    assert store.fleet_metrics.total_trips == 2

    scheduler.run()
    assert store.fleet_metrics.total_trips == 3  # always refreshed at the end


def test_malformed_records_skipped_and_reported():
    rejected = []

    class _Hooks(NoopHooks):
        def rejected(self, record, *, reason, position):
            rejected.append(position)

    records = [
        THREE[0],
        {**THREE[1], "timestamp": "not-a-timestamp"},
        {"event_type": "location_ping", "timestamp": _at(5).isoformat()},  # no ids
        THREE[2],
    ]
    stream = EventStream.from_records(records, hooks=_Hooks())
    assert len(stream) == 2
    assert rejected == [1, 2]

    store = FleetStore()
    scheduler = ManualScheduler()
    engine = PlaybackEngine(stream, store, scheduler, speed=10.0)
    engine.play()
    scheduler.run()
    assert store.trips["t1"].status is TripStatus.COMPLETED
    assert store.trips["t1"].route_path == ()


def test_unknown_events_delivered_but_ignored():
    records = [_rec("door_opened", 0, "ghost", door="rear"), *THREE]
    engine, store, scheduler = _engine(records, speed=10.0)
    seen = []
    engine.on_event(lambda ev, i: seen.append(ev.event_type))
    engine.play()
    scheduler.run()
    assert seen[0] == "door_opened"
    assert "ghost" not in store.trips
    assert store.processed == 4


def test_failing_subscriber_pauses_without_redelivery():
    engine, store, scheduler = _engine(THREE, speed=100.0)
    calls = []

    def boom(ev, i):
        calls.append(i)
        if i == 0:
            raise RuntimeError("subscriber down")

    engine.on_event(boom)
    with pytest.raises(RuntimeError):
        engine.play()
    assert not engine.is_playing
    assert engine.cursor == 1

    engine.play()
    scheduler.run()
    assert calls == [0, 1, 2]
    assert store.trips["t1"].status is TripStatus.COMPLETED
