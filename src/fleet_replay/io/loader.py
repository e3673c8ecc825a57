# io/loader.py
"""
Trip files are JSON arrays of raw event records, one file per trip. Every
record is tagged with its file's trip/vehicle identity before merging.
"""

import json
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from fleet_replay.sim.hooks import NoopHooks, PlaybackHooks


class TripFileError(Exception):
    pass


@dataclass(frozen=True)
class TripFile:
    trip_id: str
    vehicle_id: str
    events: list[dict[str, Any]]
    source: str


def load_trip_file(path: str | Path, *, index: int = 0) -> TripFile:
    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise TripFileError(f"cannot read trip file {p}: {exc}") from exc
    if not isinstance(raw, list):
        raise TripFileError(f"trip file {p} must hold a JSON array, got {type(raw).__name__}")

    first = raw[0] if raw and isinstance(raw[0], dict) else {}
    return TripFile(
        trip_id=first.get("trip_id") or f"trip_{index + 1}",
        vehicle_id=first.get("vehicle_id") or f"VH_00{index + 1}",
        events=raw,
        source=str(p),
    )


def load_trip_files(
    paths: Sequence[str | Path],
    *,
    skip_invalid: bool = True,
    hooks: PlaybackHooks | None = None,
) -> list[TripFile]:
    hooks = hooks or NoopHooks()
    trips: list[TripFile] = []
    for i, path in enumerate(paths):
        try:
            trips.append(load_trip_file(path, index=i))
        except TripFileError as exc:
            if not skip_invalid:
                raise
            hooks.error(reason="trip_file", source=str(path), error=str(exc))
    return trips


def merge_events(trips: Iterable[TripFile]) -> list[Any]:
    """Flatten all trips into one record list tagged with trip/vehicle ids (unsorted)."""
    merged: list[Any] = []
    for trip in trips:
        for rec in trip.events:
            if isinstance(rec, dict):
                merged.append({**rec, "trip_id": trip.trip_id, "vehicle_id": trip.vehicle_id})
            else:
                # left for EventStream to reject and report
                merged.append(rec)
    return merged
