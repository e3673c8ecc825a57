from math import isfinite
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class PlaybackModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    speed: float = 200.0  # virtual seconds per wall second
    tick_interval_s: float = 0.1
    skip_s: float = 3600.0  # fast-forward step
    grace_s: float = 60.0  # lands this far past the focus trip's end
    focus_trip_id: str | None = None

    @field_validator("speed", "tick_interval_s")
    @classmethod
    def _positive(cls, v: float, info: ValidationInfo) -> float:
        if not isfinite(v) or v <= 0:
            raise ValueError(f"{info.field_name} must be a positive finite number")
        return v

    @field_validator("skip_s", "grace_s")
    @classmethod
    def _nonneg(cls, v: float, info: ValidationInfo) -> float:
        if not isfinite(v) or v < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return v


class MetricsModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    every_events: int = Field(default=50, ge=1)
    min_interval_s: float = Field(default=0.5, ge=0)
    alert_window: int = Field(default=10, ge=0)


class LogModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    debug: bool = False
    sample_every: int = Field(default=1, ge=1)


class ScenarioModel(BaseModel):
    model_config = ConfigDict(extra="forbid")
    name: str
    run_id: str = "local"
    playback: PlaybackModel = PlaybackModel()
    metrics: MetricsModel = MetricsModel()
    log: LogModel = LogModel()
    record: bool = False  # mirror dispatched events to stdout as JSON lines
    sources: list[str] = Field(default_factory=list)  # trip JSON files
