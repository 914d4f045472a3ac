from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .domain.models import ActivityType


class MaxSpeedConfig(BaseModel):
    """Fastest plausible movement per activity type, in m/s."""

    walking: float = Field(3.0, gt=0)     # ~11 km/h
    running: float = Field(12.0, gt=0)    # ~43 km/h
    cycling: float = Field(50.0, gt=0)    # ~180 km/h
    other: float = Field(50.0, gt=0)

    def for_activity(self, activity_type: ActivityType) -> float:
        return {
            ActivityType.WALKING: self.walking,
            ActivityType.RUNNING: self.running,
            ActivityType.CYCLING: self.cycling,
            ActivityType.OTHER: self.other,
        }.get(activity_type, self.most_permissive)

    @property
    def most_permissive(self) -> float:
        return max(self.walking, self.running, self.cycling, self.other)


class FilterConfig(BaseModel):
    min_accuracy_m: float = Field(25.0, gt=0)     # discard readings worse than this
    good_accuracy_m: float = Field(10.0, gt=0)    # high quality reading
    min_movement_m: float = Field(2.0, ge=0)      # ignore tiny movements
    warmup_samples: int = Field(3, ge=0)          # accepted samples before emitting
    process_noise: float = Field(0.01, ge=0)
    initial_error: float = Field(1.0, gt=0)
    max_speed_mps: MaxSpeedConfig = Field(default_factory=MaxSpeedConfig)

    @field_validator("good_accuracy_m")
    @classmethod
    def _good_not_above_min(cls, value: float, info: Any) -> float:
        minimum = info.data.get("min_accuracy_m", 25.0)
        if value > minimum:
            raise ValueError("good_accuracy_m must be <= min_accuracy_m")
        return value


class TrackerConfig(BaseModel):
    tick_interval_s: float = Field(1.0, gt=0)
    initial_fix_timeout_s: float = Field(15.0, gt=0)
    speed_window_s: float = Field(1.0, ge=0)
    split_unit_km: float = Field(1.0, gt=0)
    backfill_splits: bool = Field(False)
    min_segment_km: float = Field(0.001, ge=0)


class GPSConfig(BaseModel):
    """GPS daemon configuration."""

    host: str = Field("localhost")
    port: int = Field(2947, ge=1, le=65535)
    timeout: float = Field(10.0, ge=1.0)
    reconnect_delay: float = Field(5.0, ge=0.1)
    fix_max_accuracy_m: float = Field(25.0, gt=0)  # worst fix accepted as the route seed
    mock_mode: bool = Field(False)  # Use synthetic track instead of gpsd
    mock_lat: float = Field(41.0082, ge=-90, le=90)
    mock_lon: float = Field(28.9784, ge=-180, le=180)
    mock_speed_mps: float = Field(3.0, gt=0)


class StorageConfig(BaseModel):
    db_path: Path = Field(Path("data/paceloop.db"))

    @field_validator("db_path")
    @classmethod
    def _expand_db_path(cls, value: Path) -> Path:
        return value.expanduser()


class LoggingConfig(BaseModel):
    level: str = Field("INFO")
    base_dir: Path = Field(Path("logs"))

    @field_validator("level")
    @classmethod
    def _validate_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"unknown log level: {value}")
        return level

    @field_validator("base_dir")
    @classmethod
    def _expand_base_dir(cls, value: Path) -> Path:
        return value.expanduser()


class PaceloopConfig(BaseModel):
    user_id: str = Field("local")
    filter: FilterConfig = Field(default_factory=FilterConfig)
    tracker: TrackerConfig = Field(default_factory=TrackerConfig)
    gps: GPSConfig = Field(default_factory=GPSConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(path: Path) -> PaceloopConfig:
    with Path(path).expanduser().open("r", encoding="utf-8") as fp:
        raw = yaml.safe_load(fp) or {}
    try:
        return PaceloopConfig.model_validate(raw)
    except ValidationError as exc:  # pragma: no cover - formatting
        raise ValueError(str(exc)) from exc


def resolve_config_path(cli_path: Path | None) -> Path:
    """Resolve config path by priority: CLI, env, /etc/paceloop, repo configs."""
    candidates: list[Path] = []
    if cli_path:
        p = Path(cli_path).expanduser()
        if p.exists():
            return p.resolve()
        candidates.append(p)
    env = os.environ.get("PACELOOP_CONFIG")
    if env:
        p = Path(env).expanduser()
        if p.exists():
            return p.resolve()
        candidates.append(p)
    for p in [Path("/etc/paceloop/paceloop.yml"), Path("configs/paceloop.yml")]:
        if p.exists():
            return p.resolve()
        candidates.append(p)
    # Fallback to first candidate even if not exists to surface errors consistently
    return candidates[0] if candidates else Path("configs/paceloop.yml").resolve()
