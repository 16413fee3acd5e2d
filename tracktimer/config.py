from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .infrastructure.gps.gpsd_client import GPSConfig

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class LoggingConfig(BaseModel):
    level: str = Field("INFO")
    file: Path | None = Field(None)

    @field_validator("level")
    @classmethod
    def _validate_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"invalid log level: {value}")
        return value

    @field_validator("file")
    @classmethod
    def _expand_file(cls, value: Path | None) -> Path | None:
        return value.expanduser() if value is not None else None


class StorageConfig(BaseModel):
    db_path: Path = Field(Path("data/routes.db"))

    @field_validator("db_path")
    @classmethod
    def _expand_db_path(cls, value: Path) -> Path:
        return value.expanduser()


class LocationConfig(BaseModel):
    """Location provider settings. Intervals follow the 1 s nominal / 0.5 s fastest request."""

    interval_ms: int = Field(1000, ge=100, le=60_000)
    fastest_interval_ms: int = Field(500, ge=0, le=60_000)
    gpsd_host: str = Field("localhost")
    gpsd_port: int = Field(2947, ge=1, le=65535)
    reconnect_delay: float = Field(5.0, gt=0)
    timeout: float = Field(10.0, gt=0)
    max_reconnect_attempts: int = Field(0, ge=0)

    @field_validator("fastest_interval_ms")
    @classmethod
    def _fastest_not_above_nominal(cls, value: int, info: Any) -> int:
        nominal = info.data.get("interval_ms", 1000)
        if value > nominal:
            raise ValueError("fastest_interval_ms must be <= interval_ms")
        return value

    def gpsd_config(self) -> GPSConfig:
        return GPSConfig(
            host=self.gpsd_host,
            port=self.gpsd_port,
            reconnect_delay=self.reconnect_delay,
            timeout=self.timeout,
            max_reconnect_attempts=self.max_reconnect_attempts,
            min_interval_ms=self.fastest_interval_ms,
        )


class TrackTimerConfig(BaseModel):
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    location: LocationConfig = Field(default_factory=LocationConfig)


def load_config(path: Path) -> TrackTimerConfig:
    path = Path(path).expanduser()
    if not path.exists():
        return TrackTimerConfig()
    with path.open("r", encoding="utf-8") as fp:
        raw = yaml.safe_load(fp) or {}
    try:
        return TrackTimerConfig.model_validate(raw)
    except ValidationError as exc:  # pragma: no cover - formatting
        raise ValueError(str(exc)) from exc


def resolve_config_path(cli_path: Path | None) -> Path:
    """Resolve config path by priority: CLI, env, /etc/tracktimer, repo configs."""
    candidates: list[Path] = []
    if cli_path:
        p = Path(cli_path).expanduser()
        if p.exists():
            return p.resolve()
        candidates.append(p)
    env = os.environ.get("TRACKTIMER_CONFIG")
    if env:
        p = Path(env).expanduser()
        if p.exists():
            return p.resolve()
        candidates.append(p)
    for p in [Path("/etc/tracktimer/tracktimer.yml"), Path("configs/tracktimer.yml")]:
        if p.exists():
            return p.resolve()
        candidates.append(p)
    # Fall back to the first candidate even if missing so errors point at it
    return candidates[0] if candidates else Path("configs/tracktimer.yml").resolve()


def setup_logging(cfg: LoggingConfig) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if cfg.file is not None:
        cfg.file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(cfg.file, encoding="utf-8"))
    logging.basicConfig(
        level=cfg.level,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
        force=True,
    )
