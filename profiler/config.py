"""Profiler configuration: defaults, file overlay, environment overlay, validation.

Load order is defaults, then an optional YAML/JSON file, then ``MEMPROF_*``
environment variables, then validation. Validation reports every problem in
one :class:`ConfigError` so operators can fix a config in a single pass.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

LOG_LEVELS = ("debug", "info", "warn", "error")


class ConfigError(ValueError):
    """Raised when configuration cannot be parsed or fails validation."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


@dataclass(frozen=True)
class ProfilerConfig:
    sampling_interval_ms: int = 1000
    retention_window_sec: int = 600
    high_retention_threshold_percent: float = 70.0
    metrics_listen_addr: str = ":8080"
    prometheus_enabled: bool = True
    max_history_samples: int = 3600
    alerting_enabled: bool = True
    memory_spike_threshold_percent: float = 30.0
    log_level: str = "info"
    shutdown_grace_period_sec: int = 15
    profile_capture_enabled: bool = False
    profile_capture_dir: str = "./profiles"
    profile_capture_max_files: int = 10
    profile_capture_min_interval_sec: int = 60
    profile_capture_on_severities: tuple[str, ...] = ("critical",)
    tracemalloc_frames: int = 1

    @property
    def sampling_interval_s(self) -> float:
        return self.sampling_interval_ms / 1000.0

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["profile_capture_on_severities"] = list(self.profile_capture_on_severities)
        return payload


_FIELD_TYPES = {f.name: f.type for f in fields(ProfilerConfig)}

# Environment variable -> config field.
ENV_VARS = {
    "MEMPROF_SAMPLING_INTERVAL_MS": "sampling_interval_ms",
    "MEMPROF_RETENTION_WINDOW_SEC": "retention_window_sec",
    "MEMPROF_HIGH_RETENTION_THRESHOLD_PERCENT": "high_retention_threshold_percent",
    "MEMPROF_METRICS_LISTEN_ADDR": "metrics_listen_addr",
    "MEMPROF_PROMETHEUS_ENABLED": "prometheus_enabled",
    "MEMPROF_MAX_HISTORY_SAMPLES": "max_history_samples",
    "MEMPROF_ALERTING_ENABLED": "alerting_enabled",
    "MEMPROF_MEMORY_SPIKE_THRESHOLD_PERCENT": "memory_spike_threshold_percent",
    "MEMPROF_LOG_LEVEL": "log_level",
    "MEMPROF_SHUTDOWN_GRACE_PERIOD_SEC": "shutdown_grace_period_sec",
    "MEMPROF_PROFILE_CAPTURE_ENABLED": "profile_capture_enabled",
    "MEMPROF_PROFILE_CAPTURE_DIR": "profile_capture_dir",
    "MEMPROF_PROFILE_CAPTURE_MAX_FILES": "profile_capture_max_files",
    "MEMPROF_PROFILE_CAPTURE_MIN_INTERVAL_SEC": "profile_capture_min_interval_sec",
    "MEMPROF_PROFILE_CAPTURE_ON_SEVERITIES": "profile_capture_on_severities",
    "MEMPROF_TRACEMALLOC_FRAMES": "tracemalloc_frames",
}


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in {"1", "true", "t", "yes", "y", "on"}:
        return True
    if value in {"0", "false", "f", "no", "n", "off"}:
        return False
    raise ValueError(f"invalid boolean value {raw!r}")


def _parse_csv(raw: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw file/env value to the type declared for ``name``."""
    declared = _FIELD_TYPES[name]
    if declared == "bool":
        if isinstance(value, bool):
            return value
        return _parse_bool(str(value))
    if declared == "int":
        if isinstance(value, bool):
            raise ValueError(f"expected an integer, got {value!r}")
        return int(value)
    if declared == "float":
        if isinstance(value, bool):
            raise ValueError(f"expected a number, got {value!r}")
        return float(value)
    if declared == "str":
        return str(value)
    if isinstance(value, str):
        return _parse_csv(value)
    return tuple(str(item).strip() for item in value)


def _read_file(path: Path) -> dict[str, Any]:
    suffix = path.suffix.lower()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError([f"failed to read config file {str(path)!r}: {exc}"]) from exc
    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(text) or {}
        elif suffix == ".json":
            data = json.loads(text)
        else:
            raise ConfigError(
                [f"unsupported config file extension {suffix!r} (use .yaml, .yml, .json)"]
            )
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigError([f"failed to parse config file {str(path)!r}: {exc}"]) from exc
    if not isinstance(data, dict):
        raise ConfigError([f"config file {str(path)!r} must contain a mapping"])
    return data


def _overlay(config: ProfilerConfig, values: dict[str, Any], source: str) -> ProfilerConfig:
    changes: dict[str, Any] = {}
    problems: list[str] = []
    for key, raw in values.items():
        if key not in _FIELD_TYPES:
            problems.append(f"{source}: unknown setting {key!r}")
            continue
        try:
            changes[key] = _coerce(key, raw)
        except (TypeError, ValueError) as exc:
            problems.append(f"{source}: {key}: {exc}")
    if problems:
        raise ConfigError(problems)
    return replace(config, **changes)


def _env_values(environ: dict[str, str]) -> dict[str, str]:
    return {field: environ[name] for name, field in ENV_VARS.items() if name in environ}


def validate(config: ProfilerConfig) -> ProfilerConfig:
    """Return ``config`` unchanged, or raise :class:`ConfigError` listing every problem."""
    problems: list[str] = []
    if config.sampling_interval_ms <= 0:
        problems.append(f"sampling_interval_ms must be > 0 (got {config.sampling_interval_ms})")
    if config.retention_window_sec <= 0:
        problems.append(f"retention_window_sec must be > 0 (got {config.retention_window_sec})")
    if config.retention_window_sec * 1000 < config.sampling_interval_ms:
        problems.append(
            f"retention_window_sec ({config.retention_window_sec}) is too small for"
            f" sampling_interval_ms ({config.sampling_interval_ms})"
        )
    for name in ("high_retention_threshold_percent", "memory_spike_threshold_percent"):
        value = getattr(config, name)
        if value <= 0 or value > 100:
            problems.append(f"{name} must be in (0, 100] (got {value:.2f})")
    if not config.metrics_listen_addr:
        problems.append("metrics_listen_addr must not be empty")
    if config.max_history_samples <= 0:
        problems.append(f"max_history_samples must be > 0 (got {config.max_history_samples})")
    if config.log_level not in LOG_LEVELS:
        problems.append(
            f"log_level must be one of [{', '.join(LOG_LEVELS)}] (got {config.log_level!r})"
        )
    if config.shutdown_grace_period_sec < 0:
        problems.append(
            f"shutdown_grace_period_sec must be >= 0 (got {config.shutdown_grace_period_sec})"
        )
    if config.tracemalloc_frames <= 0:
        problems.append(f"tracemalloc_frames must be > 0 (got {config.tracemalloc_frames})")
    if config.profile_capture_enabled:
        if config.profile_capture_max_files < 0:
            problems.append(
                "profile_capture_max_files must be >= 0"
                f" (got {config.profile_capture_max_files})"
            )
        if config.profile_capture_min_interval_sec < 0:
            problems.append(
                "profile_capture_min_interval_sec must be >= 0"
                f" (got {config.profile_capture_min_interval_sec})"
            )
    if problems:
        raise ConfigError(problems)
    return config


def load_config(
    path: str | os.PathLike[str] | None = None,
    *,
    environ: dict[str, str] | None = None,
) -> ProfilerConfig:
    """Build a validated configuration from defaults, an optional file and the env."""
    config = ProfilerConfig()
    if path:
        config_path = Path(path)
        config = _overlay(config, _read_file(config_path), str(config_path))
    env = dict(os.environ) if environ is None else environ
    config = _overlay(config, _env_values(env), "environment")
    return validate(config)
