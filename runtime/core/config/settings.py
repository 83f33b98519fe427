"""Configuration loader for the core runtime.

Rules:
- Fail closed when config is missing or invalid.
- All relative paths in runtime.yaml are resolved relative to runtime.yaml's directory.
- `TIMEZONE` and `MAX_EXECUTION_LOGS` environment variables override the file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml

from errors import PolicyViolationError
from utils import load_timezone


@dataclass(frozen=True)
class ServiceConfig:
    host: str
    port: int


@dataclass(frozen=True)
class SchedulerConfig:
    default_timezone: str
    max_execution_logs: int
    max_sleep_seconds: float


@dataclass(frozen=True)
class JobsConfig:
    definitions_dir: Path
    load_builtin: bool


@dataclass(frozen=True)
class RuntimeConfig:
    service: ServiceConfig
    scheduler: SchedulerConfig
    jobs: JobsConfig
    config_dir: Path


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise PolicyViolationError(f"Missing required config file: {path}")
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise PolicyViolationError(f"Invalid YAML root object in config file: {path}")
    return data


def _resolve_path(base_dir: Path, raw: str) -> Path:
    p = Path(raw)
    if p.is_absolute():
        return p
    return (base_dir / p).resolve()


def _positive_int(name: str, raw: Any) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError) as e:
        raise PolicyViolationError(f"{name} must be an integer (got {raw!r})") from e
    if value < 1:
        raise PolicyViolationError(f"{name} must be >= 1 (got {value})")
    return value


def load_runtime_config(runtime_config_path: Path, env: Mapping[str, str] | None = None) -> RuntimeConfig:
    env = os.environ if env is None else env
    cfg_dir = runtime_config_path.parent.resolve()
    raw = _load_yaml(runtime_config_path)

    service_raw = raw.get("service", {})
    scheduler_raw = raw.get("scheduler", {})
    jobs_raw = raw.get("jobs", {})

    service = ServiceConfig(
        host=str(service_raw.get("host", "0.0.0.0")),
        port=int(env.get("PORT") or service_raw.get("port", 3000)),
    )

    default_timezone = str(env.get("TIMEZONE") or scheduler_raw.get("default_timezone", "UTC"))
    try:
        load_timezone(default_timezone)
    except KeyError:
        raise PolicyViolationError(f"Unknown scheduler.default_timezone: {default_timezone}") from None

    scheduler = SchedulerConfig(
        default_timezone=default_timezone,
        max_execution_logs=_positive_int(
            "scheduler.max_execution_logs", env.get("MAX_EXECUTION_LOGS") or scheduler_raw.get("max_execution_logs", 100)
        ),
        max_sleep_seconds=float(scheduler_raw.get("max_sleep_seconds", 60.0)),
    )

    jobs = JobsConfig(
        definitions_dir=_resolve_path(cfg_dir, str(jobs_raw.get("definitions_dir", "../jobs/definitions"))),
        load_builtin=bool(jobs_raw.get("load_builtin", True)),
    )

    return RuntimeConfig(service=service, scheduler=scheduler, jobs=jobs, config_dir=cfg_dir)


def default_config_paths() -> tuple[Path, Path]:
    # Default to paths relative to the runtime working directory (runtime/core).
    runtime_path = Path.cwd() / "config" / "runtime.yaml"
    logging_path = Path.cwd() / "config" / "logging.yaml"
    return runtime_path, logging_path
