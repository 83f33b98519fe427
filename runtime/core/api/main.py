"""FastAPI surface for the cron manager runtime.

Routes follow the manager operations one-to-one. Authentication, rate
limiting and TLS termination are expected in front of this app.
"""

from __future__ import annotations

import logging
import logging.config
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator

import yaml
from fastapi import Body, FastAPI
from fastapi.responses import JSONResponse

from config.settings import RuntimeConfig, default_config_paths, load_runtime_config
from errors import (
    ConflictError,
    HandlerError,
    NotFoundError,
    PatternError,
    PolicyViolationError,
    SchemaValidationError,
)
from registry.definitions import JobDefinition
from registry.loader import definition_from_document, load_job_definitions
from registry.registry import CronManager
from registry.schema_validator import SchemaValidator
from utils import validate_job_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppComponents:
    manager: CronManager
    schema_validator: SchemaValidator


def _load_logging_config(path: Path) -> dict[str, Any]:
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise PolicyViolationError(f"Invalid logging config YAML root object: {path}")
    return raw


def _apply_logging_config(logging_config_path: Path) -> None:
    cfg = _load_logging_config(logging_config_path)
    logging.config.dictConfig(cfg)


def _env_path(name: str) -> Path | None:
    v = os.environ.get(name)
    if not v:
        return None
    return Path(v)


def _error_payload(err: Exception) -> dict[str, Any]:
    if isinstance(err, SchemaValidationError):
        return {
            "error": "SCHEMA_VALIDATION_ERROR",
            "kind": err.kind,
            "violations": [{"path": v.path, "message": v.message} for v in err.violations],
        }
    if isinstance(err, PatternError):
        return {"error": "PATTERN_ERROR", "pattern": err.pattern, "message": str(err)}
    if isinstance(err, PolicyViolationError):
        return {"error": "POLICY_VIOLATION", "message": str(err), "details": err.details}
    if isinstance(err, ConflictError):
        return {"error": "CONFLICT", "message": str(err), "details": err.details}
    if isinstance(err, NotFoundError):
        return {"error": "NOT_FOUND", "resource_type": err.resource_type, "resource_id": err.resource_id}
    if isinstance(err, HandlerError):
        return {"error": "HANDLER_ERROR", "job": err.job_name, "message": err.message}
    return {"error": "INTERNAL", "message": str(err)}


def _initial_definitions(runtime: RuntimeConfig, schema_validator: SchemaValidator) -> list[JobDefinition]:
    definitions: list[JobDefinition] = []
    if runtime.jobs.load_builtin:
        from jobs.catalog import JOBS

        definitions.extend(JOBS)
    definitions.extend(load_job_definitions(runtime.jobs.definitions_dir, schema_validator=schema_validator))
    return definitions


def _build_components() -> AppComponents:
    default_runtime, default_logging = default_config_paths()
    runtime_cfg_path = _env_path("CRON_MANAGER_RUNTIME_CONFIG") or default_runtime
    logging_cfg_path = _env_path("CRON_MANAGER_LOGGING_CONFIG") or default_logging

    runtime = load_runtime_config(runtime_cfg_path)
    _apply_logging_config(logging_cfg_path)

    schema_validator = SchemaValidator.load_from_dir()
    manager = CronManager(
        default_timezone=runtime.scheduler.default_timezone,
        max_execution_logs=runtime.scheduler.max_execution_logs,
        max_sleep_seconds=runtime.scheduler.max_sleep_seconds,
    )
    manager.register_all(_initial_definitions(runtime, schema_validator))
    return AppComponents(manager=manager, schema_validator=schema_validator)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    # Fail closed at startup if config, schemas or job documents cannot be loaded.
    components = _build_components()
    app.state.components = components
    logger.info("runtime_started", extra={"event": "runtime_started", "jobs": len(components.manager)})
    try:
        yield
    finally:
        components.manager.stop_all()


app = FastAPI(title="Cron Manager Runtime", version="0.1.0", lifespan=_lifespan)


@app.exception_handler(SchemaValidationError)
def _schema_validation_handler(_req, exc: SchemaValidationError):
    return JSONResponse(status_code=422, content=_error_payload(exc))


@app.exception_handler(PatternError)
def _pattern_handler(_req, exc: PatternError):
    return JSONResponse(status_code=422, content=_error_payload(exc))


@app.exception_handler(PolicyViolationError)
def _policy_violation_handler(_req, exc: PolicyViolationError):
    return JSONResponse(status_code=400, content=_error_payload(exc))


@app.exception_handler(ConflictError)
def _conflict_handler(_req, exc: ConflictError):
    return JSONResponse(status_code=409, content=_error_payload(exc))


@app.exception_handler(NotFoundError)
def _not_found_handler(_req, exc: NotFoundError):
    return JSONResponse(status_code=404, content=_error_payload(exc))


@app.exception_handler(HandlerError)
def _handler_error_handler(_req, exc: HandlerError):
    return JSONResponse(status_code=500, content=_error_payload(exc))


@app.exception_handler(Exception)
def _unhandled_handler(_req, exc: Exception):
    logger.exception("unhandled_error", extra={"event": "unhandled_error"})
    return JSONResponse(status_code=500, content=_error_payload(exc))


def _components() -> AppComponents:
    return app.state.components


def _known_job(name: str) -> CronManager:
    validate_job_name(name)
    manager = _components().manager
    if name not in manager:
        raise NotFoundError("Job", name)
    return manager


_PAST_TENSE = {"trigger": "triggered", "pause": "paused", "resume": "resumed", "stop": "stopped"}


def _control_response(name: str, verb: str, success: bool) -> JSONResponse:
    message = f"Job {_PAST_TENSE[verb]} successfully" if success else f"Failed to {verb} job"
    return JSONResponse(
        status_code=200 if success else 409,
        content={"success": success, "job": name, "message": message},
    )


@app.get("/health")
def health() -> dict[str, Any]:
    """Health check for runtime availability."""
    return {"status": "ok"}


@app.get("/api/jobs")
def list_jobs() -> list[dict[str, Any]]:
    return [job.to_dict() for job in _components().manager.get_all_jobs()]


@app.post("/api/jobs", status_code=201)
def register_job(document: dict[str, Any] = Body(...)) -> dict[str, Any]:
    comps = _components()
    comps.schema_validator.validate("JobDefinition", document)
    definition = definition_from_document(document)
    comps.manager.register(definition)
    return {"job": comps.manager.require_job(definition.name).to_dict()}


@app.get("/api/jobs/{name}")
def get_job(name: str) -> dict[str, Any]:
    validate_job_name(name)
    return _components().manager.require_job(name).to_dict()


@app.post("/api/jobs/{name}/trigger")
def trigger_job(name: str) -> JSONResponse:
    return _control_response(name, "trigger", _known_job(name).trigger(name))


@app.post("/api/jobs/{name}/pause")
def pause_job(name: str) -> JSONResponse:
    return _control_response(name, "pause", _known_job(name).pause(name))


@app.post("/api/jobs/{name}/resume")
def resume_job(name: str) -> JSONResponse:
    return _control_response(name, "resume", _known_job(name).resume(name))


@app.post("/api/jobs/{name}/stop")
def stop_job(name: str) -> JSONResponse:
    return _control_response(name, "stop", _known_job(name).stop(name))


@app.get("/api/stats")
def stats() -> dict[str, int]:
    return _components().manager.get_stats().to_dict()
