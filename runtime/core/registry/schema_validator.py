"""JSON Schema validation for declarative job documents.

Job documents arrive from two places: YAML files in the definitions directory
and JSON bodies posted to the API. Both go through the same Draft 2020-12
schema (stored as YAML under `schemas/`) before anything is imported or
registered, so a bad document never reaches the manager.

Validators are compiled once when the schemas are loaded; a broken schema
file stops startup instead of surfacing on the first request.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml
from jsonschema import Draft202012Validator, FormatChecker
from jsonschema.exceptions import SchemaError

from errors import PolicyViolationError, SchemaValidationError, SchemaViolation

DEFAULT_SCHEMAS_DIR = Path(__file__).resolve().parent / "schemas"

SCHEMA_FILES: Mapping[str, str] = {
    "JobDefinition": "job_definition.schema.yaml",
}


def _read_schema(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise PolicyViolationError(f"Failed to parse schema YAML: {path}: {e}") from e
    if not isinstance(raw, dict):
        raise PolicyViolationError(f"Expected YAML object at root: {path}")
    return raw


def _pointer(path: Iterable[Any]) -> str:
    # RFC 6901: "~" and "/" inside a token are escaped.
    tokens = [str(p).replace("~", "~0").replace("/", "~1") for p in path]
    return "/" + "/".join(tokens) if tokens else "/"


def _compile(kind: str, schema: dict[str, Any], source: Path, *, strict_formats: bool) -> Draft202012Validator:
    try:
        Draft202012Validator.check_schema(schema)
    except SchemaError as e:
        raise PolicyViolationError(f"Invalid schema for {kind} in {source}: {e.message}") from e
    return Draft202012Validator(schema, format_checker=FormatChecker() if strict_formats else None)


class SchemaValidator:
    """Validates job documents by kind against pre-compiled schemas."""

    def __init__(self, validators: Mapping[str, Draft202012Validator]):
        self._validators = dict(validators)

    @classmethod
    def load_from_dir(cls, schemas_dir: Path = DEFAULT_SCHEMAS_DIR, *, strict_formats: bool = True) -> "SchemaValidator":
        schemas_dir = schemas_dir.resolve()
        if not schemas_dir.is_dir():
            raise PolicyViolationError(f"Schemas directory not found: {schemas_dir}")

        validators: dict[str, Draft202012Validator] = {}
        for kind, filename in SCHEMA_FILES.items():
            path = schemas_dir / filename
            if not path.exists():
                raise PolicyViolationError(f"Missing required schema file for {kind}: {path}")
            validators[kind] = _compile(kind, _read_schema(path), path, strict_formats=strict_formats)
        return cls(validators)

    @property
    def kinds(self) -> list[str]:
        return sorted(self._validators)

    def validate(self, kind: str, document: Any) -> None:
        """Raise SchemaValidationError listing every violation, sorted by path."""
        validator = self._validators.get(kind)
        if validator is None:
            raise PolicyViolationError(f"Unknown schema kind: {kind}")

        violations = sorted(
            (SchemaViolation(path=_pointer(err.absolute_path), message=err.message) for err in validator.iter_errors(document)),
            key=lambda v: (v.path, v.message),
        )
        if violations:
            raise SchemaValidationError(kind=kind, violations=violations)
