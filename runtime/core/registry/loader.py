"""Job document loader (YAML -> JobDefinition).

Declarative jobs live as `kind: JobDefinition` YAML documents in the
configured definitions directory. They are configuration, not state: each
document is schema-validated, its handler reference is imported, and the
resulting definitions are handed to the manager for registration.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable

import yaml

from errors import PolicyViolationError
from registry.definitions import JobDefinition, JobOptions
from registry.schema_validator import SchemaValidator
from utils import deep_get, import_callable


@dataclass(frozen=True)
class LoadedDocument:
    path: Path
    data: dict[str, Any]

    @property
    def kind(self) -> str | None:
        k = self.data.get("kind")
        return k if isinstance(k, str) else None


def _stringify_timestamps(obj: Any) -> Any:
    # PyYAML turns unquoted timestamps into datetime objects; the schema expects strings.
    if isinstance(obj, dict):
        return {k: _stringify_timestamps(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_stringify_timestamps(v) for v in obj]
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    return obj


def load_yaml_document(path: Path) -> LoadedDocument:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise PolicyViolationError(f"Failed to parse YAML: {path}: {e}") from e
    if not isinstance(data, dict):
        raise PolicyViolationError(f"Invalid YAML root object in {path} (expected object)")
    return LoadedDocument(path=path, data=_stringify_timestamps(data))


def iter_yaml_files(root: Path) -> Iterable[Path]:
    if not root.exists():
        return []
    return sorted(p for p in root.rglob("*") if p.is_file() and p.suffix.lower() in (".yaml", ".yml"))


def definition_from_document(data: dict[str, Any]) -> JobDefinition:
    """Build a JobDefinition from an already-validated document."""
    spec = deep_get(data, ["spec"])
    metadata = deep_get(data, ["metadata"])
    try:
        options = JobOptions.from_dict(spec.get("options"))
    except ValueError as e:
        raise PolicyViolationError(f"Invalid options for job {metadata.get('name')}: {e}") from e
    return JobDefinition(
        name=str(metadata["name"]),
        description=str(metadata.get("description", "")),
        pattern=str(spec["pattern"]),
        timezone=spec.get("timezone"),
        enabled=bool(spec.get("enabled", True)),
        options=options,
        handler=import_callable(str(spec["handler"])),
    )


def load_job_definitions(definitions_dir: Path, *, schema_validator: SchemaValidator) -> list[JobDefinition]:
    """Load every JobDefinition document under a directory, in path order.

    Documents of other kinds are ignored. Fails closed on the first invalid
    document.
    """
    definitions: list[JobDefinition] = []
    for p in iter_yaml_files(definitions_dir):
        doc = load_yaml_document(p)
        if doc.kind != "JobDefinition":
            continue
        schema_validator.validate("JobDefinition", doc.data)
        definitions.append(definition_from_document(doc.data))
    return definitions
