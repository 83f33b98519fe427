"""Built-in job catalog.

Add a JobDefinition here to have it registered at startup (when
`jobs.load_builtin` is true). Declarative jobs can instead be dropped into
`jobs/definitions/` as `kind: JobDefinition` YAML documents.
"""

from __future__ import annotations

from jobs.examples.example_cron import example_cron_job
from registry.definitions import JobDefinition

JOBS: list[JobDefinition] = [
    example_cron_job,
]
