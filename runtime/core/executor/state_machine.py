"""Job runtime lifecycle state machine.

Canonical lifecycle:
idle <-> running, idle|running -> paused -> idle|running, any -> stopped

Notes:
- `stopped` is terminal; a stopped runtime never fires again.
- A job paused while running keeps its in-flight execution; the runtime
  reports `paused` and resumes into `running` if that execution is still
  in flight, else `idle`.
- Callers hold the runtime lock while checking and applying a transition so
  the check and the write are one step.
"""

from __future__ import annotations

from enum import Enum

from errors import ConflictError


class JobState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


_TERMINAL_STATES = {JobState.STOPPED}

# Allowed transitions excluding no-op transitions. Stop is handled separately.
_ALLOWED: dict[JobState, set[JobState]] = {
    JobState.IDLE: {JobState.RUNNING, JobState.PAUSED},
    JobState.RUNNING: {JobState.IDLE, JobState.PAUSED},
    JobState.PAUSED: {JobState.IDLE, JobState.RUNNING},
    JobState.STOPPED: set(),
}


def is_terminal(state: JobState) -> bool:
    return state in _TERMINAL_STATES


def can_transition(current: JobState, new_state: JobState) -> bool:
    if is_terminal(current):
        return False
    if new_state == JobState.STOPPED:
        # Stop can be applied from any non-terminal state.
        return True
    return new_state in _ALLOWED[current]


def apply_transition(current: JobState, new_state: JobState) -> JobState:
    """Return `new_state` if the transition is allowed, else raise ConflictError."""
    if is_terminal(current):
        raise ConflictError(f"Job is stopped; cannot transition from {current.value} to {new_state.value}")
    if not can_transition(current, new_state):
        raise ConflictError(f"Invalid job state transition: {current.value} -> {new_state.value}")
    return new_state
