from __future__ import annotations

from enum import Enum


class ExecutionStatus(str, Enum):
    READY = "READY"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.SUCCEEDED, ExecutionStatus.FAILED)


# Remote run states outside the local four-state machine.
_REMOTE_ALIASES = {
    "TIMING-OUT": ExecutionStatus.RUNNING,
    "ABORTING": ExecutionStatus.RUNNING,
    "TIMED-OUT": ExecutionStatus.FAILED,
    "ABORTED": ExecutionStatus.FAILED,
}

_ALLOWED = {
    ExecutionStatus.READY: {ExecutionStatus.READY, ExecutionStatus.RUNNING, ExecutionStatus.SUCCEEDED, ExecutionStatus.FAILED},
    ExecutionStatus.RUNNING: {ExecutionStatus.RUNNING, ExecutionStatus.SUCCEEDED, ExecutionStatus.FAILED},
    ExecutionStatus.SUCCEEDED: {ExecutionStatus.SUCCEEDED},
    ExecutionStatus.FAILED: {ExecutionStatus.FAILED},
}


def normalize_remote_status(raw: str | None, *, started: bool = True) -> ExecutionStatus:
    """
    Map a remote run status onto READY/RUNNING/SUCCEEDED/FAILED.
    A run that has already been started is never reported as READY again.
    """
    value = (raw or "").strip().upper()
    if value in _REMOTE_ALIASES:
        status = _REMOTE_ALIASES[value]
    else:
        try:
            status = ExecutionStatus(value)
        except ValueError:
            status = ExecutionStatus.RUNNING
    if started and status is ExecutionStatus.READY:
        return ExecutionStatus.RUNNING
    return status


def next_status(current: ExecutionStatus, observed: ExecutionStatus) -> ExecutionStatus:
    """Apply an observed status, ignoring any move that would leave a terminal state or go backwards."""
    if observed in _ALLOWED[current]:
        return observed
    return current
