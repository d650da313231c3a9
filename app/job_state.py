"""Audio Transcriber - Job status state machine.

    UPLOADED   --(process start)--> PROCESSING
    PROCESSING --(all chunks ok)--> DONE
    PROCESSING --(any failure)----> ERROR
    ERROR      --(retry)----------> UPLOADED

DONE is terminal. Every status change goes through transition(), which
raises InvalidTransition for any pair not listed above.
"""

from __future__ import annotations

from enum import StrEnum


class JobStatus(StrEnum):
    """Lifecycle status of a transcription job."""

    UPLOADED = "UPLOADED"
    PROCESSING = "PROCESSING"
    DONE = "DONE"
    ERROR = "ERROR"


TERMINAL_STATUSES = frozenset({JobStatus.DONE, JobStatus.ERROR})

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.UPLOADED: frozenset({JobStatus.PROCESSING}),
    JobStatus.PROCESSING: frozenset({JobStatus.DONE, JobStatus.ERROR}),
    JobStatus.ERROR: frozenset({JobStatus.UPLOADED}),
    JobStatus.DONE: frozenset(),
}


class InvalidTransition(Exception):
    """Raised when a status change is not allowed by the state machine."""

    def __init__(self, current: JobStatus, target: JobStatus):
        self.current = current
        self.target = target
        super().__init__(f"Invalid job status transition: {current} -> {target}")


def can_transition(current: str, target: str) -> bool:
    return JobStatus(target) in ALLOWED_TRANSITIONS[JobStatus(current)]


def transition(current: str, target: str) -> JobStatus:
    """Validate a status change and return the new status.

    Args:
        current: Current status (enum member or its string value).
        target: Requested status.

    Returns:
        The target status as a JobStatus.

    Raises:
        InvalidTransition: If the change is not allowed.
    """
    current_status = JobStatus(current)
    target_status = JobStatus(target)
    if target_status not in ALLOWED_TRANSITIONS[current_status]:
        raise InvalidTransition(current_status, target_status)
    return target_status


__all__ = [
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    "InvalidTransition",
    "JobStatus",
    "can_transition",
    "transition",
]
