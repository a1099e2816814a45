from enum import Enum
from typing import Dict, FrozenSet


class JobStatus(Enum):
    ACCEPTED = "ACCEPTED"
    INIT = "INIT"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    KILLED = "KILLED"

    @staticmethod
    def factory(s: str) -> "JobStatus":
        for status in JobStatus:
            if status.value == s:
                return status
        raise ValueError(f"unknown job status: {s}")

    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def can_transition_to(self, other: "JobStatus") -> bool:
        return other in TRANSITIONS[self]


TERMINAL_STATUSES: FrozenSet[JobStatus] = frozenset(
    [JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.KILLED]
)

TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.ACCEPTED: frozenset(
        [JobStatus.INIT, JobStatus.FAILED, JobStatus.KILLED]
    ),
    JobStatus.INIT: frozenset(
        [JobStatus.RUNNING, JobStatus.FAILED, JobStatus.KILLED]
    ),
    JobStatus.RUNNING: TERMINAL_STATUSES,
    JobStatus.SUCCEEDED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.KILLED: frozenset(),
}


class FailureKind(Enum):
    NO_MATCH = "NO_MATCH"
    INSUFFICIENT_CAPACITY = "INSUFFICIENT_CAPACITY"
    BUILD_FAILURE = "BUILD_FAILURE"
    LAUNCH_FAILURE = "LAUNCH_FAILURE"
    RUNTIME_FAILURE = "RUNTIME_FAILURE"
    KILLED = "KILLED"
    INTERNAL = "INTERNAL"


class PipelineStage(Enum):
    MATCH = "MATCH"
    ADMISSION = "ADMISSION"
    BUILD = "BUILD"
    LAUNCH = "LAUNCH"
    SUPERVISE = "SUPERVISE"
