import enum
from dataclasses import dataclass
from typing import Optional

from .job import JobReason


class OutcomeKind(enum.Enum):
    SUCCESS = "success"
    COMMAND_NOT_FOUND = "command-not-found"
    SPAWN_FAILED = "spawn-failed"
    IO_FAILURE = "io-failure"
    NONZERO_EXIT = "nonzero-exit"


_KIND_REASONS = {
    OutcomeKind.SUCCESS: JobReason.NONE,
    OutcomeKind.COMMAND_NOT_FOUND: JobReason.COMMAND_NOT_FOUND,
    OutcomeKind.SPAWN_FAILED: JobReason.SPAWN_FAILED,
    OutcomeKind.IO_FAILURE: JobReason.IO_FAILURE,
    OutcomeKind.NONZERO_EXIT: JobReason.NONZERO_EXIT,
}


@dataclass(frozen=True)
class Outcome:
    """How a filter process finished.

    ``status`` is the exit status for NONZERO_EXIT; a child killed by a signal
    reports the negated signal number, as ``subprocess`` does.
    """

    kind: OutcomeKind
    status: Optional[int] = None
    detail: str = ""

    @classmethod
    def success(cls) -> "Outcome":
        return cls(OutcomeKind.SUCCESS, 0)

    @classmethod
    def command_not_found(cls, command: str) -> "Outcome":
        return cls(OutcomeKind.COMMAND_NOT_FOUND, detail=command)

    @classmethod
    def spawn_failed(cls, detail: str) -> "Outcome":
        return cls(OutcomeKind.SPAWN_FAILED, detail=detail)

    @classmethod
    def io_failure(cls, detail: str) -> "Outcome":
        return cls(OutcomeKind.IO_FAILURE, detail=detail)

    @classmethod
    def nonzero_exit(cls, status: int) -> "Outcome":
        return cls(OutcomeKind.NONZERO_EXIT, status)

    @property
    def ok(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def reason(self) -> JobReason:
        return _KIND_REASONS[self.kind]

    def describe(self) -> str:
        if self.kind is OutcomeKind.NONZERO_EXIT:
            if self.status is not None and self.status < 0:
                return f"terminated by signal {-self.status}"
            return f"exited with status {self.status}"
        if self.detail:
            return f"{self.kind.value}: {self.detail}"
        return self.kind.value
