from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class RunStatus:
    NO_ITEMS = "no_items"
    UNKNOWN_ERROR = "unknown_error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    COMPLETED = "completed"
    ALREADY_RUNNING = "already_running"


# Integer codes stored in check_run.result_code and sent over the control socket
STATUS_CODES = {
    RunStatus.NO_ITEMS: -1,
    RunStatus.UNKNOWN_ERROR: -2,
    RunStatus.SERVICE_UNAVAILABLE: -3,
}


@dataclass(frozen=True)
class RunResult:
    """Outcome of one job run.

    `count` is only meaningful for COMPLETED (0 means no updates). `extra` is the
    type-specific secondary counter persisted alongside the result code.
    """

    status: str
    count: int = 0
    extra: Optional[int] = None

    @classmethod
    def no_items(cls) -> RunResult:
        return cls(RunStatus.NO_ITEMS)

    @classmethod
    def unknown_error(cls) -> RunResult:
        return cls(RunStatus.UNKNOWN_ERROR)

    @classmethod
    def service_unavailable(cls) -> RunResult:
        return cls(RunStatus.SERVICE_UNAVAILABLE)

    @classmethod
    def completed(cls, count: int, extra: Optional[int] = None) -> RunResult:
        return cls(RunStatus.COMPLETED, count=count, extra=extra)

    @classmethod
    def already_running(cls) -> RunResult:
        return cls(RunStatus.ALREADY_RUNNING)

    @property
    def code(self) -> int:
        if self.status == RunStatus.COMPLETED:
            return self.count
        if self.status == RunStatus.ALREADY_RUNNING:
            raise ValueError("An already-running result is never persisted")
        return STATUS_CODES[self.status]

    @property
    def is_failure(self) -> bool:
        return self.status in (RunStatus.UNKNOWN_ERROR, RunStatus.SERVICE_UNAVAILABLE)
