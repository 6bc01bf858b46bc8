"""Shared value types: observed running state and operation outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class RunningState(StrEnum):
    """Observed running state of a project. Derived on demand, never persisted."""

    RUNNING = "running"
    STOPPED = "stopped"
    UNKNOWN = "unknown"


class OutcomeStatus(StrEnum):
    """How a lifecycle operation ended.

    Fatal paths are not an outcome: they raise a DeckhandError.
    """

    SUCCESS = "success"
    WARNING = "warning"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Outcome:
    """Reportable result of one operation on one project.

    SUCCESS and WARNING count as success in a batch; FAILED is a recoverable
    failure (reported, the batch continues, overall exit code is non-zero).
    """

    status: OutcomeStatus
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status != OutcomeStatus.FAILED

    @classmethod
    def success(cls, message: str = "") -> Outcome:
        return cls(OutcomeStatus.SUCCESS, message)

    @classmethod
    def warning(cls, message: str) -> Outcome:
        return cls(OutcomeStatus.WARNING, message)

    @classmethod
    def failed(cls, message: str) -> Outcome:
        return cls(OutcomeStatus.FAILED, message)
