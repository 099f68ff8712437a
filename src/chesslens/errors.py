"""Exception types raised by the analysis subsystem."""

from __future__ import annotations

from enum import StrEnum


class EngineError(Exception):
    """Base class for engine orchestration failures."""


class EngineNotFoundError(EngineError):
    """No engine executable could be located."""


class RejectReason(StrEnum):
    """Why a submission was resolved without an evaluation."""

    CANCELLED = "cancelled"
    SUPERSEDED = "superseded"
    INVALID_POSITION = "invalid_position"
    SHUTDOWN = "shutdown"


class SubmissionRejected(EngineError):
    """A submitted position did not produce a final evaluation."""

    def __init__(self, reason: RejectReason, message: str = "") -> None:
        super().__init__(message or f"Submission {reason}")
        self.reason = reason

