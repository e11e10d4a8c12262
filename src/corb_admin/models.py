"""Run request types and the phase vocabulary shared by the orchestrator."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from .errors import InvalidRequest


class Phase(str, Enum):
    """A single external-process pass; the value names its log file."""

    DRY = "dry"
    WET = "wet"


class ExecutionPlan(str, Enum):
    DRY_ONLY = "dry-only"
    DRY_THEN_WET = "dry-then-wet"
    WET_ONLY = "wet-only"


class SequencerState(str, Enum):
    IDLE = "idle"
    DRY_RUNNING = "dry-running"
    DRY_SUCCEEDED = "dry-succeeded"
    WET_RUNNING = "wet-running"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def running_phase(self) -> Optional[Phase]:
        if self is SequencerState.DRY_RUNNING:
            return Phase.DRY
        if self is SequencerState.WET_RUNNING:
            return Phase.WET
        return None

    @property
    def is_terminal(self) -> bool:
        return self in {SequencerState.COMPLETED, SequencerState.ERROR}


@dataclass(frozen=True)
class RunOptions:
    """Execution options chosen by the operator for one submission."""

    limit: Optional[int] = 10
    dry_run: bool = True
    thread_count: int = 4

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit < 1:
            raise InvalidRequest("limit must be a positive integer or unbounded")
        if self.thread_count < 1:
            raise InvalidRequest("thread_count must be at least 1")

    def to_dict(self) -> Dict[str, Any]:
        return {"limit": self.limit, "dry_run": self.dry_run, "thread_count": self.thread_count}


@dataclass(frozen=True)
class RunRequest:
    """
    Inputs for one submission.

    ``resume_run_id`` targets an existing run: with ``dry_run`` unset only the
    wet phase is launched, with ``dry_run`` set the dry phase is re-run under
    the same id.
    """

    project: str
    job: str
    environment: str
    options: RunOptions = field(default_factory=RunOptions)
    secret: Optional[str] = field(default=None, repr=False)
    resume_run_id: Optional[str] = None

    def __post_init__(self) -> None:
        for label, value in (("project", self.project), ("job", self.job), ("environment", self.environment)):
            if not value or not value.strip():
                raise InvalidRequest(f"{label} must not be empty")
            if "/" in value or "\\" in value or value in {".", ".."}:
                raise InvalidRequest(f"{label} must be a plain name, got {value!r}")

    @property
    def plan(self) -> ExecutionPlan:
        if self.options.dry_run:
            return ExecutionPlan.DRY_ONLY
        if self.resume_run_id:
            return ExecutionPlan.WET_ONLY
        return ExecutionPlan.DRY_THEN_WET
