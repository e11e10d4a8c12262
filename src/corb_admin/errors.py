"""Exception taxonomy shared by the orchestrator, the API and the CLI."""
from __future__ import annotations

from typing import Optional


class CorbAdminError(Exception):
    """Base class for all orchestrator errors."""


class InvalidRequest(CorbAdminError):
    """A run coordinate or option is malformed."""


class IOFailure(CorbAdminError):
    """Run directory, log file or snapshot could not be created or read."""


class AccessDenied(CorbAdminError):
    """An artifact path resolves outside its run directory."""


class NotFound(CorbAdminError):
    """A requested artifact does not exist."""


class LaunchFailure(CorbAdminError):
    """The external command could not be spawned at all."""

    def __init__(self, command: str, reason: str) -> None:
        super().__init__(f"could not launch {command}: {reason}")
        self.command = command
        self.reason = reason


class PhaseFailure(CorbAdminError):
    """A phase process exited with a non-zero code."""

    def __init__(self, run_id: str, phase: str, exit_code: Optional[int]) -> None:
        super().__init__(f"run {run_id}: {phase} phase failed (exit code {exit_code})")
        self.run_id = run_id
        self.phase = phase
        self.exit_code = exit_code


class RunConflict(CorbAdminError):
    """The run id is already Running and cannot be started again."""
