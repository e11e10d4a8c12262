from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from .config import AppConfig
from .credentials import CredentialResolver
from .errors import NotFound, PhaseFailure
from .launcher import Launcher, SubprocessLauncher
from .models import RunRequest
from .rundirs import RunDirectoryManager
from .sequencer import PhaseSequencer
from .state import RunStateTracker, RunStatus


LOGGER = logging.getLogger("corb_admin.service")

DELETE_GRACE_SECONDS = 5.0


@dataclass
class RunSummary:
    run_id: str
    status: RunStatus


class RunService:
    """Read, stop and delete operations offered to the UI layer, plus submission."""

    def __init__(
        self,
        config: AppConfig,
        directories: RunDirectoryManager,
        tracker: RunStateTracker,
        sequencer: PhaseSequencer,
    ) -> None:
        self.config = config
        self._directories = directories
        self._tracker = tracker
        self._sequencer = sequencer

    @property
    def tracker(self) -> RunStateTracker:
        return self._tracker

    @property
    def sequencer(self) -> PhaseSequencer:
        return self._sequencer

    def submit(self, request: RunRequest) -> str:
        return self._sequencer.submit(request)

    def get_status(self, project: str, environment: str, run_id: str) -> RunStatus:
        """
        Report the tracked state of a run.

        A run without a tracker entry whose directory exists is reported as
        Completed: after an orchestrator restart a finished run and a run that
        died mid-phase look the same, and both are assumed finished.
        """
        state = self._tracker.get(run_id)
        if state is not None:
            return state.status
        if self._directories.exists(project, environment, run_id):
            return RunStatus.COMPLETED
        return RunStatus.UNKNOWN

    def stop(self, run_id: str) -> None:
        """Stop a run if it is Running; stopping anything else is a no-op."""
        if not self._sequencer.stop(run_id):
            LOGGER.debug("Stop ignored for run %s; not running", run_id)

    def wait(self, run_id: str, timeout: Optional[float] = None) -> bool:
        return self._sequencer.join(run_id, timeout)

    def wait_for_completion(self, project: str, environment: str, run_id: str, timeout: Optional[float] = None) -> RunStatus:
        """Block until the run's phase chain ends; raise :class:`PhaseFailure` on Error."""
        self.wait(run_id, timeout)
        status = self.get_status(project, environment, run_id)
        if status is RunStatus.ERROR:
            state = self._tracker.get(run_id)
            if state is None:
                raise PhaseFailure(run_id, "unknown", None)
            raise PhaseFailure(run_id, state.phase or "unknown", state.exit_code)
        return status

    def list_artifact_files(self, project: str, environment: str, run_id: str) -> List[str]:
        return self._directories.list_files(project, environment, run_id)

    def read_artifact(self, project: str, environment: str, run_id: str, name: str) -> str:
        return self._directories.read_file(project, environment, run_id, name)

    def list_runs(self, project: str, environment: str) -> List[RunSummary]:
        return [
            RunSummary(run_id=run_id, status=self.get_status(project, environment, run_id))
            for run_id in self._directories.list_run_ids(project, environment)
        ]

    def delete_run(self, project: str, environment: str, run_id: str) -> None:
        """Remove a run's artifacts and its tracker entry, stopping it first if needed."""
        if self._sequencer.stop(run_id):
            self._sequencer.join(run_id, timeout=DELETE_GRACE_SECONDS)
        removed = self._directories.delete(project, environment, run_id)
        tracked = self._tracker.delete(run_id) is not None
        self._sequencer.forget(run_id)
        if not removed and not tracked:
            raise NotFound(f"run {run_id} not found for {project}/{environment}")
        LOGGER.info("Deleted run %s (%s/%s)", run_id, project, environment)


def build_service(config: AppConfig, launcher: Optional[Launcher] = None) -> RunService:
    """Wire the orchestrator components for *config*."""
    directories = RunDirectoryManager(config.paths.runs_dir)
    tracker = RunStateTracker()
    credentials = CredentialResolver(config.command.secret_env_template)
    sequencer = PhaseSequencer(
        config=config,
        directories=directories,
        credentials=credentials,
        tracker=tracker,
        launcher=launcher or SubprocessLauncher(),
    )
    return RunService(config=config, directories=directories, tracker=tracker, sequencer=sequencer)
