from __future__ import annotations

import logging
import os
import threading
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from .config import AppConfig
from .credentials import CredentialResolver
from .errors import IOFailure, LaunchFailure, NotFound, RunConflict
from .launcher import Launcher
from .models import ExecutionPlan, Phase, RunRequest, SequencerState
from .rundirs import RunDirectoryManager
from .snapshot import OptionsSnapshotWriter
from .state import RunState, RunStateTracker, RunStatus


LOGGER = logging.getLogger("corb_admin.sequencer")


def advance(plan: ExecutionPlan, state: SequencerState, exit_code: Optional[int] = None) -> SequencerState:
    """
    Single transition function of the phase state machine.

    Running states consume the exit code of their phase; the other states
    ignore it. Terminal states have no successor.
    """
    if state is SequencerState.IDLE:
        return SequencerState.WET_RUNNING if plan is ExecutionPlan.WET_ONLY else SequencerState.DRY_RUNNING
    if state is SequencerState.DRY_RUNNING:
        return SequencerState.DRY_SUCCEEDED if exit_code == 0 else SequencerState.ERROR
    if state is SequencerState.DRY_SUCCEEDED:
        return SequencerState.WET_RUNNING if plan is ExecutionPlan.DRY_THEN_WET else SequencerState.COMPLETED
    if state is SequencerState.WET_RUNNING:
        return SequencerState.COMPLETED if exit_code == 0 else SequencerState.ERROR
    raise ValueError(f"no transition out of terminal state {state.value}")


def build_phase_args(request: RunRequest, run_id: str, phase: Phase) -> List[str]:
    """Positional flags understood by the external tool; ``--yes`` keeps it non-interactive."""
    args = [
        "--env",
        request.environment,
        "--project",
        request.project,
        "--job",
        request.job,
        "--dry-run",
        "true" if phase is Phase.DRY else "false",
    ]
    if request.options.limit is not None:
        args.extend(["--limit", str(request.options.limit)])
    args.extend(["--run-id", run_id, "--yes"])
    return args


class PhaseSequencer:
    """
    Drive a run request through its dry and wet phases.

    :meth:`submit` does all setup synchronously (run directory, credentials,
    options snapshot, tracker entry) and then hands the phase chain to a worker
    thread, so launching never blocks the caller.
    """

    def __init__(
        self,
        config: AppConfig,
        directories: RunDirectoryManager,
        credentials: CredentialResolver,
        tracker: RunStateTracker,
        launcher: Launcher,
        snapshots: Optional[OptionsSnapshotWriter] = None,
    ) -> None:
        self._config = config
        self._directories = directories
        self._credentials = credentials
        self._tracker = tracker
        self._launcher = launcher
        self._snapshots = snapshots or OptionsSnapshotWriter(config.paths)
        self._workers: Dict[str, threading.Thread] = {}
        self._workers_lock = threading.Lock()
        self._allocate_lock = threading.Lock()
        self._logger = LOGGER

    def submit(self, request: RunRequest) -> str:
        plan = request.plan
        fresh = True
        if request.resume_run_id:
            run_id = request.resume_run_id
            fresh = not self._directories.exists(request.project, request.environment, run_id)
            if plan is ExecutionPlan.WET_ONLY and fresh:
                raise NotFound(f"run {run_id} has no dry phase to resume for {request.project}/{request.environment}")
        else:
            # the directory claims the id, so allocation and creation happen together
            with self._allocate_lock:
                run_id = self._directories.allocate_run_id(
                    request.project, request.environment, is_taken=lambda candidate: candidate in self._tracker
                )
                self._directories.ensure_run_directory(request.project, request.environment, run_id)

        first = advance(plan, SequencerState.IDLE).running_phase
        try:
            with self._tracker.locked(run_id):
                current = self._tracker.get(run_id)
                if current is not None and current.status is RunStatus.RUNNING:
                    raise RunConflict(f"run {run_id} is already running")

                run_dir = self._directories.ensure_run_directory(request.project, request.environment, run_id)
                env = self._credentials.resolve_environment(request.environment, request.secret)
                self._snapshots.write(run_dir, run_id, request, first)

                state = RunState(status=RunStatus.RUNNING, phase=first.value)
                self._tracker.set(run_id, state)
        except Exception:
            # a directory without a launched phase would read as Completed
            if fresh:
                self._discard(request, run_id)
            raise

        self._logger.info(
            "Submitted run %s (%s/%s job=%s plan=%s options=%s)",
            run_id,
            request.project,
            request.environment,
            request.job,
            plan.value,
            request.options.to_dict(),
        )
        worker = threading.Thread(
            target=self._drive,
            args=(run_id, request, plan, state.attempt, run_dir, env),
            name=f"run-{run_id}",
            daemon=True,
        )
        with self._workers_lock:
            self._workers[run_id] = worker
        worker.start()
        return run_id

    def stop(self, run_id: str) -> bool:
        """
        Flip a Running run to Error and signal its live process.

        Returns False (and changes nothing) when the run is not Running. The
        process exit is not awaited.
        """
        if run_id not in self._tracker:
            return False
        with self._tracker.locked(run_id):
            current = self._tracker.get(run_id)
            if current is None or current.status is not RunStatus.RUNNING:
                return False
            handle = current.handle
            self._tracker.set(run_id, current.with_status(RunStatus.ERROR))
        self._logger.info("Stop requested for run %s during %s phase", run_id, current.phase)
        if handle is not None:
            handle.terminate()
        return True

    def join(self, run_id: str, timeout: Optional[float] = None) -> bool:
        """Wait for the worker of *run_id*; True when no worker is left running.

        Workers deregister themselves once their run has settled, so a missing
        worker means the run is done.
        """
        with self._workers_lock:
            worker = self._workers.get(run_id)
        if worker is None:
            return True
        worker.join(timeout)
        return not worker.is_alive()

    def forget(self, run_id: str) -> None:
        with self._workers_lock:
            self._workers.pop(run_id, None)

    def worker_count(self) -> int:
        with self._workers_lock:
            return len(self._workers)

    def _discard(self, request: RunRequest, run_id: str) -> None:
        self._logger.warning("Setup of run %s failed; removing its directory", run_id)
        try:
            self._directories.delete(request.project, request.environment, run_id)
        except IOFailure as exc:
            self._logger.error("Could not remove directory of run %s: %s", run_id, exc)

    def _release_worker(self, run_id: str) -> None:
        with self._workers_lock:
            if self._workers.get(run_id) is threading.current_thread():
                del self._workers[run_id]

    def _drive(
        self,
        run_id: str,
        request: RunRequest,
        plan: ExecutionPlan,
        attempt: int,
        run_dir: Path,
        env: Mapping[str, str],
    ) -> None:
        try:
            self._settle(run_id, attempt, self._chain(run_id, request, plan, attempt, run_dir, env))
        finally:
            self._release_worker(run_id)

    def _chain(
        self,
        run_id: str,
        request: RunRequest,
        plan: ExecutionPlan,
        attempt: int,
        run_dir: Path,
        env: Mapping[str, str],
    ) -> Optional[SequencerState]:
        """Run phases until the machine is terminal; None when the chain was cut short."""
        machine = advance(plan, SequencerState.IDLE)
        rendered = machine.running_phase
        try:
            while not machine.is_terminal:
                phase = machine.running_phase
                if phase is None:
                    machine = advance(plan, machine)
                    continue
                exit_code = self._run_phase(
                    run_id, request, phase, attempt, run_dir, env, refresh_options=phase is not rendered
                )
                if exit_code is None:
                    return None
                rendered = phase
                machine = advance(plan, machine, exit_code)
        except Exception as exc:  # pragma: no cover - surfaced as Error state and via logging
            self._logger.exception("Run %s failed unexpectedly: %s", run_id, exc)
            return SequencerState.ERROR
        return machine

    def _settle(self, run_id: str, attempt: int, machine: Optional[SequencerState]) -> None:
        if machine is None:
            return
        status = RunStatus.COMPLETED if machine is SequencerState.COMPLETED else RunStatus.ERROR
        if self._tracker.finish(run_id, attempt, status):
            self._logger.info("Run %s finished with status %s", run_id, status.value)
        else:
            self._logger.info("Run %s exit ignored; state was already settled", run_id)

    def _run_phase(
        self,
        run_id: str,
        request: RunRequest,
        phase: Phase,
        attempt: int,
        run_dir: Path,
        env: Mapping[str, str],
        refresh_options: bool = False,
    ) -> Optional[int]:
        """
        Launch one phase and wait for it.

        With *refresh_options* the options snapshot is re-rendered for this
        phase first, so a wet phase never reads the dry-run settings.

        Returns the exit code, or None when the chain must end here because the
        run was stopped before launch or the launch itself failed.
        """
        log_path = self._directories.log_path(run_dir, phase.value)
        with self._tracker.locked(run_id):
            current = self._tracker.get(run_id)
            if not _owns(current, attempt):
                self._logger.info("Run %s no longer running; %s phase not launched", run_id, phase.value)
                return None
            try:
                if refresh_options:
                    self._snapshots.render(run_dir, run_id, request, phase)
                handle = self._launcher.launch(
                    self._config.command.executable,
                    build_phase_args(request, run_id, phase),
                    self._config.paths.root,
                    env,
                    log_path,
                )
            except (LaunchFailure, IOFailure) as exc:
                self._logger.error("Run %s %s phase could not start: %s", run_id, phase.value, exc)
                self._tracker.set(run_id, current.with_status(RunStatus.ERROR))
                return None
            self._tracker.set(run_id, replace(current, handle=handle, phase=phase.value))
        self._logger.info("Run %s %s phase started", run_id, phase.value)

        exit_code = handle.wait()

        with self._tracker.locked(run_id):
            current = self._tracker.get(run_id)
            stopped = not _owns(current, attempt)
            if not stopped:
                self._tracker.set(run_id, replace(current, handle=None, exit_code=exit_code))
        if stopped:
            _append_log(log_path, f"[stopped] {phase.value} phase terminated with exit code {exit_code}\n")
        else:
            _append_log(log_path, f"[exit] {phase.value} phase finished with exit code {exit_code}\n")
        self._logger.info("Run %s %s phase exited with code %s", run_id, phase.value, exit_code)
        return exit_code


def _owns(state: Optional[RunState], attempt: int) -> bool:
    return state is not None and state.attempt == attempt and state.status is RunStatus.RUNNING


def _append_log(log_path: Path, text: str) -> None:
    # no O_CREAT: a deleted run must stay deleted
    try:
        fd = os.open(log_path, os.O_WRONLY | os.O_APPEND)
        with os.fdopen(fd, "ab") as handle:
            handle.write(text.encode("utf-8"))
    except OSError as exc:
        LOGGER.warning("Could not append to %s: %s", log_path, exc)
