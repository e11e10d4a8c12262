from __future__ import annotations

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from .errors import AccessDenied, InvalidRequest, IOFailure, NotFound


LOGGER = logging.getLogger("corb_admin.rundirs")

RUN_ID_FORMAT = "%Y%m%d%H%M%S"
LOG_SUFFIX = "-output.log"


class RunDirectoryManager:
    """
    Own the on-disk layout of run artifacts: ``<runs_dir>/<project>/<environment>/<run_id>/``.

    Every path handed out by this class is resolved and checked to stay inside
    ``runs_dir``; anything that would escape it is rejected with
    :class:`AccessDenied` before the filesystem is touched.
    """

    def __init__(self, runs_dir: Path) -> None:
        self._runs_dir = Path(runs_dir)

    @property
    def runs_dir(self) -> Path:
        return self._runs_dir

    def run_path(self, project: str, environment: str, run_id: str) -> Path:
        """Return the run directory for the given coordinates without creating it."""
        path = self._runs_dir.resolve()
        for part in (project, environment, run_id):
            path = _child(path, part)
        return path

    def ensure_run_directory(self, project: str, environment: str, run_id: str) -> Path:
        """Create the run directory and its ancestors; existing content is left alone."""
        path = self.run_path(project, environment, run_id)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise IOFailure(f"cannot create run directory {path}: {exc}") from exc
        if not path.is_dir():
            raise IOFailure(f"run directory {path} is not a directory")
        return path

    def exists(self, project: str, environment: str, run_id: str) -> bool:
        return self.run_path(project, environment, run_id).is_dir()

    def log_path(self, run_dir: Path, phase: str) -> Path:
        """Phase logs never share a file, so dry and wet output cannot interleave."""
        return Path(run_dir) / f"{phase}{LOG_SUFFIX}"

    def list_files(self, project: str, environment: str, run_id: str) -> List[str]:
        run_dir = self._existing_run_dir(project, environment, run_id)
        return sorted(
            entry.relative_to(run_dir).as_posix()
            for entry in run_dir.rglob("*")
            if entry.is_file()
        )

    def artifact_path(self, project: str, environment: str, run_id: str, name: str) -> Path:
        """Resolve *name* inside the run directory, rejecting traversal."""
        run_dir = self.run_path(project, environment, run_id)
        candidate = (run_dir / name).resolve()
        if candidate == run_dir or not _is_within(candidate, run_dir):
            raise AccessDenied(f"artifact {name!r} is outside run {run_id}")
        return candidate

    def read_file(self, project: str, environment: str, run_id: str, name: str) -> str:
        target = self.artifact_path(project, environment, run_id, name)
        if not target.is_file():
            raise NotFound(f"artifact {name!r} not found for run {run_id}")
        try:
            return target.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise IOFailure(f"cannot read {target}: {exc}") from exc

    def list_run_ids(self, project: str, environment: str) -> List[str]:
        """Run ids found on disk for one project/environment, newest first."""
        env_dir = _child(_child(self._runs_dir.resolve(), project), environment)
        if not env_dir.is_dir():
            return []
        return sorted((entry.name for entry in env_dir.iterdir() if entry.is_dir()), reverse=True)

    def delete(self, project: str, environment: str, run_id: str) -> bool:
        """
        Remove a run directory. When this leaves the environment directory
        empty, the environment directory is removed as well.
        """
        run_dir = self.run_path(project, environment, run_id)
        if not run_dir.exists():
            return False
        try:
            shutil.rmtree(run_dir)
            env_dir = run_dir.parent
            if env_dir.is_dir() and not any(env_dir.iterdir()):
                env_dir.rmdir()
                LOGGER.info("Removed empty environment directory %s", env_dir)
        except OSError as exc:
            raise IOFailure(f"cannot delete run directory {run_dir}: {exc}") from exc
        LOGGER.info("Deleted run directory %s", run_dir)
        return True

    def allocate_run_id(
        self,
        project: str,
        environment: str,
        is_taken: Callable[[str], bool],
        now: Optional[datetime] = None,
    ) -> str:
        """
        Build a sortable run id from the current UTC time.

        Collisions with an existing directory or an id reported by *is_taken*
        get a two-digit ``-NN`` suffix.
        """
        base = (now or datetime.now(timezone.utc)).strftime(RUN_ID_FORMAT)
        candidate = base
        counter = 0
        while is_taken(candidate) or self.exists(project, environment, candidate):
            counter += 1
            candidate = f"{base}-{counter:02d}"
        return candidate

    def _existing_run_dir(self, project: str, environment: str, run_id: str) -> Path:
        run_dir = self.run_path(project, environment, run_id)
        if not run_dir.is_dir():
            raise NotFound(f"run {run_id} has no artifacts for {project}/{environment}")
        return run_dir


def _child(base: Path, part: str) -> Path:
    if not part or part == ".":
        raise InvalidRequest(f"invalid path component {part!r}")
    candidate = (base / part).resolve()
    if not _is_within(candidate, base) or candidate == base:
        raise AccessDenied(f"path component {part!r} escapes {base}")
    if candidate.parent != base:
        raise InvalidRequest(f"path component {part!r} must not contain separators")
    return candidate


def _is_within(path: Path, base: Path) -> bool:
    try:
        path.relative_to(base)
    except ValueError:
        return False
    return True
