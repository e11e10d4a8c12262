from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import List, Optional

from .config import PathsConfig
from .errors import IOFailure
from .models import Phase, RunRequest


LOGGER = logging.getLogger("corb_admin.snapshot")

OPTIONS_FILE = "job.options"
SCRIPT_SUFFIXES = (".xqy", ".js", ".sjs")


class OptionsSnapshotWriter:
    """
    Materialise the resolved execution options inside a run directory.

    Sources are copied byte for byte. ``job.options`` merges the copied
    environment properties, the copied job file and the runtime settings of
    the submission, in that order, so later keys win when the external tool
    reads the file top to bottom. Its dry-run keys follow the phase about to
    launch, so :meth:`render` is called again before a wet phase.
    """

    def __init__(self, paths: PathsConfig) -> None:
        self._paths = paths

    def write(self, run_dir: Path, run_id: str, request: RunRequest, phase: Phase = Phase.DRY) -> Path:
        run_dir = Path(run_dir)
        self._copy_source(self._env_source(request), run_dir)
        self._copy_source(self._paths.projects_dir / request.project / request.job, run_dir)
        self._copy_scripts(self._paths.projects_dir / request.project / "scripts", run_dir / "scripts")
        return self.render(run_dir, run_id, request, phase)

    def render(self, run_dir: Path, run_id: str, request: RunRequest, phase: Phase) -> Path:
        run_dir = Path(run_dir)
        target = run_dir / OPTIONS_FILE
        try:
            env_text = _read_properties(run_dir / self._env_source(request).name)
            job_text = _read_properties(run_dir / request.job)
            target.write_text(
                render_options(run_id, request, phase, env_text=env_text, job_text=job_text),
                encoding="utf-8",
            )
        except OSError as exc:
            raise IOFailure(f"cannot write {target}: {exc}") from exc
        LOGGER.debug("Rendered %s for run %s (%s phase)", target, run_id, phase.value)
        return target

    def _env_source(self, request: RunRequest) -> Path:
        return self._paths.env_dir / f"{request.environment}.props"

    def _copy_source(self, source: Path, run_dir: Path) -> None:
        if not source.is_file():
            LOGGER.warning("Snapshot source %s not found; skipping", source)
            return
        destination = run_dir / source.name
        if destination.exists():
            return
        try:
            shutil.copy2(source, destination)
        except OSError as exc:
            raise IOFailure(f"cannot snapshot {source}: {exc}") from exc

    def _copy_scripts(self, source_dir: Path, target_dir: Path) -> List[Path]:
        if not source_dir.is_dir() or target_dir.exists():
            return []
        copied: List[Path] = []
        try:
            for entry in sorted(source_dir.iterdir()):
                if entry.is_file() and entry.suffix in SCRIPT_SUFFIXES:
                    target_dir.mkdir(parents=True, exist_ok=True)
                    copied.append(Path(shutil.copy2(entry, target_dir / entry.name)))
        except OSError as exc:
            raise IOFailure(f"cannot snapshot scripts from {source_dir}: {exc}") from exc
        return copied


def _read_properties(path: Path) -> Optional[str]:
    # .properties files are often ISO-8859-1
    if not path.is_file():
        return None
    raw = path.read_bytes()
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return raw.decode("latin-1")


def render_options(
    run_id: str,
    request: RunRequest,
    phase: Phase,
    env_text: Optional[str] = None,
    job_text: Optional[str] = None,
) -> str:
    options = request.options
    lines = [f"# Generated for run {run_id}", ""]
    lines.append(f"# --- Environment: {request.environment} ---")
    if env_text is not None:
        lines.append(env_text.rstrip("\n"))
    lines.append("")
    lines.append(f"# --- Job: {request.job} ---")
    if job_text is not None:
        lines.append(job_text.rstrip("\n"))
    lines.append("")
    lines.append("# --- Runtime Settings ---")
    if options.limit is not None:
        lines.append(f"URIS-MODULE.LIMIT={options.limit}")
        lines.append(f"PROCESS-MODULE.LIMIT={options.limit}")
    flag = "true" if phase is Phase.DRY else "false"
    lines.append(f"URIS-MODULE.DRY-RUN={flag}")
    lines.append(f"PROCESS-MODULE.DRY-RUN={flag}")
    lines.append(f"THREAD-COUNT={options.thread_count}")
    return "\n".join(lines) + "\n"
