from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

import pytest

from corb_admin.config import AppConfig, build_paths
from corb_admin.errors import LaunchFailure
from corb_admin.service import RunService, build_service


class FakeHandle:
    """Stand-in for a phase process; exits when released or terminated."""

    def __init__(self, exit_code: int, block: bool, exit_on_terminate: bool) -> None:
        self.exit_code = exit_code
        self.terminated = threading.Event()
        self._exit_on_terminate = exit_on_terminate
        self._released = threading.Event()
        if not block:
            self._released.set()

    def wait(self) -> int:
        assert self._released.wait(timeout=10), "fake process never released"
        return self.exit_code

    def terminate(self) -> None:
        self.terminated.set()
        if self._exit_on_terminate:
            self.exit_code = -15
            self._released.set()

    def release(self, exit_code: Optional[int] = None) -> None:
        if exit_code is not None:
            self.exit_code = exit_code
        self._released.set()


class FakeLauncher:
    """Records launches and writes a line per phase into the phase log."""

    def __init__(
        self,
        exit_codes: Optional[Dict[str, int]] = None,
        block: bool = False,
        exit_on_terminate: bool = True,
        fail_phases: Sequence[str] = (),
    ) -> None:
        self.exit_codes = exit_codes or {}
        self.block = block
        self.exit_on_terminate = exit_on_terminate
        self.fail_phases = set(fail_phases)
        self.calls: List[dict] = []
        self.handles: List[FakeHandle] = []
        self._condition = threading.Condition()

    def launch(
        self,
        executable: str,
        args: Sequence[str],
        cwd: Path,
        env: Mapping[str, str],
        log_path: Path,
    ) -> FakeHandle:
        phase = "dry" if args[args.index("--dry-run") + 1] == "true" else "wet"
        options_path = Path(log_path).parent / "job.options"
        options = options_path.read_text(encoding="utf-8") if options_path.exists() else None
        with Path(log_path).open("ab") as handle:
            handle.write(f"{phase} output\n".encode("utf-8"))
        with self._condition:
            self.calls.append(
                {
                    "executable": executable,
                    "args": list(args),
                    "cwd": cwd,
                    "env": dict(env),
                    "log_path": log_path,
                    "phase": phase,
                    "options": options,
                }
            )
            if phase in self.fail_phases:
                self._condition.notify_all()
                raise LaunchFailure(executable, "missing-executable")
            fake = FakeHandle(self.exit_codes.get(phase, 0), self.block, self.exit_on_terminate)
            self.handles.append(fake)
            self._condition.notify_all()
        return fake

    @property
    def phases(self) -> List[str]:
        return [call["phase"] for call in self.calls]

    def wait_for_launches(self, count: int, timeout: float = 5.0) -> bool:
        with self._condition:
            return self._condition.wait_for(lambda: len(self.calls) >= count, timeout=timeout)


@pytest.fixture()
def app_config(tmp_path: Path) -> AppConfig:
    config = AppConfig(paths=build_paths(tmp_path))
    config.paths.runs_dir.mkdir(parents=True, exist_ok=True)
    return config


@pytest.fixture()
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture()
def service(app_config: AppConfig, launcher: FakeLauncher) -> RunService:
    return build_service(app_config, launcher=launcher)


@pytest.fixture()
def make_service(app_config: AppConfig):
    def _make(**launcher_kwargs):
        fake = FakeLauncher(**launcher_kwargs)
        return build_service(app_config, launcher=fake), fake

    return _make
