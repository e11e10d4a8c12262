import os
import sys
from pathlib import Path

import pytest

from corb_admin.errors import LaunchFailure
from corb_admin.launcher import SubprocessLauncher


def test_launcher_appends_combined_output(tmp_path: Path):
    log_path = tmp_path / "dry-output.log"
    log_path.write_text("previous attempt\n", encoding="utf-8")
    received = []
    launcher = SubprocessLauncher(listener=received.append)

    handle = launcher.launch(
        sys.executable,
        ["-c", "import sys; print('out' + '-line', flush=True); print('err' + '-line', file=sys.stderr, flush=True); sys.exit(3)"],
        cwd=tmp_path,
        env=os.environ,
        log_path=log_path,
    )

    assert handle.wait() == 3
    log_text = log_path.read_text(encoding="utf-8")
    assert log_text.startswith("previous attempt\n")
    assert "out-line" in log_text
    assert "err-line" in log_text
    assert b"".join(received).decode("utf-8").count("-line") == 2


def test_launcher_passes_environment(tmp_path: Path):
    log_path = tmp_path / "wet-output.log"
    env = dict(os.environ, CORB_DEV_PASSWORD="secret-value")
    handle = SubprocessLauncher().launch(
        sys.executable,
        ["-c", "import os; print('length=%d' % len(os.environ['CORB_DEV_PASSWORD']))"],
        cwd=tmp_path,
        env=env,
        log_path=log_path,
    )
    assert handle.wait() == 0
    assert "length=12" in log_path.read_text(encoding="utf-8")


def test_launcher_missing_executable(tmp_path: Path):
    log_path = tmp_path / "dry-output.log"
    with pytest.raises(LaunchFailure) as excinfo:
        SubprocessLauncher().launch(
            str(tmp_path / "no-such-corb"),
            ["--yes"],
            cwd=tmp_path,
            env=os.environ,
            log_path=log_path,
        )
    assert excinfo.value.reason == "missing-executable"
    assert "[missing-executable]" in log_path.read_text(encoding="utf-8")


def test_launcher_terminate(tmp_path: Path):
    handle = SubprocessLauncher().launch(
        sys.executable,
        ["-c", "import time; time.sleep(60)"],
        cwd=tmp_path,
        env=os.environ,
        log_path=tmp_path / "dry-output.log",
    )
    assert handle.poll() is None
    handle.terminate()
    assert handle.wait() != 0
    handle.terminate()
